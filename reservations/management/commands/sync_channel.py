from django.core.management.base import BaseCommand

from reservations.models import ChannelSyncTask
from reservations.services import build_channel_adapter


class Command(BaseCommand):
    help = 'Retry pending channel mirror bookings that are due'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=50, help='Maximum number of tasks to run')

    def handle(self, *args, **options):
        tasks = build_channel_adapter().process_pending(limit=options['limit'])
        succeeded = sum(1 for task in tasks if task.status == ChannelSyncTask.Status.SUCCEEDED)
        failed = sum(1 for task in tasks if task.status == ChannelSyncTask.Status.FAILED)

        self.stdout.write(f'Processed {len(tasks)} sync tasks')
        if failed:
            self.stdout.write(self.style.ERROR(f'{failed} tasks gave up and need manual reconciliation'))
        self.stdout.write(self.style.SUCCESS(f'{succeeded} bookings mirrored on the channel'))
