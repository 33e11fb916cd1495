from django.core.management.base import BaseCommand
from django.utils import timezone

from reservations.config import BookingPolicy
from reservations.notifications import Notifier


class Command(BaseCommand):
    help = 'Email arrival reminders to guests checking in soon'

    def handle(self, *args, **options):
        sent = Notifier(BookingPolicy.from_settings()).send_due_reminders(timezone.localdate())
        self.stdout.write(self.style.SUCCESS(f'Sent {sent} arrival reminders'))
