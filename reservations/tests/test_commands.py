from datetime import date, timedelta
from io import StringIO
from unittest import mock

from django.core import mail
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from reservations.config import BookingPolicy
from reservations.models import Booking, ChannelSyncTask, Room
from reservations.notifications import Notifier

from .fakes import FakeChannelClient, make_booking, make_lifecycle


class ArrivalReminderTestCase(TestCase):
    """Test arrival reminder emails"""

    def setUp(self):
        self.room = Room.objects.create(name="Apartment 1", room_type="Standard Apartment", price_cents=9000, capacity=4)
        self.today = date(2025, 8, 14)
        self.arriving = make_booking(self.room, date(2025, 8, 15), date(2025, 8, 18), guest_email="arriving@example.com")
        make_booking(self.room, date(2025, 8, 20), date(2025, 8, 22))
        make_booking(self.room, date(2025, 8, 15), date(2025, 8, 16), status=Booking.Status.CANCELLED)
        self.notifier = Notifier(BookingPolicy())

    def test_sends_once(self):
        self.assertEqual(self.notifier.send_due_reminders(self.today), 1)
        self.assertEqual(mail.outbox[0].to, ["arriving@example.com"])
        self.arriving.refresh_from_db()
        self.assertTrue(self.arriving.reminder_sent)

        self.assertEqual(self.notifier.send_due_reminders(self.today), 0)
        self.assertEqual(len(mail.outbox), 1)

    def test_failed_send_can_be_retried(self):
        with mock.patch("reservations.notifications.send_mail", side_effect=OSError("smtp down")):
            with self.assertLogs("reservations.notifications", level="ERROR"):
                self.assertEqual(self.notifier.send_due_reminders(self.today), 0)
        self.arriving.refresh_from_db()
        self.assertFalse(self.arriving.reminder_sent)

        self.assertEqual(self.notifier.send_due_reminders(self.today), 1)

    def test_lead_days(self):
        notifier = Notifier(BookingPolicy(reminder_lead_days=6))
        self.assertEqual(notifier.send_due_reminders(self.today), 1)

    def test_command(self):
        out = StringIO()
        with mock.patch("reservations.management.commands.send_arrival_reminders.timezone.localdate",
                        return_value=self.today):
            call_command("send_arrival_reminders", stdout=out)
        self.assertIn("Sent 1 arrival reminders", out.getvalue())


class SyncChannelCommandTestCase(TestCase):
    """Test the channel reconciliation command"""

    def setUp(self):
        room = Room.objects.create(
            name="Apartment 2", room_type="Standard Apartment", price_cents=9000, capacity=4,
            external_room_id="CH-ROOM-2",
        )
        booking = make_booking(room, date.today() + timedelta(days=3), date.today() + timedelta(days=5))
        ChannelSyncTask.objects.create(booking=booking, next_attempt_at=timezone.now())

    def test_runs_due_tasks(self):
        client = FakeChannelClient()
        adapter = make_lifecycle(channel_client=client).channel
        out = StringIO()

        with mock.patch("reservations.management.commands.sync_channel.build_channel_adapter", return_value=adapter):
            call_command("sync_channel", stdout=out)

        self.assertIn("Processed 1 sync tasks", out.getvalue())
        self.assertEqual(ChannelSyncTask.objects.get().status, ChannelSyncTask.Status.SUCCEEDED)
        self.assertTrue(client.closed)


class PopulateDbTestCase(TestCase):

    def test_idempotent(self):
        call_command("populate_db", stdout=StringIO())
        call_command("populate_db", stdout=StringIO())
        self.assertEqual(Room.objects.count(), 7)
        self.assertEqual(Room.objects.filter(room_type="Standard Apartment").count(), 7)
