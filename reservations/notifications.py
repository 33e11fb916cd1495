import logging
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction

from .models import Booking

logger = logging.getLogger(__name__)


def _money(cents):
    return f"{cents / 100:.2f}"


class Notifier:
    """Guest emails sent around the booking lifecycle.

    Delivery is fire-and-forget: a failed email is logged and never undoes
    or fails the booking operation that triggered it.
    """

    def __init__(self, policy):
        self.policy = policy

    def _send(self, booking, subject, body):
        try:
            send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [booking.guest_email])
        except Exception:
            logger.exception("Failed to send '%s' email for booking %s", subject, booking.booking_number)
            return False
        return True

    def booking_created(self, booking):
        transaction.on_commit(lambda: self._send(
            booking,
            f"Booking confirmation {booking.booking_number}",
            f"Dear {booking.guest_name},\n\n"
            f"Your booking {booking.booking_number} for {booking.room.name} is confirmed.\n"
            f"Check-in: {booking.check_in} from {self.policy.check_in_time}\n"
            f"Check-out: {booking.check_out} until {self.policy.check_out_time}\n"
            f"Total: {_money(booking.total_cents)} {self.policy.currency.upper()}\n",
        ))

    def booking_cancelled(self, booking):
        transaction.on_commit(lambda: self._send(
            booking,
            f"Booking {booking.booking_number} cancelled",
            f"Dear {booking.guest_name},\n\n"
            f"Your booking {booking.booking_number} has been cancelled.\n"
            f"Refund: {_money(booking.refund_cents)} {self.policy.currency.upper()}\n",
        ))

    def arrival_reminder(self, booking):
        return self._send(
            booking,
            f"Your stay starts soon ({booking.booking_number})",
            f"Dear {booking.guest_name},\n\n"
            f"We look forward to welcoming you on {booking.check_in}.\n"
            f"Check-in from {self.policy.check_in_time}, check-out until {self.policy.check_out_time}.\n",
        )

    def send_due_reminders(self, today):
        """Remind guests arriving ``reminder_lead_days`` after ``today``.

        Each booking is claimed by flipping ``reminder_sent`` with a conditional
        update first, so overlapping runs never email the same guest twice.
        """
        arrival = today + timedelta(days=self.policy.reminder_lead_days)
        candidates = Booking.objects.select_related("room").filter(
            status=Booking.Status.CONFIRMED,
            check_in=arrival,
            reminder_sent=False,
        )
        sent = 0
        for booking in candidates:
            claimed = Booking.objects.filter(pk=booking.pk, reminder_sent=False).update(reminder_sent=True)
            if not claimed:
                continue
            if self.arrival_reminder(booking):
                sent += 1
                logger.info("Reminder sent for booking %s", booking.booking_number)
            else:
                Booking.objects.filter(pk=booking.pk).update(reminder_sent=False)
        return sent
