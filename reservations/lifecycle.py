import logging
from dataclasses import dataclass
from datetime import date

from django.db import transaction
from django.utils import timezone

from . import errors
from .availability import validate_range
from .models import Booking

logger = logging.getLogger(__name__)

Status = Booking.Status

TRANSITIONS = {
    Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
    Status.CONFIRMED: {Status.CHECKED_IN, Status.CANCELLED},
    Status.CHECKED_IN: {Status.CHECKED_OUT, Status.CANCELLED},
    Status.CHECKED_OUT: set(),
    Status.CANCELLED: set(),
}


def assert_transition(current, target):
    if target not in TRANSITIONS.get(current, set()):
        raise errors.StateError(f"Invalid booking transition: {current} -> {target}")


@dataclass(frozen=True)
class GuestInfo:
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    special_requests: str = ""
    language: str = Booking.Language.ENGLISH


@dataclass(frozen=True)
class Quote:
    nights: int
    base_cents: int
    tax_cents: int

    @property
    def total_cents(self):
        return self.base_cents + self.tax_cents


class BookingLifecycle:
    """Creates, transitions and cancels bookings.

    Every admission runs inside one transaction that locks the room row,
    re-checks availability and draws the booking number, so two requests for
    the same room are serialised instead of both passing a stale check.
    """

    def __init__(self, repository, engine, gateway, channel, notifier, policy):
        self.repository = repository
        self.engine = engine
        self.gateway = gateway
        self.channel = channel
        self.notifier = notifier
        self.policy = policy

    def _validate_party(self, room, adults, children):
        if adults < 1:
            raise errors.ValidationError("At least one adult is required")
        if children < 0:
            raise errors.ValidationError("children cannot be negative")
        if adults + children > room.capacity:
            raise errors.CapacityExceeded(
                f"Room {room.name} sleeps {room.capacity}, requested {adults + children}"
            )

    def _quote_for(self, room, check_in, check_out):
        nights = (check_out - check_in).days
        base = nights * room.price_cents
        return Quote(nights=nights, base_cents=base, tax_cents=self.policy.tax_for(base))

    def quote(self, room_id, check_in, check_out, adults=1, children=0):
        validate_range(check_in, check_out)
        room = self.repository.get_room(room_id)
        self._validate_party(room, adults, children)
        return self._quote_for(room, check_in, check_out)

    def create_booking(self, room_id, check_in, check_out, guest, adults, children=0,
                       payment_method=Booking.PaymentMethod.CASH, total_cents=None,
                       payment=None, actor="guest"):
        if payment_method not in Booking.PaymentMethod.values:
            raise errors.ValidationError(f"Unknown payment method {payment_method}")
        if payment_method == Booking.PaymentMethod.CARD and payment is None:
            raise errors.ValidationError("Card bookings are created only after the payment is captured")
        if total_cents is not None and total_cents < 0:
            raise errors.ValidationError("total amount cannot be negative")
        validate_range(check_in, check_out)

        with transaction.atomic():
            room = self.repository.lock_room(room_id)
            if payment is not None:
                # a concurrent confirm of the same intent may have admitted it already
                existing = self.repository.find_by_payment_intent(payment.intent_id)
                if existing is not None:
                    return existing
            self._validate_party(room, adults, children)
            if not self.engine.is_room_available(room.pk, check_in, check_out):
                raise errors.RoomNotAvailable()

            quoted = self._quote_for(room, check_in, check_out).total_cents
            if payment is not None:
                total_cents = payment.amount_cents
            elif total_cents is None:
                total_cents = quoted
            elif total_cents != quoted:
                raise errors.ValidationError(
                    f"Total amount {total_cents} does not match the quoted price {quoted}"
                )

            fields = dict(
                booking_number=self.repository.next_booking_number(
                    self.policy.booking_prefix, timezone.localdate().year
                ),
                room=room,
                guest_first_name=guest.first_name,
                guest_last_name=guest.last_name,
                guest_email=guest.email,
                guest_phone=guest.phone,
                special_requests=guest.special_requests,
                language=guest.language,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                children=children,
                total_cents=total_cents,
                payment_method=payment_method,
                status=Status.CONFIRMED,
            )
            if payment is not None:
                fields.update(
                    payment_status=Booking.PaymentStatus.PAID,
                    payment_intent_id=payment.intent_id,
                    charge_ref=payment.charge_ref,
                )
            else:
                fields.update(payment_status=Booking.PaymentStatus.PENDING)

            booking = self.repository.insert_booking(**fields)
            self.repository.record_event(
                booking, "created", actor=actor,
                payment_method=payment_method, total_cents=total_cents,
            )
            self.channel.enqueue(booking)
            self.notifier.booking_created(booking)

        logger.info(
            "Booking %s created for room %s %s..%s (%s)",
            booking.booking_number, room.pk, check_in, check_out, payment_method,
        )
        return booking

    def create_cash_booking(self, room_id, check_in, check_out, guest, adults, children=0,
                            total_cents=None, actor="guest"):
        return self.create_booking(
            room_id, check_in, check_out, guest, adults, children,
            payment_method=Booking.PaymentMethod.CASH, total_cents=total_cents, actor=actor,
        )

    def start_card_payment(self, room_id, check_in, check_out, adults, children=0):
        """Stage a card charge for a price quote; no inventory is held."""
        validate_range(check_in, check_out)
        room = self.repository.get_room(room_id)
        self._validate_party(room, adults, children)
        if not self.engine.is_room_available(room.pk, check_in, check_out):
            raise errors.RoomNotAvailable()
        quote = self._quote_for(room, check_in, check_out)
        metadata = {
            "roomId": room.pk,
            "checkIn": check_in.isoformat(),
            "checkOut": check_out.isoformat(),
            "adults": adults,
            "children": children,
            "nights": quote.nights,
            "baseCents": quote.base_cents,
            "taxCents": quote.tax_cents,
        }
        intent = self.gateway.create_intent(quote.total_cents, self.policy.currency, metadata)
        logger.info("Payment intent %s created for room %s (%d cents)", intent.intent_id, room.pk, intent.amount_cents)
        return intent, quote

    def confirm_card_payment(self, intent_id, guest, actor="guest"):
        existing = self.repository.find_by_payment_intent(intent_id)
        if existing is not None:
            return existing

        captured = self.gateway.confirm_captured(intent_id)
        meta = captured.metadata
        try:
            room_id = int(meta["roomId"])
            check_in = date.fromisoformat(meta["checkIn"])
            check_out = date.fromisoformat(meta["checkOut"])
            adults = int(meta["adults"])
            children = int(meta.get("children") or 0)
        except (KeyError, TypeError, ValueError) as exc:
            self._refund_captured(captured, "invalid payment metadata")
            raise errors.ValidationError(f"Payment {intent_id} carries no usable booking details") from exc

        try:
            return self.create_booking(
                room_id, check_in, check_out, guest, adults, children,
                payment_method=Booking.PaymentMethod.CARD, payment=captured, actor=actor,
            )
        except errors.DuplicateBooking:
            return self.repository.find_by_payment_intent(intent_id)
        except (errors.ConflictError, errors.NotFoundError, errors.ValidationError) as exc:
            existing = self.repository.find_by_payment_intent(intent_id)
            if existing is not None:
                return existing
            self._refund_captured(captured, exc.message)
            raise

    def _refund_captured(self, captured, reason):
        """Give the money back when a captured payment cannot become a booking."""
        if not captured.charge_ref:
            logger.critical("Payment %s captured without a charge reference; refund it manually", captured.intent_id)
            raise errors.PaymentError(f"Payment {captured.intent_id} could not be refunded automatically")
        try:
            refund_ref = self.gateway.refund(
                captured.charge_ref, captured.amount_cents, reason,
                metadata={"paymentIntentId": captured.intent_id},
            )
        except errors.PaymentError as exc:
            logger.critical("Automatic refund of payment %s failed: %s", captured.intent_id, exc.message)
            raise errors.PaymentError(
                f"Booking failed ({reason}) and the automatic refund of {captured.intent_id} failed"
            ) from exc
        logger.warning("Payment %s refunded as %s because the booking failed: %s", captured.intent_id, refund_ref, reason)
        return refund_ref

    def cancel_booking(self, booking_id, reason=None, refund_cents=None, admin_notes=None, actor="admin"):
        with transaction.atomic():
            booking = self.repository.get_booking(booking_id, lock=True)
            if booking.status == Status.CANCELLED:
                raise errors.StateError("Booking is already cancelled")
            if booking.status == Status.CHECKED_OUT:
                raise errors.StateError("Cannot cancel a completed booking")

            was_paid = booking.payment_status == Booking.PaymentStatus.PAID
            if refund_cents is None:
                refund_cents = booking.total_cents if was_paid else 0
            if not 0 <= refund_cents <= booking.total_cents:
                raise errors.ValidationError("Refund must be between 0 and the booking total")
            reason = reason or "Cancelled by admin"

            refund_ref = ""
            if booking.payment_method == Booking.PaymentMethod.CARD and was_paid:
                if booking.charge_ref and refund_cents > 0:
                    # raises PaymentError before anything local changes
                    refund_ref = self.gateway.refund(
                        booking.charge_ref, refund_cents, reason,
                        metadata={"bookingId": str(booking.pk)},
                    )
                elif refund_cents > 0:
                    logger.warning(
                        "Booking %s has no charge reference; refund of %d cents is settled outside the gateway",
                        booking.booking_number, refund_cents,
                    )
            elif booking.payment_method == Booking.PaymentMethod.CASH:
                logger.info("Cash refund of %d cents recorded for booking %s", refund_cents, booking.booking_number)

            now = timezone.now()
            booking.status = Status.CANCELLED
            booking.cancelled_at = now
            booking.cancellation_reason = reason
            booking.refund_cents = refund_cents
            booking.refund_ref = refund_ref
            changed = ["status", "cancelled_at", "cancellation_reason", "refund_cents", "refund_ref"]
            if admin_notes:
                booking.admin_notes = admin_notes
                changed.append("admin_notes")
            if was_paid:
                booking.payment_status = Booking.PaymentStatus.REFUNDED
                booking.refunded_at = now
                changed += ["payment_status", "refunded_at"]
            self.repository.save(booking, changed)
            self.repository.record_event(
                booking, "cancelled", actor=actor,
                reason=reason, refund_cents=refund_cents, refund_ref=refund_ref,
            )
            self.notifier.booking_cancelled(booking)

        logger.info("Booking %s cancelled by %s (refund %d cents)", booking.booking_number, actor, refund_cents)
        return booking

    def update_status(self, booking_id, new_status, admin_notes=None, actor="admin"):
        if new_status not in Status.values:
            raise errors.ValidationError(f"Invalid status {new_status}")
        if new_status == Status.CANCELLED:
            return self.cancel_booking(booking_id, admin_notes=admin_notes, actor=actor)

        with transaction.atomic():
            booking = self.repository.get_booking(booking_id, lock=True)
            previous = booking.status
            assert_transition(previous, new_status)
            booking.status = new_status
            changed = ["status"]
            if new_status == Status.CHECKED_IN:
                booking.checked_in_at = timezone.now()
                changed.append("checked_in_at")
            elif new_status == Status.CHECKED_OUT:
                booking.checked_out_at = timezone.now()
                changed.append("checked_out_at")
            if admin_notes:
                booking.admin_notes = admin_notes
                changed.append("admin_notes")
            self.repository.save(booking, changed)
            self.repository.record_event(booking, "status_changed", actor=actor, previous=previous, status=new_status)

        logger.info("Booking %s moved %s -> %s by %s", booking.booking_number, previous, new_status, actor)
        return booking

    def bulk_update_status(self, booking_ids, new_status, admin_notes=None, actor="admin"):
        if not booking_ids:
            raise errors.NoIdsProvided()
        if new_status not in Status.values:
            raise errors.ValidationError(f"Invalid status {new_status}")

        updated, skipped = [], []
        for booking in self.repository.bookings_with_ids(booking_ids):
            try:
                self.update_status(booking.pk, new_status, admin_notes=admin_notes, actor=actor)
            except (errors.StateError, errors.PaymentError) as exc:
                skipped.append({"id": booking.pk, "error": exc.message})
            else:
                updated.append(booking.pk)
        if not updated:
            raise errors.NoMatchingRecords()
        return {"updated": updated, "skipped": skipped}

    def bulk_delete(self, booking_ids, actor="admin"):
        if not booking_ids:
            raise errors.NoIdsProvided()
        with transaction.atomic():
            deleted = self.repository.delete_bookings(booking_ids)
        if deleted == 0:
            raise errors.NoMatchingRecords()
        logger.warning("%s permanently deleted %d bookings: %s", actor, deleted, sorted(booking_ids))
        return deleted
