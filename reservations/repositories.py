from django.db import IntegrityError, transaction
from django.db.models import Exists, F, OuterRef, Sum

from . import errors
from .models import Booking, BookingEvent, BookingSequence, ChannelSyncTask, Room

# statuses that hold a room; everything except CANCELLED
HOLDING_STATUSES = [
    Booking.Status.PENDING,
    Booking.Status.CONFIRMED,
    Booking.Status.CHECKED_IN,
    Booking.Status.CHECKED_OUT,
]

# statuses that occupy a unit on the calendar
OCCUPYING_STATUSES = [Booking.Status.CONFIRMED, Booking.Status.CHECKED_IN]


class BookingRepository:
    """Query and write operations over rooms and bookings.

    The entities stay plain data; every query the engine and the lifecycle
    need lives here.
    """

    def get_room(self, room_id):
        try:
            return Room.objects.get(pk=room_id)
        except Room.DoesNotExist:
            raise errors.RoomNotFound(f"Room {room_id} not found")

    def lock_room(self, room_id):
        """Lock the room row for the rest of the current transaction."""
        try:
            return Room.objects.select_for_update().get(pk=room_id)
        except Room.DoesNotExist:
            raise errors.RoomNotFound(f"Room {room_id} not found")

    def find_room_by_external_id(self, external_room_id):
        return Room.objects.filter(external_room_id=external_room_id).first()

    def get_booking(self, booking_id, lock=False):
        qs = Booking.objects.select_related("room")
        if lock:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=booking_id)
        except Booking.DoesNotExist:
            raise errors.BookingNotFound(f"Booking {booking_id} not found")

    def find_by_payment_intent(self, intent_id):
        return Booking.objects.filter(payment_intent_id=intent_id).first()

    def find_by_external_id(self, external_booking_id):
        return Booking.objects.filter(external_booking_id=external_booking_id).first()

    def overlapping(self, room_ids, check_in, check_out, exclude_booking_id=None):
        """Non-cancelled bookings on ``room_ids`` that intersect ``[check_in, check_out)``."""
        qs = Booking.objects.filter(
            room_id__in=room_ids,
            status__in=HOLDING_STATUSES,
            check_in__lt=check_out,
            check_out__gt=check_in,
        )
        if exclude_booking_id is not None:
            qs = qs.exclude(pk=exclude_booking_id)
        return qs

    def all_rooms(self):
        return Room.objects.all()

    def rooms_of_type(self, room_type):
        return Room.objects.filter(room_type=room_type)

    def total_units(self, rooms):
        return rooms.aggregate(total=Sum("total_units"))["total"] or 0

    def occupying_between(self, rooms, first_day, last_day):
        """Calendar-occupying bookings on ``rooms`` touching any night in ``[first_day, last_day]``."""
        return Booking.objects.filter(
            room__in=rooms,
            status__in=OCCUPYING_STATUSES,
            check_in__lte=last_day,
            check_out__gt=first_day,
        ).values_list("check_in", "check_out")

    def available_rooms(self, check_in, check_out, max_price_cents=None):
        overlap = Exists(
            Booking.objects.filter(
                room=OuterRef('pk'),
                status__in=HOLDING_STATUSES,
                check_in__lt=check_out,
                check_out__gt=check_in,
            )
        )
        qs = Room.objects.annotate(has_overlap=overlap).filter(has_overlap=False)
        if max_price_cents is not None:
            qs = qs.filter(price_cents__lte=max_price_cents)
        return qs.order_by("id")

    def next_booking_number(self, prefix, year):
        """Increment the per-year counter inside the caller's transaction."""
        sequence, _ = BookingSequence.objects.select_for_update().get_or_create(year=year)
        BookingSequence.objects.filter(pk=sequence.pk).update(last_value=F("last_value") + 1)
        sequence.refresh_from_db(fields=["last_value"])
        return f"{prefix}-{year}-{sequence.last_value:03d}"

    def insert_booking(self, **fields):
        try:
            with transaction.atomic():
                return Booking.objects.create(**fields)
        except IntegrityError as exc:
            if fields.get("external_booking_id") and self.find_by_external_id(fields["external_booking_id"]):
                raise errors.DuplicateBooking(
                    f"Booking {fields['external_booking_id']} from the channel already exists"
                ) from exc
            if fields.get("payment_intent_id") and self.find_by_payment_intent(fields["payment_intent_id"]):
                raise errors.DuplicateBooking(
                    f"Payment {fields['payment_intent_id']} already produced a booking"
                ) from exc
            raise

    def save(self, booking, update_fields):
        booking.save(update_fields=[*update_fields, "updated_at"])
        return booking

    def record_event(self, booking, action, actor="system", **details):
        return BookingEvent.objects.create(booking=booking, action=action, actor=actor, details=details)

    def bookings_with_ids(self, booking_ids):
        return Booking.objects.filter(pk__in=booking_ids).order_by("id")

    def delete_bookings(self, booking_ids):
        deleted, per_model = Booking.objects.filter(pk__in=booking_ids).delete()
        return per_model.get(Booking._meta.label, 0)

    def enqueue_sync(self, booking, when):
        return ChannelSyncTask.objects.create(booking=booking, next_attempt_at=when)

    def get_sync_task(self, task_id):
        return ChannelSyncTask.objects.select_related("booking", "booking__room").get(pk=task_id)

    def due_sync_tasks(self, now, limit):
        return list(
            ChannelSyncTask.objects.select_related("booking", "booking__room")
            .filter(status=ChannelSyncTask.Status.PENDING, next_attempt_at__lte=now)
            .order_by("next_attempt_at", "id")[:limit]
        )
