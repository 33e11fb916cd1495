import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta

from . import errors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayAvailability:
    available_count: int
    total_count: int
    status: str  # available | limited | booked

    @property
    def is_available(self):
        return self.available_count > 0


def validate_range(check_in, check_out):
    if check_in is None or check_out is None:
        raise errors.ValidationError("check_in and check_out are required")
    if check_out <= check_in:
        raise errors.ValidationError("check_out must be after check_in")


class AvailabilityEngine:
    """Read-only availability queries over the reservation store."""

    def __init__(self, repository, policy):
        self.repository = repository
        self.policy = policy

    def is_room_available(self, room_id, check_in, check_out, exclude_booking_id=None):
        validate_range(check_in, check_out)
        room = self.repository.get_room(room_id)
        conflicts = self.repository.overlapping(
            [room.pk], check_in, check_out, exclude_booking_id=exclude_booking_id
        ).count()
        is_available = conflicts == 0
        logger.debug(
            "Availability for room %s %s..%s: conflicts=%d available=%s",
            room.pk, check_in, check_out, conflicts, is_available,
        )
        return is_available

    def available_units_of_type(self, room_type, check_in, check_out):
        validate_range(check_in, check_out)
        rooms = self.repository.rooms_of_type(room_type)
        total = self.repository.total_units(rooms)
        if total == 0:
            return 0
        room_ids = list(rooms.values_list("pk", flat=True))
        booked = self.repository.overlapping(room_ids, check_in, check_out).count()
        return max(0, total - booked)

    def classify(self, available_count):
        if available_count <= 0:
            return "booked"
        if available_count <= self.policy.limited_availability_max:
            return "limited"
        return "available"

    def monthly_aggregate(self, month_date, room_type=None):
        """Per-day availability for the month containing ``month_date``.

        A day is occupied by a booking when ``check_in <= day < check_out``.
        """
        first_day = month_date.replace(day=1)
        days_in_month = calendar.monthrange(first_day.year, first_day.month)[1]
        last_day = first_day.replace(day=days_in_month)

        rooms = self.repository.rooms_of_type(room_type) if room_type else self.repository.all_rooms()
        total = self.repository.total_units(rooms)

        booked = [0] * days_in_month
        for check_in, check_out in self.repository.occupying_between(rooms, first_day, last_day):
            start = max((check_in - first_day).days, 0)
            end = min((check_out - first_day).days, days_in_month)
            for offset in range(start, end):
                booked[offset] += 1

        result = {}
        for offset, count in enumerate(booked):
            available = max(0, total - count)
            result[first_day + timedelta(days=offset)] = DayAvailability(
                available_count=available,
                total_count=total,
                status=self.classify(available),
            )
        return result

    def available_rooms(self, check_in, check_out, max_price_cents=None):
        validate_range(check_in, check_out)
        return self.repository.available_rooms(check_in, check_out, max_price_cents)


def month_start(month=None, year=None, today=None):
    today = today or date.today()
    if month is None and year is None:
        return today.replace(day=1)
    if month is None or year is None:
        raise errors.ValidationError("month and year must be given together")
    if not 1 <= month <= 12:
        raise errors.ValidationError("month must be between 1 and 12")
    if not 1 <= year <= 9999:
        raise errors.ValidationError("year must be between 1 and 9999")
    return date(year, month, 1)
