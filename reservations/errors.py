import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BookingError(Exception):
    code = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


class ValidationError(BookingError):
    """Invalid booking request"""
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NoIdsProvided(ValidationError):
    """No booking IDs provided"""
    code = "no_ids_provided"


class NotFoundError(BookingError):
    """Resource not found"""
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class RoomNotFound(NotFoundError):
    """Room not found"""
    code = "room_not_found"


class BookingNotFound(NotFoundError):
    """Booking not found"""
    code = "booking_not_found"


class NoMatchingRecords(NotFoundError):
    """No bookings found with the provided IDs"""
    code = "no_matching_records"


class ConflictError(BookingError):
    """Conflicting booking request"""
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class RoomNotAvailable(ConflictError):
    """Room is not available for the selected dates"""
    code = "room_not_available"


class CapacityExceeded(ConflictError):
    """Party size exceeds room capacity"""
    code = "capacity_exceeded"


class DuplicateBooking(ConflictError):
    """Booking already exists"""
    code = "duplicate_booking"


class StateError(BookingError):
    """Illegal booking status transition"""
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class PaymentError(BookingError):
    """Payment provider error"""
    code = "payment_error"
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class ExternalSyncError(BookingError):
    """Channel synchronisation failed"""
    code = "external_sync_error"
    status_code = status.HTTP_502_BAD_GATEWAY


class SignatureError(BookingError):
    """Invalid webhook signature"""
    code = "invalid_signature"
    status_code = status.HTTP_401_UNAUTHORIZED


def api_exception_handler(exc, context):
    """Render domain errors as ``{"error", "code"}`` responses, defer the rest to DRF."""
    if isinstance(exc, BookingError):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return Response({'error': exc.message, 'code': exc.code}, status=exc.status_code)
    return exception_handler(exc, context)
