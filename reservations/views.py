import logging
from datetime import datetime

from django.http import JsonResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from . import errors
from .availability import month_start
from .channel import SIGNATURE_HEADER
from .models import Booking, Room
from .serializers import (
    BookingSerializer,
    BulkIdsInput,
    BulkStatusInput,
    CancelInput,
    CashBookingInput,
    ConfirmPaymentInput,
    RoomSerializer,
    StatusInput,
    StayInput,
    guest_from,
)
from .services import build_channel_adapter, build_engine, build_lifecycle

logger = logging.getLogger(__name__)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Asterias Homes booking API"})


def health_check(request):
    return JsonResponse({"status": "ok"})


def _date_param(request, name):
    value = request.query_params.get(name)
    if not value:
        raise errors.ValidationError(f"{name} is required")
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise errors.ValidationError('Invalid date format. Use YYYY-MM-DD')


def _int_param(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise errors.ValidationError(f"{name} must be an integer")


def _actor(request):
    if request.user and request.user.is_authenticated:
        return request.user.get_username()
    return "guest"


class RoomViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Room.objects.all().order_by('id')
    lookup_value_regex = r'\d+'
    serializer_class = RoomSerializer

    def list(self, request):
        """Search available rooms with filters"""
        if request.query_params.get('check_in') or request.query_params.get('check_out'):
            check_in = _date_param(request, 'check_in')
            check_out = _date_param(request, 'check_out')
            max_price = _int_param(request, 'max_price')
            rooms = build_engine().available_rooms(
                check_in, check_out, max_price * 100 if max_price is not None else None
            )
        else:
            # Return all rooms if no dates specified
            rooms = self.get_queryset()

        serializer = self.get_serializer(rooms, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['get'])
    def availability(self, request, pk=None):
        check_in = _date_param(request, 'check_in')
        check_out = _date_param(request, 'check_out')
        is_available = build_engine().is_room_available(pk, check_in, check_out)
        return Response({'room_id': int(pk), 'is_available': is_available})


class AvailabilityViewSet(viewsets.ViewSet):

    @action(detail=False, methods=['get'], url_path='type')
    def room_type(self, request):
        room_type = request.query_params.get('room_type')
        if not room_type:
            raise errors.ValidationError("room_type is required")
        check_in = _date_param(request, 'check_in')
        check_out = _date_param(request, 'check_out')
        count = build_engine().available_units_of_type(room_type, check_in, check_out)
        return Response({'room_type': room_type, 'available_count': count})

    @action(detail=False, methods=['get'])
    def calendar(self, request):
        """Per-day availability for one month, optionally for a single room type"""
        first_day = month_start(_int_param(request, 'month'), _int_param(request, 'year'))
        days = build_engine().monthly_aggregate(first_day, request.query_params.get('room_type') or None)
        return Response({
            'month': first_day.month,
            'year': first_day.year,
            'availability': {
                day.isoformat(): {
                    'available_count': info.available_count,
                    'total_count': info.total_count,
                    'status': info.status,
                }
                for day, info in days.items()
            },
        })


class PaymentViewSet(viewsets.ViewSet):

    @action(detail=False, methods=['post'])
    def intent(self, request):
        """Stage a card charge for a stay; the booking is created on confirm"""
        serializer = StayInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        intent, quote = build_lifecycle().start_card_payment(
            data['room_id'], data['check_in'], data['check_out'], data['adults'], data['children']
        )
        return Response({
            'client_token': intent.client_token,
            'intent_id': intent.intent_id,
            'amount_cents': intent.amount_cents,
            'currency': intent.currency,
            'nights': quote.nights,
            'base_cents': quote.base_cents,
            'tax_cents': quote.tax_cents,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def confirm(self, request):
        serializer = ConfirmPaymentInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = build_lifecycle().confirm_card_payment(
            serializer.validated_data['intent_id'], guest_from(serializer.validated_data), actor=_actor(request)
        )
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def cash(self, request):
        serializer = CashBookingInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = build_lifecycle().create_cash_booking(
            data['room_id'], data['check_in'], data['check_out'], guest_from(data),
            data['adults'], data['children'], total_cents=data.get('total_cents'), actor=_actor(request),
        )
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = BookingSerializer
    permission_classes = [IsAdminUser]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        qs = Booking.objects.select_related('room').prefetch_related('history').order_by('-created_at')
        booking_status = self.request.query_params.get('status')
        if booking_status:
            qs = qs.filter(status=booking_status)
        email = self.request.query_params.get('email')
        if email:
            qs = qs.filter(guest_email__iexact=email)
        return qs

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = CancelInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = build_lifecycle().cancel_booking(
            pk,
            reason=data.get('reason'),
            refund_cents=data.get('refund_cents'),
            admin_notes=data.get('admin_notes'),
            actor=_actor(request),
        )
        return Response({
            'booking_id': booking.pk,
            'status': booking.status,
            'payment_status': booking.payment_status,
            'cancelled_at': booking.cancelled_at,
            'refund_cents': booking.refund_cents,
            'refund_ref': booking.refund_ref,
        })

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        serializer = StatusInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = build_lifecycle().update_status(
            pk,
            serializer.validated_data['status'],
            admin_notes=serializer.validated_data.get('admin_notes'),
            actor=_actor(request),
        )
        return Response(BookingSerializer(booking).data)

    @action(detail=False, methods=['post'])
    def bulk_status(self, request):
        serializer = BulkStatusInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = build_lifecycle().bulk_update_status(
            data['booking_ids'], data['status'], admin_notes=data.get('admin_notes'), actor=_actor(request)
        )
        return Response(result)

    @action(detail=False, methods=['post'])
    def bulk_delete(self, request):
        serializer = BulkIdsInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        deleted = build_lifecycle().bulk_delete(serializer.validated_data['booking_ids'], actor=_actor(request))
        return Response({'deleted_count': deleted})


class ChannelWebhookView(APIView):
    """Signed booking notifications pushed by the distribution channel."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        result = build_channel_adapter().handle_webhook(request.body, request.headers.get(SIGNATURE_HEADER))
        logger.info("Channel webhook handled: %s (%s)", result.status, result.message)
        return Response({
            'received': True,
            'status': result.status,
            'message': result.message,
            'booking_id': result.booking_id,
        })
