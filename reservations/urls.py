from django.urls import path
from rest_framework.routers import DefaultRouter

from reservations.views import (
    AvailabilityViewSet,
    BookingViewSet,
    ChannelWebhookView,
    PaymentViewSet,
    RoomViewSet,
)

router = DefaultRouter()
router.register(r'rooms', RoomViewSet)
router.register(r'availability', AvailabilityViewSet, basename='availability')
router.register(r'payments', PaymentViewSet, basename='payments')
router.register(r'bookings', BookingViewSet, basename='booking')

urlpatterns = [
    path('channel/webhook/', ChannelWebhookView.as_view(), name='channel-webhook'),
] + router.urls
