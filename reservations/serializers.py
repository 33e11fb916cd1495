from rest_framework import serializers

from .lifecycle import GuestInfo
from .models import Booking, BookingEvent, Room


class RoomSerializer(serializers.ModelSerializer):

    class Meta:
        model = Room
        fields = '__all__'

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['price'] = instance.price_cents / 100.0
        return data


class BookingEventSerializer(serializers.ModelSerializer):

    class Meta:
        model = BookingEvent
        fields = ['action', 'actor', 'details', 'created_at']


class BookingSerializer(serializers.ModelSerializer):
    room = RoomSerializer(read_only=True)
    history = BookingEventSerializer(many=True, read_only=True)
    nights = serializers.IntegerField(read_only=True)

    class Meta:
        model = Booking
        exclude = ['reminder_sent']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['total'] = instance.total_cents / 100.0
        data['refund'] = instance.refund_cents / 100.0
        return data


class GuestInput(serializers.Serializer):
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    email = serializers.EmailField()
    phone = serializers.CharField(allow_blank=True, required=False, default="")
    special_requests = serializers.CharField(allow_blank=True, required=False, default="")
    language = serializers.ChoiceField(Booking.Language.choices, required=False, default=Booking.Language.ENGLISH)


def guest_from(validated):
    return GuestInfo(**validated['guest'])


class StayInput(serializers.Serializer):
    room_id = serializers.IntegerField()
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    adults = serializers.IntegerField(min_value=1, default=1)
    children = serializers.IntegerField(min_value=0, default=0)

    def validate(self, data):
        if data['check_out'] <= data['check_in']:
            raise serializers.ValidationError("check_out must be after check_in")
        return data


class CashBookingInput(StayInput):
    guest = GuestInput()
    total_cents = serializers.IntegerField(min_value=0, required=False)


class ConfirmPaymentInput(serializers.Serializer):
    intent_id = serializers.CharField(max_length=100)
    guest = GuestInput()


class CancelInput(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, required=False, max_length=255)
    refund_cents = serializers.IntegerField(min_value=0, required=False)
    admin_notes = serializers.CharField(allow_blank=True, required=False)


class StatusInput(serializers.Serializer):
    status = serializers.ChoiceField(Booking.Status.choices)
    admin_notes = serializers.CharField(allow_blank=True, required=False)


class BulkIdsInput(serializers.Serializer):
    booking_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class BulkStatusInput(BulkIdsInput):
    status = serializers.ChoiceField(Booking.Status.choices)
    admin_notes = serializers.CharField(allow_blank=True, required=False)
