from django.db import models
from django.db.models import Q, F
from django.core.validators import MinValueValidator


class Source(models.TextChoices):
    LOCAL = "local"
    CHANNEL = "channel"


class Room(models.Model):
    name = models.CharField(max_length=100)
    room_type = models.CharField(max_length=50, blank=True, db_index=True)
    price_cents = models.PositiveIntegerField(validators=[MinValueValidator(0)])
    capacity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    total_units = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    description = models.TextField(blank=True)
    source = models.CharField(max_length=10, choices=Source.choices, default=Source.LOCAL)
    external_room_id = models.CharField(max_length=100, null=True, blank=True, unique=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(capacity__gte=1), name="room_capacity_positive"),
            models.CheckConstraint(condition=Q(total_units__gte=1), name="room_total_units_positive"),
        ]

    def __str__(self):
        return self.name


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        CONFIRMED = "CONFIRMED"
        CHECKED_IN = "CHECKED_IN"
        CHECKED_OUT = "CHECKED_OUT"
        CANCELLED = "CANCELLED"

    class PaymentMethod(models.TextChoices):
        CARD = "CARD"
        CASH = "CASH"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING"
        PAID = "PAID"
        FAILED = "FAILED"
        REFUNDED = "REFUNDED"

    class Language(models.TextChoices):
        GREEK = "el"
        ENGLISH = "en"
        GERMAN = "de"

    booking_number = models.CharField(max_length=30, unique=True)
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name="bookings")

    # guest snapshot, copied at creation
    guest_first_name = models.CharField(max_length=100)
    guest_last_name = models.CharField(max_length=100)
    guest_email = models.EmailField()
    guest_phone = models.CharField(max_length=50, blank=True)
    special_requests = models.TextField(blank=True)
    language = models.CharField(max_length=2, choices=Language.choices, default=Language.ENGLISH)

    check_in = models.DateField()
    check_out = models.DateField()  # exclusive
    adults = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    children = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField()

    payment_method = models.CharField(max_length=4, choices=PaymentMethod.choices)
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    status = models.CharField(max_length=11, choices=Status.choices, default=Status.CONFIRMED, db_index=True)
    payment_intent_id = models.CharField(max_length=100, null=True, blank=True, unique=True)
    charge_ref = models.CharField(max_length=100, blank=True)

    source = models.CharField(max_length=10, choices=Source.choices, default=Source.LOCAL)
    external_booking_id = models.CharField(max_length=100, null=True, blank=True, unique=True)

    cancellation_reason = models.CharField(max_length=255, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refund_cents = models.PositiveIntegerField(default=0)
    refund_ref = models.CharField(max_length=100, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    admin_notes = models.TextField(blank=True)

    checked_in_at = models.DateTimeField(null=True, blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)
    reminder_sent = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["room", "check_in", "check_out"], name="booking_room_dates_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(check_in__lt=F("check_out")), name="booking_check_in_before_check_out"),
            models.CheckConstraint(condition=Q(adults__gte=1), name="booking_adults_positive"),
        ]

    def __str__(self):
        return self.booking_number

    @property
    def nights(self):
        return (self.check_out - self.check_in).days

    @property
    def party_size(self):
        return self.adults + self.children

    @property
    def guest_name(self):
        return f"{self.guest_first_name} {self.guest_last_name}".strip()


class BookingEvent(models.Model):
    """Append-only audit trail of everything that happened to a booking."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="history")
    action = models.CharField(max_length=50)
    actor = models.CharField(max_length=150, default="system")
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]


class BookingSequence(models.Model):
    year = models.PositiveIntegerField(primary_key=True)
    last_value = models.PositiveIntegerField(default=0)


class ChannelSyncTask(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        SUCCEEDED = "SUCCEEDED"
        FAILED = "FAILED"

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="sync_tasks")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    next_attempt_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
