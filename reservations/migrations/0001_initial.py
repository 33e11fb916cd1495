import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Room",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("room_type", models.CharField(blank=True, db_index=True, max_length=50)),
                ("price_cents", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(0)])),
                ("capacity", models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ("total_units", models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ("description", models.TextField(blank=True)),
                ("source", models.CharField(choices=[("local", "Local"), ("channel", "Channel")], default="local", max_length=10)),
                ("external_room_id", models.CharField(blank=True, max_length=100, null=True, unique=True)),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("capacity__gte", 1)), name="room_capacity_positive"),
                    models.CheckConstraint(condition=models.Q(("total_units__gte", 1)), name="room_total_units_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingSequence",
            fields=[
                ("year", models.PositiveIntegerField(primary_key=True, serialize=False)),
                ("last_value", models.PositiveIntegerField(default=0)),
            ],
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_number", models.CharField(max_length=30, unique=True)),
                ("guest_first_name", models.CharField(max_length=100)),
                ("guest_last_name", models.CharField(max_length=100)),
                ("guest_email", models.EmailField(max_length=254)),
                ("guest_phone", models.CharField(blank=True, max_length=50)),
                ("special_requests", models.TextField(blank=True)),
                ("language", models.CharField(choices=[("el", "Greek"), ("en", "English"), ("de", "German")], default="en", max_length=2)),
                ("check_in", models.DateField()),
                ("check_out", models.DateField()),
                ("adults", models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ("children", models.PositiveIntegerField(default=0)),
                ("total_cents", models.PositiveIntegerField()),
                ("payment_method", models.CharField(choices=[("CARD", "Card"), ("CASH", "Cash")], max_length=4)),
                ("payment_status", models.CharField(choices=[("PENDING", "Pending"), ("PAID", "Paid"), ("FAILED", "Failed"), ("REFUNDED", "Refunded")], default="PENDING", max_length=10)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("CONFIRMED", "Confirmed"), ("CHECKED_IN", "Checked In"), ("CHECKED_OUT", "Checked Out"), ("CANCELLED", "Cancelled")], db_index=True, default="CONFIRMED", max_length=11)),
                ("payment_intent_id", models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ("charge_ref", models.CharField(blank=True, max_length=100)),
                ("source", models.CharField(choices=[("local", "Local"), ("channel", "Channel")], default="local", max_length=10)),
                ("external_booking_id", models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refund_cents", models.PositiveIntegerField(default=0)),
                ("refund_ref", models.CharField(blank=True, max_length=100)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("admin_notes", models.TextField(blank=True)),
                ("checked_in_at", models.DateTimeField(blank=True, null=True)),
                ("checked_out_at", models.DateTimeField(blank=True, null=True)),
                ("reminder_sent", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("room", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bookings", to="reservations.room")),
            ],
            options={
                "indexes": [models.Index(fields=["room", "check_in", "check_out"], name="booking_room_dates_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("check_in__lt", models.F("check_out"))), name="booking_check_in_before_check_out"),
                    models.CheckConstraint(condition=models.Q(("adults__gte", 1)), name="booking_adults_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=50)),
                ("actor", models.CharField(default="system", max_length=150)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="history", to="reservations.booking")),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="ChannelSyncTask",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("SUCCEEDED", "Succeeded"), ("FAILED", "Failed")], db_index=True, default="PENDING", max_length=10)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
                ("next_attempt_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sync_tasks", to="reservations.booking")),
            ],
        ),
    ]
