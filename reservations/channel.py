import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

import httpx
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import errors
from .models import Booking, ChannelSyncTask, Source

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Channel-Signature"


def compute_signature(secret, body):
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret, signature, body):
    if not secret:
        logger.error("Channel webhook secret is not configured")
        raise errors.SignatureError("Webhook secret not configured")
    if not signature:
        raise errors.SignatureError("No signature found in request headers")
    if not hmac.compare_digest(signature.encode(), compute_signature(secret, body).encode()):
        logger.error("Invalid channel webhook signature")
        raise errors.SignatureError()


class ChannelClient:
    """HTTP client for the distribution channel's booking API."""

    def __init__(self, base_url=None, username=None, password=None, timeout=None, transport=None):
        self.http = httpx.Client(
            base_url=base_url or settings.CHANNEL_API_URL,
            auth=(username or settings.CHANNEL_API_USER, password or settings.CHANNEL_API_PASSWORD),
            timeout=timeout or settings.CHANNEL_API_TIMEOUT,
            transport=transport,
        )

    def create_booking(self, booking):
        """Block the booking's nights on the channel; returns the channel's booking id."""
        payload = {
            "hotel_id": booking.room.external_room_id,
            "start_date": booking.check_in.isoformat(),
            "end_date": booking.check_out.isoformat(),
            "reference": booking.booking_number,
            "guest_name": booking.guest_name,
            "adults": booking.adults,
            "children": booking.children,
        }
        try:
            response = self.http.post("/bookings", json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise errors.ExternalSyncError(f"Channel booking for {booking.booking_number} failed: {exc}") from exc
        if not isinstance(data, dict):
            raise errors.ExternalSyncError(f"Channel response for {booking.booking_number} is not an object")
        external_id = data.get("booking_id") or data.get("id")
        if not external_id:
            raise errors.ExternalSyncError(f"Channel response for {booking.booking_number} has no booking id")
        return str(external_id)

    def close(self):
        self.http.close()


@dataclass(frozen=True)
class WebhookResult:
    status: str  # processed | duplicate | unmapped | ignored | acknowledged
    message: str
    booking_id: int = None


def _parse_money(value):
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, TypeError) as exc:
        raise errors.ValidationError(f"Invalid totalPrice: {value!r}") from exc


def _parse_int(value, name, default):
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise errors.ValidationError(f"Invalid {name}: {value!r}") from exc


def _parse_date(value, name):
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise errors.ValidationError(f"Invalid {name}: {value!r}") from exc


class ChannelSyncAdapter:
    """Keeps local inventory and the distribution channel consistent.

    Outbound mirroring is a saga: the sync task is written in the same
    transaction as the booking, then attempted after commit and retried by the
    ``sync_channel`` command until it succeeds or runs out of attempts.
    Inbound bookings arrive through the signed webhook and are inserted
    directly; the channel is authoritative for the rooms mapped to it.
    """

    def __init__(self, repository, engine, policy, client_factory=ChannelClient, webhook_secret=None):
        self.repository = repository
        self.engine = engine
        self.policy = policy
        self.client_factory = client_factory
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.CHANNEL_WEBHOOK_SECRET

    # outbound

    def enqueue(self, booking):
        """Queue a mirror of ``booking``; call inside the admission transaction."""
        if not self.policy.channel_sync_enabled:
            return None
        if booking.source != Source.LOCAL or not booking.room.external_room_id:
            return None
        task = self.repository.enqueue_sync(booking, timezone.now())
        transaction.on_commit(lambda: self.process_task_by_id(task.pk), robust=True)
        return task

    def process_task_by_id(self, task_id):
        task = self.repository.get_sync_task(task_id)
        if task.status == ChannelSyncTask.Status.PENDING:
            self.run_task(task)

    def process_pending(self, limit=50):
        tasks = self.repository.due_sync_tasks(timezone.now(), limit)
        if not tasks:
            return []
        client = self.client_factory()
        try:
            return [self.run_task(task, client) for task in tasks]
        finally:
            client.close()

    def run_task(self, task, client=None):
        owns_client = client is None
        client = client or self.client_factory()
        booking = task.booking
        task.attempts += 1
        try:
            external_id = client.create_booking(booking)
        except errors.ExternalSyncError as exc:
            return self._record_failure(task, exc)
        except Exception as exc:
            logger.exception("Unexpected error syncing %s to the channel", booking.booking_number)
            return self._record_failure(task, exc)
        finally:
            if owns_client:
                client.close()

        with transaction.atomic():
            booking.external_booking_id = external_id
            self.repository.save(booking, ["external_booking_id"])
            self.repository.record_event(booking, "channel_synced", external_booking_id=external_id)
            task.status = ChannelSyncTask.Status.SUCCEEDED
            task.last_error = ""
            task.save(update_fields=["attempts", "last_error", "status", "updated_at"])
        logger.info("Booking %s mirrored on channel as %s", booking.booking_number, external_id)
        return task

    def _record_failure(self, task, exc):
        booking = task.booking
        task.last_error = str(exc) or exc.__class__.__name__
        if task.attempts >= self.policy.channel_sync_max_attempts:
            task.status = ChannelSyncTask.Status.FAILED
            logger.error(
                "Channel sync for %s gave up after %d attempts: %s",
                booking.booking_number, task.attempts, exc,
            )
        else:
            task.next_attempt_at = timezone.now() + timedelta(minutes=2 ** task.attempts)
            logger.warning(
                "Channel sync for %s failed (attempt %d), retrying at %s: %s",
                booking.booking_number, task.attempts, task.next_attempt_at, exc,
            )
        task.save(update_fields=["attempts", "last_error", "status", "next_attempt_at", "updated_at"])
        return task

    # inbound

    def handle_webhook(self, raw_body, signature):
        verify_signature(self.webhook_secret, signature, raw_body)
        try:
            notification = json.loads(raw_body)
        except ValueError:
            logger.error("Channel webhook body is not valid JSON")
            return WebhookResult("ignored", "Malformed payload")
        if not isinstance(notification, dict):
            return WebhookResult("ignored", "Malformed payload")

        event = notification.get("event")
        data = notification.get("data") or {}
        if not isinstance(data, dict):
            logger.error("Channel webhook %s has a malformed data section", event)
            return WebhookResult("ignored", "Malformed payload")
        logger.info("Processing channel webhook event: %s", event)
        try:
            if event == "booking.created":
                return self.import_booking(data)
            if event == "booking.cancelled":
                return self.cancel_imported(data)
        except errors.ValidationError as exc:
            logger.error("Channel webhook %s ignored: %s", event, exc)
            return WebhookResult("ignored", str(exc))
        if event == "booking.modified":
            logger.info("Channel booking modification received; not applied")
            return WebhookResult("acknowledged", "Booking modification received")
        logger.warning("Unknown channel webhook event type: %s", event)
        return WebhookResult("acknowledged", "Unknown event type received")

    def import_booking(self, data):
        external_room_id = data.get("externalRoomId")
        external_booking_id = data.get("externalBookingId")
        if not external_room_id or not external_booking_id:
            raise errors.ValidationError("externalRoomId and externalBookingId are required")
        external_booking_id = str(external_booking_id)

        room = self.repository.find_room_by_external_id(str(external_room_id))
        if room is None:
            logger.warning("Webhook received for a room not mapped in our system: %s", external_room_id)
            return WebhookResult("unmapped", "Webhook received for unmapped room.")

        existing = self.repository.find_by_external_id(external_booking_id)
        if existing is not None:
            logger.info("Booking %s from the channel already exists", external_booking_id)
            return WebhookResult("duplicate", "Booking already processed.", existing.pk)

        check_in = _parse_date(data.get("checkInDate"), "checkInDate")
        check_out = _parse_date(data.get("checkOutDate"), "checkOutDate")
        if check_out <= check_in:
            raise errors.ValidationError("checkOutDate must be after checkInDate")
        guest = data.get("guestDetails") or {}

        try:
            with transaction.atomic():
                overlaps_local = not self.engine.is_room_available(room.pk, check_in, check_out)
                booking = self.repository.insert_booking(
                    booking_number=self.repository.next_booking_number(
                        self.policy.booking_prefix, timezone.localdate().year
                    ),
                    room=room,
                    external_booking_id=external_booking_id,
                    guest_first_name=guest.get("firstName", ""),
                    guest_last_name=guest.get("lastName", ""),
                    guest_email=guest.get("email", ""),
                    guest_phone=guest.get("phone", ""),
                    check_in=check_in,
                    check_out=check_out,
                    adults=_parse_int(data.get("adults"), "adults", 1),
                    children=_parse_int(data.get("children"), "children", 0),
                    total_cents=_parse_money(data.get("totalPrice", 0)),
                    payment_method=Booking.PaymentMethod.CARD,
                    payment_status=Booking.PaymentStatus.PAID,
                    status=Booking.Status.CONFIRMED,
                    source=Source.CHANNEL,
                )
                self.repository.record_event(booking, "imported", actor="channel", external_booking_id=external_booking_id)
                if overlaps_local:
                    self.repository.record_event(booking, "overlap_detected", actor="channel")
        except errors.DuplicateBooking:
            existing = self.repository.find_by_external_id(external_booking_id)
            return WebhookResult("duplicate", "Booking already processed.", existing.pk if existing else None)

        if overlaps_local:
            logger.warning(
                "Channel booking %s overlaps existing bookings on room %s (%s..%s); needs reconciliation",
                external_booking_id, room.pk, check_in, check_out,
            )
        logger.info("Created booking %s from channel booking %s", booking.booking_number, external_booking_id)
        return WebhookResult("processed", "Booking created successfully", booking.pk)

    def cancel_imported(self, data):
        external_booking_id = data.get("externalBookingId")
        if not external_booking_id:
            raise errors.ValidationError("externalBookingId is required")
        with transaction.atomic():
            booking = self.repository.find_by_external_id(str(external_booking_id))
            if booking is None:
                logger.warning("Channel cancellation for unknown booking %s", external_booking_id)
                return WebhookResult("unmapped", "Booking not found.")
            booking = self.repository.get_booking(booking.pk, lock=True)
            if booking.status in (Booking.Status.CANCELLED, Booking.Status.CHECKED_OUT):
                return WebhookResult("duplicate", "Booking already final.", booking.pk)
            booking.status = Booking.Status.CANCELLED
            booking.cancelled_at = timezone.now()
            booking.cancellation_reason = "Cancelled on channel"
            self.repository.save(booking, ["status", "cancelled_at", "cancellation_reason"])
            self.repository.record_event(booking, "cancelled", actor="channel", reason=booking.cancellation_reason)
        logger.info("Booking %s cancelled by the channel", booking.booking_number)
        return WebhookResult("processed", "Booking cancelled", booking.pk)
