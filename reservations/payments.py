import abc
import logging
from dataclasses import dataclass, field

import stripe
from django.conf import settings
from django.utils.module_loading import import_string

from . import errors

logger = logging.getLogger(__name__)

# largest amount the provider accepts, in minor units
MAX_AMOUNT_CENTS = 99999999


@dataclass(frozen=True)
class PaymentIntent:
    client_token: str
    intent_id: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class CapturedPayment:
    intent_id: str
    amount_cents: int
    charge_ref: str
    metadata: dict = field(default_factory=dict)


class PaymentGateway(abc.ABC):
    """Contract with the card payment processor.

    An intent stages a charge for a price quote; the booking parameters travel
    in its metadata because no booking exists until the capture is confirmed.
    """

    @abc.abstractmethod
    def create_intent(self, amount_cents, currency, metadata):
        raise NotImplementedError

    @abc.abstractmethod
    def confirm_captured(self, intent_id):
        raise NotImplementedError

    @abc.abstractmethod
    def refund(self, charge_ref, amount_cents, reason, metadata=None):
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    def __init__(self, api_key=None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY is not set; card payments will fail")

    def _require_key(self):
        if not self.api_key:
            raise errors.PaymentError("Stripe is not configured. Set STRIPE_SECRET_KEY.")

    def create_intent(self, amount_cents, currency, metadata):
        self._require_key()
        if amount_cents <= 0:
            raise errors.ValidationError("Invalid amount")
        if amount_cents > MAX_AMOUNT_CENTS:
            raise errors.ValidationError("Amount exceeds maximum allowed limit")
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount_cents,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata={k: str(v) for k, v in metadata.items()},
            )
        except stripe.StripeError as exc:
            logger.error("Stripe intent creation failed: %s", exc)
            raise errors.PaymentError(f"Payment provider unavailable: {exc}") from exc
        return PaymentIntent(
            client_token=intent.client_secret,
            intent_id=intent.id,
            amount_cents=intent.amount,
            currency=intent.currency,
        )

    def confirm_captured(self, intent_id):
        self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.error("Stripe intent %s lookup failed: %s", intent_id, exc)
            raise errors.PaymentError(f"Payment provider unavailable: {exc}") from exc
        if intent.status != "succeeded":
            raise errors.PaymentError(f"Payment not completed (status {intent.status})")
        return CapturedPayment(
            intent_id=intent.id,
            amount_cents=intent.amount,
            charge_ref=intent.latest_charge or "",
            metadata=dict(intent.metadata or {}),
        )

    def refund(self, charge_ref, amount_cents, reason, metadata=None):
        self._require_key()
        try:
            refund = stripe.Refund.create(
                api_key=self.api_key,
                charge=charge_ref,
                amount=amount_cents,
                reason="requested_by_customer",
                metadata={"cancellationReason": reason, **(metadata or {})},
            )
        except stripe.StripeError as exc:
            logger.error("Stripe refund for charge %s failed: %s", charge_ref, exc)
            raise errors.PaymentError(f"Failed to process refund: {exc}") from exc
        logger.info("Refund %s issued for charge %s (%d cents)", refund.id, charge_ref, amount_cents)
        return refund.id


def get_payment_gateway():
    return import_string(settings.PAYMENT_GATEWAY)()
