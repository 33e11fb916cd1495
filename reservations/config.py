from dataclasses import dataclass, fields

from django.conf import settings


@dataclass(frozen=True)
class BookingPolicy:
    """Business rules shared by the availability engine and the booking lifecycle.

    Built once from ``settings.BOOKING_POLICY`` and passed to the services that
    need it, so nothing reads global settings in the middle of an admission.
    """

    booking_prefix: str = "AST"
    currency: str = "eur"
    tax_rate_percent: int = 13
    # calendar days with 1..limited_availability_max free units are "limited"
    limited_availability_max: int = 2
    check_in_time: str = "15:00"
    check_out_time: str = "11:00"
    reminder_lead_days: int = 1
    channel_sync_enabled: bool = False
    channel_sync_max_attempts: int = 5

    @classmethod
    def from_settings(cls):
        configured = getattr(settings, "BOOKING_POLICY", {})
        known = {f.name for f in fields(cls)}
        unknown = set(configured) - known
        if unknown:
            raise ValueError(f"Unknown BOOKING_POLICY keys: {', '.join(sorted(unknown))}")
        return cls(**configured)

    def tax_for(self, base_cents):
        return round(base_cents * self.tax_rate_percent / 100)
