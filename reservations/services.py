from .availability import AvailabilityEngine
from .channel import ChannelClient, ChannelSyncAdapter
from .config import BookingPolicy
from .lifecycle import BookingLifecycle
from .notifications import Notifier
from .payments import get_payment_gateway
from .repositories import BookingRepository


def build_engine(policy=None):
    return AvailabilityEngine(BookingRepository(), policy or BookingPolicy.from_settings())


def build_channel_adapter(policy=None, client_factory=ChannelClient):
    policy = policy or BookingPolicy.from_settings()
    repository = BookingRepository()
    return ChannelSyncAdapter(
        repository, AvailabilityEngine(repository, policy), policy, client_factory=client_factory
    )


def build_lifecycle(gateway=None, client_factory=ChannelClient):
    """Wire the booking lifecycle with its collaborators from settings."""
    policy = BookingPolicy.from_settings()
    repository = BookingRepository()
    engine = AvailabilityEngine(repository, policy)
    channel = ChannelSyncAdapter(repository, engine, policy, client_factory=client_factory)
    return BookingLifecycle(
        repository,
        engine,
        gateway or get_payment_gateway(),
        channel,
        Notifier(policy),
        policy,
    )
