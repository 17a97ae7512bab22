"""Queue loader: backpressure publisher and broker channels."""

from .amqp_channel import AmqpChannel
from .channel import BrokerChannel, ConfirmListener
from .outstanding import OutstandingSet
from .publisher import DEFAULT_BATCH_SIZE, BackpressurePublisher, PublisherState, PublishStats

__all__ = [
    "AmqpChannel",
    "BackpressurePublisher",
    "BrokerChannel",
    "ConfirmListener",
    "DEFAULT_BATCH_SIZE",
    "OutstandingSet",
    "PublishStats",
    "PublisherState",
]
