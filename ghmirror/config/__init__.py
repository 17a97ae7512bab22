"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    AmqpConfig,
    MirrorConfig,
    MongoConfig,
    PublisherConfig,
    PublishTarget,
    Settings,
)

__all__ = [
    "AmqpConfig",
    "ConfigLocator",
    "ConfigRepository",
    "MirrorConfig",
    "MongoConfig",
    "PublishTarget",
    "PublisherConfig",
    "Settings",
]
