"""Broker channel contract consumed by the publisher."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

ConfirmListener = Callable[[int, bool], None]


class BrokerChannel(ABC):
    """Confirm-mode publishing channel driven by a single event loop.

    Implementations assign delivery tags in publish order and report broker
    confirmations through the registered ack/nack listeners, always on the
    loop that runs ``call_soon`` callbacks.
    """

    def __init__(self) -> None:
        self._on_ack: Optional[ConfirmListener] = None
        self._on_nack: Optional[ConfirmListener] = None

    def set_confirm_listeners(self, on_ack: ConfirmListener, on_nack: ConfirmListener) -> None:
        self._on_ack = on_ack
        self._on_nack = on_nack

    @abstractmethod
    def publish(self, payload: str, routing_key: str, persistent: bool = True) -> int:
        """Publish ``payload`` and return its delivery tag."""

    @abstractmethod
    def call_soon(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` as a fresh unit of work on the channel's loop."""

    @abstractmethod
    def close(self) -> None:
        """Close the connection and stop the loop."""

    def dispatch_ack(self, tag: int, multiple: bool = False) -> None:
        if self._on_ack is not None:
            self._on_ack(tag, multiple)

    def dispatch_nack(self, tag: int, multiple: bool = False) -> None:
        if self._on_nack is not None:
            self._on_nack(tag, multiple)


__all__ = ["BrokerChannel", "ConfirmListener"]
