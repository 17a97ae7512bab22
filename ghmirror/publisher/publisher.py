"""Acknowledgement-gated publisher draining stored records into the exchange."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping

import structlog

from ..config import PublishTarget
from ..errors import ValidationError
from ..logging_conf import component_logger
from ..persister import BasePersister, Record, read_value
from .channel import BrokerChannel
from .outstanding import OutstandingSet

DEFAULT_BATCH_SIZE = 1000


class PublisherState(str, Enum):
    IDLE = "idle"
    READING = "reading"
    PUBLISHING = "publishing"
    AWAITING_ACKS = "awaiting_acks"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass(slots=True)
class PublishStats:
    read: int = 0
    published: int = 0
    acked: int = 0
    nacked: int = 0
    batches: int = 0
    abandoned: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class BackpressurePublisher:
    """Publish records batch by batch, reading the next batch only once the
    broker has confirmed every message of the current one.

    At most ``batch_size`` messages are ever unconfirmed. All methods must be
    called from the channel's loop; the outstanding set is owned by this
    object and needs no locking.
    """

    def __init__(
        self,
        persister: BasePersister,
        channel: BrokerChannel,
        target: PublishTarget,
        selector: Mapping[str, Any] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.persister = persister
        self.channel = channel
        self.target = target
        self.selector = dict(selector or {})
        self.batch_size = batch_size
        self.logger = logger or component_logger("publisher")
        self.stats = PublishStats()
        self._state = PublisherState.IDLE
        self._outstanding = OutstandingSet()
        self._offset = 0
        self._read_scheduled = False
        self._started = False
        # Highest tag recorded in the outstanding set so far
        self._last_tag = 0
        # Confirms that arrived before their tag was recorded: (tag, multiple, nacked)
        self._early_confirms: list[tuple[int, bool, bool]] = []
        channel.set_confirm_listeners(self.on_ack, self.on_nack)

    @property
    def state(self) -> PublisherState:
        return self._state

    @property
    def outstanding(self) -> OutstandingSet:
        return self._outstanding

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def finished(self) -> bool:
        return self._state is PublisherState.TERMINATED

    def start(self) -> None:
        if self._started:
            raise RuntimeError(f"Publisher already started (state={self._state.value})")
        self._started = True
        self.logger.info(
            "publisher_started",
            collection=self.target.collection,
            selector={k: str(v) for k, v in self.selector.items()},
            batch_size=self.batch_size,
        )
        self._schedule_read()

    def cancel(self) -> None:
        """Stop immediately; unconfirmed messages are abandoned, not awaited."""

        if self._state in (PublisherState.DRAINING, PublisherState.TERMINATED):
            return
        abandoned = self._outstanding.clear()
        self._early_confirms.clear()
        self.stats.abandoned += abandoned
        self.logger.warning("publisher_cancelled", abandoned=abandoned, published=self.stats.published)
        self._drain()

    # ------------------------------------------------------------------
    # Broker confirmations
    # ------------------------------------------------------------------
    def on_ack(self, tag: int, multiple: bool = False) -> None:
        self.logger.debug("publisher_ack", tag=tag, multiple=multiple)
        self._settle(tag, multiple, nacked=False)

    def on_nack(self, tag: int, multiple: bool = False) -> None:
        # A nack settles the tag like an ack; it is only counted and reported
        self.logger.warning("publisher_nack", tag=tag, multiple=multiple)
        self._settle(tag, multiple, nacked=True)

    def _settle(self, tag: int, multiple: bool, nacked: bool) -> None:
        if self._state in (PublisherState.DRAINING, PublisherState.TERMINATED):
            return
        if tag > self._last_tag:
            # Confirmed before publish() returned its tag; applied once recorded
            self._early_confirms.append((tag, multiple, nacked))
            return
        removed = self._outstanding.settle(tag, multiple)
        if nacked:
            self.stats.nacked += removed
        else:
            self.stats.acked += removed
        if removed and not self._outstanding and self._state is PublisherState.AWAITING_ACKS:
            self.logger.debug("publisher_batch_settled", offset=self._offset)
            self._schedule_read()

    def _record(self, tag: int) -> None:
        self._outstanding.add(tag)
        self._last_tag = max(self._last_tag, tag)
        if self._early_confirms:
            early, self._early_confirms = self._early_confirms, []
            for confirm in early:
                self._settle(*confirm)

    # ------------------------------------------------------------------
    # Read / publish cycle
    # ------------------------------------------------------------------
    def _schedule_read(self) -> None:
        if self._read_scheduled:
            return
        self._read_scheduled = True
        self.channel.call_soon(self._read_and_publish)

    def _read_and_publish(self) -> None:
        self._read_scheduled = False
        if self._state in (PublisherState.DRAINING, PublisherState.TERMINATED):
            return

        self._state = PublisherState.READING
        batch = self.persister.find(
            self.target.collection,
            self.selector,
            skip=self._offset,
            limit=self.batch_size,
        )
        self._offset += len(batch)
        self.stats.read += len(batch)

        if not batch:
            if not self._outstanding:
                self.logger.info("publisher_finished", **self.stats.as_dict())
                self._drain()
            else:
                self._state = PublisherState.AWAITING_ACKS
            return

        self.stats.batches += 1
        self._state = PublisherState.PUBLISHING
        for record in batch:
            payload, routing_key = self._prepare(record)
            tag = self.channel.publish(payload, routing_key, persistent=True)
            self.stats.published += 1
            self._record(tag)
            self.logger.debug("publisher_published", routing_key=routing_key, tag=tag, total=self.stats.published)

        self._state = PublisherState.AWAITING_ACKS
        if not self._outstanding:
            self.logger.debug("publisher_batch_settled", offset=self._offset)
            self._schedule_read()

    def _prepare(self, record: Record) -> tuple[str, str]:
        routing_value = read_value(record, self.target.routing_field)
        if not isinstance(routing_value, str) or not routing_value:
            unq = record.get(self.persister.ext_uniq)
            self.logger.error(
                "publisher_invalid_routing_value",
                record=str(unq),
                field=self.target.routing_field,
                value=repr(routing_value),
            )
            self._drain()
            raise ValidationError(
                f"Routing field '{self.target.routing_field}' of record {unq} "
                f"must be a non-empty string, got {routing_value!r}"
            )
        return self._encode_payload(record), self.target.routing_key(routing_value)

    def _encode_payload(self, record: Record) -> str:
        if self.target.payload:
            value = read_value(record, self.target.payload)
        else:
            value = {k: v for k, v in record.items() if k != self.persister.ext_uniq}
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str, ensure_ascii=False)

    def _drain(self) -> None:
        self._state = PublisherState.DRAINING
        try:
            self.channel.close()
        finally:
            self._state = PublisherState.TERMINATED
            self.logger.info("publisher_terminated", offset=self._offset)


__all__ = ["BackpressurePublisher", "DEFAULT_BATCH_SIZE", "PublishStats", "PublisherState"]
