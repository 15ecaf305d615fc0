"""
Ledger Events

Events are immutable facts emitted by ledger entry points. They are staged
inside the entry point's transaction and appended to the :class:`EventLog`
only when the transaction commits, so a failed call never leaves an event
behind. Committed events are then published on the :class:`EventBus`.

    ┌──────────────┐ emit  ┌──────────────┐ commit ┌──────────┐ publish ┌──────────┐
    │ entry point  │──────▶│ transaction  │───────▶│ EventLog │────────▶│ EventBus │
    └──────────────┘       └──────────────┘        └──────────┘         └──────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Type

from agegate.core import canonical_digest
from agegate.observability import Layer, get_logger

logger = get_logger("events", Layer.LEDGER)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class LedgerEvent:
    """
    Base class for ledger events.

    ``block_timestamp`` is the call context's timestamp, so event content
    is a deterministic function of the call.
    """

    block_timestamp: int = 0
    subscriber_id: str = ""
    plan_id: str = ""

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    @property
    def stream_id(self) -> str:
        if self.subscriber_id and self.plan_id:
            return f"subscription/{self.subscriber_id}/{self.plan_id}"
        if self.plan_id:
            return f"plan/{self.plan_id}"
        return "contract"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def digest(self) -> str:
        """Deterministic digest of event content."""
        return canonical_digest(self.to_dict())


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class PlanCreated(LedgerEvent):
    """Emitted when the owner publishes a plan."""
    minimum_age_days: int = 0
    interval_seconds: int = 0
    price: int = 0
    beneficiary: str = ""


@dataclass
class OwnershipTransferred(LedgerEvent):
    previous_owner: str = ""
    new_owner: str = ""


@dataclass
class SubscriptionRegistered(LedgerEvent):
    """Emitted when a verified registration activates a subscription."""
    subscription_id: int = 0
    start: int = 0
    birth_commitment: str = ""
    notification_handle: str = ""


@dataclass
class SubscriptionCancelled(LedgerEvent):
    subscription_id: int = 0
    cancelled_by: str = ""
    reason: str = ""


@dataclass
class SubscriptionSettled(LedgerEvent):
    subscription_id: int = 0
    intervals_charged: int = 0
    amount_charged: int = 0
    last_settled: int = 0
    partial: bool = False


@dataclass
class SubscriptionAutoCancelled(LedgerEvent):
    """Emitted when settlement cancels an underfunded subscription past grace."""
    subscription_id: int = 0
    overdue_since: int = 0


@dataclass
class FundsDeposited(LedgerEvent):
    account: str = ""
    amount: int = 0


@dataclass
class FundsWithdrawn(LedgerEvent):
    account: str = ""
    amount: int = 0


@dataclass
class DelegateAuthorized(LedgerEvent):
    delegate: str = ""


@dataclass
class DelegateRevoked(LedgerEvent):
    delegate: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT LOG
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A committed event with its global sequence number."""
    sequence_number: int
    event: LedgerEvent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "stream_id": self.event.stream_id,
            "event": self.event.to_dict(),
            "digest": self.event.digest(),
        }


class EventLog:
    """Append-only log of committed ledger events, indexed by stream.

    At most ``max_records`` events are retained; the oldest are dropped
    first. Sequence numbers and ``read_all`` positions stay global, so a
    reader that polls with its last position never sees a record twice.
    """

    def __init__(self, max_records: Optional[int] = None):
        self._records: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._lock = threading.RLock()
        self._max_records = max_records
        self._dropped = 0

    def append(self, events: List[LedgerEvent]) -> List[EventRecord]:
        with self._lock:
            records = []
            for event in events:
                record = EventRecord(sequence_number=self._dropped + len(self._records) + 1, event=event)
                self._records.append(record)
                self._streams.setdefault(event.stream_id, []).append(record)
                records.append(record)
            self._trim()
            return records

    def _trim(self) -> None:
        if self._max_records is None or len(self._records) <= self._max_records:
            return
        excess = len(self._records) - self._max_records
        for record in self._records[:excess]:
            stream = self._streams[record.event.stream_id]
            stream.pop(0)
            if not stream:
                del self._streams[record.event.stream_id]
        del self._records[:excess]
        self._dropped += excess

    @property
    def dropped(self) -> int:
        """Events no longer retained."""
        return self._dropped

    def read_stream(self, stream_id: str) -> List[LedgerEvent]:
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])]

    def read_all(self, from_position: int = 0) -> List[EventRecord]:
        with self._lock:
            return list(self._records[max(0, from_position - self._dropped):])

    def of_type(self, event_type: Type[LedgerEvent]) -> List[LedgerEvent]:
        with self._lock:
            return [r.event for r in self._records if isinstance(r.event, event_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[LedgerEvent], None]


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: LedgerEvent, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {getattr(handler, '__name__', handler)} failed for {event.event_type}: {cause}")


@dataclass
class _Registration:
    handler: EventHandler
    event_types: Set[Type[LedgerEvent]] = field(default_factory=set)


class EventBus:
    """
    Synchronous pub/sub for committed ledger events.

    Handlers run after the commit, outside the ledger's critical section
    for state, so a failing handler can never undo a committed transition.
    Failures are counted, logged and passed to ``on_error``.

    Example:
        bus = EventBus()

        @bus.subscribe(SubscriptionRegistered)
        def on_registered(event):
            ...
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[_Registration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._error_count = 0

    def subscribe(self, *event_types: Type[LedgerEvent]) -> Callable[[EventHandler], EventHandler]:
        def decorator(handler: EventHandler) -> EventHandler:
            with self._lock:
                self._handlers.append(_Registration(handler, set(event_types) or {LedgerEvent}))
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            before = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < before

    def publish(self, event: LedgerEvent) -> None:
        with self._lock:
            self._published_count += 1
            handlers = [
                r.handler for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
            ]

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                with self._lock:
                    self._error_count += 1
                error = EventHandlerError(event, handler, e)
                logger.error(str(error), error_code="event_handler_failed", exc_info=True)
                if self._on_error:
                    self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }
