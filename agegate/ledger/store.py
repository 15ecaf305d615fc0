"""
Contract storage.

:class:`LedgerStore` is the in-process stand-in for contract storage: an
explicitly owned key-value map plus the committed event log. Keys are
tuples:

    ("plan", plan_id)                          PlanDefinition
    ("subscription", subscriber_id, plan_id)   SubscriptionRecord
    ("history", subscriber_id, plan_id)        tuple of archived records
    ("balance", account)                       int
    ("delegate", subscriber_id, delegate)      bool
    ("owner",)                                 str
    ("sequence",)                              int, last subscription id

Every mutation goes through :meth:`LedgerStore.transaction`. The
transaction holds the store's re-entrant lock for its whole duration,
buffers writes and events, and applies them only when the block exits
without an exception. A failed entry point therefore leaves the state
digest unchanged.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from agegate.core import canonical_digest
from agegate.ledger.events import EventBus, EventLog, EventRecord, LedgerEvent
from agegate.observability import AuditLogger, Layer, get_logger

Key = Tuple[Any, ...]

logger = get_logger("store", Layer.LEDGER)


def _encode(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


class Transaction:
    """Buffered view over the store; see :meth:`LedgerStore.transaction`."""

    def __init__(self, store: "LedgerStore"):
        self._store = store
        self._writes: Dict[Key, Any] = {}
        self._events: List[LedgerEvent] = []

    def get(self, key: Key, default: Any = None) -> Any:
        if key in self._writes:
            return self._writes[key]
        return self._store._state.get(key, default)

    def put(self, key: Key, value: Any) -> None:
        self._writes[key] = value

    def emit(self, event: LedgerEvent) -> None:
        self._events.append(event)

    def keys(self, prefix: str) -> List[Key]:
        merged = set(k for k in self._store._state if k[0] == prefix)
        merged.update(k for k in self._writes if k[0] == prefix)
        return sorted(merged)

    @property
    def pending_events(self) -> List[LedgerEvent]:
        return list(self._events)


class LedgerStore:
    """Key-value contract storage with atomic transactions."""

    def __init__(
        self,
        owner: str,
        bus: Optional[EventBus] = None,
        event_retention: Optional[int] = None,
        audit_retention: int = 10_000,
    ):
        self._state: Dict[Key, Any] = {("owner",): owner, ("sequence",): 0}
        self._lock = threading.RLock()
        self._active: Optional[Transaction] = None
        self.events = EventLog(max_records=event_retention)
        self.bus = bus or EventBus()
        self.audit = AuditLogger(get_logger("audit", Layer.LEDGER), max_events=audit_retention)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run a block atomically.

        Nested calls on the same thread join the outer transaction. A nested
        block that raises discards its own writes and events, so an outer
        caller that catches the error keeps only what it wrote itself.
        """
        with self._lock:
            if self._active is not None:
                outer = self._active
                writes = dict(outer._writes)
                emitted = len(outer._events)
                try:
                    yield outer
                except BaseException:
                    outer._writes = writes
                    del outer._events[emitted:]
                    raise
                return

            tx = Transaction(self)
            self._active = tx
            try:
                yield tx
            finally:
                self._active = None
            # only reached when the block raised nothing
            self._state.update(tx._writes)
            committed = self.events.append(tx._events)

        if committed:
            logger.debug("Committed transaction", writes=len(tx._writes), events=len(committed))
        self._publish(committed)

    def _publish(self, records: List[EventRecord]) -> None:
        for record in records:
            self.bus.publish(record.event)

    def get(self, key: Key, default: Any = None) -> Any:
        with self._lock:
            return self._state.get(key, default)

    def keys(self, prefix: str) -> List[Key]:
        with self._lock:
            return sorted(k for k in self._state if k[0] == prefix)

    @property
    def owner(self) -> str:
        return self.get(("owner",))

    def snapshot(self) -> List[List[Any]]:
        """Canonical, sorted view of the whole state."""
        with self._lock:
            return [[list(k), _encode(self._state[k])] for k in sorted(self._state, key=repr)]

    def state_digest(self) -> str:
        """SHA-256 over the canonical state; equal digests mean equal state."""
        return canonical_digest(self.snapshot())
