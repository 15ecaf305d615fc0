"""
agegate subscription ledger.

An in-process model of the subscription contract: explicit storage,
explicit call contexts, atomic entry points.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from agegate.ledger.contract import SubscriptionContract
from agegate.ledger.events import EventBus, LedgerEvent
from agegate.ledger.models import (
    CallContext,
    CancelReason,
    PlanDefinition,
    SettlementReceipt,
    SettlementStatus,
    SubscriptionRecord,
    SubscriptionStatus,
)
from agegate.ledger.registry import SubscriptionRegistry
from agegate.ledger.settlement import SettlementEngine, SweepReport
from agegate.ledger.store import LedgerStore

__all__ = [
    "SubscriptionContract",
    "EventBus",
    "LedgerEvent",
    "CallContext",
    "CancelReason",
    "PlanDefinition",
    "SettlementReceipt",
    "SettlementStatus",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "SubscriptionRegistry",
    "SettlementEngine",
    "SweepReport",
    "LedgerStore",
]
