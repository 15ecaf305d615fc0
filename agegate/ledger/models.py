"""
Ledger data model.

All records are frozen dataclasses; a state change replaces the stored
record with a new one (``dataclasses.replace``). Records are never deleted.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from agegate.core import canonical_digest, day_of_timestamp


class SubscriptionStatus(Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class CancelReason(Enum):
    SUBSCRIBER = "subscriber"
    DELEGATE = "delegate"
    UNDERFUNDED = "underfunded"


class SettlementStatus(Enum):
    SETTLED = "settled"
    PARTIAL = "partial"
    NOOP = "noop"
    AUTO_CANCELLED = "auto_cancelled"


# Per-record transitions. ACTIVE -> ACTIVE covers settlement updates;
# CANCELLED has no outgoing transitions.
RECORD_TRANSITIONS: Dict[Optional[SubscriptionStatus], Set[SubscriptionStatus]] = {
    None: {SubscriptionStatus.ACTIVE},
    SubscriptionStatus.ACTIVE: {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED},
    SubscriptionStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class CallContext:
    """Explicit call context: who is calling, and the block timestamp in seconds."""
    caller: str
    timestamp: int

    @property
    def day(self) -> int:
        return day_of_timestamp(self.timestamp)


@dataclass(frozen=True)
class PlanDefinition:
    plan_id: str
    minimum_age_days: int
    interval_seconds: int
    price: int
    beneficiary: str
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanDefinition":
        return cls(**data)


@dataclass(frozen=True)
class SubscriptionRecord:
    subscription_id: int
    subscriber_id: str
    plan_id: str
    status: SubscriptionStatus
    start: int
    last_settled: int
    escrow_account: str
    intervals_paid: int = 0
    total_charged: int = 0
    cancelled_at: Optional[int] = None
    cancel_reason: Optional[CancelReason] = None
    notification_handle: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def next_due(self, interval_seconds: int) -> int:
        return self.last_settled + interval_seconds

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["cancel_reason"] = self.cancel_reason.value if self.cancel_reason else None
        return d


@dataclass(frozen=True)
class SettlementReceipt:
    subscriber_id: str
    plan_id: str
    status: SettlementStatus
    intervals_charged: int
    amount_charged: int
    previous_last_settled: int
    last_settled: int
    settled_at: int
    subscription_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @property
    def digest(self) -> str:
        return canonical_digest(self.to_dict())
