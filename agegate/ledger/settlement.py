"""
Settlement Engine

Charges active subscriptions for whole elapsed intervals. Permissionless:
anyone may settle anyone's subscription, because the outcome depends only
on ledger state and block time.

For a record with ``last_settled`` L, plan interval I and price p at block
time ``now``:

    elapsed    = (now - L) // I
    affordable = balance // p            (unbounded when p == 0)
    k          = min(elapsed, affordable)

    elapsed == 0           noop, nothing changes (idempotent)
    k == elapsed           charge k*p, L += k*I              settled
    0 < k < elapsed        charge k*p, L += k*I              partial
    k == 0, past grace     CANCELLED (underfunded)           auto_cancelled
    k == 0, within grace   InsufficientBalance, nothing changes

``L`` always advances by whole intervals and is never snapped to ``now``,
so ``L - start`` stays a multiple of ``I``. Grace is measured from the
last successful settlement ``L``: once ``now >= L + grace`` an unfunded
record is cancelled. A grace shorter than ``I`` therefore cancels as soon
as an unaffordable interval comes due.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agegate.config import AgegateConfig, get_config
from agegate.errors import AgegateError, InsufficientBalance, NotSubscribed, PlanNotFound
from agegate.hardening import InvariantChecker
from agegate.ledger.events import SubscriptionAutoCancelled, SubscriptionSettled
from agegate.ledger.models import (
    RECORD_TRANSITIONS,
    CallContext,
    CancelReason,
    PlanDefinition,
    SettlementReceipt,
    SettlementStatus,
    SubscriptionRecord,
    SubscriptionStatus,
)
from agegate.ledger.registry import entry_point
from agegate.ledger.store import LedgerStore, Transaction
from agegate.observability import Layer, get_logger

logger = get_logger("settlement", Layer.SETTLEMENT)


@dataclass
class SweepReport:
    """Outcome of a keeper sweep over active subscriptions."""
    receipts: List[SettlementReceipt] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipts": [r.to_dict() for r in self.receipts],
            "errors": list(self.errors),
            "remaining": self.remaining,
        }


class SettlementEngine:
    """Recurring-payment settlement over registry state and block time."""

    def __init__(self, store: LedgerStore, config: Optional[AgegateConfig] = None):
        self.store = store
        self.config = config or get_config()

    @property
    def grace_period(self) -> int:
        return self.config.settlement.grace_period_seconds.get()

    def settle(self, ctx: CallContext, subscriber_id: str, plan_id: str) -> SettlementReceipt:
        resource = f"{subscriber_id}/{plan_id}"
        with entry_point(self.store, logger, ctx, "settle", "subscription", resource) as tx:
            receipt = self._settle(tx, ctx, subscriber_id, plan_id)

        if receipt.status != SettlementStatus.NOOP:
            logger.info(
                "Subscription settled",
                operation="settle",
                subscriber_id=subscriber_id,
                plan_id=plan_id,
                status=receipt.status.value,
                intervals=receipt.intervals_charged,
                amount=receipt.amount_charged,
            )
        return receipt

    def _receipt(
        self,
        ctx: CallContext,
        record: SubscriptionRecord,
        status: SettlementStatus,
        intervals: int = 0,
        amount: int = 0,
        last_settled: Optional[int] = None,
    ) -> SettlementReceipt:
        return SettlementReceipt(
            subscriber_id=record.subscriber_id,
            plan_id=record.plan_id,
            status=status,
            intervals_charged=intervals,
            amount_charged=amount,
            previous_last_settled=record.last_settled,
            last_settled=record.last_settled if last_settled is None else last_settled,
            settled_at=ctx.timestamp,
            subscription_id=record.subscription_id,
        )

    def _settle(
        self,
        tx: Transaction,
        ctx: CallContext,
        subscriber_id: str,
        plan_id: str,
    ) -> SettlementReceipt:
        record: Optional[SubscriptionRecord] = tx.get(("subscription", subscriber_id, plan_id))
        if record is None:
            return SettlementReceipt(
                subscriber_id=subscriber_id,
                plan_id=plan_id,
                status=SettlementStatus.NOOP,
                intervals_charged=0,
                amount_charged=0,
                previous_last_settled=0,
                last_settled=0,
                settled_at=ctx.timestamp,
            )
        if not record.is_active:
            raise NotSubscribed("subscription is cancelled", subscriber_id=subscriber_id, plan_id=plan_id)

        plan: Optional[PlanDefinition] = tx.get(("plan", plan_id))
        if plan is None:
            raise PlanNotFound(f"no plan {plan_id!r}", plan_id=plan_id)

        interval = plan.interval_seconds
        elapsed = max(0, ctx.timestamp - record.last_settled) // interval
        if elapsed == 0:
            return self._receipt(ctx, record, SettlementStatus.NOOP)

        balance = tx.get(("balance", record.escrow_account), 0)
        affordable = balance // plan.price if plan.price else elapsed
        k = min(elapsed, affordable)

        if k == 0:
            grace_ends = record.last_settled + self.grace_period
            if ctx.timestamp >= grace_ends:
                return self._auto_cancel(tx, ctx, record, record.next_due(interval))
            raise InsufficientBalance(
                "escrow cannot cover one interval",
                subscriber_id=subscriber_id,
                plan_id=plan_id,
                balance=balance,
                price=plan.price,
                grace_ends=grace_ends,
            )

        amount = k * plan.price
        new_last = record.last_settled + k * interval
        InvariantChecker.check_monotonic_increase("last_settled", record.last_settled, new_last)
        InvariantChecker.check_interval_aligned("last_settled", record.start, new_last, interval)
        InvariantChecker.check_state_transition(record.status, SubscriptionStatus.ACTIVE, RECORD_TRANSITIONS)
        InvariantChecker.check_non_negative("balance", balance - amount)

        if amount:
            tx.put(("balance", record.escrow_account), balance - amount)
            tx.put(("balance", plan.beneficiary), tx.get(("balance", plan.beneficiary), 0) + amount)

        updated = dataclasses.replace(
            record,
            last_settled=new_last,
            intervals_paid=record.intervals_paid + k,
            total_charged=record.total_charged + amount,
        )
        tx.put(("subscription", subscriber_id, plan_id), updated)

        partial = k < elapsed
        tx.emit(SubscriptionSettled(
            block_timestamp=ctx.timestamp,
            subscriber_id=subscriber_id,
            plan_id=plan_id,
            subscription_id=record.subscription_id,
            intervals_charged=k,
            amount_charged=amount,
            last_settled=new_last,
            partial=partial,
        ))
        status = SettlementStatus.PARTIAL if partial else SettlementStatus.SETTLED
        return self._receipt(ctx, record, status, k, amount, new_last)

    def _auto_cancel(
        self,
        tx: Transaction,
        ctx: CallContext,
        record: SubscriptionRecord,
        due: int,
    ) -> SettlementReceipt:
        InvariantChecker.check_state_transition(record.status, SubscriptionStatus.CANCELLED, RECORD_TRANSITIONS)
        cancelled = dataclasses.replace(
            record,
            status=SubscriptionStatus.CANCELLED,
            cancelled_at=ctx.timestamp,
            cancel_reason=CancelReason.UNDERFUNDED,
        )
        tx.put(("subscription", record.subscriber_id, record.plan_id), cancelled)
        tx.emit(SubscriptionAutoCancelled(
            block_timestamp=ctx.timestamp,
            subscriber_id=record.subscriber_id,
            plan_id=record.plan_id,
            subscription_id=record.subscription_id,
            overdue_since=due,
        ))
        logger.warning(
            "Subscription auto-cancelled for insufficient funds",
            operation="settle",
            subscriber_id=record.subscriber_id,
            plan_id=record.plan_id,
            overdue_since=due,
        )
        return self._receipt(ctx, record, SettlementStatus.AUTO_CANCELLED)

    def settle_all(self, ctx: CallContext, plan_id: Optional[str] = None) -> SweepReport:
        """Keeper sweep: settle every active subscription, each atomically.

        At most ``sweep_batch_size`` records are visited; ``remaining``
        reports how many were left for the next sweep.
        """
        with self.store.transaction() as tx:
            keys = [
                k for k in tx.keys("subscription")
                if tx.get(k).is_active and (plan_id is None or k[2] == plan_id)
            ]

        batch = self.config.settlement.sweep_batch_size.get()
        report = SweepReport(remaining=max(0, len(keys) - batch))
        for _, subscriber_id, sub_plan in keys[:batch]:
            try:
                report.receipts.append(self.settle(ctx, subscriber_id, sub_plan))
            except AgegateError as e:
                report.errors.append({
                    "subscriber_id": subscriber_id,
                    "plan_id": sub_plan,
                    **e.to_dict(),
                })

        logger.info(
            "Settlement sweep complete",
            operation="settle_all",
            settled=len(report.receipts),
            errors=len(report.errors),
            remaining=report.remaining,
        )
        return report
