"""
Settlement engine tests.

Run with: pytest tests/test_settlement.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from agegate.config import ValidationError
from agegate.core import SECONDS_PER_DAY
from agegate.errors import InsufficientBalance, NotSubscribed
from agegate.ledger.events import SubscriptionAutoCancelled, SubscriptionSettled
from agegate.ledger.models import CallContext, CancelReason, SettlementStatus, SubscriptionStatus
from agegate.zk.circuit import PublicInputs

from conftest import ADULT_DAYS, INTERVAL, NOW, PRICE, TODAY

PLAN = "adult-monthly"
LONG_GRACE = 45 * SECONDS_PER_DAY


def ctx(caller: str, timestamp: int) -> CallContext:
    return CallContext(caller, timestamp)


@pytest.fixture
def subscribe(contract, prove_for):
    def _subscribe(subscriber: str, funds: int = 0):
        if funds:
            contract.deposit(ctx(subscriber, NOW), funds)
        contract.register(ctx(subscriber, NOW), PLAN, prove_for(subscriber), PublicInputs(ADULT_DAYS, TODAY))
        return contract.get_subscription(subscriber, PLAN)
    return _subscribe


class TestSettle:
    """Tests for charging whole elapsed intervals."""

    def test_nothing_due_is_noop(self, contract, subscribe):
        subscribe("alice", funds=500)
        digest = contract.state_digest()
        receipt = contract.settle(ctx("keeper", NOW + INTERVAL - 1), "alice", PLAN)
        assert receipt.status == SettlementStatus.NOOP
        assert receipt.intervals_charged == 0
        assert contract.state_digest() == digest

    def test_charges_elapsed_intervals(self, contract, subscribe):
        subscribe("alice", funds=250)
        receipt = contract.settle(ctx("keeper", NOW + 2 * INTERVAL + 5), "alice", PLAN)

        assert receipt.status == SettlementStatus.SETTLED
        assert receipt.intervals_charged == 2
        assert receipt.amount_charged == 2 * PRICE
        assert receipt.previous_last_settled == NOW
        assert receipt.last_settled == NOW + 2 * INTERVAL
        assert contract.balance_of("alice") == 50
        assert contract.balance_of("merchant") == 200

        record = contract.get_subscription("alice", PLAN)
        assert record.last_settled == NOW + 2 * INTERVAL
        assert record.intervals_paid == 2
        assert record.total_charged == 200

    def test_settle_is_idempotent(self, contract, subscribe):
        subscribe("alice", funds=1000)
        at = ctx("keeper", NOW + INTERVAL + 100)
        first = contract.settle(at, "alice", PLAN)
        digest = contract.state_digest()
        second = contract.settle(at, "alice", PLAN)

        assert first.status == SettlementStatus.SETTLED
        assert second.status == SettlementStatus.NOOP
        assert contract.state_digest() == digest
        assert len(contract.store.events.of_type(SubscriptionSettled)) == 1

    def test_last_settled_stays_on_interval_grid(self, contract, subscribe):
        record = subscribe("alice", funds=10_000)
        for offset in (INTERVAL + 17, 3 * INTERVAL + 99_999, 4 * INTERVAL):
            contract.settle(ctx("keeper", NOW + offset), "alice", PLAN)
            current = contract.get_subscription("alice", PLAN)
            assert (current.last_settled - record.start) % INTERVAL == 0
            assert current.last_settled <= NOW + offset
        assert contract.get_subscription("alice", PLAN).intervals_paid == 4

    def test_partial_settlement(self, contract, subscribe):
        subscribe("alice", funds=150)
        receipt = contract.settle(ctx("keeper", NOW + 3 * INTERVAL), "alice", PLAN)

        assert receipt.status == SettlementStatus.PARTIAL
        assert receipt.intervals_charged == 1
        assert receipt.last_settled == NOW + INTERVAL
        assert contract.balance_of("alice") == 50
        assert contract.store.events.of_type(SubscriptionSettled)[-1].partial is True

    def test_underfunded_within_grace(self, contract, subscribe, config):
        config.settlement.grace_period_seconds.set(LONG_GRACE)
        subscribe("alice")
        digest = contract.state_digest()
        for offset in (INTERVAL, LONG_GRACE - 1):
            with pytest.raises(InsufficientBalance) as exc:
                contract.settle(ctx("keeper", NOW + offset), "alice", PLAN)
            assert exc.value.details["grace_ends"] == NOW + LONG_GRACE
        assert contract.state_digest() == digest
        assert contract.get_subscription("alice", PLAN).is_active

    def test_underfunded_past_grace_auto_cancels(self, contract, subscribe):
        # default grace is shorter than one interval: cancelled on the first unpaid due date
        subscribe("alice", funds=50)
        receipt = contract.settle(ctx("keeper", NOW + INTERVAL), "alice", PLAN)

        assert receipt.status == SettlementStatus.AUTO_CANCELLED
        assert receipt.amount_charged == 0
        record = contract.get_subscription("alice", PLAN)
        assert record.status == SubscriptionStatus.CANCELLED
        assert record.cancel_reason == CancelReason.UNDERFUNDED
        assert contract.balance_of("alice") == 50

        event = contract.store.events.of_type(SubscriptionAutoCancelled)[-1]
        assert event.overdue_since == NOW + INTERVAL

    def test_grace_runs_from_last_settlement(self, contract, subscribe, config):
        config.settlement.grace_period_seconds.set(LONG_GRACE)
        subscribe("alice", funds=PRICE)
        contract.settle(ctx("keeper", NOW + INTERVAL), "alice", PLAN)
        last = contract.get_subscription("alice", PLAN).last_settled
        assert last == NOW + INTERVAL

        with pytest.raises(InsufficientBalance):
            contract.settle(ctx("keeper", last + LONG_GRACE - 1), "alice", PLAN)
        # cancelled at L + grace, not at L + interval + grace
        receipt = contract.settle(ctx("keeper", last + LONG_GRACE), "alice", PLAN)
        assert receipt.status == SettlementStatus.AUTO_CANCELLED
        assert contract.get_subscription("alice", PLAN).last_settled == last

    def test_grace_period_is_configurable(self, contract, subscribe, config):
        config.settlement.grace_period_seconds.set(0)
        subscribe("alice")
        receipt = contract.settle(ctx("keeper", NOW + INTERVAL), "alice", PLAN)
        assert receipt.status == SettlementStatus.AUTO_CANCELLED

    def test_invalid_grace_from_environment_is_refused(self, contract, subscribe, monkeypatch):
        subscribe("alice")
        digest = contract.state_digest()
        monkeypatch.setenv("AGEGATE_GRACE_PERIOD", "-5")
        with pytest.raises(ValidationError):
            contract.settle(ctx("keeper", NOW + INTERVAL), "alice", PLAN)
        assert contract.state_digest() == digest
        assert contract.get_subscription("alice", PLAN).is_active

    def test_settle_cancelled_subscription(self, contract, subscribe):
        subscribe("alice", funds=500)
        contract.cancel(ctx("alice", NOW + 10), PLAN)
        with pytest.raises(NotSubscribed):
            contract.settle(ctx("keeper", NOW + 2 * INTERVAL), "alice", PLAN)
        assert contract.balance_of("alice") == 500

    def test_settle_unknown_subscription_is_noop(self, contract):
        digest = contract.state_digest()
        receipt = contract.settle(ctx("keeper", NOW), "nobody", PLAN)
        assert receipt.status == SettlementStatus.NOOP
        assert receipt.subscription_id is None
        assert contract.state_digest() == digest

    def test_free_plan_advances_without_balance(self, contract, prove_for):
        contract.create_plan(ctx("owner", NOW), "free", 0, SECONDS_PER_DAY, 0)
        contract.register(ctx("alice", NOW), "free", prove_for("alice", minimum_age=0), PublicInputs(0, TODAY))
        receipt = contract.settle(ctx("keeper", NOW + 3 * SECONDS_PER_DAY), "alice", "free")
        assert receipt.status == SettlementStatus.SETTLED
        assert receipt.intervals_charged == 3
        assert receipt.amount_charged == 0
        assert contract.balance_of("alice") == 0

    def test_receipt_digest_is_deterministic(self, contract, subscribe):
        subscribe("alice", funds=500)
        receipt = contract.settle(ctx("keeper", NOW + INTERVAL), "alice", PLAN)
        assert receipt.digest == receipt.digest
        assert len(receipt.digest) == 64
        assert receipt.to_dict()["status"] == "settled"


class TestSettleAll:
    """Tests for keeper sweeps."""

    def test_sweep_settles_every_active_subscription(self, contract, subscribe):
        subscribe("alice", funds=500)
        subscribe("bob", funds=500)
        report = contract.settle_all(ctx("keeper", NOW + INTERVAL))

        assert [r.status for r in report.receipts] == [SettlementStatus.SETTLED] * 2
        assert report.errors == []
        assert report.remaining == 0
        assert contract.balance_of("merchant") == 2 * PRICE

    def test_sweep_collects_errors_per_subscription(self, contract, subscribe, config):
        config.settlement.grace_period_seconds.set(LONG_GRACE)
        subscribe("alice", funds=500)
        subscribe("bob")
        report = contract.settle_all(ctx("keeper", NOW + INTERVAL))

        assert len(report.receipts) == 1
        assert report.receipts[0].subscriber_id == "alice"
        assert report.errors[0]["subscriber_id"] == "bob"
        assert report.errors[0]["error"] == "insufficient_balance"
        assert contract.get_subscription("alice", PLAN).intervals_paid == 1

    def test_sweep_batch_size(self, contract, subscribe, config):
        subscribe("alice", funds=500)
        subscribe("bob", funds=500)
        config.settlement.sweep_batch_size.set(1)
        report = contract.settle_all(ctx("keeper", NOW + INTERVAL))
        assert len(report.receipts) == 1
        assert report.remaining == 1

    def test_sweep_skips_cancelled_and_other_plans(self, contract, subscribe):
        subscribe("alice", funds=500)
        subscribe("bob", funds=500)
        contract.cancel(ctx("bob", NOW), PLAN)
        assert len(contract.settle_all(ctx("keeper", NOW + INTERVAL)).receipts) == 1
        assert contract.settle_all(ctx("keeper", NOW + INTERVAL), plan_id="other").receipts == []

    def test_sweep_auto_cancels_unfunded_past_grace(self, contract, subscribe):
        subscribe("alice", funds=500)
        subscribe("bob")
        report = contract.settle_all(ctx("keeper", NOW + INTERVAL))

        statuses = {r.subscriber_id: r.status for r in report.receipts}
        assert statuses == {"alice": SettlementStatus.SETTLED, "bob": SettlementStatus.AUTO_CANCELLED}
        assert report.errors == []
        assert [r.subscriber_id for r in contract.list_active()] == ["alice"]
