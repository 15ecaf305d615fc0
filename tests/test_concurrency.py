"""
Concurrent entry point tests.

Entry points serialize on the store's lock, so racing registrations for
the same (subscriber, plan) pair admit exactly one.

Run with: pytest tests/test_concurrency.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import threading

from agegate.errors import AlreadySubscribed
from agegate.ledger.events import EventBus, SubscriptionRegistered
from agegate.ledger.models import CallContext
from agegate.ledger.store import LedgerStore
from agegate.zk.circuit import PublicInputs

from conftest import ADULT_DAYS, NOW, TODAY

PLAN = "adult-monthly"


def _run_threads(target, count: int) -> None:
    threads = [threading.Thread(target=target) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestConcurrentRegistration:

    def test_racing_registrations_admit_one(self, contract, prove_for):
        proof = prove_for("alice")
        public = PublicInputs(ADULT_DAYS, TODAY)
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(4)

        def attempt():
            barrier.wait()
            try:
                contract.register(CallContext("alice", NOW), PLAN, proof, public)
                result = "ok"
            except AlreadySubscribed:
                result = "duplicate"
            with lock:
                outcomes.append(result)

        _run_threads(attempt, 4)

        assert sorted(outcomes) == ["duplicate", "duplicate", "duplicate", "ok"]
        assert len(contract.store.events.of_type(SubscriptionRegistered)) == 1
        assert contract.get_subscription("alice", PLAN).subscription_id == 1

    def test_concurrent_deposits_are_not_lost(self, contract):
        barrier = threading.Barrier(16)

        def deposit():
            barrier.wait()
            for _ in range(10):
                contract.deposit(CallContext("alice", NOW), 1)

        _run_threads(deposit, 16)
        assert contract.balance_of("alice") == 160


class TestTransactions:
    """Tests for the store's atomic write-set."""

    def test_failed_block_discards_writes_and_events(self):
        store = LedgerStore("owner")
        digest = store.state_digest()
        try:
            with store.transaction() as tx:
                tx.put(("balance", "alice"), 10)
                tx.emit(SubscriptionRegistered(block_timestamp=1, subscriber_id="alice", plan_id="p"))
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert store.state_digest() == digest
        assert len(store.events) == 0

    def test_nested_transactions_join_outer(self):
        store = LedgerStore("owner")
        with store.transaction() as outer:
            outer.put(("balance", "alice"), 1)
            with store.transaction() as inner:
                assert inner is outer
                assert inner.get(("balance", "alice")) == 1
                inner.put(("balance", "bob"), 2)
            assert store.get(("balance", "bob")) is None
        assert store.get(("balance", "bob")) == 2

    def test_failed_nested_block_discards_only_its_own_writes(self):
        store = LedgerStore("owner")
        with store.transaction() as outer:
            outer.put(("balance", "alice"), 1)
            try:
                with store.transaction() as inner:
                    inner.put(("balance", "alice"), 99)
                    inner.put(("balance", "bob"), 2)
                    inner.emit(SubscriptionRegistered(block_timestamp=1, subscriber_id="bob", plan_id="p"))
                    raise RuntimeError("inner failed")
            except RuntimeError:
                pass
            assert outer.get(("balance", "alice")) == 1
            assert outer.get(("balance", "bob")) is None
            assert outer.pending_events == []
        assert store.get(("balance", "alice")) == 1
        assert store.get(("balance", "bob")) is None
        assert len(store.events) == 0

    def test_event_retention_keeps_global_positions(self):
        store = LedgerStore("owner", event_retention=2)
        for name in ("alice", "bob", "carol"):
            with store.transaction() as tx:
                tx.emit(SubscriptionRegistered(block_timestamp=1, subscriber_id=name, plan_id="p"))

        assert len(store.events) == 2
        assert store.events.dropped == 1
        assert [r.sequence_number for r in store.events.read_all()] == [2, 3]
        assert [r.event.subscriber_id for r in store.events.read_all(from_position=2)] == ["carol"]
        assert store.events.read_stream("subscription/alice/p") == []
        assert [e.subscriber_id for e in store.events.read_stream("subscription/carol/p")] == ["carol"]

    def test_audit_retention_keeps_chain_head(self):
        store = LedgerStore("owner", audit_retention=2)
        heads = []
        for action in ("register", "settle", "cancel"):
            store.audit.log("alice", action, "subscription", "alice/p", "success")
            heads.append(store.audit.head)

        assert [e.action for e in store.audit.events()] == ["settle", "cancel"]
        assert store.audit.count == 3
        assert store.audit.head == heads[-1]
        assert len(set(heads)) == 3

    def test_committed_events_are_published(self):
        store = LedgerStore("owner")
        seen = []

        @store.bus.subscribe(SubscriptionRegistered)
        def on_registered(event):
            seen.append(event.subscriber_id)

        with store.transaction() as tx:
            tx.emit(SubscriptionRegistered(block_timestamp=1, subscriber_id="alice", plan_id="p"))
            assert len(tx.pending_events) == 1
            assert seen == [] and len(store.events) == 0
        assert seen == ["alice"]
        assert store.events.read_stream("subscription/alice/p")[0].subscriber_id == "alice"
        assert [r.sequence_number for r in store.events.read_all()] == [1]

        assert store.bus.unsubscribe(on_registered)
        assert not store.bus.unsubscribe(on_registered)
        with store.transaction() as tx:
            tx.emit(SubscriptionRegistered(block_timestamp=2, subscriber_id="bob", plan_id="p"))
        assert seen == ["alice"]
        assert [r.event.subscriber_id for r in store.events.read_all(from_position=1)] == ["bob"]

    def test_failing_handler_does_not_undo_commit(self):
        errors = []
        store = LedgerStore("owner", bus=EventBus(on_error=errors.append))

        @store.bus.subscribe()
        def broken(event):
            raise ValueError("handler bug")

        with store.transaction() as tx:
            tx.put(("balance", "alice"), 5)
            tx.emit(SubscriptionRegistered(block_timestamp=1, subscriber_id="alice", plan_id="p"))
        assert store.get(("balance", "alice")) == 5
        assert len(errors) == 1
        assert store.bus.metrics["error_count"] == 1

    def test_state_digest_tracks_content(self):
        a, b = LedgerStore("owner"), LedgerStore("owner")
        assert a.state_digest() == b.state_digest()
        with a.transaction() as tx:
            tx.put(("balance", "alice"), 1)
        assert a.state_digest() != b.state_digest()
