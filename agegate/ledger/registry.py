"""
Subscription Registry

Owns the subscription lifecycle:

    None ──register(valid proof)──▶ ACTIVE ──cancel / auto-cancel──▶ CANCELLED

ACTIVE is reachable only through :meth:`SubscriptionRegistry.register`
after the verifier accepted the proof. CANCELLED records are terminal;
registering again archives the cancelled record into the pair's history
and starts a fresh record with a new subscription id.

Registration checks run in a fixed order, each failure leaving state
untouched:

    InvalidInput (caller id, notification handle)
      → PlanNotFound → AlreadySubscribed → StaleTimestamp
      → ProofRejected (minimum_age differs from the plan)
      → ProofMalformed / OutOfResources / ProofRejected (verifier)

The registry also carries the contract's administrative surface: plan
creation and ownership (owner only), escrow balances and delegates.
Argument validation runs inside the entry point, so a malformed account,
amount or handle surfaces as :class:`InvalidInput` and is audited like any
other failure.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from agegate.config import AgegateConfig, get_config
from agegate.errors import (
    AgegateError,
    AlreadyCancelled,
    AlreadySubscribed,
    InsufficientBalance,
    InvalidInput,
    InvalidPlan,
    NotAuthorized,
    NotSubscribed,
    OutOfResources,
    PlanNotFound,
    ProofMalformed,
    ProofRejected,
    StaleTimestamp,
)
from agegate.hardening import InvariantChecker, ValidationErrors, ValidationResult, Validators
from agegate.ledger.events import (
    DelegateAuthorized,
    DelegateRevoked,
    FundsDeposited,
    FundsWithdrawn,
    OwnershipTransferred,
    PlanCreated,
    SubscriptionCancelled,
    SubscriptionRegistered,
)
from agegate.ledger.models import (
    RECORD_TRANSITIONS,
    CallContext,
    CancelReason,
    PlanDefinition,
    SubscriptionRecord,
    SubscriptionStatus,
)
from agegate.ledger.store import LedgerStore, Transaction
from agegate.observability import AgegateLogger, Layer, get_logger
from agegate.schema import PLAN_SCHEMA, validate_against_schema
from agegate.zk.circuit import PublicInputs
from agegate.zk.verifier import AgeVerifier, Outcome

logger = get_logger("registry", Layer.REGISTRY)


@contextmanager
def entry_point(
    store: LedgerStore,
    log: AgegateLogger,
    ctx: CallContext,
    action: str,
    resource_type: str,
    resource_id: str,
) -> Iterator[Transaction]:
    """Run one ledger entry point: atomic transaction, logging and audit."""
    try:
        with store.transaction() as tx:
            yield tx
    except AgegateError as e:
        log.info(
            f"{action} failed",
            operation=action,
            error_code=e.code.value,
            caller=ctx.caller,
            resource=resource_id,
            reason=e.message,
        )
        outcome = "denied" if isinstance(e, NotAuthorized) else "failure"
        store.audit.log(ctx.caller, action, resource_type, resource_id, outcome, error=e.code.value)
        raise
    store.audit.log(ctx.caller, action, resource_type, resource_id, "success", timestamp=ctx.timestamp)


def _require_valid(result: ValidationResult) -> Any:
    try:
        result.raise_if_invalid()
    except ValidationErrors as e:
        raise InvalidInput(str(e), fields=",".join(err.field for err in e.errors)) from e
    return result.sanitized_value


def _check_account(value: str, field_name: str) -> str:
    return _require_valid(Validators.validate_account_id(value, field_name))


def _check_amount(value: int) -> int:
    return _require_valid(Validators.validate_amount(value, min_value=1))


class SubscriptionRegistry:
    """Subscription lifecycle, plans, escrow balances and delegates."""

    def __init__(
        self,
        store: LedgerStore,
        verifier: AgeVerifier,
        config: Optional[AgegateConfig] = None,
    ):
        self.store = store
        self.verifier = verifier
        self.config = config or get_config()

    # ------------------------------------------------------------------
    # Plans and ownership
    # ------------------------------------------------------------------

    def _require_owner(self, tx: Transaction, ctx: CallContext) -> None:
        if ctx.caller != tx.get(("owner",)):
            raise NotAuthorized("only the contract owner may do this", caller=ctx.caller)

    def create_plan(
        self,
        ctx: CallContext,
        plan_id: str,
        minimum_age_days: int,
        interval_seconds: int,
        price: int,
        beneficiary: Optional[str] = None,
    ) -> PlanDefinition:
        with entry_point(self.store, logger, ctx, "create_plan", "plan", plan_id) as tx:
            self._require_owner(tx, ctx)
            plan = PlanDefinition(
                plan_id=plan_id,
                minimum_age_days=minimum_age_days,
                interval_seconds=interval_seconds,
                price=price,
                beneficiary=beneficiary or ctx.caller,
                created_at=ctx.timestamp,
            )
            errors = validate_against_schema(plan.to_dict(), PLAN_SCHEMA)
            if errors:
                raise InvalidPlan(f"invalid plan: {errors[0]}", plan_id=plan_id)
            if tx.get(("plan", plan_id)) is not None:
                raise InvalidPlan("plan already exists", plan_id=plan_id)

            tx.put(("plan", plan_id), plan)
            tx.emit(PlanCreated(
                block_timestamp=ctx.timestamp,
                plan_id=plan_id,
                minimum_age_days=minimum_age_days,
                interval_seconds=interval_seconds,
                price=price,
                beneficiary=plan.beneficiary,
            ))
        return plan

    def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        return self.store.get(("plan", plan_id))

    def transfer_ownership(self, ctx: CallContext, new_owner: str) -> None:
        with entry_point(self.store, logger, ctx, "transfer_ownership", "contract", "owner") as tx:
            self._require_owner(tx, ctx)
            _check_account(new_owner, "new_owner")
            if new_owner == ctx.caller:
                raise InvalidInput("new owner must differ from the current owner", new_owner=new_owner)
            tx.put(("owner",), new_owner)
            tx.emit(OwnershipTransferred(
                block_timestamp=ctx.timestamp,
                previous_owner=ctx.caller,
                new_owner=new_owner,
            ))

    # ------------------------------------------------------------------
    # Escrow balances
    # ------------------------------------------------------------------

    def deposit(self, ctx: CallContext, amount: int, account: Optional[str] = None) -> int:
        """Credit ``account`` (default: the caller). Returns the new balance."""
        account = account or ctx.caller
        with entry_point(self.store, logger, ctx, "deposit", "balance", str(account)) as tx:
            _check_account(account, "account")
            _check_amount(amount)
            balance = tx.get(("balance", account), 0) + amount
            tx.put(("balance", account), balance)
            tx.emit(FundsDeposited(block_timestamp=ctx.timestamp, account=account, amount=amount))
        return balance

    def withdraw(self, ctx: CallContext, amount: int) -> int:
        """Debit the caller's escrow. Returns the new balance."""
        with entry_point(self.store, logger, ctx, "withdraw", "balance", ctx.caller) as tx:
            _check_amount(amount)
            balance = tx.get(("balance", ctx.caller), 0)
            if amount > balance:
                raise InsufficientBalance(
                    "withdrawal exceeds escrow balance",
                    account=ctx.caller,
                    balance=balance,
                    amount=amount,
                )
            tx.put(("balance", ctx.caller), balance - amount)
            tx.emit(FundsWithdrawn(block_timestamp=ctx.timestamp, account=ctx.caller, amount=amount))
        return balance - amount

    def balance_of(self, account: str) -> int:
        return self.store.get(("balance", account), 0)

    # ------------------------------------------------------------------
    # Delegates
    # ------------------------------------------------------------------

    def authorize_delegate(self, ctx: CallContext, delegate: str) -> None:
        with entry_point(self.store, logger, ctx, "authorize_delegate", "delegate", str(delegate)) as tx:
            _check_account(delegate, "delegate")
            if delegate == ctx.caller:
                raise NotAuthorized("a subscriber cannot delegate to itself", caller=ctx.caller)
            tx.put(("delegate", ctx.caller, delegate), True)
            tx.emit(DelegateAuthorized(block_timestamp=ctx.timestamp, subscriber_id=ctx.caller, delegate=delegate))

    def revoke_delegate(self, ctx: CallContext, delegate: str) -> None:
        with entry_point(self.store, logger, ctx, "revoke_delegate", "delegate", delegate) as tx:
            if not tx.get(("delegate", ctx.caller, delegate), False):
                raise NotAuthorized("delegate is not authorized", delegate=delegate)
            tx.put(("delegate", ctx.caller, delegate), False)
            tx.emit(DelegateRevoked(block_timestamp=ctx.timestamp, subscriber_id=ctx.caller, delegate=delegate))

    def is_delegate(self, subscriber_id: str, delegate: str) -> bool:
        return bool(self.store.get(("delegate", subscriber_id, delegate), False))

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def register(
        self,
        ctx: CallContext,
        plan_id: str,
        proof_bytes: bytes,
        public_inputs: PublicInputs,
        notification_handle: Optional[str] = None,
    ) -> SubscriptionRecord:
        """Activate a subscription for ``ctx.caller`` after verifying the age proof.

        ``notification_handle`` is an opaque off-ledger channel (an email
        hash, a webhook id) stored on the record and the registration
        event so keepers can reach the subscriber. It is never interpreted.
        """
        subscriber = ctx.caller
        resource = f"{subscriber}/{plan_id}"

        with entry_point(self.store, logger, ctx, "register", "subscription", resource) as tx:
            _check_account(subscriber, "caller")
            if notification_handle is not None:
                notification_handle = _require_valid(Validators.validate_handle(notification_handle))

            plan = tx.get(("plan", plan_id))
            if plan is None:
                raise PlanNotFound(f"no plan {plan_id!r}", plan_id=plan_id)

            existing: Optional[SubscriptionRecord] = tx.get(("subscription", subscriber, plan_id))
            if existing is not None and existing.is_active:
                raise AlreadySubscribed(
                    "subscription already active",
                    subscriber_id=subscriber,
                    plan_id=plan_id,
                    subscription_id=existing.subscription_id,
                )

            tolerance = self.config.proof.freshness_tolerance_days.get()
            if abs(public_inputs.current_date - ctx.day) > tolerance:
                raise StaleTimestamp(
                    "proof date is outside the freshness window",
                    current_date=public_inputs.current_date,
                    block_day=ctx.day,
                    tolerance_days=tolerance,
                )

            if public_inputs.minimum_age != plan.minimum_age_days:
                raise ProofRejected(
                    "proof threshold does not match the plan",
                    proof_minimum_age=public_inputs.minimum_age,
                    plan_minimum_age=plan.minimum_age_days,
                )

            result = self.verifier.check(proof_bytes, public_inputs, binding=subscriber)
            if result.outcome == Outcome.MALFORMED:
                raise ProofMalformed(result.reason)
            if result.outcome == Outcome.OUT_OF_RESOURCES:
                raise OutOfResources(result.reason, gas_limit=result.gas_limit)
            if result.outcome != Outcome.ACCEPTED:
                raise ProofRejected(result.reason or "proof did not verify")

            InvariantChecker.check_state_transition(None, SubscriptionStatus.ACTIVE, RECORD_TRANSITIONS)

            if existing is not None:
                history = tx.get(("history", subscriber, plan_id), ())
                tx.put(("history", subscriber, plan_id), tuple(history) + (existing,))

            sequence = tx.get(("sequence",)) + 1
            tx.put(("sequence",), sequence)

            record = SubscriptionRecord(
                subscription_id=sequence,
                subscriber_id=subscriber,
                plan_id=plan_id,
                status=SubscriptionStatus.ACTIVE,
                start=ctx.timestamp,
                last_settled=ctx.timestamp,
                escrow_account=subscriber,
                notification_handle=notification_handle,
            )
            tx.put(("subscription", subscriber, plan_id), record)
            tx.emit(SubscriptionRegistered(
                block_timestamp=ctx.timestamp,
                subscriber_id=subscriber,
                plan_id=plan_id,
                subscription_id=sequence,
                start=ctx.timestamp,
                birth_commitment=result.birth_commitment or "",
                notification_handle=notification_handle or "",
            ))

        logger.info(
            "Subscription registered",
            operation="register",
            subscriber_id=subscriber,
            plan_id=plan_id,
            subscription_id=record.subscription_id,
            gas_used=result.gas_used,
        )
        return record

    def cancel(
        self,
        ctx: CallContext,
        plan_id: str,
        subscriber_id: Optional[str] = None,
    ) -> SubscriptionRecord:
        """Cancel a subscription as the subscriber or an authorized delegate."""
        subscriber = subscriber_id or ctx.caller
        resource = f"{subscriber}/{plan_id}"

        with entry_point(self.store, logger, ctx, "cancel", "subscription", resource) as tx:
            is_subscriber = ctx.caller == subscriber
            if not is_subscriber and not tx.get(("delegate", subscriber, ctx.caller), False):
                raise NotAuthorized(
                    "caller is neither the subscriber nor an authorized delegate",
                    caller=ctx.caller,
                    subscriber_id=subscriber,
                )

            record: Optional[SubscriptionRecord] = tx.get(("subscription", subscriber, plan_id))
            if record is None:
                raise NotSubscribed("no subscription", subscriber_id=subscriber, plan_id=plan_id)
            if not record.is_active:
                raise AlreadyCancelled(
                    "subscription already cancelled",
                    subscriber_id=subscriber,
                    plan_id=plan_id,
                )

            InvariantChecker.check_state_transition(
                record.status, SubscriptionStatus.CANCELLED, RECORD_TRANSITIONS
            )
            reason = CancelReason.SUBSCRIBER if is_subscriber else CancelReason.DELEGATE
            cancelled = dataclasses.replace(
                record,
                status=SubscriptionStatus.CANCELLED,
                cancelled_at=ctx.timestamp,
                cancel_reason=reason,
            )
            tx.put(("subscription", subscriber, plan_id), cancelled)
            tx.emit(SubscriptionCancelled(
                block_timestamp=ctx.timestamp,
                subscriber_id=subscriber,
                plan_id=plan_id,
                subscription_id=record.subscription_id,
                cancelled_by=ctx.caller,
                reason=reason.value,
            ))
        return cancelled

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_subscription(self, subscriber_id: str, plan_id: str) -> Optional[SubscriptionRecord]:
        return self.store.get(("subscription", subscriber_id, plan_id))

    def subscription_history(self, subscriber_id: str, plan_id: str) -> List[SubscriptionRecord]:
        """Archived records followed by the current one, oldest first."""
        with self.store.transaction() as tx:
            history = list(tx.get(("history", subscriber_id, plan_id), ()))
            current = tx.get(("subscription", subscriber_id, plan_id))
        if current is not None:
            history.append(current)
        return history

    def list_active(self, plan_id: Optional[str] = None) -> List[SubscriptionRecord]:
        with self.store.transaction() as tx:
            records = [tx.get(k) for k in tx.keys("subscription")]
        active = [
            r for r in records
            if r.is_active and (plan_id is None or r.plan_id == plan_id)
        ]
        return sorted(active, key=lambda r: r.subscription_id)
