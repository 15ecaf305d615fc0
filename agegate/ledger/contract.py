"""
Subscription contract facade.

Wires the store, verifier, registry and settlement engine together and
exposes the contract's external entry points:

    register(ctx, plan_id, proof_bytes, public_inputs, notification_handle=None) -> None
    register_document(ctx, plan_id, document) -> None
    cancel(ctx, plan_id) -> None
    settle(ctx, subscriber_id, plan_id) -> SettlementReceipt
    get_subscription(subscriber_id, plan_id) -> Optional[SubscriptionRecord]

plus the administrative and keeper calls (plans, ownership, escrow,
delegates, sweeps).

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from agegate.config import AgegateConfig, get_config
from agegate.errors import ProofMalformed, SetupError
from agegate.ledger.models import CallContext, PlanDefinition, SettlementReceipt, SubscriptionRecord
from agegate.ledger.registry import SubscriptionRegistry
from agegate.ledger.settlement import SettlementEngine, SweepReport
from agegate.ledger.store import LedgerStore
from agegate.observability import Layer, get_logger
from agegate.zk.circuit import AgeCircuit, PublicInputs
from agegate.zk.keys import VerifyingKey, setup
from agegate.zk.params import SetupParameters, load_parameters
from agegate.zk.verifier import AgeVerifier

logger = get_logger("contract", Layer.LEDGER)


class SubscriptionContract:
    """The age-gated subscription contract."""

    def __init__(
        self,
        owner: str,
        params: SetupParameters,
        vk: VerifyingKey,
        config: Optional[AgegateConfig] = None,
        store: Optional[LedgerStore] = None,
    ):
        self.config = config or get_config()
        if vk.params_digest != params.digest:
            raise SetupError("verifying key does not belong to these parameters")

        proof_cfg = self.config.proof
        self.params = params
        self.vk = vk
        obs_cfg = self.config.observability
        self.store = store or LedgerStore(
            owner,
            event_retention=obs_cfg.event_retention.get(),
            audit_retention=obs_cfg.audit_retention.get(),
        )
        self.verifier = AgeVerifier(
            vk,
            params,
            gas_limit=proof_cfg.verifier_gas_limit.get(),
            max_proof_bytes=proof_cfg.max_proof_bytes.get(),
        )
        self.registry = SubscriptionRegistry(self.store, self.verifier, self.config)
        self.settlement = SettlementEngine(self.store, self.config)

    @classmethod
    def deploy(
        cls,
        owner: str,
        params_path: Union[str, Path, None] = None,
        params_digest: Optional[str] = None,
        config: Optional[AgegateConfig] = None,
    ) -> "SubscriptionContract":
        """Load pinned parameters (from arguments or config) and derive keys."""
        config = config or get_config()
        proof_cfg = config.proof
        path = params_path or proof_cfg.params_path.get()
        digest = params_digest or proof_cfg.params_digest.get()
        if not path or not digest:
            raise SetupError("parameters path and pinned digest are required")

        params = load_parameters(path, digest, trusted_signer=proof_cfg.trusted_signer.get())
        _, vk = setup(params, AgeCircuit(range_bits=proof_cfg.range_bits.get()))
        logger.info("Contract deployed", operation="deploy", owner=owner, vk_digest=vk.digest)
        return cls(owner, params, vk, config=config)

    # -- subscription entry points -----------------------------------------

    def register(
        self,
        ctx: CallContext,
        plan_id: str,
        proof_bytes: bytes,
        public_inputs: Union[PublicInputs, Dict[str, Any]],
        notification_handle: Optional[str] = None,
    ) -> None:
        if isinstance(public_inputs, dict):
            public_inputs = PublicInputs.from_dict(public_inputs)
        self.registry.register(ctx, plan_id, proof_bytes, public_inputs, notification_handle)

    def register_document(self, ctx: CallContext, plan_id: str, document: Dict[str, Any]) -> None:
        """Register from a proof document as written by ``agegate prove``."""
        try:
            proof = bytes.fromhex(document["proof"])
            public_inputs = PublicInputs.from_dict(document["public_inputs"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProofMalformed(f"proof document is unusable: {e}") from e
        self.register(ctx, plan_id, proof, public_inputs, document.get("notification_handle"))

    def cancel(self, ctx: CallContext, plan_id: str, subscriber_id: Optional[str] = None) -> None:
        self.registry.cancel(ctx, plan_id, subscriber_id)

    def settle(self, ctx: CallContext, subscriber_id: str, plan_id: str) -> SettlementReceipt:
        return self.settlement.settle(ctx, subscriber_id, plan_id)

    def settle_all(self, ctx: CallContext, plan_id: Optional[str] = None) -> SweepReport:
        return self.settlement.settle_all(ctx, plan_id)

    def get_subscription(self, subscriber_id: str, plan_id: str) -> Optional[SubscriptionRecord]:
        return self.registry.get_subscription(subscriber_id, plan_id)

    def subscription_history(self, subscriber_id: str, plan_id: str) -> List[SubscriptionRecord]:
        return self.registry.subscription_history(subscriber_id, plan_id)

    def list_active(self, plan_id: Optional[str] = None) -> List[SubscriptionRecord]:
        return self.registry.list_active(plan_id)

    # -- administration -----------------------------------------------------

    @property
    def owner(self) -> str:
        return self.store.owner

    def create_plan(
        self,
        ctx: CallContext,
        plan_id: str,
        minimum_age_days: int,
        interval_seconds: int,
        price: int,
        beneficiary: Optional[str] = None,
    ) -> PlanDefinition:
        return self.registry.create_plan(ctx, plan_id, minimum_age_days, interval_seconds, price, beneficiary)

    def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        return self.registry.get_plan(plan_id)

    def transfer_ownership(self, ctx: CallContext, new_owner: str) -> None:
        self.registry.transfer_ownership(ctx, new_owner)

    def deposit(self, ctx: CallContext, amount: int, account: Optional[str] = None) -> int:
        return self.registry.deposit(ctx, amount, account)

    def withdraw(self, ctx: CallContext, amount: int) -> int:
        return self.registry.withdraw(ctx, amount)

    def balance_of(self, account: str) -> int:
        return self.registry.balance_of(account)

    def authorize_delegate(self, ctx: CallContext, delegate: str) -> None:
        self.registry.authorize_delegate(ctx, delegate)

    def revoke_delegate(self, ctx: CallContext, delegate: str) -> None:
        self.registry.revoke_delegate(ctx, delegate)

    def state_digest(self) -> str:
        return self.store.state_digest()
