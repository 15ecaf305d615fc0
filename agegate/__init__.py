"""
agegate: Age-Gated Subscription Ledger

Recurring subscriptions gated by a privately held eligibility fact. A
subscriber proves ``current_date - birth_date >= minimum_age`` in zero
knowledge; the ledger admits the registration only when the proof
verifies, then settles recurring payments from escrow.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                        AGE-GATED SUBSCRIPTIONS                           │
    │                                                                          │
    │  LEDGER                                                                  │
    │    ledger/contract.py     Entry-point facade (register/cancel/settle)   │
    │    ledger/registry.py     Subscription lifecycle, plans, escrow         │
    │    ledger/settlement.py   Interval charging, partial pay, auto-cancel   │
    │    ledger/store.py        Atomic key-value contract storage             │
    │                                                                          │
    │  PROOF SYSTEM                                                            │
    │    zk/circuit.py          Age-threshold circuit over gadgets            │
    │    zk/params.py           Hash-pinned setup parameters                  │
    │    zk/keys.py             Deterministic key derivation                  │
    │    zk/prover.py           Commit-and-prove Sigma protocols              │
    │    zk/verifier.py         Gas-metered classified verification           │
    │                                                                          │
    │  FOUNDATION                                                              │
    │    config.py  observability.py  hardening.py  errors.py  core.py        │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Data flow: Prover → proof bytes → Verifier (invoked by the Registry during
registration) → Registry state. Settlement reads Registry state and block
time only.

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
