"""
Verification gas metering tests.

Run with: pytest tests/test_verifier_metering.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from agegate.errors import OutOfResources
from agegate.zk.circuit import PublicInputs
from agegate.zk.keys import verification_operations
from agegate.zk.metering import DEFAULT_SCHEDULE, GasMeter, GasSchedule, MeteredOp, cost_of
from agegate.zk.verifier import DEFAULT_GAS_LIMIT, AgeVerifier, Outcome, binding_cost

from conftest import ADULT_DAYS, TODAY


BINDING = "alice"
PUBLIC = PublicInputs(ADULT_DAYS, TODAY)


class TestGasMeter:
    """Tests for the gas meter and schedule."""

    def test_charge_and_breakdown(self):
        meter = GasMeter(10_000)
        meter.charge(MeteredOp.POINT_DECODE, 2)
        meter.charge(MeteredOp.HASH_BLOCK)
        assert meter.used == 2 * 300 + 12
        assert meter.remaining == 10_000 - meter.used
        assert meter.breakdown() == {"point_decode": 2, "hash_block": 1}

    def test_overrun_raises_without_charging(self):
        meter = GasMeter(5000)
        meter.charge(MeteredOp.SCALAR_MUL)
        with pytest.raises(OutOfResources):
            meter.charge(MeteredOp.SCALAR_MUL)
        assert meter.used == 3000

    def test_zero_count_is_free(self):
        meter = GasMeter(0)
        meter.charge(MeteredOp.SCALAR_MUL, 0)
        assert meter.used == 0

    def test_schedule_dict(self):
        assert DEFAULT_SCHEDULE.to_dict() == {
            "point_decode": 300,
            "scalar_decode": 5,
            "scalar_mul": 3000,
            "point_add": 40,
            "hash_block": 12,
        }

    def test_cost_of(self):
        assert cost_of({MeteredOp.SCALAR_MUL: 2, MeteredOp.POINT_ADD: 2}) == 6080
        assert cost_of({MeteredOp.SCALAR_MUL: 1}, GasSchedule(scalar_mul=1)) == 1


class TestVerificationCost:
    """Verification cost is fixed by the verifying key and enforced up front."""

    def test_cost_fits_default_limit(self, vk):
        assert 0 < vk.verification_cost < DEFAULT_GAS_LIMIT

    def test_operation_counts(self, vk):
        ops = verification_operations(vk.private_vars, vk.linear, vk.products, len(vk.public_vars))
        assert ops[MeteredOp.POINT_DECODE] == 18 + 2 + 2 * 16
        assert ops[MeteredOp.SCALAR_DECODE] == 2 + 3 * 16
        assert ops[MeteredOp.SCALAR_MUL] == ops[MeteredOp.POINT_ADD]
        assert cost_of(ops) == vk.verification_cost

    def test_binding_cost_grows_with_length(self):
        assert binding_cost("a" * 500) > binding_cost(BINDING) > 0

    def test_accepted_proof_uses_exact_cost(self, vk, params, prove_for):
        result = AgeVerifier(vk, params).check(prove_for(BINDING), PUBLIC, BINDING)
        assert result.outcome == Outcome.ACCEPTED
        assert result.gas_used == vk.verification_cost + binding_cost(BINDING)
        assert result.gas_limit == DEFAULT_GAS_LIMIT

    def test_limit_at_exact_cost_accepts(self, vk, params, prove_for):
        limit = vk.verification_cost + binding_cost(BINDING)
        result = AgeVerifier(vk, params, gas_limit=limit).check(prove_for(BINDING), PUBLIC, BINDING)
        assert result.outcome == Outcome.ACCEPTED

    def test_insufficient_limit_stops_before_curve_work(self, vk, params, prove_for):
        limit = vk.verification_cost + binding_cost(BINDING) - 1
        result = AgeVerifier(vk, params, gas_limit=limit).check(prove_for(BINDING), PUBLIC, BINDING)
        assert result.outcome == Outcome.OUT_OF_RESOURCES
        assert result.gas_used == 0

    def test_tiny_limit(self, vk, params, prove_for):
        result = AgeVerifier(vk, params, gas_limit=1000).check(prove_for(BINDING), PUBLIC, BINDING)
        assert result.outcome == Outcome.OUT_OF_RESOURCES
        assert not result.accepted

    def test_malformed_proof_is_classified_before_gas(self, vk, params):
        result = AgeVerifier(vk, params, gas_limit=1000).check(b"\x00" * 10, PUBLIC, BINDING)
        assert result.outcome == Outcome.MALFORMED

    def test_decode_failure_charges_partial_gas(self, vk, params, prove_for):
        proof = prove_for(BINDING)
        data = proof[:8] + b"\x04" + proof[9:]
        result = AgeVerifier(vk, params).check(data, PUBLIC, BINDING)
        assert result.outcome == Outcome.MALFORMED
        assert result.gas_used == DEFAULT_SCHEDULE.point_decode
