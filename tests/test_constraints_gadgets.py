"""
Constraint system, gadget and age circuit tests.

Run with: pytest tests/test_constraints_gadgets.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from agegate.zk.circuit import AgeCircuit, PublicInputs
from agegate.zk.constraints import ONE, ConstraintKind, ConstraintSystem, Visibility, simulate
from agegate.zk.field import FIELD_MODULUS
from agegate.zk.gadgets import MAX_RANGE_BITS, assert_geq, assert_in_set, boolean, range_check


class TestConstraintSystem:
    """Tests for variable allocation and constraint bookkeeping."""

    def test_variable_zero_is_constant_one(self):
        cs = ConstraintSystem(with_witness=True)
        assert cs.variables[ONE].visibility == Visibility.CONSTANT
        assert cs.value(ONE) == 1

    def test_public_before_private(self):
        cs = ConstraintSystem()
        cs.alloc_public("x")
        cs.alloc_private("w")
        with pytest.raises(ValueError):
            cs.alloc_public("late")

    def test_witness_mode_requires_values(self):
        cs = ConstraintSystem(with_witness=True)
        with pytest.raises(ValueError):
            cs.alloc_private("w")

    def test_shape_mode_has_no_values(self):
        cs = ConstraintSystem()
        w = cs.alloc_private("w")
        assert cs.value(w) is None
        assert cs.evaluate({w: 1}) is None
        with pytest.raises(ValueError):
            cs.values

    def test_duplicate_labels_are_suffixed(self):
        cs = ConstraintSystem()
        w = cs.alloc_private("w")
        first = cs.add_roots(w, [0, 1], "bit")
        second = cs.add_roots(w, [0, 1], "bit")
        assert first.label == "bit"
        assert second.label == "bit#1"

    def test_unknown_variable_rejected(self):
        cs = ConstraintSystem()
        with pytest.raises(ValueError):
            cs.add_product(0, 1, 2, "p")

    def test_empty_linear_rejected(self):
        cs = ConstraintSystem()
        with pytest.raises(ValueError):
            cs.add_linear({ONE: FIELD_MODULUS}, "zero")

    def test_constraint_degrees(self):
        cs = ConstraintSystem()
        w = cs.alloc_private("w")
        assert cs.add_linear({w: 1, ONE: -3}, "l").degree == 1
        assert cs.add_product(w, w, w, "p").degree == 2
        assert cs.add_roots(w, [1, 2, 3], "r").degree == 3
        assert cs.max_degree == 3

    def test_simulate_reports_failing_labels(self):
        cs = ConstraintSystem(with_witness=True)
        w = cs.alloc_private("w", 3)
        cs.add_linear({w: 1, ONE: -3}, "w.is.three")
        cs.add_product(w, w, w, "w.squared")
        assert simulate(cs) == ["w.squared"]

    def test_digest_ignores_witness(self):
        shape = ConstraintSystem()
        shape.alloc_private("w")
        witness = ConstraintSystem(with_witness=True)
        witness.alloc_private("w", 42)
        assert shape.digest() == witness.digest()


class TestGadgets:
    """Tests for the reusable circuit gadgets."""

    def test_boolean(self):
        for value, ok in ((0, True), (1, True), (2, False)):
            cs = ConstraintSystem(with_witness=True)
            b = cs.alloc_private("b", value)
            boolean(cs, b, "b")
            assert (simulate(cs) == []) is ok

    def test_range_check_boundaries(self):
        for value, ok in ((0, True), (255, True), (256, False)):
            cs = ConstraintSystem(with_witness=True)
            w = cs.alloc_private("w", value)
            bits = range_check(cs, w, 8, "w")
            assert len(bits) == 8
            assert (simulate(cs) == []) is ok

    def test_range_check_labels(self):
        cs = ConstraintSystem()
        w = cs.alloc_private("w")
        range_check(cs, w, 4, "w")
        labels = [c.label for c in cs.constraints]
        assert labels == ["w.bit0", "w.bit1", "w.bit2", "w.bit3", "w.recompose"]

    def test_range_check_width_bounds(self):
        cs = ConstraintSystem()
        w = cs.alloc_private("w")
        with pytest.raises(ValueError):
            range_check(cs, w, 0, "w")
        with pytest.raises(ValueError):
            range_check(cs, w, MAX_RANGE_BITS + 1, "w")

    def test_assert_geq_negative_difference_fails(self):
        cs = ConstraintSystem(with_witness=True)
        a = cs.alloc_private("a", 5)
        b = cs.alloc_private("b", 9)
        assert_geq(cs, {a: 1}, {b: 1}, 8, "cmp")
        failing = simulate(cs)
        assert "cmp.recompose" in failing

    def test_assert_geq_equal_values_pass(self):
        cs = ConstraintSystem(with_witness=True)
        a = cs.alloc_private("a", 9)
        b = cs.alloc_private("b", 9)
        diff = assert_geq(cs, {a: 1}, {b: 1}, 8, "cmp")
        assert cs.value(diff) == 0
        assert simulate(cs) == []

    def test_assert_in_set(self):
        cs = ConstraintSystem(with_witness=True)
        w = cs.alloc_private("w", 7)
        assert_in_set(cs, w, [3, 5, 7], "w.in")
        assert simulate(cs) == []
        assert cs.constraints[0].kind == ConstraintKind.ROOTS
        assert cs.constraints[0].degree == 3


class TestAgeCircuit:
    """Tests for the age-threshold circuit."""

    def test_layout(self):
        cs = AgeCircuit(range_bits=16).shape()
        names = [v.name for v in cs.variables]
        assert names[:5] == ["one", "minimum_age", "current_date", "birth_date", "age.diff"]
        assert len(cs.private_variables()) == 2 + 16
        assert cs.public_variables() == [1, 2]
        assert cs.max_degree == 2

    def test_exact_threshold_satisfies(self):
        cs = AgeCircuit().assign(PublicInputs(6570, 20000), 20000 - 6570)
        assert simulate(cs) == []

    def test_one_day_short_fails(self):
        cs = AgeCircuit().assign(PublicInputs(6570, 20000), 20000 - 6569)
        assert simulate(cs)

    def test_surplus_beyond_range_fails(self):
        cs = AgeCircuit(range_bits=4).assign(PublicInputs(0, 100), 100 - 16)
        assert simulate(cs) == ["age.recompose"]

    def test_digest_depends_on_range_bits(self):
        assert AgeCircuit(8).digest() != AgeCircuit(16).digest()
        assert AgeCircuit(16).digest() == AgeCircuit(16).digest()

    def test_public_inputs_validation(self):
        with pytest.raises(TypeError):
            PublicInputs(True, 20000)
        with pytest.raises(TypeError):
            PublicInputs(6570, "20000")
        with pytest.raises(ValueError):
            PublicInputs(-1, 20000)
        with pytest.raises(TypeError):
            AgeCircuit().assign(PublicInputs(0, 1), 0.5)

    def test_public_inputs_dict_round_trip(self):
        public = PublicInputs(6570, 20000)
        assert PublicInputs.from_dict(public.to_dict()) == public
        assert public.values() == (6570, 20000)
