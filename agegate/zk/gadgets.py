"""
Reusable circuit gadgets.

Each gadget is a plain function over a :class:`ConstraintSystem`. Gadgets
allocate the auxiliary wires they need, fill their witness values when the
system carries a witness, and emit labelled constraints. They compose: the
age comparison is ``assert_geq``, which is a subtraction followed by
``range_check``, which is ``decompose_bits``, which is ``boolean`` per bit
plus a recomposition.
"""

from __future__ import annotations

from typing import Iterable, List

from agegate.zk.constraints import ConstraintSystem, LinearCombination
from agegate.zk.field import FIELD_MODULUS

MAX_RANGE_BITS = 128


def boolean(cs: ConstraintSystem, var: int, label: str) -> None:
    """Constrain ``var`` to {0, 1}: w * (w - 1) = 0."""
    cs.add_roots(var, [0, 1], label)


def decompose_bits(cs: ConstraintSystem, var: int, bits: int, label: str) -> List[int]:
    """Split ``var`` into ``bits`` little-endian boolean wires.

    The recomposition constraint only holds when ``var`` < 2**bits, so a
    value that wrapped around the field modulus cannot be decomposed.
    """
    if not 1 <= bits <= MAX_RANGE_BITS:
        raise ValueError(f"bit width must be in [1, {MAX_RANGE_BITS}], got {bits}")

    value = cs.value(var)
    bit_vars = []
    for i in range(bits):
        bit_value = None if value is None else (value >> i) & 1
        b = cs.alloc_private(f"{label}.bit{i}", bit_value)
        boolean(cs, b, f"{label}.bit{i}")
        bit_vars.append(b)

    recompose: LinearCombination = {var: 1}
    for i, b in enumerate(bit_vars):
        recompose[b] = -(1 << i)
    cs.add_linear(recompose, f"{label}.recompose")
    return bit_vars


def range_check(cs: ConstraintSystem, var: int, bits: int, label: str) -> List[int]:
    """Constrain 0 <= var < 2**bits."""
    return decompose_bits(cs, var, bits, label)


def assert_geq(
    cs: ConstraintSystem,
    lhs: LinearCombination,
    rhs: LinearCombination,
    bits: int,
    label: str,
) -> int:
    """Constrain lhs - rhs to lie in [0, 2**bits). Returns the difference wire."""
    lhs_value = cs.evaluate(lhs)
    rhs_value = cs.evaluate(rhs)
    diff_value = None if lhs_value is None else (lhs_value - rhs_value) % FIELD_MODULUS
    diff = cs.alloc_private(f"{label}.diff", diff_value)

    definition: LinearCombination = dict(lhs)
    for v, k in rhs.items():
        definition[v] = definition.get(v, 0) - k
    definition[diff] = definition.get(diff, 0) - 1
    cs.add_linear(definition, f"{label}.diff")

    range_check(cs, diff, bits, label)
    return diff


def assert_in_set(cs: ConstraintSystem, var: int, values: Iterable[int], label: str) -> None:
    """Constrain ``var`` to one of ``values``; degree grows with the set size."""
    cs.add_roots(var, list(values), label)
