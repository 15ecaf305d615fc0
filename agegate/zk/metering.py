"""
Resource metering for proof verification.

Verification runs on the ledger's critical path, so its cost must be
bounded and known up front. Every primitive the verifier performs has a
gas price; the total for a well-formed proof is a function of the
verifying key alone and is checked against the limit before any curve
arithmetic. A :class:`GasMeter` additionally charges each operation as it
happens and stops the verifier at the first overrun.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from agegate.errors import OutOfResources


class MeteredOp(Enum):
    POINT_DECODE = "point_decode"
    SCALAR_DECODE = "scalar_decode"
    SCALAR_MUL = "scalar_mul"
    POINT_ADD = "point_add"
    HASH_BLOCK = "hash_block"


@dataclass(frozen=True)
class GasSchedule:
    """Gas costs for verifier operations."""

    point_decode: int = 300
    scalar_decode: int = 5
    scalar_mul: int = 3000
    point_add: int = 40
    hash_block: int = 12

    def for_op(self, op: MeteredOp) -> int:
        """Get gas cost for an operation."""
        costs = {
            MeteredOp.POINT_DECODE: self.point_decode,
            MeteredOp.SCALAR_DECODE: self.scalar_decode,
            MeteredOp.SCALAR_MUL: self.scalar_mul,
            MeteredOp.POINT_ADD: self.point_add,
            MeteredOp.HASH_BLOCK: self.hash_block,
        }
        return costs[op]

    def to_dict(self) -> Dict[str, int]:
        return {op.value: self.for_op(op) for op in MeteredOp}


DEFAULT_SCHEDULE = GasSchedule()


class GasMeter:
    """Charges gas against a fixed limit; raises OutOfResources on overrun."""

    def __init__(self, limit: int, schedule: GasSchedule = DEFAULT_SCHEDULE):
        self.limit = limit
        self.schedule = schedule
        self.used = 0
        self._by_op: Dict[MeteredOp, int] = {}

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def charge(self, op: MeteredOp, count: int = 1) -> None:
        if count <= 0:
            return
        cost = self.schedule.for_op(op) * count
        if self.used + cost > self.limit:
            raise OutOfResources(
                "Out of gas",
                op=op.value,
                used=self.used,
                requested=cost,
                limit=self.limit,
            )
        self.used += cost
        self._by_op[op] = self._by_op.get(op, 0) + count

    def breakdown(self) -> Dict[str, int]:
        return {op.value: n for op, n in self._by_op.items()}


def cost_of(counts: Dict[MeteredOp, int], schedule: GasSchedule = DEFAULT_SCHEDULE) -> int:
    return sum(schedule.for_op(op) * n for op, n in counts.items())
