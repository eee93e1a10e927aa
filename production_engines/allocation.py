"""
Module: production_engines.allocation
Responsibility:
    Split a material group's pooled delivered quantity back across the
    order requirements that justified pooling it, and each requirement's
    share across its pieces, with exact-sum conservation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Conservation: requirement shares sum exactly to the group total, and
      each requirement's piece shares sum exactly to that requirement's
      share.
    - Remainder-to-last: every share but the last is the proportional
      share quantized DOWN to 9 places; the last is the total minus the
      others.  Quantizing down keeps every earlier share at or below its
      exact value, so the remainder is never negative.
    - Input order is never re-sorted.  Which element absorbs the rounding
      remainder depends on that order; the aggregator's first-seen order
      makes it deterministic.

Failure modes:
    - InconsistentAllocationError if a computed split does not sum to its
      input.  Unreachable by construction; checked as an assertion.

Usage:
    splitter = AllocationSplitter()
    result = splitter.split(group=confirmed_group)
    for alloc in result.allocations:
        alloc.order_id, alloc.delivered_qty, alloc.piece_delivered(0)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal

from production_engines.tracer import traced_engine
from production_kernel.domain.draft import OrderRequirement, StartMaterialGroup
from production_kernel.domain.values import QUANTITY_EXPONENT, ZERO
from production_kernel.exceptions import InconsistentAllocationError
from production_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class RequirementAllocation:
    """
    One requirement's share of a pooled delivery.

    Contract:
        ``piece_delivered_by_key`` and ``piece_delivered_by_index`` hold the
        same values, keyed two ways so callers can match persisted pieces
        by key when they have one and by position when they don't.
    """

    order_id: str
    row_index: int
    row_key: str
    delivered_qty: Decimal
    piece_delivered_by_key: dict[str, Decimal] = field(default_factory=dict)
    piece_delivered_by_index: dict[int, Decimal] = field(default_factory=dict)

    def piece_delivered(self, index: int, key: str | None = None) -> Decimal:
        """Delivered quantity for a piece, matched by key first, then index."""
        if key is not None and key in self.piece_delivered_by_key:
            return self.piece_delivered_by_key[key]
        return self.piece_delivered_by_index.get(index, ZERO)


@dataclass(frozen=True)
class SplitResult:
    """All requirement shares for one group, in requirement order."""

    group_key: str
    total_delivered: Decimal
    allocations: tuple[RequirementAllocation, ...]

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.delivered_qty for a in self.allocations), ZERO)

    def for_order(self, order_id: str) -> tuple[RequirementAllocation, ...]:
        return tuple(a for a in self.allocations if a.order_id == order_id)


def split_by_weight(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """Split ``total`` across ``weights`` with the remainder on the last element.

    Negative weights count as zero.  When every weight is zero the split is
    equal.  An empty weight list yields an empty split.

    Postconditions:
        - len(result) == len(weights)
        - sum(result) == total exactly
    """
    count = len(weights)
    if count == 0:
        return []
    clamped = [w if w > ZERO else ZERO for w in weights]
    weight_sum = sum(clamped, ZERO)

    shares: list[Decimal] = []
    allocated_so_far = ZERO
    for i, weight in enumerate(clamped):
        if i == count - 1:
            # Last element absorbs the remainder
            share = total - allocated_so_far
        else:
            if weight_sum > ZERO:
                exact = total * weight / weight_sum
            else:
                exact = total / count
            share = exact.quantize(QUANTITY_EXPONENT, rounding=ROUND_DOWN)
            allocated_so_far += share
        shares.append(share)
    return shares


class AllocationSplitter:
    """
    Splits pooled deliveries by requirement need.

    Contract:
        Stateless and deterministic for a fixed input order.
    """

    @traced_engine("allocation_splitter", "1.0", fingerprint_fields=("group",))
    def split(self, group: StartMaterialGroup) -> SplitResult:
        """Split ``group.total_delivered_qty`` across its order requirements.

        Requirement weights are ``max(0, total_usage)``; piece weights within
        a requirement are ``max(0, piece.total_usage)``.  A zero delivered
        total yields zero shares for every requirement.
        """
        total = group.total_delivered_qty
        requirements = group.order_requirements

        logger.info(
            "allocation_split_started",
            extra={
                "group_key": group.key,
                "total_delivered": str(total),
                "requirement_count": len(requirements),
            },
        )

        shares = split_by_weight(total, [r.total_usage for r in requirements])
        allocations = tuple(
            self._allocate_pieces(req, share) for req, share in zip(requirements, shares)
        )
        result = SplitResult(
            group_key=group.key,
            total_delivered=total,
            allocations=allocations,
        )
        self._verify(result)

        logger.info(
            "allocation_split_completed",
            extra={
                "group_key": group.key,
                "total_delivered": str(total),
                "shares": {
                    f"{a.order_id}:{a.row_index}": str(a.delivered_qty)
                    for a in allocations
                },
            },
        )
        return result

    @staticmethod
    def _allocate_pieces(req: OrderRequirement, share: Decimal) -> RequirementAllocation:
        piece_shares = split_by_weight(share, [p.total_usage for p in req.pieces])
        by_key: dict[str, Decimal] = {}
        by_index: dict[int, Decimal] = {}
        for position, (piece, qty) in enumerate(zip(req.pieces, piece_shares)):
            by_key[piece.key] = qty
            by_index[position] = qty
        return RequirementAllocation(
            order_id=req.order_id,
            row_index=req.row_index,
            row_key=req.row_key,
            delivered_qty=share,
            piece_delivered_by_key=by_key,
            piece_delivered_by_index=by_index,
        )

    @staticmethod
    def _verify(result: SplitResult) -> None:
        # INVARIANT: allocation_conservation
        if result.allocations and result.total_allocated != result.total_delivered:
            raise InconsistentAllocationError(
                result.group_key, result.total_delivered, result.total_allocated
            )
        for alloc in result.allocations:
            if not alloc.piece_delivered_by_index:
                continue
            piece_total = sum(alloc.piece_delivered_by_index.values(), ZERO)
            if piece_total != alloc.delivered_qty:
                raise InconsistentAllocationError(
                    f"{result.group_key}/{alloc.order_id}:{alloc.row_index}",
                    alloc.delivered_qty,
                    piece_total,
                )
