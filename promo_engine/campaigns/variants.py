from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from promo_engine.campaigns.errors import VariantAllocationError

HUNDRED = Decimal(100)


@dataclass(frozen=True, slots=True)
class VariantSplit:
    id: int
    split_percentage: Decimal


@dataclass(frozen=True, slots=True)
class VariantStats:
    variant_id: int
    label: str
    sent: int
    delivered: int
    clicked: int
    conversions: int
    revenue: Decimal
    is_winner: bool

    @property
    def click_through_rate(self) -> float:
        return self.clicked / self.delivered if self.delivered > 0 else 0.0

    @property
    def delivery_rate(self) -> float:
        return self.delivered / self.sent if self.sent > 0 else 0.0


def _percentage(value: object) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise VariantAllocationError(f"invalid split percentage: {value!r}") from exc


def _validated_splits(variants: Iterable[object]) -> list[VariantSplit]:
    splits: list[VariantSplit] = []
    seen: set[int] = set()
    for variant in variants:
        variant_id = int(getattr(variant, "id"))
        pct = _percentage(getattr(variant, "split_percentage"))
        if not pct.is_finite() or pct < 0 or pct > HUNDRED:
            raise VariantAllocationError(f"split percentage out of range for variant {variant_id}")
        if variant_id in seen:
            raise VariantAllocationError(f"duplicate variant {variant_id}")
        seen.add(variant_id)
        splits.append(VariantSplit(id=variant_id, split_percentage=pct))

    if sum((split.split_percentage for split in splits), Decimal(0)) > HUNDRED:
        raise VariantAllocationError("variant split percentages sum to more than 100")
    return splits


def assign_variants(
    customer_ids: Sequence[int],
    variants: Iterable[object],
) -> dict[int, int | None]:
    """Partition recipients across variants by position.

    Duplicates are dropped keeping first occurrence. Variant ``k`` receives
    positions ``[b(k-1), b(k))`` where ``b(k)`` is the half-up rounded share
    of the cumulative percentage, so each count is within one of its exact
    share. Positions past the last boundary use the base template (``None``).
    """
    ordered = list(dict.fromkeys(int(customer_id) for customer_id in customer_ids))
    splits = _validated_splits(variants)
    if not splits:
        return {customer_id: None for customer_id in ordered}

    total = len(ordered)
    assignment: dict[int, int | None] = {}
    cumulative = Decimal(0)
    start = 0
    for split in splits:
        cumulative += split.split_percentage
        boundary = int(
            (Decimal(total) * cumulative / HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        )
        boundary = min(boundary, total)
        for customer_id in ordered[start:boundary]:
            assignment[customer_id] = split.id
        start = max(start, boundary)

    for customer_id in ordered[start:]:
        assignment[customer_id] = None
    return assignment


def pick_winner(stats: Sequence[VariantStats]) -> int | None:
    """Highest click-through rate wins; delivery rate breaks ties; first listed wins a full tie."""
    best: VariantStats | None = None
    for stat in stats:
        if best is None:
            best = stat
            continue
        if stat.click_through_rate > best.click_through_rate or (
            stat.click_through_rate == best.click_through_rate
            and stat.delivery_rate > best.delivery_rate
        ):
            best = stat
    return best.variant_id if best is not None else None
