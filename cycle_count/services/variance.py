from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')


@dataclass(frozen=True)
class ItemVariance:
    variance_qty: Decimal
    variance_value: Decimal
    variance_percentage: Decimal
    has_discrepancy: bool


@dataclass(frozen=True)
class CountTotals:
    variance_qty: Decimal
    variance_value: Decimal
    items_counted_count: int
    total_items_count: int
    positive_variance_value: Decimal
    negative_variance_value: Decimal

    def to_dict(self) -> dict:
        return {
            'varianceQty': self.variance_qty,
            'varianceValue': self.variance_value,
            'itemsCountedCount': self.items_counted_count,
            'totalItemsCount': self.total_items_count,
            'positiveVarianceValue': self.positive_variance_value,
            'negativeVarianceValue': self.negative_variance_value,
        }


EMPTY_TOTALS = CountTotals(ZERO, ZERO, 0, 0, ZERO, ZERO)


def round2(value: Decimal) -> Decimal:
    # Half cents go away from zero for both signs: -14.955 -> -14.96.
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def variance_percentage(counted_qty: Decimal, snapshot_qty: Decimal) -> Decimal:
    """Unrounded percentage; a zero baseline reads as 100% when anything was found, else 0%."""
    if snapshot_qty == 0:
        return HUNDRED if counted_qty > 0 else ZERO
    return (counted_qty - snapshot_qty) / snapshot_qty * HUNDRED


def compute_item_variance(
    *,
    counted_qty: Decimal | None,
    snapshot_qty: Decimal,
    snapshot_avg_cost: Decimal,
    threshold_percent: Decimal,
) -> ItemVariance:
    if counted_qty is None:
        return ItemVariance(ZERO, ZERO, ZERO, False)

    counted = Decimal(counted_qty)
    snapshot = Decimal(snapshot_qty)
    variance_qty = round2(counted - snapshot)
    percentage = variance_percentage(counted, snapshot)
    return ItemVariance(
        variance_qty=variance_qty,
        variance_value=round2(variance_qty * Decimal(snapshot_avg_cost)),
        variance_percentage=round2(percentage),
        has_discrepancy=abs(percentage) > Decimal(threshold_percent),
    )


def variance_severity(percentage: Decimal, *, low_percent: Decimal, medium_percent: Decimal) -> str:
    magnitude = abs(percentage)
    if magnitude <= low_percent:
        return 'low'
    if magnitude <= medium_percent:
        return 'medium'
    return 'high'


def reduce_totals(rows: Iterable) -> CountTotals:
    """Fold count items (anything exposing counted_qty/variance_qty/variance_value) into session totals."""
    variance_qty = ZERO
    variance_value = ZERO
    positive = ZERO
    negative = ZERO
    counted = 0
    total = 0
    for row in rows:
        total += 1
        if row.counted_qty is not None:
            counted += 1
        variance_qty += row.variance_qty
        variance_value += row.variance_value
        if row.variance_value > 0:
            positive += row.variance_value
        elif row.variance_value < 0:
            negative += row.variance_value
    return CountTotals(
        variance_qty=round2(variance_qty),
        variance_value=round2(variance_value),
        items_counted_count=counted,
        total_items_count=total,
        positive_variance_value=round2(positive),
        negative_variance_value=round2(abs(negative)),
    )
