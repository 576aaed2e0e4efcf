from __future__ import annotations

import unittest
from decimal import Decimal
from types import SimpleNamespace

from cycle_count.services.variance import (
    compute_item_variance,
    reduce_totals,
    round2,
    variance_percentage,
    variance_severity,
)

THRESHOLD = Decimal('10')


class VarianceComputationTests(unittest.TestCase):
    def test_overage_value_uses_snapshot_cost(self) -> None:
        result = compute_item_variance(
            counted_qty=Decimal('30'),
            snapshot_qty=Decimal('25'),
            snapshot_avg_cost=Decimal('2.99'),
            threshold_percent=THRESHOLD,
        )

        self.assertEqual(result.variance_qty, Decimal('5.00'))
        self.assertEqual(result.variance_value, Decimal('14.95'))
        self.assertEqual(result.variance_percentage, Decimal('20.00'))
        self.assertTrue(result.has_discrepancy)

    def test_shortage_is_negative(self) -> None:
        result = compute_item_variance(
            counted_qty=Decimal('22'),
            snapshot_qty=Decimal('25'),
            snapshot_avg_cost=Decimal('1.15'),
            threshold_percent=THRESHOLD,
        )

        self.assertEqual(result.variance_qty, Decimal('-3.00'))
        self.assertEqual(result.variance_value, Decimal('-3.45'))
        self.assertEqual(result.variance_percentage, Decimal('-12.00'))
        self.assertTrue(result.has_discrepancy)

    def test_uncounted_item_has_no_variance(self) -> None:
        result = compute_item_variance(
            counted_qty=None,
            snapshot_qty=Decimal('25'),
            snapshot_avg_cost=Decimal('2.99'),
            threshold_percent=THRESHOLD,
        )

        self.assertEqual(result.variance_qty, Decimal('0'))
        self.assertEqual(result.variance_value, Decimal('0'))
        self.assertEqual(result.variance_percentage, Decimal('0'))
        self.assertFalse(result.has_discrepancy)

    def test_zero_snapshot_percentages(self) -> None:
        self.assertEqual(variance_percentage(Decimal('0'), Decimal('0')), Decimal('0'))
        self.assertEqual(variance_percentage(Decimal('5'), Decimal('0')), Decimal('100'))

        found = compute_item_variance(
            counted_qty=Decimal('5'),
            snapshot_qty=Decimal('0'),
            snapshot_avg_cost=Decimal('3'),
            threshold_percent=THRESHOLD,
        )
        self.assertEqual(found.variance_percentage, Decimal('100.00'))
        self.assertEqual(found.variance_value, Decimal('15.00'))

    def test_threshold_is_exclusive(self) -> None:
        at_threshold = compute_item_variance(
            counted_qty=Decimal('11'),
            snapshot_qty=Decimal('10'),
            snapshot_avg_cost=Decimal('1'),
            threshold_percent=THRESHOLD,
        )
        self.assertEqual(at_threshold.variance_percentage, Decimal('10.00'))
        self.assertFalse(at_threshold.has_discrepancy)

    def test_half_cent_rounds_up(self) -> None:
        self.assertEqual(round2(Decimal('0.125')), Decimal('0.13'))
        self.assertEqual(round2(Decimal('-0.125')), Decimal('-0.13'))

    def test_severity_bands(self) -> None:
        kwargs = {'low_percent': Decimal('5'), 'medium_percent': Decimal('15')}
        self.assertEqual(variance_severity(Decimal('-5'), **kwargs), 'low')
        self.assertEqual(variance_severity(Decimal('12.5'), **kwargs), 'medium')
        self.assertEqual(variance_severity(Decimal('-15.01'), **kwargs), 'high')


class TotalsReductionTests(unittest.TestCase):
    def test_totals_fold_counted_and_uncounted_items(self) -> None:
        rows = [
            SimpleNamespace(counted_qty=Decimal('30'), variance_qty=Decimal('5'), variance_value=Decimal('14.95')),
            SimpleNamespace(counted_qty=Decimal('22'), variance_qty=Decimal('-3'), variance_value=Decimal('-3.45')),
            SimpleNamespace(counted_qty=None, variance_qty=Decimal('0'), variance_value=Decimal('0')),
        ]

        totals = reduce_totals(rows)

        self.assertEqual(totals.variance_qty, Decimal('2.00'))
        self.assertEqual(totals.variance_value, Decimal('11.50'))
        self.assertEqual(totals.items_counted_count, 2)
        self.assertEqual(totals.total_items_count, 3)
        self.assertEqual(totals.positive_variance_value, Decimal('14.95'))
        self.assertEqual(totals.negative_variance_value, Decimal('3.45'))
        self.assertEqual(totals.to_dict()['itemsCountedCount'], 2)


if __name__ == '__main__':
    unittest.main()
