from __future__ import annotations

import csv
import unittest
from decimal import Decimal
from io import BytesIO, StringIO
from types import SimpleNamespace

from openpyxl import load_workbook

from db_support import NOW, DatabaseTestCase
from cycle_count.errors import CountValidationError
from cycle_count.services.analysis_service import get_variance_analysis, variance_analysis
from cycle_count.services.count_service import UpdateEntry, create_count_session, update_count_items
from cycle_count.services.export_service import ExportOptions, export_count, export_headers


def _item(item_id, category, counted, variance_qty, variance_value, percentage):
    return SimpleNamespace(
        item_id=item_id,
        sku=item_id.upper(),
        name=f'Item {item_id}',
        category_name=category,
        counted_qty=None if counted is None else Decimal(counted),
        variance_qty=Decimal(variance_qty),
        variance_value=Decimal(variance_value),
        variance_percentage=Decimal(percentage),
    )


class VarianceAnalysisTests(unittest.TestCase):
    def test_nothing_counted_gives_empty_analysis(self) -> None:
        result = variance_analysis([_item('a', 'Produce', None, '0', '0', '0')])

        self.assertEqual(result['itemsWithVariance'], 0)
        self.assertEqual(result['largestVariances'], [])
        self.assertEqual(result['positiveVariances']['count'], 0)

    def test_distribution_and_categories(self) -> None:
        items = [
            _item('a', 'Produce', '30', '5', '14.95', '20'),
            _item('b', 'Produce', '22', '-3', '-3.45', '-12'),
            _item('c', 'Alcohol', '0', '-2', '-290', '-100'),
            _item('d', None, '4', '0', '0', '0'),
            _item('e', 'Dairy', None, '0', '0', '0'),
        ]

        result = variance_analysis(items)

        self.assertEqual(result['totalVarianceValue'], Decimal('-278.50'))
        self.assertEqual(result['totalVarianceQty'], Decimal('0.00'))
        self.assertEqual(result['averageVariancePercentage'], Decimal('33.00'))
        self.assertEqual(result['itemsWithVariance'], 3)
        self.assertEqual(result['positiveVariances'], {'count': 1, 'totalValue': Decimal('14.95'), 'averageValue': Decimal('14.95')})
        self.assertEqual(
            result['negativeVariances'], {'count': 2, 'totalValue': Decimal('293.45'), 'averageValue': Decimal('146.73')}
        )
        self.assertEqual([row['itemId'] for row in result['largestVariances']], ['c', 'a', 'b', 'd'])
        self.assertEqual(
            result['categoryVariances'],
            [
                {'categoryName': 'Alcohol', 'varianceValue': Decimal('-290.00'), 'itemCount': 1},
                {'categoryName': 'Produce', 'varianceValue': Decimal('11.50'), 'itemCount': 2},
                {'categoryName': 'Uncategorized', 'varianceValue': Decimal('0.00'), 'itemCount': 1},
            ],
        )


class ExportCountTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        count_session, _ = create_count_session(
            self.db,
            actor='manager',
            branch_id='main-restaurant',
            scope={'importRef': 'IMPORT-BAR-WEEKLY'},
            item_master=self.provider,
            now=NOW,
        )
        update_count_items(
            self.db,
            count_id=count_session.id,
            actor='counter1',
            updates=[UpdateEntry(item_id='item-14', counted_qty=3, notes='Opened box, partial')],
            now=NOW,
        )
        self.db.commit()
        self.count_id = count_session.id

    def test_headers_follow_options(self) -> None:
        self.assertEqual(
            export_headers(ExportOptions(include_notes=False)),
            ['SKU', 'Item Name', 'Unit', 'Theoretical Qty', 'Counted Qty', 'Variance Qty', 'Variance Value', 'Counted By'],
        )
        full = export_headers(ExportOptions(include_snapshots=True, include_audit_trail=True))
        self.assertEqual(full[-4:], ['Avg Cost', 'Snapshot At', 'Notes', 'Counted At'])

    def test_csv_export(self) -> None:
        exported = export_count(self.db, count_id=self.count_id, options=ExportOptions(), now=NOW)

        self.assertEqual(exported.filename, f'count-{self.count_id}-2026-03-02.csv')
        self.assertEqual(exported.media_type, 'text/csv')
        rows = list(csv.reader(StringIO(exported.content.decode('utf-8'))))
        self.assertEqual(rows[0][:4], ['SKU', 'Item Name', 'Unit', 'Theoretical Qty'])
        self.assertEqual(rows[0][-1], 'Notes')
        self.assertEqual(len(rows), 6)
        self.assertEqual(rows[1][0], 'BEV001')
        self.assertEqual(Decimal(rows[1][4]), Decimal('3'))
        self.assertEqual(rows[1][7], 'counter1')
        self.assertEqual(rows[1][8], 'Opened box, partial')
        self.assertEqual(rows[2][4], '')

    def test_xlsx_export(self) -> None:
        exported = export_count(
            self.db,
            count_id=self.count_id,
            options=ExportOptions(format='xlsx', include_snapshots=True),
            now=NOW,
        )

        self.assertTrue(exported.filename.endswith('.xlsx'))
        sheet = load_workbook(BytesIO(exported.content)).active
        values = list(sheet.iter_rows(values_only=True))
        self.assertEqual(values[0][0], 'SKU')
        self.assertIn('Avg Cost', values[0])
        self.assertEqual(len(values), 6)
        self.assertEqual(values[1][4], 3)

    def test_formula_like_text_is_neutralised(self) -> None:
        update_count_items(
            self.db,
            count_id=self.count_id,
            actor='counter1',
            updates=[UpdateEntry(item_id='item-15', counted_qty=1, notes='=HYPERLINK("http://x","y")')],
            now=NOW,
        )
        self.db.commit()

        exported = export_count(self.db, count_id=self.count_id, options=ExportOptions(), now=NOW)
        rows = list(csv.reader(StringIO(exported.content.decode('utf-8'))))
        self.assertIn('\'=HYPERLINK("http://x","y")', [row[8] for row in rows])

        workbook = export_count(self.db, count_id=self.count_id, options=ExportOptions(format='xlsx'), now=NOW)
        sheet = load_workbook(BytesIO(workbook.content)).active
        notes = [row[8] for row in sheet.iter_rows(min_row=2, values_only=True)]
        self.assertIn('\'=HYPERLINK("http://x","y")', notes)

    def test_unknown_format_is_rejected(self) -> None:
        with self.assertRaises(CountValidationError) as ctx:
            export_count(self.db, count_id=self.count_id, options=ExportOptions(format='pdf'))
        self.assertEqual(ctx.exception.fields, ['format'])

    def test_analysis_reads_persisted_items(self) -> None:
        result = get_variance_analysis(self.db, count_id=self.count_id)

        self.assertEqual(result['negativeVariances']['count'], 1)
        self.assertEqual(result['largestVariances'][0]['itemId'], 'item-14')
        self.assertEqual(result['categoryVariances'][0]['categoryName'], 'Beverages')


if __name__ == '__main__':
    unittest.main()
