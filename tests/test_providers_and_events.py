from __future__ import annotations

import unittest
from decimal import Decimal
from unittest.mock import patch

from db_support import NOW, DatabaseTestCase
from cycle_count.config import settings
from cycle_count.publish_events import drain_events
from cycle_count.services.count_service import create_count_session
from cycle_count.services.database_item_master_provider import DatabaseItemMasterProvider
from cycle_count.services.event_service import list_events, list_unpublished_events
from cycle_count.services.mock_item_master_provider import MockItemMasterProvider
from cycle_count.services.provider_factory import get_item_master_provider


class DatabaseItemMasterProviderTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.database_provider = DatabaseItemMasterProvider(self.SessionLocal)

    def test_catalog_matches_seeded_master_data(self) -> None:
        items = self.database_provider.list_items(branch_id='main-restaurant')

        self.assertEqual(len(items), 28)
        by_id = {item.item_id: item for item in items}
        self.assertEqual(by_id['item-4'].tags, ('bar', 'perishable'))
        self.assertFalse(by_id['item-26'].is_active)

    def test_stock_positions_default_to_zero(self) -> None:
        positions = self.database_provider.fetch_stock_positions(
            branch_id='main-restaurant', item_ids=['item-1', 'item-unstocked']
        )

        self.assertEqual(positions['item-1'].theoretical_qty, Decimal('17'))
        self.assertEqual(positions['item-1'].average_cost, Decimal('2.99'))
        self.assertEqual(positions['item-unstocked'].theoretical_qty, Decimal('0'))

    def test_imports_keep_their_order(self) -> None:
        self.assertEqual(
            self.database_provider.list_import_item_ids(import_ref='IMPORT-HIGH-VALUE'),
            ['item-6', 'item-7', 'item-13', 'item-19', 'item-6'],
        )
        self.assertIsNone(self.database_provider.list_import_item_ids(import_ref='IMPORT-NOPE'))

    def test_count_created_from_database_master_data(self) -> None:
        _, item_count = create_count_session(
            self.db,
            actor='manager',
            branch_id='downtown',
            scope={'filters': {'tags': ['bar']}},
            item_master=self.database_provider,
            now=NOW,
        )

        self.assertEqual(item_count, 7)


class ProviderFactoryTests(unittest.TestCase):
    def tearDown(self) -> None:
        get_item_master_provider.cache_clear()

    def test_mock_is_the_default(self) -> None:
        get_item_master_provider.cache_clear()
        with patch.object(settings, 'item_master_provider', 'mock'):
            self.assertIsInstance(get_item_master_provider(), MockItemMasterProvider)

    def test_database_provider_selected_by_setting(self) -> None:
        get_item_master_provider.cache_clear()
        with patch.object(settings, 'item_master_provider', ' Database '):
            self.assertIsInstance(get_item_master_provider(), DatabaseItemMasterProvider)


class EventPublishingTests(DatabaseTestCase):
    def test_drain_marks_events_published_once(self) -> None:
        count_session, _ = create_count_session(
            self.db,
            actor='manager',
            branch_id='main-restaurant',
            scope={'all': True},
            item_master=self.provider,
            now=NOW,
        )
        self.db.commit()

        preview = drain_events(self.db, limit=10, dry_run=True)
        self.assertEqual([envelope['type'] for envelope in preview], ['inventory.count.created'])
        self.assertEqual(len(list_unpublished_events(self.db)), 1)

        published = drain_events(self.db, limit=10)
        self.db.commit()
        self.assertEqual(published[0]['aggregateId'], count_session.id)
        self.assertEqual(published[0]['payload']['createdBy'], 'manager')
        self.assertEqual(drain_events(self.db, limit=10), [])
        self.assertEqual(len(list_events(self.db, count_id=count_session.id)), 1)


if __name__ == '__main__':
    unittest.main()
