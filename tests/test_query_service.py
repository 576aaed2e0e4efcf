from __future__ import annotations

import unittest
from datetime import timedelta

from db_support import NOW, DatabaseTestCase
from cycle_count.errors import CountNotFoundError, CountValidationError
from cycle_count.services.count_service import (
    ItemQuery,
    UpdateEntry,
    cancel_count,
    create_count_session,
    submit_count,
    update_count_items,
)
from cycle_count.services.query_service import build_list_query, get_count_detail, list_counts


class QueryServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.a = self._create('main-restaurant', {'all': True}, actor='manager', hours=0)
        self.b = self._create('downtown', {'all': True}, actor='lead', hours=1)
        self.c = self._create('main-restaurant', {'filters': {'categoryIds': ['meat']}}, actor='manager', hours=2)
        self.d = self._create('main-restaurant', {'importRef': 'IMPORT-BAR-WEEKLY'}, actor='manager', hours=3)

        cancel_count(self.db, count_id=self.c, actor='manager', reason='Wrong scope', now=NOW + timedelta(hours=2, minutes=5))
        update_count_items(
            self.db,
            count_id=self.d,
            actor='counter1',
            updates=[UpdateEntry(item_id='item-19', counted_qty=0)],
            now=NOW + timedelta(hours=3, minutes=10),
        )
        submit_count(self.db, count_id=self.d, actor='manager', confirmation=True, now=NOW + timedelta(hours=4))
        self.db.commit()

    def _create(self, branch_id: str, scope: dict, *, actor: str, hours: int) -> str:
        count_session, _ = create_count_session(
            self.db,
            actor=actor,
            branch_id=branch_id,
            scope=scope,
            item_master=self.provider,
            now=NOW + timedelta(hours=hours),
        )
        self.db.commit()
        return count_session.id

    def ids(self, **kwargs) -> list[str]:
        return [row['id'] for row in list_counts(self.db, query=build_list_query(**kwargs))['data']]

    def test_default_listing_is_newest_first(self) -> None:
        result = list_counts(self.db, query=build_list_query())

        self.assertEqual([row['id'] for row in result['data']], [self.d, self.c, self.b, self.a])
        self.assertEqual(result['total'], 4)
        self.assertEqual(result['page'], 1)
        self.assertEqual(result['pageSize'], 25)
        self.assertFalse(result['hasMore'])

    def test_rows_carry_live_totals_and_branch_name(self) -> None:
        rows = {row['id']: row for row in list_counts(self.db, query=build_list_query())['data']}

        self.assertEqual(rows[self.b]['branchName'], 'Downtown')
        self.assertEqual(rows[self.d]['status'], 'closed')
        self.assertEqual(rows[self.d]['totals']['itemsCountedCount'], 1)
        self.assertEqual(rows[self.d]['totals']['totalItemsCount'], 5)
        self.assertLess(rows[self.d]['totals']['varianceValue'], 0)
        self.assertTrue(rows[self.d]['metadata']['adjustmentBatchId'].startswith('COUNTADJ_'))

    def test_listed_last_saved_matches_detail_after_update(self) -> None:
        saved = NOW + timedelta(hours=5)
        update_count_items(
            self.db, count_id=self.a, actor='counter1', updates=[UpdateEntry(item_id='item-1', counted_qty=3)], now=saved
        )
        self.db.commit()

        rows = {row['id']: row for row in list_counts(self.db, query=build_list_query())['data']}
        detail = get_count_detail(self.db, count_id=self.a)

        self.assertEqual(rows[self.a]['metadata']['lastSavedAt'], saved)
        self.assertEqual(detail['session']['metadata']['lastSavedAt'], saved)
        self.assertEqual(rows[self.b]['metadata']['lastSavedAt'], NOW + timedelta(hours=1))

    def test_status_filters_accept_lists_and_csv(self) -> None:
        self.assertEqual(self.ids(statuses=['draft']), [self.b, self.a])
        self.assertEqual(self.ids(statuses=['closed,cancelled']), [self.d, self.c])
        self.assertEqual(self.ids(statuses=['open', 'closed']), [self.d])

    def test_branch_creator_and_date_filters(self) -> None:
        self.assertEqual(self.ids(branch_id='downtown'), [self.b])
        self.assertEqual(self.ids(created_by='lead'), [self.b])
        self.assertEqual(self.ids(date_from=NOW + timedelta(minutes=90)), [self.d, self.c])
        self.assertEqual(self.ids(date_to=NOW + timedelta(minutes=30)), [self.a])

    def test_search_matches_session_and_item_fields(self) -> None:
        self.assertEqual(self.ids(search='downtown'), [self.b])
        self.assertEqual(self.ids(search=self.c), [self.c])
        self.assertEqual(self.ids(search='lager keg'), [self.d, self.b, self.a])
        self.assertEqual(self.ids(search='chicken'), [self.c, self.b, self.a])
        self.assertEqual(self.ids(search='100%'), [])

    def test_sorting(self) -> None:
        self.assertEqual(self.ids(sort_by='itemCount', sort_order='asc')[:2], [self.c, self.d])
        self.assertEqual(self.ids(sort_by='varianceValue', sort_order='asc')[0], self.d)
        self.assertEqual(self.ids(sort_by='branchName', sort_order='asc')[0], self.b)
        self.assertEqual(self.ids(sort_by='closedAt', sort_order='desc')[:2], [self.d, self.c])
        self.assertEqual(self.ids(sort_by='createdAt', sort_order='asc'), [self.a, self.b, self.c, self.d])

    def test_paging(self) -> None:
        first = list_counts(self.db, query=build_list_query(page=1, page_size=3))
        second = list_counts(self.db, query=build_list_query(page=2, page_size=3))

        self.assertEqual(len(first['data']), 3)
        self.assertTrue(first['hasMore'])
        self.assertEqual([row['id'] for row in second['data']], [self.a])
        self.assertFalse(second['hasMore'])
        self.assertEqual(build_list_query(page_size=500).page_size, 100)
        self.assertEqual(build_list_query(page_size=0).page_size, 1)

    def test_invalid_query_is_rejected(self) -> None:
        with self.assertRaises(CountValidationError) as ctx:
            build_list_query(page=0, sort_by='colour', sort_order='sideways', statuses=['pending'])

        self.assertEqual(sorted(ctx.exception.fields), ['page', 'sortBy', 'sortOrder', 'status'])

    def test_detail_returns_items_in_resolution_order(self) -> None:
        detail = get_count_detail(self.db, count_id=self.d)

        self.assertEqual(
            [item['itemId'] for item in detail['items']],
            ['item-14', 'item-15', 'item-17', 'item-18', 'item-19'],
        )
        counted = detail['items'][-1]
        self.assertEqual(counted['varianceSeverity'], 'high')
        self.assertIsNone(detail['items'][0]['varianceSeverity'])
        self.assertEqual(detail['session']['branchName'], 'Main Restaurant')
        self.assertEqual(detail['session']['metadata']['actualDurationMinutes'], 60)

    def test_detail_applies_item_query(self) -> None:
        detail = get_count_detail(self.db, count_id=self.d, item_query=ItemQuery(show_counted_only=True))

        self.assertEqual([item['itemId'] for item in detail['items']], ['item-19'])
        self.assertEqual(detail['filteredItemCount'], 1)
        self.assertEqual(detail['session']['totals']['totalItemsCount'], 5)

    def test_detail_of_unknown_count(self) -> None:
        with self.assertRaises(CountNotFoundError):
            get_count_detail(self.db, count_id='COUNT_1_NOPE00')


if __name__ == '__main__':
    unittest.main()
