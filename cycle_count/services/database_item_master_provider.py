from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from cycle_count.models import CountImportLine, InventoryItem, InventoryLevel
from cycle_count.services.item_master_provider import ItemRecord, StockPosition


class DatabaseItemMasterProvider:
    """Reads catalog and on-hand levels straight from the master-data tables."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def _session(self) -> Session:
        return self.session_factory()

    def list_items(self, *, branch_id: str) -> list[ItemRecord]:
        with self._session() as db:
            rows = db.execute(select(InventoryItem).order_by(InventoryItem.name.asc(), InventoryItem.sku.asc())).scalars().all()
            return [
                ItemRecord(
                    item_id=row.id,
                    sku=row.sku,
                    name=row.name,
                    unit=row.unit,
                    category_id=row.category_id,
                    category_name=row.category_name,
                    supplier_id=row.supplier_id,
                    storage_location_id=row.storage_location_id,
                    tags=tuple(row.tags or ()),
                    is_active=row.is_active,
                )
                for row in rows
            ]

    def list_import_item_ids(self, *, import_ref: str) -> list[str] | None:
        with self._session() as db:
            item_ids = db.execute(
                select(CountImportLine.item_id)
                .where(CountImportLine.import_ref == import_ref)
                .order_by(CountImportLine.position.asc())
            ).scalars().all()
        return list(item_ids) if item_ids else None

    def fetch_stock_positions(self, *, branch_id: str, item_ids: list[str]) -> dict[str, StockPosition]:
        if not item_ids:
            return {}
        with self._session() as db:
            rows = db.execute(
                select(InventoryLevel.item_id, InventoryLevel.theoretical_qty, InventoryLevel.average_cost).where(
                    InventoryLevel.branch_id == branch_id,
                    InventoryLevel.item_id.in_(item_ids),
                )
            ).all()
        positions = {
            item_id: StockPosition(theoretical_qty=Decimal(qty), average_cost=Decimal(cost))
            for item_id, qty, cost in rows
        }
        # Items never stocked at the branch still get counted against a zero baseline.
        for item_id in item_ids:
            positions.setdefault(item_id, StockPosition(theoretical_qty=Decimal('0'), average_cost=Decimal('0')))
        return positions
