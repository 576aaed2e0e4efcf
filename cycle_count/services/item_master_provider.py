from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class ItemRecord:
    item_id: str
    sku: str
    name: str
    unit: str
    category_id: str | None = None
    category_name: str | None = None
    supplier_id: str | None = None
    storage_location_id: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True


@dataclass(frozen=True)
class StockPosition:
    theoretical_qty: Decimal
    average_cost: Decimal


class ItemMasterProvider(Protocol):
    def list_items(self, *, branch_id: str) -> list[ItemRecord]: ...

    def list_import_item_ids(self, *, import_ref: str) -> list[str] | None: ...

    def fetch_stock_positions(self, *, branch_id: str, item_ids: list[str]) -> dict[str, StockPosition]: ...
