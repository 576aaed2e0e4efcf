from __future__ import annotations

from functools import lru_cache

from cycle_count.config import settings
from cycle_count.services.database_item_master_provider import DatabaseItemMasterProvider
from cycle_count.services.item_master_provider import ItemMasterProvider
from cycle_count.services.mock_item_master_provider import MockItemMasterProvider


@lru_cache(maxsize=1)
def get_item_master_provider() -> ItemMasterProvider:
    provider = settings.item_master_provider.strip().lower()
    if provider == 'database':
        from cycle_count.db import SessionLocal

        return DatabaseItemMasterProvider(SessionLocal)
    return MockItemMasterProvider()
