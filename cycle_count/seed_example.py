from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from cycle_count.models import (
    ApiSession,
    Branch,
    CountImportLine,
    InventoryItem,
    InventoryLevel,
    Principal,
    PrincipalRole,
)
from cycle_count.security.sessions import issue_api_token
from cycle_count.services.mock_item_master_provider import MockItemMasterProvider

BRANCHES = (
    ('main-restaurant', 'Main Restaurant'),
    ('downtown', 'Downtown'),
)

# username, role, branch, dev token
PRINCIPALS = (
    ('admin', PrincipalRole.ADMIN, None, 'dev-admin-token'),
    ('manager', PrincipalRole.MANAGER, None, 'dev-manager-token'),
    ('lead', PrincipalRole.LEAD, None, 'dev-lead-token'),
    ('counter1', PrincipalRole.COUNTER, 'main-restaurant', 'dev-counter-token'),
)


def seed_master_data(db: Session, provider: MockItemMasterProvider | None = None) -> None:
    provider = provider or MockItemMasterProvider()
    items = provider.list_items(branch_id='')
    existing = set(db.execute(select(InventoryItem.id)).scalars().all())
    for item in items:
        if item.item_id in existing:
            continue
        db.add(
            InventoryItem(
                id=item.item_id,
                sku=item.sku,
                name=item.name,
                unit=item.unit,
                category_id=item.category_id,
                category_name=item.category_name,
                supplier_id=item.supplier_id,
                storage_location_id=item.storage_location_id,
                tags=list(item.tags),
                is_active=item.is_active,
            )
        )
    db.flush()

    item_ids = [item.item_id for item in items]
    for branch_id, _name in BRANCHES:
        stocked = set(
            db.execute(select(InventoryLevel.item_id).where(InventoryLevel.branch_id == branch_id)).scalars().all()
        )
        positions = provider.fetch_stock_positions(branch_id=branch_id, item_ids=item_ids)
        for item_id, position in positions.items():
            if item_id in stocked:
                continue
            db.add(
                InventoryLevel(
                    branch_id=branch_id,
                    item_id=item_id,
                    theoretical_qty=Decimal(position.theoretical_qty),
                    average_cost=Decimal(position.average_cost),
                )
            )

    for import_ref, import_item_ids in provider.imports.items():
        if db.execute(select(CountImportLine).where(CountImportLine.import_ref == import_ref)).first():
            continue
        for position, item_id in enumerate(import_item_ids):
            db.add(CountImportLine(import_ref=import_ref, position=position, item_id=item_id))
    db.flush()


def seed_database(db: Session) -> None:
    for branch_id, name in BRANCHES:
        if not db.get(Branch, branch_id):
            db.add(Branch(id=branch_id, name=name, active=True))
    db.flush()

    for username, role, branch_id, token in PRINCIPALS:
        principal = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
        if not principal:
            principal = Principal(username=username, role=role, branch_id=branch_id, active=True)
            db.add(principal)
            db.flush()
        if not db.execute(select(ApiSession).where(ApiSession.session_token == token)).scalar_one_or_none():
            issue_api_token(db, principal_id=principal.id, user_agent='seed', token=token)

    seed_master_data(db)


def seed() -> None:
    from cycle_count.db import SessionLocal, engine
    from cycle_count.models import Base

    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        seed_database(db)
        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
