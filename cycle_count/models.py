from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
    inspect,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    MANAGER = 'MANAGER'
    LEAD = 'LEAD'
    COUNTER = 'COUNTER'


class CountStatus(str, Enum):
    DRAFT = 'draft'
    OPEN = 'open'
    CLOSED = 'closed'
    CANCELLED = 'cancelled'


ACTIVE_STATUSES = (CountStatus.DRAFT, CountStatus.OPEN)
TERMINAL_STATUSES = (CountStatus.CLOSED, CountStatus.CANCELLED)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Branch(Base):
    __tablename__ = 'branches'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(64), ForeignKey('branches.id'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ApiSession(Base):
    __tablename__ = 'api_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='api_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(Integer, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class CountSession(Base):
    __tablename__ = 'count_sessions'
    __table_args__ = (
        Index(
            'count_sessions_active_scope_uniq',
            'branch_id',
            'scope_fingerprint',
            unique=True,
            postgresql_where=text("status IN ('draft', 'open')"),
            sqlite_where=text("status IN ('draft', 'open')"),
        ),
        Index('count_sessions_branch_created_idx', 'branch_id', 'created_at'),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[CountStatus] = mapped_column(
        SQLEnum(CountStatus, name='count_status', values_callable=_enum_values),
        nullable=False,
        default=CountStatus.DRAFT,
        server_default='draft',
    )
    scope: Mapped[dict] = mapped_column(JSON, nullable=False)
    scope_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_by: Mapped[str | None] = mapped_column(String(128))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    notes: Mapped[str | None] = mapped_column(Text)
    estimated_duration_minutes: Mapped[int | None] = mapped_column(Integer)
    actual_duration_minutes: Mapped[int | None] = mapped_column(Integer)
    last_saved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submission_notes: Mapped[str | None] = mapped_column(Text)
    adjustment_batch_id: Mapped[str | None] = mapped_column(String(128), unique=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text)


class CountItem(Base):
    __tablename__ = 'count_items'
    __table_args__ = (
        UniqueConstraint('session_id', 'item_id', name='count_items_session_item_uniq'),
        CheckConstraint('counted_qty IS NULL OR counted_qty >= 0', name='count_items_non_negative_ck'),
    )

    id: Mapped[str] = mapped_column(String(192), primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('count_sessions.id', ondelete='CASCADE'), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    category_name: Mapped[str | None] = mapped_column(Text)

    snapshot_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    snapshot_avg_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    snapshot_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    counted_qty: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    counted_by: Mapped[str | None] = mapped_column(String(128))
    counted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    variance_qty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    variance_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    variance_percentage: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))

    notes: Mapped[str | None] = mapped_column(Text)
    lot_number: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    has_discrepancy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class CountAdjustment(Base):
    __tablename__ = 'count_adjustments'
    __table_args__ = (
        UniqueConstraint('batch_id', 'item_id', name='count_adjustments_batch_item_uniq'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    session_id: Mapped[str] = mapped_column(String(64), ForeignKey('count_sessions.id'), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    adjustment_qty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    adjustment_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    new_stock_level: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CountEvent(Base):
    __tablename__ = 'count_events'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor: Mapped[str | None] = mapped_column(String(128))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    count_id: Mapped[str | None] = mapped_column(String(64))
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# Master data below is owned by the catalog/ledger subsystems and only read here.


class InventoryItem(Base):
    __tablename__ = 'inventory_items'

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[str | None] = mapped_column(String(64))
    category_name: Mapped[str | None] = mapped_column(Text)
    supplier_id: Mapped[str | None] = mapped_column(String(64))
    storage_location_id: Mapped[str | None] = mapped_column(String(64))
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class InventoryLevel(Base):
    __tablename__ = 'inventory_levels'

    branch_id: Mapped[str] = mapped_column(String(64), ForeignKey('branches.id'), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), ForeignKey('inventory_items.id'), primary_key=True)
    theoretical_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    average_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal('0'))


class CountImportLine(Base):
    __tablename__ = 'count_import_lines'

    import_ref: Mapped[str] = mapped_column(String(128), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)


SNAPSHOT_COLUMNS = (
    'item_id',
    'sku',
    'name',
    'unit',
    'category_name',
    'snapshot_qty',
    'snapshot_avg_cost',
    'snapshot_timestamp',
    'is_active',
)


@event.listens_for(CountItem, 'before_update')
def _guard_snapshot_columns(mapper, connection, target: CountItem) -> None:
    state = inspect(target)
    changed = [name for name in SNAPSHOT_COLUMNS if state.attrs[name].history.has_changes()]
    if changed:
        raise ValueError(f'Snapshot fields are immutable: {", ".join(changed)}')
