from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session

from cycle_count.config import settings
from cycle_count.errors import CountError, CountValidationError
from cycle_count.models import Branch, CountItem, CountSession, CountStatus
from cycle_count.services.count_service import (
    ItemQuery,
    filter_count_items,
    get_count_session,
    last_saved_at,
    latest_save,
    list_count_items,
    session_totals,
)
from cycle_count.services.variance import CountTotals, variance_severity

SORT_FIELDS = ('createdAt', 'closedAt', 'branchName', 'itemCount', 'varianceValue', 'status')


@dataclass(frozen=True)
class CountListQuery:
    branch_id: str | None = None
    statuses: tuple[CountStatus, ...] = ()
    created_by: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None
    page: int = 1
    page_size: int = 25
    sort_by: str = 'createdAt'
    sort_order: str = 'desc'


def build_list_query(
    *,
    branch_id: str | None = None,
    statuses: list[str] | None = None,
    created_by: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> CountListQuery:
    errors: list[CountError] = []

    parsed_statuses: list[CountStatus] = []
    for raw in statuses or []:
        for value in str(raw).split(','):
            value = value.strip().lower()
            if not value:
                continue
            try:
                status = CountStatus(value)
            except ValueError:
                errors.append(CountError(code='INVALID_STATUS', message=f'Unknown status: {value}', field='status'))
                continue
            if status not in parsed_statuses:
                parsed_statuses.append(status)

    page = 1 if page is None else page
    if page < 1:
        errors.append(CountError(code='INVALID_PAGE', message='page must be at least 1', field='page'))

    size = settings.default_page_size if page_size is None else page_size
    size = max(1, min(size, settings.max_page_size))

    sort_by = sort_by or 'createdAt'
    if sort_by not in SORT_FIELDS:
        errors.append(
            CountError(
                code='INVALID_SORT',
                message=f'sortBy must be one of {", ".join(SORT_FIELDS)}',
                field='sortBy',
            )
        )
    sort_order = (sort_order or 'desc').lower()
    if sort_order not in ('asc', 'desc'):
        errors.append(CountError(code='INVALID_SORT', message='sortOrder must be asc or desc', field='sortOrder'))

    if date_from and date_to and date_from > date_to:
        errors.append(CountError(code='INVALID_RANGE', message='dateFrom must not be after dateTo', field='dateFrom'))

    if errors:
        raise CountValidationError(errors)

    return CountListQuery(
        branch_id=(branch_id or '').strip() or None,
        statuses=tuple(parsed_statuses),
        created_by=(created_by or '').strip() or None,
        date_from=date_from,
        date_to=date_to,
        search=(search or '').strip() or None,
        page=page,
        page_size=size,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def item_payload(item: CountItem) -> dict:
    percentage = Decimal(item.variance_percentage)
    return {
        'id': item.id,
        'itemId': item.item_id,
        'sku': item.sku,
        'name': item.name,
        'unit': item.unit,
        'categoryName': item.category_name,
        'snapshotQty': item.snapshot_qty,
        'snapshotAvgCost': item.snapshot_avg_cost,
        'snapshotTimestamp': item.snapshot_timestamp,
        'countedQty': item.counted_qty,
        'countedBy': item.counted_by,
        'countedAt': item.counted_at,
        'varianceQty': item.variance_qty,
        'varianceValue': item.variance_value,
        'variancePercentage': item.variance_percentage,
        'varianceSeverity': variance_severity(
            percentage,
            low_percent=Decimal(str(settings.low_variance_percent)),
            medium_percent=Decimal(str(settings.medium_variance_percent)),
        )
        if item.counted_qty is not None
        else None,
        'notes': item.notes,
        'lotNumber': item.lot_number,
        'isActive': item.is_active,
        'hasDiscrepancy': item.has_discrepancy,
    }


def session_payload(
    count_session: CountSession,
    *,
    totals: CountTotals,
    branch_name: str | None = None,
    saved_at: datetime | None = None,
) -> dict:
    return {
        'id': count_session.id,
        'branchId': count_session.branch_id,
        'branchName': branch_name or count_session.branch_id,
        'status': count_session.status.value,
        'scope': count_session.scope,
        'createdBy': count_session.created_by,
        'createdAt': count_session.created_at,
        'closedBy': count_session.closed_by,
        'closedAt': count_session.closed_at,
        'totals': totals.to_dict(),
        'metadata': {
            'notes': count_session.notes,
            'estimatedDurationMinutes': count_session.estimated_duration_minutes,
            'actualDurationMinutes': count_session.actual_duration_minutes,
            'lastSavedAt': saved_at or count_session.last_saved_at,
            'submittedAt': count_session.submitted_at,
            'submissionNotes': count_session.submission_notes,
            'adjustmentBatchId': count_session.adjustment_batch_id,
            'cancelReason': count_session.cancel_reason,
        },
    }


def _branch_name(db: Session, branch_id: str) -> str | None:
    return db.execute(select(Branch.name).where(Branch.id == branch_id)).scalar_one_or_none()


def get_count_detail(db: Session, *, count_id: str, item_query: ItemQuery | None = None) -> dict:
    count_session = get_count_session(db, count_id=count_id)
    items = list_count_items(db, count_id=count_id)
    visible = filter_count_items(items, item_query)
    totals = session_totals(db, count_ids=[count_id])[count_id]
    return {
        'session': session_payload(
            count_session,
            totals=totals,
            branch_name=_branch_name(db, count_session.branch_id),
            saved_at=last_saved_at(db, count_session),
        ),
        'items': [item_payload(item) for item in visible],
        'filteredItemCount': len(visible),
    }


def list_counts(db: Session, *, query: CountListQuery) -> dict:
    item_count = (
        select(func.count(CountItem.id))
        .where(CountItem.session_id == CountSession.id)
        .correlate(CountSession)
        .scalar_subquery()
    )
    variance_value = (
        select(func.coalesce(func.sum(CountItem.variance_value), 0))
        .where(CountItem.session_id == CountSession.id)
        .correlate(CountSession)
        .scalar_subquery()
    )
    latest_item_save = (
        select(func.max(CountItem.updated_at))
        .where(CountItem.session_id == CountSession.id)
        .correlate(CountSession)
        .scalar_subquery()
    )
    branch_name = func.coalesce(Branch.name, CountSession.branch_id)

    stmt = select(
        CountSession,
        branch_name.label('branch_name'),
        latest_item_save.label('latest_item_save'),
    ).outerjoin(Branch, Branch.id == CountSession.branch_id)
    if query.branch_id:
        stmt = stmt.where(CountSession.branch_id == query.branch_id)
    if query.statuses:
        stmt = stmt.where(CountSession.status.in_(query.statuses))
    if query.created_by:
        stmt = stmt.where(CountSession.created_by == query.created_by)
    if query.date_from:
        stmt = stmt.where(CountSession.created_at >= query.date_from)
    if query.date_to:
        stmt = stmt.where(CountSession.created_at <= query.date_to)
    if query.search:
        needle = query.search
        stmt = stmt.where(
            or_(
                CountSession.id.icontains(needle, autoescape=True),
                CountSession.branch_id.icontains(needle, autoescape=True),
                Branch.name.icontains(needle, autoescape=True),
                CountSession.created_by.icontains(needle, autoescape=True),
                CountSession.notes.icontains(needle, autoescape=True),
                exists().where(
                    CountItem.session_id == CountSession.id,
                    or_(
                        CountItem.sku.icontains(needle, autoescape=True),
                        CountItem.name.icontains(needle, autoescape=True),
                    ),
                ),
            )
        )

    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()

    sort_column = {
        'createdAt': CountSession.created_at,
        'closedAt': CountSession.closed_at,
        'branchName': branch_name,
        'itemCount': item_count,
        'varianceValue': variance_value,
        'status': CountSession.status,
    }[query.sort_by]
    ordering = sort_column.asc() if query.sort_order == 'asc' else sort_column.desc()
    if query.sort_by == 'closedAt':
        ordering = ordering.nulls_last()

    rows = db.execute(
        stmt.order_by(ordering, CountSession.id.asc())
        .offset((query.page - 1) * query.page_size)
        .limit(query.page_size)
    ).all()

    totals = session_totals(db, count_ids=[row[0].id for row in rows])
    data = [
        session_payload(
            count_session,
            totals=totals[count_session.id],
            branch_name=name,
            saved_at=latest_save(count_session, item_saved_at),
        )
        for count_session, name, item_saved_at in rows
    ]
    return {
        'data': data,
        'total': total,
        'page': query.page,
        'pageSize': query.page_size,
        'hasMore': query.page * query.page_size < total,
    }
