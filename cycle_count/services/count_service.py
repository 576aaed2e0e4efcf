from __future__ import annotations

import logging
import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cycle_count.config import settings
from cycle_count.errors import (
    CountConcurrencyError,
    CountError,
    CountNotFoundError,
    CountStateError,
    CountSubmissionError,
    CountValidationError,
)
from cycle_count.events import CountCancelled, CountCreated, CountItemsUpdated, CountSubmitted
from cycle_count.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Branch,
    CountAdjustment,
    CountItem,
    CountSession,
    CountStatus,
)
from cycle_count.services.event_service import record_event
from cycle_count.services.item_master_provider import ItemMasterProvider, StockPosition
from cycle_count.services.scope_service import parse_scope, resolve_scope, scope_fingerprint
from cycle_count.services.variance import EMPTY_TOTALS, ZERO, CountTotals, compute_item_variance, reduce_totals, round2

logger = logging.getLogger(__name__)

_ID_ALPHABET = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ'
_QTY_QUANTUM = Decimal('0.001')
# Column bounds: Numeric(14, 3) for quantities, Numeric(14, 2) for variances.
MAX_COUNTED_QTY = Decimal('99999999999.999')
MAX_VARIANCE = Decimal('999999999999.99')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _epoch_ms(value: datetime) -> int:
    return int(_as_utc(value).timestamp() * 1000)


def generate_count_id(now: datetime | None = None) -> str:
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f'COUNT_{_epoch_ms(now or _now())}_{suffix}'


def generate_adjustment_batch_id(count_id: str, now: datetime | None = None) -> str:
    return f'COUNTADJ_{count_id}_{_epoch_ms(now or _now())}'


def default_threshold() -> Decimal:
    return Decimal(str(settings.variance_threshold_percent))


@dataclass(frozen=True)
class UpdateEntry:
    item_id: str
    counted_qty: object
    notes: str | None = None


@dataclass(frozen=True)
class ItemUpdateResult:
    item_id: str
    accepted: bool
    error: CountError | None = None

    def to_dict(self) -> dict:
        return {
            'itemId': self.item_id,
            'accepted': self.accepted,
            'error': self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class UpdateResult:
    count_id: str
    status: CountStatus
    updated_count: int
    results: list[ItemUpdateResult]
    totals: CountTotals

    @property
    def rejected(self) -> list[ItemUpdateResult]:
        return [result for result in self.results if not result.accepted]

    @property
    def success(self) -> bool:
        return not self.rejected


@dataclass(frozen=True)
class SubmissionResult:
    count_id: str
    adjustment_batch_id: str
    adjustments: list[dict]
    summary: dict


@dataclass(frozen=True)
class ItemQuery:
    search: str | None = None
    category_names: tuple[str, ...] = field(default_factory=tuple)
    show_counted_only: bool = False
    show_not_counted_only: bool = False
    show_variance_only: bool = False
    has_notes: bool | None = None


# -- store -----------------------------------------------------------------


def find_active_session(db: Session, *, branch_id: str, fingerprint: str) -> CountSession | None:
    return db.execute(
        select(CountSession).where(
            CountSession.branch_id == branch_id,
            CountSession.scope_fingerprint == fingerprint,
            CountSession.status.in_(ACTIVE_STATUSES),
        )
    ).scalars().first()


def get_count_session(db: Session, *, count_id: str) -> CountSession:
    count_session = db.execute(select(CountSession).where(CountSession.id == count_id)).scalar_one_or_none()
    if not count_session:
        raise CountNotFoundError(count_id)
    return count_session


def list_count_items(db: Session, *, count_id: str) -> list[CountItem]:
    return db.execute(
        select(CountItem).where(CountItem.session_id == count_id).order_by(CountItem.position.asc())
    ).scalars().all()


def session_totals(db: Session, *, count_ids: list[str]) -> dict[str, CountTotals]:
    """Totals reduced in SQL from the current item rows; nothing is stored on the session."""
    if not count_ids:
        return {}
    rows = db.execute(
        select(
            CountItem.session_id,
            func.coalesce(func.sum(CountItem.variance_qty), 0),
            func.coalesce(func.sum(CountItem.variance_value), 0),
            func.count(CountItem.counted_qty),
            func.count(CountItem.id),
            func.coalesce(func.sum(case((CountItem.variance_value > 0, CountItem.variance_value), else_=0)), 0),
            func.coalesce(func.sum(case((CountItem.variance_value < 0, CountItem.variance_value), else_=0)), 0),
        )
        .where(CountItem.session_id.in_(count_ids))
        .group_by(CountItem.session_id)
    ).all()

    totals = {
        session_id: CountTotals(
            variance_qty=round2(Decimal(str(variance_qty))),
            variance_value=round2(Decimal(str(variance_value))),
            items_counted_count=int(counted),
            total_items_count=int(total),
            positive_variance_value=round2(Decimal(str(positive))),
            negative_variance_value=round2(abs(Decimal(str(negative)))),
        )
        for session_id, variance_qty, variance_value, counted, total, positive, negative in rows
    }
    for count_id in count_ids:
        totals.setdefault(count_id, EMPTY_TOTALS)
    return totals


def latest_save(count_session: CountSession, latest_item_save: datetime | None) -> datetime | None:
    candidates = [_as_utc(value) for value in (count_session.last_saved_at, latest_item_save) if value is not None]
    return max(candidates) if candidates else None


def last_saved_at(db: Session, count_session: CountSession) -> datetime | None:
    latest_item = db.execute(
        select(func.max(CountItem.updated_at)).where(CountItem.session_id == count_session.id)
    ).scalar_one_or_none()
    return latest_save(count_session, latest_item)


def filter_count_items(items: list[CountItem], query: ItemQuery | None) -> list[CountItem]:
    if query is None:
        return list(items)

    needle = (query.search or '').strip().lower()
    categories = {name.strip().lower() for name in query.category_names if name.strip()}
    filtered: list[CountItem] = []
    for item in items:
        if needle and not any(needle in (value or '').lower() for value in (item.sku, item.name, item.notes, item.category_name)):
            continue
        if categories and (item.category_name or '').lower() not in categories:
            continue
        if query.show_counted_only and item.counted_qty is None:
            continue
        if query.show_not_counted_only and item.counted_qty is not None:
            continue
        if query.show_variance_only and item.variance_qty == 0:
            continue
        if query.has_notes is True and not item.notes:
            continue
        if query.has_notes is False and item.notes:
            continue
        filtered.append(item)
    return filtered


# -- creation (scope resolver -> snapshot capturer -> store) -------------------


def _validate_creation_fields(
    db: Session,
    *,
    branch_id: str | None,
    estimated_duration_minutes: int | None,
) -> list[CountError]:
    errors: list[CountError] = []
    if not branch_id or not str(branch_id).strip():
        errors.append(CountError(code='REQUIRED', message='branchId is required', field='branchId'))
    else:
        branch = db.get(Branch, branch_id)
        if not branch or not branch.active:
            errors.append(CountError(code='UNKNOWN_BRANCH', message=f'Unknown branch: {branch_id}', field='branchId'))

    if estimated_duration_minutes is not None and (
        isinstance(estimated_duration_minutes, bool)
        or not isinstance(estimated_duration_minutes, int)
        or estimated_duration_minutes < 0
    ):
        errors.append(
            CountError(
                code='INVALID_DURATION',
                message='estimatedDurationMinutes must be a non-negative integer',
                field='estimatedDurationMinutes',
            )
        )
    return errors


def create_count_session(
    db: Session,
    *,
    actor: str,
    branch_id: str,
    scope: dict,
    item_master: ItemMasterProvider,
    notes: str | None = None,
    estimated_duration_minutes: int | None = None,
    now: datetime | None = None,
) -> tuple[CountSession, int]:
    errors = _validate_creation_fields(db, branch_id=branch_id, estimated_duration_minutes=estimated_duration_minutes)
    try:
        parsed_scope = parse_scope(scope)
    except CountValidationError as exc:
        errors.extend(exc.errors)
    if errors:
        raise CountValidationError(errors)

    fingerprint = scope_fingerprint(parsed_scope)
    existing = find_active_session(db, branch_id=branch_id, fingerprint=fingerprint)
    if existing:
        logger.warning('Count %s already active for branch %s scope %s', existing.id, branch_id, fingerprint[:12])
        raise CountConcurrencyError(existing.id)

    resolved = resolve_scope(
        item_master,
        branch_id=branch_id,
        scope=parsed_scope,
        max_items=settings.max_items_per_count,
    )
    positions = item_master.fetch_stock_positions(branch_id=branch_id, item_ids=[item.item_id for item in resolved])

    created_at = now or _now()
    count_id = generate_count_id(created_at)
    count_session = CountSession(
        id=count_id,
        branch_id=branch_id,
        status=CountStatus.DRAFT,
        scope=parsed_scope.to_dict(),
        scope_fingerprint=fingerprint,
        created_by=actor,
        created_at=created_at,
        notes=notes,
        estimated_duration_minutes=estimated_duration_minutes,
        last_saved_at=created_at,
    )

    missing = [item.item_id for item in resolved if item.item_id not in positions]
    if missing:
        logger.warning('No stock position for %s items in branch %s; snapshotting zero', len(missing), branch_id)

    count_items = []
    for index, item in enumerate(resolved):
        position = positions.get(item.item_id) or StockPosition(theoretical_qty=ZERO, average_cost=ZERO)
        count_items.append(
            CountItem(
                id=f'{count_id}_{item.item_id}',
                session_id=count_id,
                position=index,
                item_id=item.item_id,
                sku=item.sku,
                name=item.name,
                unit=item.unit,
                category_name=item.category_name,
                snapshot_qty=Decimal(position.theoretical_qty),
                snapshot_avg_cost=Decimal(position.average_cost),
                snapshot_timestamp=created_at,
                counted_qty=None,
                variance_qty=ZERO,
                variance_value=ZERO,
                variance_percentage=ZERO,
                is_active=item.is_active,
                has_discrepancy=False,
            )
        )

    # Session and snapshot rows share one transaction so nobody can see a partial item set.
    db.add(count_session)
    try:
        db.flush()
        db.add_all(count_items)
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        conflict = find_active_session(db, branch_id=branch_id, fingerprint=fingerprint)
        if conflict:
            logger.warning('Lost creation race for branch %s; active count is %s', branch_id, conflict.id)
            raise CountConcurrencyError(conflict.id) from exc
        raise

    record_event(
        db,
        CountCreated(
            count_id=count_id,
            branch_id=branch_id,
            scope=count_session.scope,
            item_count=len(count_items),
            created_by=actor,
        ),
        occurred_at=created_at,
    )
    logger.info('Created count %s for branch %s with %s items', count_id, branch_id, len(count_items))
    return count_session, len(count_items)


# -- entry processor -------------------------------------------------------------


def _parse_counted_qty(raw) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise ValueError('countedQty must be a number')
    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise ValueError('countedQty must be a finite number')
        qty = Decimal(str(raw))
    elif isinstance(raw, (int, Decimal)):
        qty = Decimal(raw)
    elif isinstance(raw, str):
        try:
            qty = Decimal(raw.strip())
        except InvalidOperation as exc:
            raise ValueError('countedQty must be a number') from exc
    else:
        raise ValueError('countedQty must be a number')

    if not qty.is_finite():
        raise ValueError('countedQty must be a finite number')
    if qty < 0:
        raise ValueError('countedQty cannot be negative')
    # Bounded before quantizing; quantize raises InvalidOperation past 28 digits.
    if qty > MAX_COUNTED_QTY or qty.quantize(_QTY_QUANTUM, rounding=ROUND_HALF_UP) > MAX_COUNTED_QTY:
        raise ValueError(f'countedQty cannot exceed {MAX_COUNTED_QTY}')
    return qty.quantize(_QTY_QUANTUM, rounding=ROUND_HALF_UP)


def _as_entry(raw) -> UpdateEntry:
    if isinstance(raw, UpdateEntry):
        return raw
    return UpdateEntry(item_id=raw.get('itemId'), counted_qty=raw.get('countedQty'), notes=raw.get('notes'))


def _reject(item_id, code: str, message: str, field: str) -> ItemUpdateResult:
    error = CountValidationError([CountError(code=code, message=message, field=field)])
    logger.warning('Rejected count entry for item %s: %s', item_id, error)
    return ItemUpdateResult(item_id=str(item_id) if item_id is not None else '', accepted=False, error=error.errors[0])


def _lock_for_entry(db: Session, *, count_id: str) -> CountSession:
    count_session = get_count_session(db, count_id=count_id)
    if count_session.status == CountStatus.DRAFT:
        # The first batch flips draft -> open, so it needs the row exclusively.
        lock = {'key_share': True}
    else:
        lock = {'read': True}
    locked = db.execute(
        select(CountSession)
        .where(CountSession.id == count_id)
        .with_for_update(**lock)
        .execution_options(populate_existing=True)
    ).scalar_one()
    return locked


def update_count_items(
    db: Session,
    *,
    count_id: str,
    actor: str,
    updates: list,
    now: datetime | None = None,
) -> UpdateResult:
    count_session = _lock_for_entry(db, count_id=count_id)
    if count_session.status in TERMINAL_STATUSES:
        logger.warning('Rejected update against %s count %s', count_session.status.value, count_id)
        raise CountStateError(count_id, count_session.status.value, 'update')

    entries = [_as_entry(raw) for raw in updates]
    wanted_ids = {entry.item_id for entry in entries if isinstance(entry.item_id, str)}
    items_by_id = {
        item.item_id: item
        for item in db.execute(
            select(CountItem).where(CountItem.session_id == count_id, CountItem.item_id.in_(wanted_ids))
        ).scalars().all()
    } if wanted_ids else {}

    stamped_at = now or _now()
    threshold = default_threshold()
    results: list[ItemUpdateResult] = []
    changed: list[dict] = []

    for entry in entries:
        if not isinstance(entry.item_id, str) or not entry.item_id.strip():
            results.append(_reject(entry.item_id, 'REQUIRED', 'itemId is required', 'itemId'))
            continue
        try:
            qty = _parse_counted_qty(entry.counted_qty)
        except ValueError as exc:
            results.append(_reject(entry.item_id, 'INVALID_QUANTITY', str(exc), 'countedQty'))
            continue
        if entry.notes is not None and not isinstance(entry.notes, str):
            results.append(_reject(entry.item_id, 'INVALID_NOTES', 'notes must be a string', 'notes'))
            continue

        item = items_by_id.get(entry.item_id)
        if item is None:
            results.append(_reject(entry.item_id, 'ITEM_NOT_FOUND', str(CountNotFoundError(count_id, entry.item_id)), 'itemId'))
            continue

        previous = item.counted_qty
        qty_changed = previous is None or Decimal(previous) != qty
        new_notes = (entry.notes.strip() or None) if entry.notes is not None else item.notes
        notes_changed = new_notes != item.notes

        if qty_changed:
            variance = compute_item_variance(
                counted_qty=qty,
                snapshot_qty=item.snapshot_qty,
                snapshot_avg_cost=item.snapshot_avg_cost,
                threshold_percent=threshold,
            )
            if max(abs(variance.variance_value), abs(variance.variance_percentage)) > MAX_VARIANCE:
                results.append(
                    _reject(entry.item_id, 'INVALID_QUANTITY', 'countedQty produces a variance out of range', 'countedQty')
                )
                continue
            item.counted_qty = qty
            item.counted_by = actor
            item.counted_at = stamped_at
            item.variance_qty = variance.variance_qty
            item.variance_value = variance.variance_value
            item.variance_percentage = variance.variance_percentage
            item.has_discrepancy = variance.has_discrepancy
            changed.append(
                {
                    'itemId': item.item_id,
                    'countedQty': str(qty),
                    'previousCountedQty': str(previous) if previous is not None else None,
                }
            )
        if notes_changed:
            item.notes = new_notes
        if qty_changed or notes_changed:
            item.updated_at = stamped_at

        results.append(ItemUpdateResult(item_id=item.item_id, accepted=True))

    accepted = [result for result in results if result.accepted]
    if accepted and count_session.status == CountStatus.DRAFT:
        opened = db.execute(
            update(CountSession)
            .where(CountSession.id == count_id, CountSession.status == CountStatus.DRAFT)
            .values(status=CountStatus.OPEN)
            .execution_options(synchronize_session=False)
        )
        if opened.rowcount:
            logger.info('Count %s opened by %s', count_id, actor)
        db.refresh(count_session)

    if changed:
        record_event(db, CountItemsUpdated(count_id=count_id, updated_by=actor, items_updated=changed), occurred_at=stamped_at)

    db.flush()
    totals = session_totals(db, count_ids=[count_id])[count_id]
    logger.info(
        'Applied %s/%s count entries to %s (%s changed)', len(accepted), len(results), count_id, len(changed)
    )
    return UpdateResult(
        count_id=count_id,
        status=count_session.status,
        updated_count=len(accepted),
        results=results,
        totals=totals,
    )


# -- submission & cancellation -------------------------------------------------------


def validate_submission(count_session: CountSession, items: list[CountItem]) -> dict:
    errors: list[str] = []
    warnings: list[str] = []

    if count_session.status not in ACTIVE_STATUSES:
        errors.append('Count must be in draft or open status to submit')

    counted = [item for item in items if item.counted_qty is not None]
    if not counted:
        errors.append('At least one item must be counted before submission')

    threshold = default_threshold()
    over_percent = [item for item in counted if abs(Decimal(item.variance_percentage)) > threshold]
    if over_percent:
        warnings.append(f'{len(over_percent)} items have variances exceeding {threshold.normalize():f}%')

    value_limit = Decimal(str(settings.auto_approve_variance_value))
    over_value = [item for item in counted if abs(Decimal(item.variance_value)) > value_limit]
    if over_value:
        warnings.append(f'{len(over_value)} items have variances exceeding ${value_limit.normalize():f}')

    return {'isValid': not errors, 'errors': errors, 'warnings': warnings}


def _adjustment_rows(items: list[CountItem]) -> list[dict]:
    return [
        {
            'itemId': item.item_id,
            'sku': item.sku,
            'name': item.name,
            'adjustmentQty': round2(item.variance_qty),
            'adjustmentValue': round2(item.variance_value),
            'newStockLevel': Decimal(item.counted_qty),
        }
        for item in items
        if item.counted_qty is not None and item.variance_qty != 0
    ]


def submit_count(
    db: Session,
    *,
    count_id: str,
    actor: str,
    confirmation: bool = False,
    submission_notes: str | None = None,
    variance_threshold: float | Decimal | None = None,
    now: datetime | None = None,
) -> SubmissionResult:
    count_session = get_count_session(db, count_id=count_id)
    if count_session.status in TERMINAL_STATUSES:
        logger.warning('Rejected submission of %s count %s', count_session.status.value, count_id)
        raise CountStateError(count_id, count_session.status.value, 'submit')

    items = list_count_items(db, count_id=count_id)
    counted = [item for item in items if item.counted_qty is not None]
    if not counted:
        raise CountSubmissionError(
            'At least one item must be counted before submission',
            items=items,
            errors=[
                CountError(code='NO_ITEMS_COUNTED', message='At least one item must be counted before submission')
            ],
        )

    # A zero threshold means no confirmation gate.
    if variance_threshold:
        limit = Decimal(str(variance_threshold))
        large = [item for item in counted if abs(Decimal(item.variance_percentage)) > limit]
        if large and not confirmation:
            raise CountSubmissionError(
                f'{len(large)} items have variances exceeding {limit.normalize():f}%',
                items=large,
                errors=[
                    CountError(
                        code='CONFIRMATION_REQUIRED',
                        message='Large variances must be confirmed before submission',
                        field='confirmation',
                    )
                ],
            )

    closed_at = now or _now()
    batch_id = generate_adjustment_batch_id(count_id, closed_at)
    duration = int((closed_at - _as_utc(count_session.created_at)).total_seconds() // 60)

    # Compare-and-set: only one submitter can move the row out of draft/open.
    closed = db.execute(
        update(CountSession)
        .where(CountSession.id == count_id, CountSession.status.in_(ACTIVE_STATUSES))
        .values(
            status=CountStatus.CLOSED,
            closed_by=actor,
            closed_at=closed_at,
            submitted_at=closed_at,
            last_saved_at=closed_at,
            adjustment_batch_id=batch_id,
            submission_notes=submission_notes,
            actual_duration_minutes=max(duration, 0),
        )
        .execution_options(synchronize_session=False)
    )
    if closed.rowcount != 1:
        db.refresh(count_session)
        logger.warning('Count %s was closed concurrently; submission rejected', count_id)
        raise CountStateError(count_id, count_session.status.value, 'submit')
    db.refresh(count_session)

    # Re-read after winning the row so entries committed before the lock are included.
    items = db.execute(
        select(CountItem)
        .where(CountItem.session_id == count_id)
        .order_by(CountItem.position.asc())
        .execution_options(populate_existing=True)
    ).scalars().all()
    adjustments = _adjustment_rows(items)
    totals = reduce_totals(items)

    db.add_all(
        [
            CountAdjustment(
                batch_id=batch_id,
                session_id=count_id,
                branch_id=count_session.branch_id,
                item_id=row['itemId'],
                sku=row['sku'],
                name=row['name'],
                adjustment_qty=row['adjustmentQty'],
                adjustment_value=row['adjustmentValue'],
                new_stock_level=row['newStockLevel'],
            )
            for row in adjustments
        ]
    )

    summary = {
        'totalAdjustments': len(adjustments),
        'totalVarianceValue': totals.variance_value,
        'positiveAdjustments': sum(1 for row in adjustments if row['adjustmentValue'] > 0),
        'negativeAdjustments': sum(1 for row in adjustments if row['adjustmentValue'] < 0),
    }

    record_event(
        db,
        CountSubmitted(
            count_id=count_id,
            branch_id=count_session.branch_id,
            adjustment_batch_id=batch_id,
            total_variance_value=totals.variance_value,
            adjustment_count=len(adjustments),
            submitted_by=actor,
        ),
        occurred_at=closed_at,
    )
    db.flush()
    logger.info('Count %s submitted by %s: batch %s with %s adjustments', count_id, actor, batch_id, len(adjustments))
    return SubmissionResult(count_id=count_id, adjustment_batch_id=batch_id, adjustments=adjustments, summary=summary)


def cancel_count(
    db: Session,
    *,
    count_id: str,
    actor: str,
    reason: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> CountSession:
    clean_reason = (reason or '').strip()
    if not clean_reason:
        raise CountValidationError([CountError(code='REQUIRED', message='A cancellation reason is required', field='reason')])

    count_session = get_count_session(db, count_id=count_id)
    if count_session.status in TERMINAL_STATUSES:
        logger.warning('Rejected cancellation of %s count %s', count_session.status.value, count_id)
        raise CountStateError(count_id, count_session.status.value, 'cancel')

    cancel_note = f'Cancelled: {clean_reason}'
    if notes and notes.strip():
        cancel_note = f'{cancel_note}\n{notes.strip()}'
    session_notes = f'{count_session.notes}\n\n{cancel_note}' if count_session.notes else cancel_note

    cancelled_at = now or _now()
    cancelled = db.execute(
        update(CountSession)
        .where(CountSession.id == count_id, CountSession.status.in_(ACTIVE_STATUSES))
        .values(
            status=CountStatus.CANCELLED,
            closed_by=actor,
            closed_at=cancelled_at,
            last_saved_at=cancelled_at,
            cancel_reason=clean_reason,
            notes=session_notes,
        )
        .execution_options(synchronize_session=False)
    )
    db.refresh(count_session)
    if cancelled.rowcount != 1:
        logger.warning('Count %s left draft/open concurrently; cancellation rejected', count_id)
        raise CountStateError(count_id, count_session.status.value, 'cancel')

    record_event(
        db,
        CountCancelled(count_id=count_id, branch_id=count_session.branch_id, reason=clean_reason, cancelled_by=actor),
        occurred_at=cancelled_at,
    )
    db.flush()
    logger.info('Count %s cancelled by %s: %s', count_id, actor, clean_reason)
    return count_session
