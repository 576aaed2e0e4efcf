from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from cycle_count.events import CountEventPayload
from cycle_count.models import CountEvent

logger = logging.getLogger(__name__)


def record_event(db: Session, event: CountEventPayload, *, occurred_at: datetime | None = None) -> CountEvent:
    row = CountEvent(
        event_type=event.event_type,
        aggregate_id=event.count_id,
        payload=event.payload(),
        occurred_at=occurred_at or datetime.now(tz=timezone.utc),
    )
    db.add(row)
    logger.info('Recorded %s for count %s', event.event_type, event.count_id)
    return row


def list_events(db: Session, *, count_id: str) -> list[CountEvent]:
    return db.execute(
        select(CountEvent).where(CountEvent.aggregate_id == count_id).order_by(CountEvent.id.asc())
    ).scalars().all()


def list_unpublished_events(db: Session, *, limit: int = 100) -> list[CountEvent]:
    return db.execute(
        select(CountEvent).where(CountEvent.published_at.is_(None)).order_by(CountEvent.id.asc()).limit(limit)
    ).scalars().all()


def mark_published(db: Session, *, event_ids: list[int]) -> int:
    if not event_ids:
        return 0
    now = datetime.now(tz=timezone.utc)
    rows = db.execute(select(CountEvent).where(CountEvent.id.in_(event_ids), CountEvent.published_at.is_(None))).scalars().all()
    for row in rows:
        row.published_at = now
    db.flush()
    return len(rows)
