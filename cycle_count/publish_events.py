from __future__ import annotations

import argparse
import json
import logging

from cycle_count.db import SessionLocal
from cycle_count.services.event_service import list_unpublished_events, mark_published

logger = logging.getLogger(__name__)


def drain_events(db, *, limit: int, dry_run: bool = False) -> list[dict]:
    """Emit pending count events as JSON lines and mark them published."""
    rows = list_unpublished_events(db, limit=limit)
    envelopes = [
        {
            'id': row.id,
            'type': row.event_type,
            'aggregateId': row.aggregate_id,
            'occurredAt': row.occurred_at.isoformat(),
            'payload': row.payload,
        }
        for row in rows
    ]
    if rows and not dry_run:
        published = mark_published(db, event_ids=[row.id for row in rows])
        logger.info('Marked %s count events as published', published)
    return envelopes


def main() -> None:
    parser = argparse.ArgumentParser(description='Publish pending inventory count events as JSON lines.')
    parser.add_argument('--limit', type=int, default=100, help='Maximum number of events to publish.')
    parser.add_argument('--dry-run', action='store_true', help='Print events without marking them published.')
    args = parser.parse_args()

    with SessionLocal() as db:
        envelopes = drain_events(db, limit=args.limit, dry_run=args.dry_run)
        db.commit()
    for envelope in envelopes:
        print(json.dumps(envelope))
    print(f'Count event publish complete: events={len(envelopes)}, dry_run={args.dry_run}')


if __name__ == '__main__':
    main()
