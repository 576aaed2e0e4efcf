from __future__ import annotations

from sqlalchemy.orm import Session

from cycle_count.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor: str | None,
    action: str,
    count_id: str | None,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor=actor,
            action=action,
            count_id=count_id,
            ip=ip,
            meta=metadata or {},
        )
    )
