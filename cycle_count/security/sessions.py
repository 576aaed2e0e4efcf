"""Bearer API tokens: issuing, revoking and resolving them to a principal."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from cycle_count.auth import Principal, Role
from cycle_count.config import settings
from cycle_count.models import ApiSession
from cycle_count.models import Principal as PrincipalModel

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _token_lifetime() -> timedelta:
    return timedelta(minutes=settings.session_ttl_minutes)


def request_token(request: Request) -> str | None:
    """Token from `Authorization: Bearer ...`, falling back to the session cookie."""
    scheme, _, credentials = (request.headers.get('authorization') or '').partition(' ')
    if scheme.lower() == 'bearer' and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.session_cookie_name)


def issue_api_token(
    db: Session,
    *,
    principal_id: int,
    ip: str | None = None,
    user_agent: str | None = None,
    token: str | None = None,
) -> str:
    issued = ApiSession(
        session_token=token or secrets.token_urlsafe(48),
        principal_id=principal_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_utcnow() + _token_lifetime(),
    )
    db.add(issued)
    db.flush()
    return issued.session_token


def revoke_api_token(db: Session, *, token: str) -> bool:
    issued = db.execute(select(ApiSession).where(ApiSession.session_token == token)).scalar_one_or_none()
    if issued is None or issued.revoked_at is not None:
        return False
    issued.revoked_at = _utcnow()
    logger.info('Revoked API token for principal %s', issued.principal_id)
    return True


def resolve_api_token(db: Session, token: str | None) -> Principal | None:
    """Principal behind a live token. Each use pushes the expiry out again."""
    if not token:
        return None

    found = db.execute(
        select(ApiSession, PrincipalModel)
        .join(PrincipalModel, PrincipalModel.id == ApiSession.principal_id)
        .where(ApiSession.session_token == token, ApiSession.revoked_at.is_(None))
    ).one_or_none()
    if found is None:
        return None

    issued, account = found
    now = _utcnow()
    if _aware(issued.expires_at) <= now:
        return None

    issued.last_seen_at = now
    issued.expires_at = now + _token_lifetime()
    return Principal(
        id=account.id,
        username=account.username,
        role=Role(account.role),
        branch_id=account.branch_id,
        active=account.active,
    )
