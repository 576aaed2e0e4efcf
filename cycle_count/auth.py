from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from cycle_count.db import get_db
from cycle_count.models import PrincipalRole as Role


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    branch_id: str | None
    active: bool


SUPERVISOR_ROLES = (Role.ADMIN, Role.MANAGER, Role.LEAD)


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    from cycle_count.security.sessions import request_token, resolve_api_token

    principal = resolve_api_token(db, request_token(request))
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    db.commit()
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    request.state.principal = principal
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def branch_restriction(principal: Principal) -> str | None:
    """Branch a principal is pinned to, or None when it may see every branch."""
    if principal.role != Role.COUNTER:
        return None
    return principal.branch_id


def assert_branch_scope(principal: Principal, target_branch_id: str) -> None:
    if principal.role != Role.COUNTER:
        return
    if principal.branch_id != target_branch_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
