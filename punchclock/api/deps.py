from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from punchclock.core.clock import utc_now
from punchclock.core.security import safe_decode_token
from punchclock.db.session import get_db
from punchclock.schemas.auth import DEVICE_ROLE, STAFF_ROLES, CurrentPrincipal

bearer_scheme = HTTPBearer(auto_error=False)

# Punch decisions read "now" through this dependency so tests can pin it.
Clock = Callable[[], datetime]


def db_session() -> Session:
    return Depends(get_db)  # type: ignore[return-value]


def get_clock() -> Clock:
    return utc_now


def principal_from_token(token: str | None) -> CurrentPrincipal | None:
    payload = safe_decode_token(token) if token else None
    if not payload or not payload.get("sub") or not payload.get("role"):
        return None
    return CurrentPrincipal(
        subject=str(payload["sub"]),
        role=str(payload["role"]),
        device_id=payload.get("device_id"),
    )


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentPrincipal:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token.")
    principal = principal_from_token(credentials.credentials)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")
    return principal


def require_roles(*allowed_roles: str) -> Callable[[CurrentPrincipal], CurrentPrincipal]:
    allowed = set(allowed_roles)

    def _checker(principal: CurrentPrincipal = Depends(get_current_principal)) -> CurrentPrincipal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role.")
        return principal

    return _checker


def ensure_self_or_staff(principal: CurrentPrincipal, worker_id: uuid.UUID, allow_devices: bool = False) -> None:
    """Workers may read their own data only; staff may read anyone's."""
    if principal.role in STAFF_ROLES or (allow_devices and principal.role == DEVICE_ROLE):
        return
    if principal.is_worker and principal.subject == str(worker_id):
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role.")
