from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from staff_access.db import get_db
from staff_access.errors import Forbidden, Unauthenticated
from staff_access.services.access import StaffContext
from staff_access.services.sessions import resolve_session

bearer_scheme = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or None
    if request.client:
        return request.client.host
    return None


def user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def require_staff(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> StaffContext:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials.strip():
        raise Unauthenticated("Staff session token missing.")

    context = resolve_session(db, credentials.credentials.strip())
    if context is None:
        raise Unauthenticated()

    # Only for request logging; handlers receive the typed context directly.
    request.state.actor = "staff"
    request.state.actor_id = str(context.staff_id)
    return context


def require_staff_permission(permission: str) -> Callable[..., StaffContext]:
    if not permission or ":" not in permission:
        raise ValueError(f"Malformed permission code: {permission!r}")

    def _dependency(context: StaffContext = Depends(require_staff)) -> StaffContext:
        if not context.has_permission(permission):
            raise Forbidden()
        return context

    return _dependency
