from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from staff_access.audit import log_staff_activity
from staff_access.errors import (
    InvalidCredentials,
    InvalidCurrentPassword,
    NotFound,
    ValidationError,
)
from staff_access.models import StaffSession, StaffUser
from staff_access.passwords import hash_password, verify_dummy_password, verify_password
from staff_access.schemas import StaffProfileRead
from staff_access.services.access import (
    StaffContext,
    build_staff_profile,
    fetch_session_with_access,
    fetch_staff_with_access,
    primary_role_for,
)
from staff_access.settings import get_session_ttl_hours, get_settings

logger = logging.getLogger("staff_access.sessions")

TOKEN_RANDOM_BYTES = 48
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True, slots=True)
class ClientInfo:
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LoginResult:
    token: str
    session_id: int
    expires_at: datetime
    user: StaffProfileRead


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_session_token() -> str:
    return f"{get_settings().staff_token_prefix}{secrets.token_hex(TOKEN_RANDOM_BYTES)}"


def _validate_new_password(new_password: str) -> None:
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters long.")


def login(db: Session, *, email: str, password: str, client: ClientInfo | None = None) -> LoginResult:
    client = client or ClientInfo()
    email = (email or "").strip()
    if not email or not password:
        raise ValidationError("Email and password are required.")

    access = fetch_staff_with_access(db, email=email)
    if access is None or not access.staff.is_active:
        verify_dummy_password(password)
        logger.info(
            "staff_login_rejected",
            extra={"request_id": client.request_id, "reason": "UNKNOWN_OR_INACTIVE"},
        )
        raise InvalidCredentials()

    staff = access.staff
    now = _utcnow()
    if not verify_password(staff.password_hash, password):
        db.execute(
            update(StaffUser)
            .where(StaffUser.id == staff.id)
            .values(
                failed_login_attempts=StaffUser.failed_login_attempts + 1,
                last_failed_login_at=now,
                updated_at=now,
            )
        )
        db.commit()
        log_staff_activity(
            db,
            staff_id=staff.id,
            action="login_failed",
            details={"email": email},
            request_id=client.request_id,
        )
        raise InvalidCredentials()

    token = generate_session_token()
    expires_at = now + timedelta(hours=get_session_ttl_hours())
    metadata = {"source": get_settings().staff_session_source}
    metadata.update(client.metadata)
    session_row = StaffSession(
        staff_id=staff.id,
        token=token,
        user_agent=client.user_agent,
        ip_address=client.ip_address,
        session_metadata=metadata,
        created_at=now,
        expires_at=expires_at,
    )
    db.add(session_row)

    staff.failed_login_attempts = 0
    staff.last_login_at = now
    staff.updated_at = now
    if staff.password_changed_at is None:
        staff.password_changed_at = now
    db.commit()

    log_staff_activity(
        db,
        staff_id=staff.id,
        action="login",
        details={"ip_address": client.ip_address},
        request_id=client.request_id,
    )
    return LoginResult(
        token=token,
        session_id=session_row.id,
        expires_at=expires_at,
        user=build_staff_profile(access),
    )


def resolve_session(db: Session, token: str | None, *, now: datetime | None = None) -> StaffContext | None:
    """Return the live session behind ``token`` or ``None``.

    Unknown, revoked and expired tokens and deactivated owners all collapse
    into ``None``; expiry is evaluated here, lazily, against ``now``.
    """
    if not token:
        return None
    found = fetch_session_with_access(db, token)
    if found is None:
        return None
    if not found.staff.is_active:
        return None
    if found.session.revoked_at is not None:
        return None
    if _as_utc(found.session.expires_at) <= (now or _utcnow()):
        return None

    return StaffContext(
        staff_id=found.staff.id,
        session_id=found.session.id,
        token=found.session.token,
        name=found.staff.name,
        email=found.staff.email,
        roles=found.roles,
        permissions=frozenset(found.permissions),
        primary_role=primary_role_for(found.roles),
    )


def logout(db: Session, *, staff_id: int, session_id: int, request_id: str | None = None) -> None:
    now = _utcnow()
    db.execute(
        update(StaffSession)
        .where(StaffSession.id == session_id, StaffSession.revoked_at.is_(None))
        .values(revoked_at=now)
    )
    db.execute(
        update(StaffUser)
        .where(StaffUser.id == staff_id)
        .values(last_logout_at=now, updated_at=now)
    )
    db.commit()
    log_staff_activity(db, staff_id=staff_id, action="logout", request_id=request_id)


def change_password(
    db: Session,
    *,
    staff_id: int,
    session_id: int,
    current_password: str | None,
    new_password: str | None,
    confirm_new_password: str | None,
    request_id: str | None = None,
) -> int:
    """Replace the caller's password and revoke their other live sessions.

    Returns the number of sessions revoked. The session identified by
    ``session_id`` is left untouched.
    """
    if not current_password or not new_password or not confirm_new_password:
        raise ValidationError("currentPassword, newPassword and confirmNewPassword are required.")
    _validate_new_password(new_password)
    if new_password != confirm_new_password:
        raise ValidationError("New password and confirmation do not match.")

    staff = db.get(StaffUser, staff_id)
    if staff is None:
        raise NotFound("Staff account not found.")

    if not verify_password(staff.password_hash, current_password):
        log_staff_activity(db, staff_id=staff_id, action="password_change_failed", request_id=request_id)
        raise InvalidCurrentPassword()

    now = _utcnow()
    try:
        staff.password_hash = hash_password(new_password)
        staff.password_changed_at = now
        staff.updated_at = now
        result = db.execute(
            update(StaffSession)
            .where(
                StaffSession.staff_id == staff_id,
                StaffSession.id != session_id,
                StaffSession.revoked_at.is_(None),
            )
            .values(revoked_at=now)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    revoked = int(result.rowcount or 0)
    log_staff_activity(
        db,
        staff_id=staff_id,
        action="password_changed",
        details={"revoked_sessions": revoked},
        request_id=request_id,
    )
    return revoked


def reset_password(
    db: Session,
    *,
    staff_id: int,
    new_password: str | None,
    actor_staff_id: int | None = None,
    request_id: str | None = None,
) -> None:
    """Administrative reset without the current password.

    Callers are responsible for checking that the actor holds ``users:update``.
    """
    if not new_password:
        raise ValidationError("newPassword is required.")
    _validate_new_password(new_password)

    staff = db.get(StaffUser, staff_id)
    if staff is None:
        raise NotFound("Staff not found.")

    now = _utcnow()
    staff.password_hash = hash_password(new_password)
    staff.password_changed_at = now
    staff.updated_at = now
    db.commit()

    log_staff_activity(
        db,
        staff_id=staff_id,
        action="reset_password",
        details={"actor_staff_id": actor_staff_id},
        request_id=request_id,
    )
