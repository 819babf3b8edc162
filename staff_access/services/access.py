from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, delete, func, insert, select
from sqlalchemy.orm import Session

from staff_access.models import (
    Permission,
    Role,
    RolePermission,
    StaffRole,
    StaffSession,
    StaffUser,
)
from staff_access.schemas import StaffProfileRead

logger = logging.getLogger("staff_access.access")

# Shown when a staff member has no roles at all. Never consulted for authorization.
DEFAULT_DISPLAY_ROLE = "admin"

STANDARD_PERMISSION_CODES: tuple[str, ...] = (
    "products:read",
    "products:update",
    "orders:read",
    "orders:update",
    "shipping:read",
    "shipping:update",
    "invoices:read",
    "returns:read",
    "returns:update",
    "returns:create",
    "analytics:read",
    "marketing:read",
    "users:read",
    "users:update",
    "cms:read",
    "payments:read",
    "pos:read",
    "pos:update",
)

STANDARD_ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": STANDARD_PERMISSION_CODES,
    "manager": (
        "products:read",
        "products:update",
        "orders:read",
        "orders:update",
        "shipping:read",
        "shipping:update",
        "invoices:read",
        "returns:read",
        "returns:update",
        "analytics:read",
        "marketing:read",
        "users:read",
    ),
    "staff": (
        "orders:read",
        "orders:update",
        "shipping:read",
        "shipping:update",
        "invoices:read",
        "returns:read",
        "returns:update",
    ),
    "viewer": (
        "products:read",
        "orders:read",
        "analytics:read",
    ),
}


@dataclass(frozen=True, slots=True)
class StaffAccess:
    staff: StaffUser
    roles: tuple[str, ...]
    permissions: tuple[str, ...]

    @property
    def primary_role(self) -> str:
        return primary_role_for(self.roles)


@dataclass(frozen=True, slots=True)
class SessionAccess:
    session: StaffSession
    staff: StaffUser
    roles: tuple[str, ...]
    permissions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StaffContext:
    """Request-scoped identity handed to route handlers by ``require_staff``."""

    staff_id: int
    session_id: int
    token: str
    name: str
    email: str
    roles: tuple[str, ...]
    permissions: frozenset[str]
    primary_role: str

    def has_permission(self, code: str) -> bool:
        return code in self.permissions


@dataclass(frozen=True, slots=True)
class SeedResult:
    permissions: int
    roles: dict[str, tuple[str, ...]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "permissions": self.permissions,
            "roles": {name: list(codes) for name, codes in self.roles.items()},
        }


def primary_role_for(roles: Iterable[str]) -> str:
    for role in roles:
        return role
    return DEFAULT_DISPLAY_ROLE


def _fold_names(values: Iterable[str | None]) -> tuple[str, ...]:
    return tuple(sorted({value for value in values if value}))


def _with_access_joins(stmt: Select[Any]) -> Select[Any]:
    return (
        stmt.outerjoin(StaffRole, StaffRole.staff_id == StaffUser.id)
        .outerjoin(Role, Role.id == StaffRole.role_id)
        .outerjoin(RolePermission, RolePermission.role_id == Role.id)
        .outerjoin(Permission, Permission.id == RolePermission.permission_id)
    )


def fetch_staff_with_access(
    db: Session,
    *,
    staff_id: int | None = None,
    email: str | None = None,
) -> StaffAccess | None:
    if (staff_id is None) == (email is None):
        raise ValueError("Exactly one of staff_id or email is required.")

    stmt = _with_access_joins(select(StaffUser, Role.name, Permission.code).select_from(StaffUser))
    if email is not None:
        stmt = stmt.where(func.lower(StaffUser.email) == email.strip().lower())
    else:
        stmt = stmt.where(StaffUser.id == staff_id)

    rows = db.execute(stmt).all()
    if not rows:
        return None
    return StaffAccess(
        staff=rows[0][0],
        roles=_fold_names(row[1] for row in rows),
        permissions=_fold_names(row[2] for row in rows),
    )


def fetch_session_with_access(db: Session, token: str) -> SessionAccess | None:
    stmt = _with_access_joins(
        select(StaffSession, StaffUser, Role.name, Permission.code)
        .select_from(StaffSession)
        .join(StaffUser, StaffUser.id == StaffSession.staff_id)
    ).where(StaffSession.token == token)

    rows = db.execute(stmt).all()
    if not rows:
        return None
    return SessionAccess(
        session=rows[0][0],
        staff=rows[0][1],
        roles=_fold_names(row[2] for row in rows),
        permissions=_fold_names(row[3] for row in rows),
    )


def build_staff_profile(access: StaffAccess) -> StaffProfileRead:
    return StaffProfileRead(
        id=access.staff.id,
        name=access.staff.name,
        email=access.staff.email,
        role=access.primary_role,
        roles=list(access.roles),
        permissions=list(access.permissions),
    )


def _ensure_permission(db: Session, code: str) -> Permission:
    permission = db.scalar(select(Permission).where(Permission.code == code))
    if permission is None:
        permission = Permission(code=code)
        db.add(permission)
        db.flush()
    return permission


def _ensure_role(db: Session, name: str) -> Role:
    role = db.scalar(select(Role).where(Role.name == name))
    if role is None:
        role = Role(name=name)
        db.add(role)
        db.flush()
    return role


def seed_standard_roles_and_permissions(db: Session) -> SeedResult:
    """Install the standard permission catalogue and role mapping.

    Each standard role's permission set is replaced wholesale. Everything
    happens in one transaction: a failure at any step rolls the whole
    catalogue back, so readers only ever observe the old or the new mapping.
    """
    try:
        permission_ids = {code: _ensure_permission(db, code).id for code in STANDARD_PERMISSION_CODES}
        for role_name, codes in STANDARD_ROLE_PERMISSIONS.items():
            role = _ensure_role(db, role_name)
            db.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
            db.execute(
                insert(RolePermission),
                [{"role_id": role.id, "permission_id": permission_ids[code]} for code in dict.fromkeys(codes)],
            )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("standard_roles_seed_failed")
        raise

    logger.info(
        "standard_roles_seeded",
        extra={
            "permission_count": len(STANDARD_PERMISSION_CODES),
            "roles": sorted(STANDARD_ROLE_PERMISSIONS),
        },
    )
    return SeedResult(
        permissions=len(STANDARD_PERMISSION_CODES),
        roles={name: tuple(codes) for name, codes in STANDARD_ROLE_PERMISSIONS.items()},
    )
