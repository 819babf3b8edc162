from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import String, delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from staff_access.audit import log_staff_activity
from staff_access.errors import Conflict, NotFound, ValidationError
from staff_access.models import (
    Permission,
    Role,
    RolePermission,
    StaffActivityLog,
    StaffRole,
    StaffUser,
)
from staff_access.passwords import hash_password
from staff_access.schemas import RolePermissionMatrixRow, StaffUserRead

logger = logging.getLogger("staff_access.staff_admin")

ACTIVITY_LOG_MAX_LIMIT = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_role(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if role is None:
        raise NotFound("Role not found.")
    return role


def _require_permission(db: Session, permission_id: int) -> Permission:
    permission = db.get(Permission, permission_id)
    if permission is None:
        raise NotFound("Permission not found.")
    return permission


def _require_staff(db: Session, staff_id: int) -> StaffUser:
    staff = db.get(StaffUser, staff_id)
    if staff is None:
        raise NotFound("Staff not found.")
    return staff


def create_role(db: Session, *, name: str, description: str | None = None) -> Role:
    if db.scalar(select(Role.id).where(Role.name == name)) is not None:
        raise Conflict("Role name already exists.")
    role = Role(name=name, description=description)
    db.add(role)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Role name already exists.") from exc
    db.refresh(role)
    return role


def list_roles(db: Session) -> list[Role]:
    return list(db.scalars(select(Role).order_by(Role.name.asc())).all())


def create_permission(db: Session, *, code: str, description: str | None = None) -> Permission:
    if db.scalar(select(Permission.id).where(Permission.code == code)) is not None:
        raise Conflict("Permission code already exists.")
    permission = Permission(code=code, description=description)
    db.add(permission)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Permission code already exists.") from exc
    db.refresh(permission)
    return permission


def list_permissions(db: Session) -> list[Permission]:
    return list(db.scalars(select(Permission).order_by(Permission.code.asc())).all())


def assign_permission_to_role(db: Session, *, role_id: int, permission_id: int) -> None:
    _require_role(db, role_id)
    _require_permission(db, permission_id)
    existing = db.get(RolePermission, (role_id, permission_id))
    if existing is not None:
        return
    db.add(RolePermission(role_id=role_id, permission_id=permission_id))
    db.commit()


def set_role_permissions(db: Session, *, role_id: int, permission_ids: list[int]) -> list[int]:
    """Replace a role's permission set in a single transaction."""
    _require_role(db, role_id)
    unique_ids = list(dict.fromkeys(permission_ids))
    if unique_ids:
        found = set(db.scalars(select(Permission.id).where(Permission.id.in_(unique_ids))).all())
        missing = [pid for pid in unique_ids if pid not in found]
        if missing:
            raise NotFound(f"Permission not found: {', '.join(str(pid) for pid in missing)}.")

    try:
        db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        if unique_ids:
            db.execute(
                insert(RolePermission),
                [{"role_id": role_id, "permission_id": pid} for pid in unique_ids],
            )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("role_permissions_replace_failed", extra={"role_id": role_id})
        raise
    return unique_ids


def get_role_permission_matrix(db: Session) -> list[RolePermissionMatrixRow]:
    stmt = (
        select(Role.id, Role.name, Permission.id, Permission.code)
        .select_from(Role)
        .outerjoin(RolePermission, RolePermission.role_id == Role.id)
        .outerjoin(Permission, Permission.id == RolePermission.permission_id)
        .order_by(Role.name.asc(), Permission.code.asc())
    )
    return [
        RolePermissionMatrixRow(
            role_id=role_id,
            role_name=role_name,
            permission_id=permission_id,
            permission_code=permission_code,
        )
        for role_id, role_name, permission_id, permission_code in db.execute(stmt).all()
    ]


def create_staff(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    actor_staff_id: int | None = None,
    request_id: str | None = None,
) -> StaffUser:
    name = name.strip()
    email = email.strip()
    if not name or not email or not password:
        raise ValidationError("name, email and password are required.")
    duplicate = db.scalar(select(StaffUser.id).where(func.lower(StaffUser.email) == email.lower()))
    if duplicate is not None:
        raise Conflict("Staff email already exists.")

    staff = StaffUser(
        name=name,
        email=email,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(staff)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Staff email already exists.") from exc
    db.refresh(staff)

    log_staff_activity(
        db,
        staff_id=staff.id,
        action="staff_create",
        details={"email": staff.email, "actor_staff_id": actor_staff_id},
        request_id=request_id,
    )
    return staff


def assign_role_to_staff(
    db: Session,
    *,
    staff_id: int,
    role_id: int,
    actor_staff_id: int | None = None,
    request_id: str | None = None,
) -> None:
    _require_staff(db, staff_id)
    _require_role(db, role_id)
    if db.get(StaffRole, (staff_id, role_id)) is None:
        db.add(StaffRole(staff_id=staff_id, role_id=role_id))
        db.commit()

    log_staff_activity(
        db,
        staff_id=staff_id,
        action="assign_role",
        details={"role_id": role_id, "actor_staff_id": actor_staff_id},
        request_id=request_id,
    )


def list_staff(db: Session) -> list[StaffUserRead]:
    staff_rows = list(db.scalars(select(StaffUser).order_by(StaffUser.created_at.desc(), StaffUser.id.desc())).all())
    role_names: dict[int, list[str]] = {}
    if staff_rows:
        stmt = (
            select(StaffRole.staff_id, Role.name)
            .join(Role, Role.id == StaffRole.role_id)
            .where(StaffRole.staff_id.in_([staff.id for staff in staff_rows]))
            .order_by(Role.name.asc())
        )
        for staff_id, role_name in db.execute(stmt).all():
            role_names.setdefault(staff_id, []).append(role_name)

    result: list[StaffUserRead] = []
    for staff in staff_rows:
        item = StaffUserRead.model_validate(staff)
        item.roles = role_names.get(staff.id, [])
        result.append(item)
    return result


def disable_staff(
    db: Session,
    *,
    staff_id: int,
    actor_staff_id: int | None = None,
    request_id: str | None = None,
) -> StaffUser:
    staff = _require_staff(db, staff_id)
    staff.is_active = False
    staff.updated_at = _utcnow()
    db.commit()

    log_staff_activity(
        db,
        staff_id=staff_id,
        action="disable_account",
        details={"actor_staff_id": actor_staff_id},
        request_id=request_id,
    )
    return staff


def list_activity_logs(
    db: Session,
    *,
    staff_id: int | None = None,
    action: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = ACTIVITY_LOG_MAX_LIMIT,
) -> list[StaffActivityLog]:
    stmt = select(StaffActivityLog)
    if staff_id is not None:
        stmt = stmt.where(StaffActivityLog.staff_id == staff_id)
    if action:
        action_text = func.lower(StaffActivityLog.action, type_=String)
        stmt = stmt.where(action_text.contains(action.strip().lower(), autoescape=True))
    if date_from is not None:
        stmt = stmt.where(StaffActivityLog.created_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(StaffActivityLog.created_at <= date_to)

    bounded_limit = max(1, min(int(limit), ACTIVITY_LOG_MAX_LIMIT))
    stmt = stmt.order_by(StaffActivityLog.created_at.desc(), StaffActivityLog.id.desc()).limit(bounded_limit)
    return list(db.scalars(stmt).all())
