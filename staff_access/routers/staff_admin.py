from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from staff_access.db import get_db
from staff_access.schemas import (
    PermissionCreate,
    PermissionRead,
    RoleCreate,
    RolePermissionAssignRequest,
    RolePermissionAssignResponse,
    RolePermissionMatrixRow,
    RolePermissionSetRequest,
    RolePermissionSetResponse,
    RoleRead,
    SeedRolesResponse,
    StaffActivityLogRead,
    StaffCreateRequest,
    StaffDisableRequest,
    StaffDisableResponse,
    StaffResetPasswordRequest,
    StaffResetPasswordResponse,
    StaffRoleAssignRequest,
    StaffRoleAssignResponse,
    StaffUserRead,
)
from staff_access.security import require_staff_permission
from staff_access.services import staff_admin
from staff_access.services.access import StaffContext, seed_standard_roles_and_permissions
from staff_access.services.sessions import reset_password

router = APIRouter(tags=["staff-admin"])

READ_PERMISSION = "users:read"
WRITE_PERMISSION = "users:update"


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@router.get(
    "/api/staff/roles",
    response_model=list[RoleRead],
    dependencies=[Depends(require_staff_permission(READ_PERMISSION))],
)
def list_roles(db: Session = Depends(get_db)) -> list[RoleRead]:
    return staff_admin.list_roles(db)


@router.post(
    "/api/staff/roles",
    response_model=RoleRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff_permission(WRITE_PERMISSION))],
)
def create_role(payload: RoleCreate, db: Session = Depends(get_db)) -> RoleRead:
    return staff_admin.create_role(db, name=payload.name, description=payload.description)


@router.get(
    "/api/staff/permissions",
    response_model=list[PermissionRead],
    dependencies=[Depends(require_staff_permission(READ_PERMISSION))],
)
def list_permissions(db: Session = Depends(get_db)) -> list[PermissionRead]:
    return staff_admin.list_permissions(db)


@router.post(
    "/api/staff/permissions",
    response_model=PermissionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff_permission(WRITE_PERMISSION))],
)
def create_permission(payload: PermissionCreate, db: Session = Depends(get_db)) -> PermissionRead:
    return staff_admin.create_permission(db, code=payload.code, description=payload.description)


@router.get(
    "/api/staff/roles/permissions",
    response_model=list[RolePermissionMatrixRow],
    dependencies=[Depends(require_staff_permission(READ_PERMISSION))],
)
def get_role_permission_matrix(db: Session = Depends(get_db)) -> list[RolePermissionMatrixRow]:
    return staff_admin.get_role_permission_matrix(db)


@router.post(
    "/api/staff/roles/permissions",
    response_model=RolePermissionAssignResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff_permission(WRITE_PERMISSION))],
)
def assign_permission_to_role(
    payload: RolePermissionAssignRequest,
    db: Session = Depends(get_db),
) -> RolePermissionAssignResponse:
    staff_admin.assign_permission_to_role(db, role_id=payload.role_id, permission_id=payload.permission_id)
    return RolePermissionAssignResponse(role_id=payload.role_id, permission_id=payload.permission_id)


@router.put(
    "/api/staff/roles/permissions",
    response_model=RolePermissionSetResponse,
    dependencies=[Depends(require_staff_permission(WRITE_PERMISSION))],
)
def set_role_permissions(
    payload: RolePermissionSetRequest,
    db: Session = Depends(get_db),
) -> RolePermissionSetResponse:
    permission_ids = staff_admin.set_role_permissions(
        db,
        role_id=payload.role_id,
        permission_ids=payload.permission_ids,
    )
    return RolePermissionSetResponse(role_id=payload.role_id, permission_ids=permission_ids)


@router.get(
    "/api/staff/users",
    response_model=list[StaffUserRead],
    dependencies=[Depends(require_staff_permission(READ_PERMISSION))],
)
def list_staff(db: Session = Depends(get_db)) -> list[StaffUserRead]:
    return staff_admin.list_staff(db)


@router.post(
    "/api/staff/users",
    response_model=StaffUserRead,
    status_code=status.HTTP_201_CREATED,
)
def create_staff(
    payload: StaffCreateRequest,
    request: Request,
    context: StaffContext = Depends(require_staff_permission(WRITE_PERMISSION)),
    db: Session = Depends(get_db),
) -> StaffUserRead:
    staff = staff_admin.create_staff(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        actor_staff_id=context.staff_id,
        request_id=_request_id(request),
    )
    return StaffUserRead.model_validate(staff)


@router.post(
    "/api/staff/users/roles",
    response_model=StaffRoleAssignResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_role_to_staff(
    payload: StaffRoleAssignRequest,
    request: Request,
    context: StaffContext = Depends(require_staff_permission(WRITE_PERMISSION)),
    db: Session = Depends(get_db),
) -> StaffRoleAssignResponse:
    staff_admin.assign_role_to_staff(
        db,
        staff_id=payload.staff_id,
        role_id=payload.role_id,
        actor_staff_id=context.staff_id,
        request_id=_request_id(request),
    )
    return StaffRoleAssignResponse(staff_id=payload.staff_id, role_id=payload.role_id)


@router.post("/api/staff/users/disable", response_model=StaffDisableResponse)
def disable_staff(
    payload: StaffDisableRequest,
    request: Request,
    context: StaffContext = Depends(require_staff_permission(WRITE_PERMISSION)),
    db: Session = Depends(get_db),
) -> StaffDisableResponse:
    staff = staff_admin.disable_staff(
        db,
        staff_id=payload.staff_id,
        actor_staff_id=context.staff_id,
        request_id=_request_id(request),
    )
    return StaffDisableResponse(staff_id=staff.id, is_active=staff.is_active)


@router.post("/api/staff/users/reset-password", response_model=StaffResetPasswordResponse)
def reset_staff_password(
    payload: StaffResetPasswordRequest,
    request: Request,
    context: StaffContext = Depends(require_staff_permission(WRITE_PERMISSION)),
    db: Session = Depends(get_db),
) -> StaffResetPasswordResponse:
    reset_password(
        db,
        staff_id=payload.staff_id,
        new_password=payload.new_password,
        actor_staff_id=context.staff_id,
        request_id=_request_id(request),
    )
    return StaffResetPasswordResponse(staff_id=payload.staff_id)


@router.get(
    "/api/staff/activity-logs",
    response_model=list[StaffActivityLogRead],
    dependencies=[Depends(require_staff_permission(READ_PERMISSION))],
)
def list_activity_logs(
    staff_id: int | None = Query(default=None, ge=1),
    action: str | None = Query(default=None, max_length=255),
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    limit: int = Query(default=staff_admin.ACTIVITY_LOG_MAX_LIMIT, ge=1, le=staff_admin.ACTIVITY_LOG_MAX_LIMIT),
    db: Session = Depends(get_db),
) -> list[StaffActivityLogRead]:
    return staff_admin.list_activity_logs(
        db,
        staff_id=staff_id,
        action=action,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )


@router.post(
    "/api/staff/seed-standard-roles",
    response_model=SeedRolesResponse,
    dependencies=[Depends(require_staff_permission(WRITE_PERMISSION))],
)
def seed_standard_roles(db: Session = Depends(get_db)) -> SeedRolesResponse:
    return SeedRolesResponse(**seed_standard_roles_and_permissions(db).to_dict())
