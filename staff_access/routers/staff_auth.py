from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from staff_access.db import get_db
from staff_access.errors import NotFound
from staff_access.schemas import (
    ChangePasswordRequest,
    StaffLoginRequest,
    StaffLoginResponse,
    StaffMeResponse,
    SuccessResponse,
)
from staff_access.security import client_ip, require_staff, user_agent
from staff_access.services.access import StaffContext, build_staff_profile, fetch_staff_with_access
from staff_access.services.sessions import ClientInfo, change_password, login, logout

router = APIRouter(tags=["staff-auth"])


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@router.post("/api/staff/auth/login", response_model=StaffLoginResponse)
def staff_login(
    payload: StaffLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> StaffLoginResponse:
    request.state.actor = "system"
    request.state.actor_id = "system"
    result = login(
        db,
        email=payload.email,
        password=payload.password,
        client=ClientInfo(
            ip_address=client_ip(request),
            user_agent=user_agent(request),
            request_id=_request_id(request),
        ),
    )
    request.state.actor = "staff"
    request.state.actor_id = str(result.user.id)
    return StaffLoginResponse(token=result.token, expires_at=result.expires_at, user=result.user)


@router.post("/api/staff/auth/logout", response_model=SuccessResponse)
def staff_logout(
    request: Request,
    context: StaffContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    logout(db, staff_id=context.staff_id, session_id=context.session_id, request_id=_request_id(request))
    return SuccessResponse(success=True)


@router.get("/api/staff/auth/me", response_model=StaffMeResponse)
def staff_me(
    context: StaffContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> StaffMeResponse:
    access = fetch_staff_with_access(db, staff_id=context.staff_id)
    if access is None:
        raise NotFound("Staff account not found.")
    return StaffMeResponse(user=build_staff_profile(access))


@router.post("/api/staff/auth/change-password", response_model=SuccessResponse)
def staff_change_password(
    payload: ChangePasswordRequest,
    request: Request,
    context: StaffContext = Depends(require_staff),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    change_password(
        db,
        staff_id=context.staff_id,
        session_id=context.session_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_new_password=payload.confirm_new_password,
        request_id=_request_id(request),
    )
    return SuccessResponse(success=True)
