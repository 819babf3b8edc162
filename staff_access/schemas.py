from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StaffLoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=1024)


class StaffProfileRead(BaseModel):
    id: int
    name: str
    email: str
    role: str
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)


class StaffLoginResponse(BaseModel):
    token: str
    expires_at: datetime
    user: StaffProfileRead


class StaffMeResponse(BaseModel):
    user: StaffProfileRead


class SuccessResponse(BaseModel):
    success: bool = True


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")
    confirm_new_password: str = Field(alias="confirmNewPassword")

    model_config = ConfigDict(populate_by_name=True)


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Role name cannot be empty")
        return stripped


class RoleRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionCreate(BaseModel):
    code: str = Field(min_length=1, max_length=100)
    description: str | None = None

    @field_validator("code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Permission code cannot be empty")
        return stripped


class PermissionRead(BaseModel):
    id: int
    code: str
    description: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RolePermissionAssignRequest(BaseModel):
    role_id: int = Field(alias="roleId", ge=1)
    permission_id: int = Field(alias="permissionId", ge=1)

    model_config = ConfigDict(populate_by_name=True)


class RolePermissionAssignResponse(BaseModel):
    role_id: int = Field(serialization_alias="roleId")
    permission_id: int = Field(serialization_alias="permissionId")


class RolePermissionSetRequest(BaseModel):
    role_id: int = Field(alias="roleId", ge=1)
    permission_ids: list[int] = Field(alias="permissionIds", default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class RolePermissionSetResponse(BaseModel):
    role_id: int = Field(serialization_alias="roleId")
    permission_ids: list[int] = Field(serialization_alias="permissionIds")


class RolePermissionMatrixRow(BaseModel):
    role_id: int
    role_name: str
    permission_id: int | None = None
    permission_code: str | None = None


class StaffCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8, max_length=1024)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        normalized = value.strip()
        if "@" not in normalized:
            raise ValueError("Email address is invalid")
        return normalized


class StaffUserRead(BaseModel):
    id: int
    name: str
    email: str
    is_active: bool
    failed_login_attempts: int
    last_login_at: datetime | None = None
    last_failed_login_at: datetime | None = None
    last_logout_at: datetime | None = None
    password_changed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    roles: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class StaffRoleAssignRequest(BaseModel):
    staff_id: int = Field(alias="staffId", ge=1)
    role_id: int = Field(alias="roleId", ge=1)

    model_config = ConfigDict(populate_by_name=True)


class StaffRoleAssignResponse(BaseModel):
    staff_id: int = Field(serialization_alias="staffId")
    role_id: int = Field(serialization_alias="roleId")


class StaffDisableRequest(BaseModel):
    staff_id: int = Field(alias="staffId", ge=1)

    model_config = ConfigDict(populate_by_name=True)


class StaffDisableResponse(BaseModel):
    staff_id: int = Field(serialization_alias="staffId")
    is_active: bool


class StaffResetPasswordRequest(BaseModel):
    staff_id: int = Field(alias="staffId", ge=1)
    new_password: str = Field(alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


class StaffResetPasswordResponse(BaseModel):
    staff_id: int = Field(serialization_alias="staffId")


class StaffActivityLogRead(BaseModel):
    id: int
    staff_id: int | None = None
    action: str
    details: dict[str, Any] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SeedRolesResponse(BaseModel):
    ok: bool
    permissions: int
    roles: dict[str, list[str]]
