from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "staff_users": {
        "id",
        "email",
        "password_hash",
        "is_active",
        "failed_login_attempts",
        "last_failed_login_at",
        "password_changed_at",
    },
    "roles": {"id", "name"},
    "permissions": {"id", "code"},
    "role_permissions": {"role_id", "permission_id"},
    "staff_roles": {"staff_id", "role_id"},
    "staff_sessions": {"id", "staff_id", "token", "expires_at", "revoked_at"},
    "staff_activity_logs": {"id", "staff_id", "action", "details", "created_at"},
    "alembic_version": {"version_num"},
}

REQUIRED_UNIQUE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("staff_users", "email"),
    ("roles", "name"),
    ("permissions", "code"),
    ("staff_sessions", "token"),
)


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, column_name in REQUIRED_UNIQUE_COLUMNS:
        try:
            unique_sets = [
                tuple(item.get("column_names") or ())
                for item in inspector.get_unique_constraints(table_name)
            ]
            unique_sets.extend(
                tuple(item.get("column_names") or ())
                for item in inspector.get_indexes(table_name)
                if item.get("unique")
            )
        except Exception as exc:  # pragma: no cover
            warnings.append(f"UNIQUE_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue
        if (column_name,) not in unique_sets:
            issues.append(f"MISSING_UNIQUE:{table_name}:{column_name}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
    except Exception as exc:  # pragma: no cover
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
