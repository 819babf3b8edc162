#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0001_staff_access"
REQUIRED_TABLES = (
    "staff_users",
    "roles",
    "permissions",
    "role_permissions",
    "staff_roles",
    "staff_sessions",
    "staff_activity_logs",
)


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing else "ok", {"tables": missing})
        if missing:
            return report

        staff_without_roles = conn.execute(
            text(
                """
                select su.id, su.email
                from staff_users su
                left join staff_roles sr on sr.staff_id = su.id
                where su.is_active = true and sr.staff_id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "active_staff_without_roles",
            "warn" if staff_without_roles else "ok",
            {"rows": [list(row) for row in staff_without_roles]},
        )

        session_counts = conn.execute(
            text(
                """
                select
                    count(*) filter (where revoked_at is null and expires_at > now()) as live,
                    count(*) filter (where revoked_at is null and expires_at <= now()) as expired,
                    count(*) filter (where revoked_at is not null) as revoked
                from staff_sessions
                """
            )
        ).one()
        add(
            "staff_session_counts",
            "ok",
            {"live": session_counts[0], "expired": session_counts[1], "revoked": session_counts[2]},
        )

        locked_looking = conn.execute(
            text(
                """
                select id, email, failed_login_attempts
                from staff_users
                where failed_login_attempts >= 10
                order by failed_login_attempts desc
                limit 20
                """
            )
        ).fetchall()
        add(
            "staff_with_many_failed_logins",
            "warn" if locked_looking else "ok",
            {"rows": [list(row) for row in locked_looking]},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2, default=str))
