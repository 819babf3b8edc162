#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from sqlalchemy import func, select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from staff_access.audit import log_staff_activity
from staff_access.db import build_session_factory, create_db_engine
from staff_access.models import Role, StaffRole, StaffUser
from staff_access.passwords import hash_password
from staff_access.services.access import seed_standard_roles_and_permissions
from staff_access.services.sessions import MIN_PASSWORD_LENGTH
from staff_access.settings import get_settings


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Seed the standard roles and create or reset the bootstrap admin account.",
    )
    parser.add_argument("--email", default=settings.bootstrap_admin_email)
    parser.add_argument("--name", default=settings.bootstrap_admin_name)
    parser.add_argument("--password", default=settings.bootstrap_admin_password)
    parser.add_argument("--database-url", default=settings.database_url)
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> dict:
    args = _parse_args(argv)
    email = (args.email or "").strip()
    if not email:
        raise SystemExit("An admin email is required (--email or BOOTSTRAP_ADMIN_EMAIL).")
    if len(args.password or "") < MIN_PASSWORD_LENGTH:
        raise SystemExit(
            f"An admin password of at least {MIN_PASSWORD_LENGTH} characters is required "
            "(--password or BOOTSTRAP_ADMIN_PASSWORD)."
        )

    engine = create_db_engine(args.database_url)
    session_factory = build_session_factory(engine)
    try:
        with session_factory() as db:
            seed_standard_roles_and_permissions(db)

            staff = db.scalar(select(StaffUser).where(func.lower(StaffUser.email) == email.lower()))
            created = staff is None
            if staff is None:
                staff = StaffUser(name=args.name, email=email, password_hash=hash_password(args.password))
                db.add(staff)
            else:
                staff.name = args.name
                staff.password_hash = hash_password(args.password)
                staff.is_active = True
                staff.failed_login_attempts = 0
            db.flush()

            admin_role = db.scalar(select(Role).where(Role.name == "admin"))
            if admin_role is not None and db.get(StaffRole, (staff.id, admin_role.id)) is None:
                db.add(StaffRole(staff_id=staff.id, role_id=admin_role.id))
            db.commit()

            log_staff_activity(
                db,
                staff_id=staff.id,
                action="bootstrap_admin_created" if created else "bootstrap_admin_reset",
                details={"email": email},
            )
            return {"staff_id": staff.id, "email": staff.email, "created": created}
    finally:
        engine.dispose()


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
