from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import select

from db_support import add_staff, make_session_factory
from staff_access.models import Permission, Role, RolePermission
from staff_access.services import access
from staff_access.services.access import (
    DEFAULT_DISPLAY_ROLE,
    STANDARD_PERMISSION_CODES,
    STANDARD_ROLE_PERMISSIONS,
    fetch_staff_with_access,
    primary_role_for,
    seed_standard_roles_and_permissions,
)


class SeedStandardRolesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()

    def tearDown(self) -> None:
        self.db.close()

    def _mapping(self) -> dict[str, set[str]]:
        rows = self.db.execute(
            select(Role.name, Permission.code)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
        ).all()
        mapping: dict[str, set[str]] = {}
        for role_name, code in rows:
            mapping.setdefault(role_name, set()).add(code)
        return mapping

    def test_seed_installs_standard_mapping(self) -> None:
        result = seed_standard_roles_and_permissions(self.db)

        self.assertEqual(result.permissions, len(STANDARD_PERMISSION_CODES))
        mapping = self._mapping()
        self.assertEqual(set(mapping), {"admin", "manager", "staff", "viewer"})
        self.assertEqual(mapping["admin"], set(STANDARD_PERMISSION_CODES))
        self.assertEqual(mapping["viewer"], {"products:read", "orders:read", "analytics:read"})
        self.assertNotIn("users:update", mapping["manager"])
        self.assertTrue(result.to_dict()["ok"])

    def test_seed_twice_is_idempotent(self) -> None:
        seed_standard_roles_and_permissions(self.db)
        first = self._mapping()
        permission_count = len(self.db.scalars(select(Permission.id)).all())

        seed_standard_roles_and_permissions(self.db)

        self.assertEqual(self._mapping(), first)
        self.assertEqual(len(self.db.scalars(select(Permission.id)).all()), permission_count)
        self.assertEqual(len(self.db.scalars(select(Role.id)).all()), len(STANDARD_ROLE_PERMISSIONS))

    def test_seed_replaces_drifted_role_permissions(self) -> None:
        seed_standard_roles_and_permissions(self.db)
        viewer = self.db.scalar(select(Role).where(Role.name == "viewer"))
        extra = self.db.scalar(select(Permission).where(Permission.code == "users:update"))
        assert viewer is not None and extra is not None
        self.db.add(RolePermission(role_id=viewer.id, permission_id=extra.id))
        self.db.commit()

        seed_standard_roles_and_permissions(self.db)

        self.assertEqual(self._mapping()["viewer"], set(STANDARD_ROLE_PERMISSIONS["viewer"]))

    def test_failed_seed_keeps_previous_mapping(self) -> None:
        seed_standard_roles_and_permissions(self.db)
        before = self._mapping()
        real_ensure_role = access._ensure_role

        def _failing_ensure_role(db, name):  # type: ignore[no-untyped-def]
            if name == "staff":
                raise RuntimeError("simulated failure")
            return real_ensure_role(db, name)

        with patch("staff_access.services.access._ensure_role", side_effect=_failing_ensure_role):
            with self.assertRaises(RuntimeError):
                seed_standard_roles_and_permissions(self.db)

        self.assertEqual(self._mapping(), before)


class AccessAggregationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()

    def tearDown(self) -> None:
        self.db.close()

    def test_roles_and_permissions_are_unique_and_sorted(self) -> None:
        staff = add_staff(
            self.db,
            email="carol@example.com",
            password="Carol-Pass-1",
            roles={
                "viewer": ["orders:read", "products:read"],
                "auditor": ["orders:read", "analytics:read"],
            },
        )

        found = fetch_staff_with_access(self.db, staff_id=staff.id)

        assert found is not None
        self.assertEqual(found.roles, ("auditor", "viewer"))
        self.assertEqual(found.permissions, ("analytics:read", "orders:read", "products:read"))
        self.assertEqual(found.primary_role, "auditor")

    def test_staff_without_roles_gets_display_default(self) -> None:
        staff = add_staff(self.db, email="dave@example.com", password="Dave-Pass-1")

        found = fetch_staff_with_access(self.db, email="DAVE@example.com")

        assert found is not None
        self.assertEqual(found.staff.id, staff.id)
        self.assertEqual(found.roles, ())
        self.assertEqual(found.permissions, ())
        self.assertEqual(found.primary_role, DEFAULT_DISPLAY_ROLE)

    def test_lookup_requires_exactly_one_key(self) -> None:
        with self.assertRaises(ValueError):
            fetch_staff_with_access(self.db)
        with self.assertRaises(ValueError):
            fetch_staff_with_access(self.db, staff_id=1, email="a@example.com")
        self.assertIsNone(fetch_staff_with_access(self.db, staff_id=12345))

    def test_primary_role_is_first_role(self) -> None:
        self.assertEqual(primary_role_for(("manager", "viewer")), "manager")
        self.assertEqual(primary_role_for(()), DEFAULT_DISPLAY_ROLE)


if __name__ == "__main__":
    unittest.main()
