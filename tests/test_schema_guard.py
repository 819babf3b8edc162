from __future__ import annotations

import unittest
from unittest.mock import patch

from staff_access.services.schema_guard import REQUIRED_TABLE_COLUMNS, verify_runtime_schema


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(
        self,
        *,
        columns_by_table: dict[str, set[str]],
        unique_constraints: dict[str, list[tuple[str, ...]]] | None = None,
        unique_indexes: dict[str, list[tuple[str, ...]]] | None = None,
    ):
        self._columns_by_table = columns_by_table
        self._unique_constraints = unique_constraints or {}
        self._unique_indexes = unique_indexes or {}

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        columns = self._columns_by_table[table_name]
        return [{"name": item} for item in columns]

    def get_unique_constraints(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"column_names": list(item)} for item in self._unique_constraints.get(table_name, [])]

    def get_indexes(self, table_name: str):  # type: ignore[no-untyped-def]
        return [
            {"column_names": list(item), "unique": True}
            for item in self._unique_indexes.get(table_name, [])
        ]


def _complete_columns() -> dict[str, set[str]]:
    return {table: set(columns) for table, columns in REQUIRED_TABLE_COLUMNS.items()}


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table=_complete_columns(),
            unique_constraints={"roles": [("name",)], "permissions": [("code",)]},
            unique_indexes={"staff_users": [("email",)], "staff_sessions": [("token",)]},
        )
        fake_engine = _FakeEngine("0001_staff_access")

        with patch("staff_access.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_verify_runtime_schema_reports_missing_columns_and_uniques(self) -> None:
        columns = _complete_columns()
        columns["staff_users"] = {"id", "email", "password_hash"}
        columns["staff_sessions"] = {"id", "staff_id", "token"}
        fake_inspector = _FakeInspector(
            columns_by_table=columns,
            unique_constraints={"roles": [("name",)]},
            unique_indexes={"staff_users": [("email",)]},
        )
        fake_engine = _FakeEngine("")

        with patch("staff_access.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertTrue(any(item.startswith("MISSING_COLUMNS:staff_users:failed_login_attempts") for item in result.issues))
        self.assertIn("MISSING_COLUMNS:staff_sessions:expires_at,revoked_at", result.issues)
        self.assertIn("MISSING_UNIQUE:permissions:code", result.issues)
        self.assertIn("MISSING_UNIQUE:staff_sessions:token", result.issues)
        self.assertNotIn("MISSING_UNIQUE:staff_users:email", result.issues)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)
        self.assertEqual(result.to_dict()["issue_count"], len(result.issues))


if __name__ == "__main__":
    unittest.main()
