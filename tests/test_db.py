"""Tests for the SQLite store handle and its transactions."""

from __future__ import annotations

import time

import pytest

from directory_service.app.core.config import Settings
from directory_service.app.core.db import MIGRATIONS, Database
from directory_service.app.core.errors import DeadlineExceededError, NotFoundError, StorageError


def _count(db: Database, table: str) -> int:
    conn = db.connect()
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


def _insert_service(cursor, service_id: str) -> None:
    cursor.execute(
        "INSERT INTO services (service_id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
        (service_id, "svc", "2026-01-01T00:00:00.000000+00:00", "2026-01-01T00:00:00.000000+00:00"),
    )


def test_init_db_applies_all_migrations_once(db):
    db.init_db()
    conn = db.connect()
    try:
        versions = [row["version"] for row in conn.execute("SELECT version FROM migrations ORDER BY version")]
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(service_instances)")}
    finally:
        conn.close()
    assert versions == [version for version, _ in MIGRATIONS]
    assert {"transaction_count", "average_response_time"} <= columns


def test_init_db_creates_parent_directory(tmp_path):
    database = Database(str(tmp_path / "nested" / "dir" / "directory.db"))
    database.init_db()
    assert (tmp_path / "nested" / "dir" / "directory.db").exists()


def test_relative_database_url_resolves_against_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    database = Database.from_settings(Settings(database_url="data/directory.db"))
    database.init_db()

    assert database.path == str((tmp_path / "data" / "directory.db").resolve())
    assert (tmp_path / "data" / "directory.db").exists()


def test_foreign_keys_are_enforced(db):
    conn = db.connect()
    try:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
    finally:
        conn.close()


def test_transaction_commits_on_success(db):
    with db.transaction("insert") as cursor:
        _insert_service(cursor, "s-1")
    assert _count(db, "services") == 1


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(NotFoundError):
        with db.transaction("insert") as cursor:
            _insert_service(cursor, "s-1")
            raise NotFoundError("service", "s-1")
    assert _count(db, "services") == 0


def test_sqlite_errors_become_storage_errors(db):
    with pytest.raises(StorageError) as excinfo:
        with db.transaction("broken query") as cursor:
            cursor.execute("SELECT * FROM no_such_table")
    assert excinfo.value.retryable
    assert "broken query" in excinfo.value.message


def test_deadline_rolls_back_and_reports(db):
    with pytest.raises(DeadlineExceededError) as excinfo:
        with db.transaction("slow insert", timeout=0.01) as cursor:
            time.sleep(0.05)
            _insert_service(cursor, "s-1")
    assert excinfo.value.retryable
    assert isinstance(excinfo.value, StorageError)
    assert _count(db, "services") == 0


def test_read_transaction_sees_committed_rows(db):
    with db.transaction("insert") as cursor:
        _insert_service(cursor, "s-1")
    with db.transaction("read", write=False) as cursor:
        row = cursor.execute("SELECT name FROM services WHERE service_id = ?", ("s-1",)).fetchone()
    assert row["name"] == "svc"
