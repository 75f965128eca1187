"""Unit tests for the SQLite connection pool and lock retry decorator"""

from __future__ import annotations

import sqlite3

import pytest

from biosynth.infrastructure import database
from biosynth.infrastructure.database import DatabaseConnectionPool, get_db_path, retry_on_db_lock


def test_connections_use_wal_and_row_factory(pool):
    with pool.connection() as conn:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"
        assert conn.row_factory is sqlite3.Row


def test_transaction_rolls_back_on_error(pool):
    with pytest.raises(ValueError):
        with pool.transaction() as conn:
            conn.execute("INSERT INTO users (email, password_hash) VALUES ('a@b.c', 'x')")
            raise ValueError("abort")

    with pool.connection() as conn:
        assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 0


def test_exhausted_pool_opens_bounded_temporary_connections(tmp_path):
    small = DatabaseConnectionPool(tmp_path / "small.db", pool_size=1, pool_timeout=0.01, temp_conn_max=1)
    try:
        held = small.get_connection()
        temp = small.get_connection()
        assert small.stats()["temporary"] == 1

        with pytest.raises(RuntimeError):
            small.get_connection()

        small.return_connection(temp)
        small.return_connection(held)
        assert small.stats() == {
            "pool_size": 1,
            "available": 1,
            "in_use": 0,
            "temporary": 0,
            "usage_percent": 0.0,
            "closed": False,
        }
    finally:
        small.close_all()


def test_temporary_connection_slots_are_released(tmp_path):
    small = DatabaseConnectionPool(tmp_path / "cycle.db", pool_size=1, pool_timeout=0.01, temp_conn_max=1)
    try:
        held = small.get_connection()
        assert held.is_temporary is False
        for _ in range(3):
            with small.connection() as temp:
                assert temp.is_temporary is True
                assert temp.execute("SELECT 1").fetchone()[0] == 1
            assert small.stats()["temporary"] == 0
        small.return_connection(held)
    finally:
        small.close_all()


def test_closed_pool_refuses_connections(tmp_path):
    closed = DatabaseConnectionPool(tmp_path / "closed.db", pool_size=1)
    closed.close_all()

    with pytest.raises(RuntimeError):
        closed.get_connection()


def test_retry_on_db_lock_retries_then_succeeds(monkeypatch):
    monkeypatch.setattr(database.time, "sleep", lambda seconds: None)
    attempts = []

    @retry_on_db_lock(max_retries=3, base_delay=0.0)
    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise sqlite3.OperationalError("database is locked")
        return "done"

    assert flaky() == "done"
    assert len(attempts) == 3


def test_retry_on_db_lock_ignores_other_errors():
    attempts = []

    @retry_on_db_lock(max_retries=3)
    def broken():
        attempts.append(1)
        raise sqlite3.OperationalError("no such table: nope")

    with pytest.raises(sqlite3.OperationalError):
        broken()
    assert len(attempts) == 1


def test_db_path_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv("BIOSYNTH_DB_PATH", str(tmp_path / "custom.db"))
    assert get_db_path() == tmp_path / "custom.db"
