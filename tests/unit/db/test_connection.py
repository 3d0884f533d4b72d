"""Tests for the Database connection layer."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest

from appdeck.db.connection import Database


def test_connect_creates_file_and_parents(tmp_path):
    db_path = tmp_path / "nested" / "appdeck.db"
    conn = Database(db_path).connect()
    conn.close()
    assert db_path.exists()


def test_foreign_keys_enabled(tmp_path):
    conn = Database(tmp_path / "appdeck.db").connect()
    result = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    conn.close()
    assert result == 1


def test_wal_journal_mode(tmp_path):
    conn = Database(tmp_path / "appdeck.db").connect()
    mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    conn.close()
    assert mode == "wal"


def test_row_factory_set(tmp_path):
    conn = Database(tmp_path / "appdeck.db").connect()
    conn.execute("CREATE TABLE t (x INTEGER)")
    conn.execute("INSERT INTO t VALUES (42)")
    row = conn.execute("SELECT x FROM t").fetchone()
    conn.close()
    assert row["x"] == 42


def test_connection_usable_from_another_thread(tmp_path):
    conn = Database(tmp_path / "appdeck.db").connect()
    results = []

    def query():
        results.append(conn.execute("SELECT 1").fetchone()[0])

    t = threading.Thread(target=query)
    t.start()
    t.join()
    conn.close()
    assert results == [1]


def test_context_manager_closes_connection(tmp_path):
    db = Database(tmp_path / "appdeck.db")
    with db as conn:
        conn.execute("CREATE TABLE t (x INTEGER)")
    with pytest.raises(sqlite3.ProgrammingError):
        conn.execute("SELECT 1")


def test_accepts_path_str(tmp_path):
    db = Database(str(tmp_path / "appdeck.db"))
    assert isinstance(db.db_path, Path)
    with db as conn:
        assert conn.execute("SELECT 1").fetchone()[0] == 1
