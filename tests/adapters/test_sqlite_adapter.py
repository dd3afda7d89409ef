import sqlite3
from datetime import date, datetime, timezone

import pytest

from latchorm.adapters import AdapterConnectionError, ConnectionConfig, SQLiteAdapter
from latchorm.exceptions import ConstraintViolationError, PessimisticLockError


@pytest.fixture
def adapter(tmp_path):
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'test.db'}")
    adapter.connect(config)
    yield adapter
    adapter.close()


def test_connect_creates_database(tmp_path):
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'connect.db'}")
    connection = adapter.connect(config)
    assert isinstance(connection, sqlite3.Connection)
    adapter.close()


def test_execute_requires_connection():
    with pytest.raises(AdapterConnectionError):
        SQLiteAdapter().execute("SELECT 1")


def test_transaction_commit_and_rollback(adapter):
    adapter.execute("CREATE TABLE item (id INTEGER PRIMARY KEY, value INTEGER)")

    adapter.begin()
    adapter.execute("INSERT INTO item (value) VALUES (?)", (10,))
    adapter.commit()
    assert adapter.execute("SELECT COUNT(*) FROM item").fetchone()[0] == 1

    adapter.begin()
    adapter.execute("INSERT INTO item (value) VALUES (?)", (20,))
    adapter.rollback()
    assert adapter.execute("SELECT COUNT(*) FROM item").fetchone()[0] == 1


def test_temporal_values_round_trip_by_declared_type(adapter):
    adapter.execute("CREATE TABLE event (happened_at TIMESTAMP, due DATE)")
    moment = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
    adapter.execute("INSERT INTO event VALUES (?, ?)", (moment, date(2026, 3, 2)))
    row = adapter.execute("SELECT happened_at, due FROM event").fetchone()
    assert row["happened_at"] == moment
    assert row["due"] == date(2026, 3, 2)


def test_integrity_error_translates_to_constraint_violation(adapter):
    adapter.execute("CREATE TABLE person (login TEXT UNIQUE)")
    adapter.execute("INSERT INTO person VALUES (?)", ("ada",))
    with pytest.raises(ConstraintViolationError) as excinfo:
        adapter.execute("INSERT INTO person VALUES (?)", ("ada",))
    assert isinstance(excinfo.value.__cause__, sqlite3.IntegrityError)


def test_other_operational_errors_propagate(adapter):
    with pytest.raises(sqlite3.OperationalError):
        adapter.execute("SELECT * FROM missing_table")


def test_locked_database_translates_to_pessimistic_lock_error(tmp_path):
    url = f"sqlite:///{tmp_path / 'locked.db'}"
    holder, waiter = SQLiteAdapter(), SQLiteAdapter()
    holder.connect(ConnectionConfig(url=url))
    waiter.connect(ConnectionConfig(url=url, timeout=0))
    holder.execute("CREATE TABLE item (value INTEGER)")
    holder.commit()

    holder.begin()
    holder.execute("INSERT INTO item VALUES (?)", (1,))
    waiter.begin()
    with pytest.raises(PessimisticLockError):
        waiter.execute("INSERT INTO item VALUES (?)", (2,))
    waiter.rollback()
    holder.commit()
    holder.close()
    waiter.close()


def test_in_memory_database():
    adapter = SQLiteAdapter()
    adapter.connect(ConnectionConfig(url="sqlite:///:memory:"))
    adapter.execute("CREATE TABLE sample (value TEXT)")
    adapter.execute("INSERT INTO sample (value) VALUES (?)", ("hello",))
    assert adapter.execute("SELECT value FROM sample").fetchone()[0] == "hello"
    adapter.close()


def test_slow_query_threshold_from_environment(monkeypatch):
    monkeypatch.setenv("LATCHORM_SLOW_QUERY_MS", "5")
    assert SQLiteAdapter().slow_query_ms == 5
    assert SQLiteAdapter(slow_query_ms=50).slow_query_ms == 50
