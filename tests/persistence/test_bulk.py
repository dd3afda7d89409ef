import pytest

from latchorm.adapters import ConnectionConfig, SQLiteAdapter
from latchorm.core import BooleanField, Model, StringField, VersionField
from latchorm.exceptions import OptimisticLockError
from latchorm.persistence import Session
from latchorm.query import Q
from latchorm.schema import SchemaBuilder


class Chore(Model):
    title = StringField(nullable=False)
    done = BooleanField(default=False)
    version = VersionField()


def make_session(path) -> Session:
    adapter = SQLiteAdapter()
    session = Session(adapter, connection_config=ConnectionConfig(url=f"sqlite:///{path}"))
    SchemaBuilder(session.dialect).create_all(adapter, (Chore,))
    return session


def seed_chores(session: Session, *titles: str) -> list[str]:
    with session.transaction():
        chores = session.save_all([Chore(title=title) for title in titles])
    return [chore.id for chore in chores]


def test_bulk_update_counts_rows_and_bumps_versions(tmp_path):
    session = make_session(tmp_path / "bulk_update.db")
    seed_chores(session, "dishes", "laundry", "taxes")

    with session.transaction():
        count = session.bulk_update(Chore, Q(title__in=["dishes", "laundry"]), {"done": True})
    assert count == 2

    rows = session.adapter.execute('SELECT title, done, version FROM "chore" ORDER BY title').fetchall()
    assert [(row["title"], bool(row["done"]), row["version"]) for row in rows] == [
        ("dishes", True, 1),
        ("laundry", True, 1),
        ("taxes", False, 0),
    ]
    session.close()


def test_bulk_update_leaves_loaded_instances_stale(tmp_path):
    session = make_session(tmp_path / "bulk_stale.db")
    (chore_id,) = seed_chores(session, "dishes")

    session.begin()
    chore = session.get(Chore, chore_id)
    session.query(Chore).update({"done": True})
    assert chore.done is False
    assert chore.version == 0
    assert session.get(Chore, chore_id) is chore

    chore.title = "dishes and pans"
    with pytest.raises(OptimisticLockError):
        session.commit()
    session.close()


def test_bulk_update_with_clear_evicts_instances(tmp_path):
    session = make_session(tmp_path / "bulk_clear.db")
    (chore_id,) = seed_chores(session, "dishes")

    with session.transaction():
        chore = session.get(Chore, chore_id)
        session.bulk_update(Chore, None, {"done": True}, clear=True)
        assert not session.contains(chore)
        reloaded = session.get(Chore, chore_id)
        assert reloaded is not chore
        assert reloaded.done is True
        assert reloaded.version == 1
    session.close()


def test_bulk_statements_flush_pending_changes_first(tmp_path):
    session = make_session(tmp_path / "bulk_flush.db")
    with session.transaction():
        session.save(Chore(title="pending"))
        assert session.bulk_delete(Chore, Q(title="pending")) == 1
    assert session.count(Chore) == 0
    session.rollback()
    session.close()


def test_delete_in_batch_removes_rows_without_touching_managed_state(tmp_path):
    session = make_session(tmp_path / "batch.db")
    ids = seed_chores(session, "a", "b", "c")

    with session.transaction():
        chores = [session.get(Chore, pk) for pk in ids[:2]]
        assert session.delete_in_batch(chores) == 2
        assert session.contains(chores[0])
    assert session.count(Chore) == 1
    session.rollback()
    session.close()


def test_delete_all_in_batch_with_clear(tmp_path):
    session = make_session(tmp_path / "batch_all.db")
    ids = seed_chores(session, "a", "b")

    with session.transaction():
        first = session.get(Chore, ids[0])
        assert session.delete_all_in_batch(Chore, clear=True) == 2
        assert not session.contains(first)
        assert session.get(Chore, ids[0]) is None
    session.close()


def test_queryset_delete_uses_filters(tmp_path):
    session = make_session(tmp_path / "qs_delete.db")
    seed_chores(session, "keep", "drop_1", "drop_2")
    with session.transaction():
        assert session.query(Chore).filter(title__startswith="drop_").delete() == 2
    assert [c.title for c in session.find_all(Chore)] == ["keep"]
    session.rollback()
    session.close()
