import pytest

from latchorm.adapters import ConnectionConfig, SQLiteAdapter
from latchorm.core import IntegerField, Model, StringField, VersionField
from latchorm.persistence import Session
from latchorm.query import Q
from latchorm.schema import SchemaBuilder


class Runner(Model):
    name = StringField(nullable=False)
    age = IntegerField()
    version = VersionField()


@pytest.fixture
def session(tmp_path):
    adapter = SQLiteAdapter()
    session = Session(
        adapter, connection_config=ConnectionConfig(url=f"sqlite:///{tmp_path / 'qs.db'}")
    )
    SchemaBuilder(session.dialect).create_all(adapter, (Runner,))
    with session.transaction():
        session.save_all(
            [Runner(name="Ana", age=31), Runner(name="Ben", age=17), Runner(name="Cy", age=45)]
        )
    yield session
    session.close()


def test_querysets_are_immutable(session):
    base = session.query(Runner)
    adults = base.filter(age__gte=18)
    assert base.to_sql() != adults.to_sql()
    assert base.count() == 3
    assert adults.count() == 2


def test_ordering_limit_offset(session):
    names = [r.name for r in session.query(Runner).order_by("-age").offset(1).limit(1)]
    assert names == ["Ana"]


def test_exclude_and_where(session):
    qs = session.query(Runner).exclude(name="Ben").where(Q(age__lt=40) | Q(name="Cy"))
    assert sorted(r.name for r in qs) == ["Ana", "Cy"]


def test_first_and_exists(session):
    assert session.query(Runner).filter(name="Nobody").first() is None
    assert not session.query(Runner).filter(name="Nobody").exists()
    assert session.query(Runner).filter(name="Ana").exists()


def test_rows_removed_in_transaction_are_skipped(session):
    with session.transaction():
        ben = session.query(Runner).filter(name="Ben").first()
        session.delete(ben)
        assert [r.name for r in session.query(Runner).order_by("name")] == ["Ana", "Cy"]
        assert session.count(Runner) == 2
