import pytest

from latchorm.adapters import ConnectionConfig, SQLiteAdapter
from latchorm.core import IntegerField, Model, StringField, VersionField
from latchorm.hooks import EVENTS, HookDispatcher, hooks
from latchorm.persistence import Session
from latchorm.schema import SchemaBuilder


@pytest.fixture(autouse=True)
def clear_hooks():
    hooks.clear()
    yield
    hooks.clear()


class Sample(Model):
    name = StringField(nullable=False)
    age = IntegerField(default=0)
    version = VersionField()


def make_session(tmp_path):
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'hooks.db'}")
    session = Session(adapter, connection_config=config)
    SchemaBuilder(session.dialect).create_all(adapter, (Sample,))
    return session


def test_hooks_fire_in_order(tmp_path):
    events = []

    for event_name in [
        "before_validate",
        "after_validate",
        "before_save",
        "after_save",
        "after_commit",
    ]:
        def handler(inst, event=event_name, **ctx):
            events.append((event, inst.name if inst else None))

        hooks.register(event_name, handler)

    session = make_session(tmp_path)
    session.begin()
    session.save(Sample(name="Alice", age=21))
    assert events == []
    session.commit()

    assert events == [
        ("before_validate", "Alice"),
        ("after_validate", "Alice"),
        ("before_save", "Alice"),
        ("after_save", "Alice"),
        ("after_commit", None),
    ]
    session.close()


def test_save_context_reports_creation(tmp_path):
    created = []
    hooks.register("after_save", lambda inst, **ctx: created.append(ctx["created"]))

    session = make_session(tmp_path)
    with session.transaction():
        sample = session.save(Sample(name="Ann"))
    with session.transaction():
        session.get(Sample, sample.id).age = 40
    assert created == [True, False]
    session.close()


def test_model_specific_hook_on_delete(tmp_path):
    fired = []

    def before_delete(instance, **context):
        fired.append(("before", instance.name))

    def after_delete(instance, **context):
        fired.append(("after", instance.name))

    Sample.register_hook("before_delete", before_delete)
    Sample.register_hook("after_delete", after_delete)

    session = make_session(tmp_path)
    with session.transaction():
        sample = session.save(Sample(name="Bob", age=30))
    with session.transaction():
        session.delete(session.get(Sample, sample.id))

    assert fired == [("before", "Bob"), ("after", "Bob")]
    session.close()


def test_rollback_hook_fires_without_instance(tmp_path):
    rolled_back = []
    hooks.register("after_rollback", lambda inst, **ctx: rolled_back.append(inst))

    session = make_session(tmp_path)
    session.begin()
    session.save(Sample(name="Temp"))
    session.rollback()
    assert rolled_back == [None]
    session.close()


def test_failing_before_save_aborts_commit(tmp_path):
    def refuse(instance, **context):
        raise RuntimeError("read-only")

    hooks.register("before_save", refuse)
    session = make_session(tmp_path)
    session.begin()
    session.save(Sample(name="Nope"))
    with pytest.raises(RuntimeError):
        session.commit()
    hooks.unregister("before_save", refuse)
    assert session.count(Sample) == 0
    session.close()


def test_unknown_event_is_rejected():
    dispatcher = HookDispatcher()
    with pytest.raises(ValueError):
        dispatcher.register("before_explode", lambda inst, **ctx: None)
    assert "after_rollback" in EVENTS
