import pytest

from latchorm.core import Model, StringField, VersionField
from latchorm.persistence import IdentityMap, LockMode, UnitOfWork


class Widget(Model):
    name = StringField(nullable=False)
    version = VersionField()


class Gadget(Model):
    name = StringField(nullable=False)


def test_identity_map_add_get_remove():
    identity_map = IdentityMap()
    widget = Widget(id="w1", name="spanner")
    identity_map.add(widget)

    assert identity_map.get(Widget, "w1") is widget
    assert identity_map.get(Gadget, "w1") is None
    assert widget in identity_map
    assert len(identity_map) == 1

    identity_map.remove(widget)
    assert identity_map.get(Widget, "w1") is None


def test_identity_map_rejects_second_instance_for_same_key():
    identity_map = IdentityMap()
    identity_map.add(Widget(id="w1", name="first"))
    with pytest.raises(ValueError):
        identity_map.add(Widget(id="w1", name="second"))


def test_identity_map_requires_primary_key():
    with pytest.raises(ValueError):
        IdentityMap().add(Widget(name="no id"))


def test_identity_map_only_removes_the_mapped_instance():
    identity_map = IdentityMap()
    mapped = Widget(id="w1", name="mapped")
    identity_map.add(mapped)
    identity_map.remove(Widget(id="w1", name="lookalike"))
    assert identity_map.get(Widget, "w1") is mapped


def test_evict_model_returns_evicted_instances():
    identity_map = IdentityMap()
    widgets = [Widget(id=f"w{i}", name="w") for i in range(3)]
    gadget = Gadget(id="g1", name="g")
    for instance in (*widgets, gadget):
        identity_map.add(instance)

    evicted = identity_map.evict_model(Widget)
    assert set(map(id, evicted)) == set(map(id, widgets))
    assert identity_map.values() == [gadget]


def test_identity_map_restore_returns_to_snapshot():
    identity_map = IdentityMap()
    widget = Widget(id="w1", name="spanner")
    widget.mark_clean()
    identity_map.add(widget)
    snapshot = identity_map.snapshot()

    widget.name = "wrench"
    widget.mark_clean()
    identity_map.add(Gadget(id="g1", name="dial"))
    identity_map.remove(widget)

    identity_map.restore(snapshot)
    assert identity_map.get(Widget, "w1") is widget
    assert identity_map.get(Gadget, "g1") is None
    assert widget.name == "spanner"
    assert not widget.is_dirty()


def test_unit_of_work_removal_of_pending_insert_cancels_it():
    uow = UnitOfWork()
    widget = Widget(id="w1", name="new")
    uow.register_new(widget)
    assert uow.register_removed(widget) is False
    assert not uow.has_pending()
    assert uow.is_removed(widget)
    assert uow.is_removed_key(IdentityMap.make_key(Widget, "w1"))


def test_unit_of_work_registers_lock_bookkeeping():
    uow = UnitOfWork()
    forced = Widget(id="w1", name="a")
    checked = Widget(id="w2", name="b")
    deferred = Widget(id="w3", name="c")
    uow.register_lock(forced, LockMode.WRITE)
    uow.register_lock(checked, LockMode.OPTIMISTIC)
    uow.register_lock(deferred, LockMode.READ)

    assert list(uow.pending_increments) == [forced]
    assert uow.verification_targets(at_commit=False) == [checked]
    assert uow.verification_targets(at_commit=True) == [checked, deferred]
    assert uow.lock_mode(deferred) is LockMode.READ
    assert uow.lock_mode(Widget(id="w4", name="d")) is LockMode.NONE


def test_unit_of_work_collects_only_changed_instances():
    uow = UnitOfWork()
    clean = Widget.from_row({"id": "w1", "name": "same", "version": 0})
    changed = Widget.from_row({"id": "w2", "name": "before", "version": 0})
    changed.name = "after"
    uow.collect_dirty([clean, changed])
    assert list(uow.dirty) == [changed]


def test_unit_of_work_checkpoint_restores_lock_state():
    uow = UnitOfWork()
    widget = Widget.from_row({"id": "w1", "name": "x", "version": 2})
    uow.register_lock(widget, LockMode.OPTIMISTIC)
    checkpoint = uow.checkpoint()

    widget.set_version(3)
    uow.register_removed(widget)
    uow.restore(checkpoint)

    assert widget.version == 2
    assert not uow.is_removed(widget)
    assert uow.verification_targets(at_commit=False) == [widget]
