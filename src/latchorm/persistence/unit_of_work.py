"""
Unit of Work implementation batching persistence operations.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Set

from ..core.model import Model
from .identity_map import IdentityKey, IdentityMap
from .locking import LockMode


class UnitOfWork:
    """
    Tracks new, dirty, and removed objects within one transaction, together
    with the lock modes that require work at flush or commit.

    Ordered dicts stand in for ordered sets so statements are issued in the
    order the caller registered the entities.
    """

    def __init__(self) -> None:
        self.new: Dict[Model, None] = {}
        self.dirty: Dict[Model, None] = {}
        self.deleted: Dict[Model, None] = {}
        # Survives flushes: removed entities stay invalid until the transaction ends.
        self.removed_keys: Set[IdentityKey] = set()
        self._removed_instances: Dict[int, Model] = {}
        self.locks: Dict[Model, LockMode] = {}
        self.pending_increments: Dict[Model, None] = {}
        self.verify_on_flush: Dict[Model, None] = {}
        self.verify_on_commit: Dict[Model, None] = {}

    # Registration methods ----------------------------------------------
    def register_new(self, instance: Model) -> None:
        self.new[instance] = None

    def register_dirty(self, instance: Model) -> None:
        if instance not in self.new:
            self.dirty[instance] = None

    def register_removed(self, instance: Model) -> bool:
        """
        Mark ``instance`` as removed. Returns ``False`` when it was still a
        pending insert, in which case no DELETE is needed at all.
        """
        key = IdentityMap.make_key(instance, instance.pk)
        self.removed_keys.add(key)
        self._removed_instances[id(instance)] = instance
        self.dirty.pop(instance, None)
        self.pending_increments.pop(instance, None)
        self.verify_on_flush.pop(instance, None)
        self.verify_on_commit.pop(instance, None)
        if instance in self.new:
            del self.new[instance]
            return False
        self.deleted[instance] = None
        return True

    def is_new(self, instance: Model) -> bool:
        return instance in self.new

    def is_removed(self, instance: Model) -> bool:
        return id(instance) in self._removed_instances

    def is_removed_key(self, key: IdentityKey) -> bool:
        return key in self.removed_keys

    def collect_dirty(self, candidates: Iterable[Model]) -> None:
        for instance in candidates:
            if instance not in self.new and not self.is_removed(instance) and instance.is_dirty():
                self.register_dirty(instance)

    # Lock bookkeeping --------------------------------------------------
    def register_lock(self, instance: Model, mode: LockMode) -> None:
        self.locks[instance] = mode
        if mode in (LockMode.WRITE, LockMode.OPTIMISTIC_FORCE_INCREMENT):
            self.pending_increments[instance] = None
        elif mode is LockMode.OPTIMISTIC:
            self.verify_on_flush[instance] = None
        elif mode is LockMode.READ:
            self.verify_on_commit[instance] = None

    def lock_mode(self, instance: Model) -> LockMode:
        return self.locks.get(instance, LockMode.NONE)

    def snapshot(self, instance: Model) -> None:
        """Record ``instance``'s current values as its synchronised state."""
        instance.mark_clean()

    def verification_targets(self, *, at_commit: bool) -> List[Model]:
        targets = list(self.verify_on_flush)
        if at_commit:
            targets.extend(i for i in self.verify_on_commit if i not in self.verify_on_flush)
        return [i for i in targets if not self.is_removed(i)]

    # Housekeeping ------------------------------------------------------
    def discard(self, instance: Model) -> None:
        """Stop tracking ``instance`` without scheduling anything for it."""
        for bucket in (
            self.new,
            self.dirty,
            self.deleted,
            self.locks,
            self.pending_increments,
            self.verify_on_flush,
            self.verify_on_commit,
        ):
            bucket.pop(instance, None)

    def checkpoint(self) -> dict:
        """
        Capture removal and lock bookkeeping at a savepoint. Pending writes
        are expected to have been flushed beforehand.
        """
        return {
            "removed_keys": set(self.removed_keys),
            "removed_instances": dict(self._removed_instances),
            "locks": dict(self.locks),
            "pending_increments": dict(self.pending_increments),
            "verify_on_flush": dict(self.verify_on_flush),
            "verify_on_commit": dict(self.verify_on_commit),
            "versions": {instance: instance.get_version() for instance in self.locks},
        }

    def restore(self, checkpoint: dict) -> None:
        self.new.clear()
        self.dirty.clear()
        self.deleted.clear()
        self.removed_keys = set(checkpoint["removed_keys"])
        self._removed_instances = dict(checkpoint["removed_instances"])
        self.locks = dict(checkpoint["locks"])
        self.pending_increments = dict(checkpoint["pending_increments"])
        self.verify_on_flush = dict(checkpoint["verify_on_flush"])
        self.verify_on_commit = dict(checkpoint["verify_on_commit"])
        for instance, version in checkpoint["versions"].items():
            if version is not None:
                instance.set_version(version)

    def has_pending(self) -> bool:
        return bool(self.new or self.dirty or self.deleted or self.pending_increments)

    def clear(self) -> None:
        self.new.clear()
        self.dirty.clear()
        self.deleted.clear()
        self.removed_keys.clear()
        self._removed_instances.clear()
        self.locks.clear()
        self.pending_increments.clear()
        self.verify_on_flush.clear()
        self.verify_on_commit.clear()
