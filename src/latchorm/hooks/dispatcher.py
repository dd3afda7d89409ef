"""
Hook dispatcher coordinating lifecycle events.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from ..core.model import Model

HookHandler = Callable[..., None]

#: Events fired by the session and flush coordinator. ``after_commit`` and
#: ``after_rollback`` are fired with ``instance=None``.
EVENTS = (
    "before_validate",
    "after_validate",
    "before_save",
    "after_save",
    "before_delete",
    "after_delete",
    "after_commit",
    "after_rollback",
)


@dataclass(frozen=True)
class HookEvent:
    name: str

    def __post_init__(self) -> None:
        if self.name not in EVENTS:
            raise ValueError(f"Unknown hook event '{self.name}'")


class HookDispatcher:
    """
    Maintains global and per-model hook handlers.

    Handlers run synchronously in registration order, global ones first. An
    exception raised by a handler propagates to the operation that fired it;
    a failing ``before_save`` therefore aborts the flush.
    """

    def __init__(self) -> None:
        self._global_handlers: Dict[str, List[HookHandler]] = defaultdict(list)
        self._model_handlers: Dict[Type[Model], Dict[str, List[HookHandler]]] = defaultdict(
            lambda: defaultdict(list)
        )

    def register(self, event: str, handler: HookHandler, *, model: Optional[Type[Model]] = None) -> None:
        name = HookEvent(event).name
        if model:
            self._model_handlers[model][name].append(handler)
        else:
            self._global_handlers[name].append(handler)

    def unregister(self, event: str, handler: HookHandler, *, model: Optional[Type[Model]] = None) -> None:
        handlers = (
            self._model_handlers.get(model, {}).get(event, [])
            if model
            else self._global_handlers.get(event, [])
        )
        if handler in handlers:
            handlers.remove(handler)

    def fire(self, event: str, instance: Optional[Model], **context: Any) -> None:
        handlers = list(self._global_handlers.get(event, []))
        model = instance.__class__ if instance is not None else None
        if model:
            handlers.extend(self._model_handlers.get(model, {}).get(event, []))
        for handler in handlers:
            handler(instance, **context)

    def clear(self) -> None:
        self._global_handlers.clear()
        self._model_handlers.clear()


hooks = HookDispatcher()
