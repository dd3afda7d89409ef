"""
Lifecycle hooks registry for latchorm models.
"""

from .dispatcher import EVENTS, HookDispatcher, HookEvent, hooks

__all__ = ["EVENTS", "HookDispatcher", "HookEvent", "hooks"]
