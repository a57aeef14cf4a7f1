"""Lifecycle hooks for CRUD operations.

Supported events and the arguments callbacks receive:

- ``before_validate(data)``   returns modified data (or None to keep it)
- ``after_validate(data)``    returns modified data
- ``before_save(data)``       returns modified data
- ``before_create(data)``     returns modified data
- ``after_create(id, data)``
- ``before_update(data, id)`` returns modified data
- ``after_update(id, data)``
- ``after_save(id, data)``
- ``before_delete(id)``
- ``after_delete(id)``

Hooks run inside the operation's transaction. Raising from a hook (by
convention HookAbortError) rolls the operation back.
"""

# flake8: noqa: E501


from typing import Any, Callable, Dict, List

from dynamiccrud.logging_config import get_logger

logger = get_logger(__name__)

HOOK_EVENTS = (
    "before_validate",
    "after_validate",
    "before_save",
    "after_save",
    "before_create",
    "after_create",
    "before_update",
    "after_update",
    "before_delete",
    "after_delete",
)


class HookManager:
    """Registry of lifecycle callbacks, grouped by event."""

    def __init__(self):
        self._hooks: Dict[str, List[Callable[..., Any]]] = {event: [] for event in HOOK_EVENTS}

    def on(self, event: str, callback: Callable[..., Any]) -> "HookManager":
        """
        Register a callback for an event.

        Raises:
            ValueError: If the event name is unknown
        """
        if event not in self._hooks:
            raise ValueError(f"Unknown hook event: {event}. Valid events: {', '.join(HOOK_EVENTS)}")
        self._hooks[event].append(callback)
        logger.debug("hook_registered", hook_event=event, callback=getattr(callback, "__name__", repr(callback)))
        return self

    def get_hooks(self, event: str) -> List[Callable[..., Any]]:
        """Callbacks registered for an event, in registration order."""
        return list(self._hooks.get(event, []))

    def has_hooks(self, event: str) -> bool:
        return bool(self._hooks.get(event))

    def apply(self, event: str, data: Dict[str, Any], *extra: Any) -> Dict[str, Any]:
        """
        Run data-transforming callbacks.

        Each callback receives the data left by the previous one; a non-None
        return value replaces it.

        Example:
            data = hooks.apply("before_update", data, record_id)
        """
        for callback in self._hooks[event]:
            result = callback(data, *extra)
            if result is not None:
                data = result
        return data

    def notify(self, event: str, *args: Any) -> None:
        """Run notification callbacks; return values are ignored."""
        for callback in self._hooks[event]:
            callback(*args)

    @property
    def count(self) -> int:
        """Total number of registered callbacks."""
        return sum(len(v) for v in self._hooks.values())
