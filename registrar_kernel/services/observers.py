"""
registrar_kernel.services.observers -- Post-commit transition hooks.

Responsibility:
    Keep the handlers registered per ``(record_type, to_status)`` and run
    them, in registration order, after the lifecycle engine has committed
    a transition into that status.

Architecture position:
    Kernel > Services.  Imports from domain/ only; handlers reach the
    store through their own constructor arguments.

Invariants enforced:
    - Handlers run in registration order.
    - Every handler runs even when an earlier one raised; failures are
      collected, logged and returned, never raised from ``notify``.
    - Registration is validated against the lifecycle registry, so a
      handler can never be attached to a status that does not exist.

Handlers must be idempotent: a caller that sees a partial success may
re-run them for the same committed transition.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable

from registrar_kernel.domain.lifecycle import LifecycleRegistry
from registrar_kernel.domain.records import ObserverFailure, Record
from registrar_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.observers")

TransitionHandler = Callable[[Record], None]


def handler_name(handler: TransitionHandler) -> str:
    """Stable display name for a handler (function, method or callable object)."""
    name = getattr(handler, "name", None)
    if isinstance(name, str) and name:
        return name
    return getattr(handler, "__qualname__", None) or type(handler).__name__


class ObserverRegistry:
    """Handlers keyed by the status a record has just entered."""

    def __init__(self, lifecycles: LifecycleRegistry | None = None):
        self.lifecycles = lifecycles or LifecycleRegistry()
        self._handlers: dict[tuple[str, str], list[TransitionHandler]] = {}
        self._lock = threading.Lock()

    def _key(self, record_type: str | Enum, to_status: str | Enum) -> tuple[str, str]:
        lifecycle = self.lifecycles.get(record_type)
        return lifecycle.record_type, lifecycle.coerce_status(to_status)

    def register(
        self,
        record_type: str | Enum,
        to_status: str | Enum,
        handler: TransitionHandler,
    ) -> TransitionHandler:
        """Attach ``handler``; returns it so this can be used as a decorator."""
        if not callable(handler):
            raise TypeError(f"Observer handler must be callable, got {handler!r}")
        key = self._key(record_type, to_status)
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)
        logger.debug(
            "observer_registered",
            extra={"observer": handler_name(handler), "on_type": key[0], "on_status": key[1]},
        )
        return handler

    def unregister(
        self,
        record_type: str | Enum,
        to_status: str | Enum,
        handler: TransitionHandler,
    ) -> bool:
        """Detach the first registration of ``handler``; False if it was not registered."""
        key = self._key(record_type, to_status)
        with self._lock:
            handlers = self._handlers.get(key, [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
        return True

    def handlers_for(
        self,
        record_type: str | Enum,
        to_status: str | Enum,
    ) -> tuple[TransitionHandler, ...]:
        key = self._key(record_type, to_status)
        with self._lock:
            return tuple(self._handlers.get(key, ()))

    def notify(self, record: Record) -> tuple[ObserverFailure, ...]:
        """Run the handlers for the status ``record`` has just entered."""
        failures: list[ObserverFailure] = []
        with LogContext.bind(record_id=record.id, record_type=record.record_type):
            for handler in self.handlers_for(record.record_type, record.status):
                name = handler_name(handler)
                try:
                    handler(record)
                except Exception as exc:
                    logger.error(
                        "observer_failed",
                        extra={"observer": name, "to_status": record.status},
                        exc_info=True,
                    )
                    failures.append(ObserverFailure(handler_name=name, error=exc))
                else:
                    logger.debug("observer_completed", extra={"observer": name})
        return tuple(failures)
