"""Process-wide, lazily constructed provider client handles.

Factories are registered by provider name at startup; the client itself is
built on first use and then reused by every request.  Construction is guarded
by a lock so concurrent first callers never build two clients.  Handles are
never mutated after construction.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class ProviderRegistry:
    """Initialization-on-first-use cache keyed by provider name."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], Any]] = {}
        self._instances: dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, name: str, factory: Callable[[], Any]) -> None:
        """Register (or replace) the factory for *name*, dropping any built client."""
        with self._lock:
            self._factories[name] = factory
            self._instances.pop(name, None)

    def is_configured(self, name: str) -> bool:
        return name in self._factories

    def get(self, name: str) -> Any | None:
        """Return the client for *name*, building it on first call.

        Returns ``None`` when no factory is registered.
        """
        instance = self._instances.get(name)
        if instance is not None:
            return instance
        with self._lock:
            instance = self._instances.get(name)
            if instance is None:
                factory = self._factories.get(name)
                if factory is None:
                    return None
                instance = factory()
                self._instances[name] = instance
                logger.info("provider_initialized", provider=name)
            return instance

    async def aclose(self) -> None:
        """Close built clients that hold connections, then forget everything."""
        with self._lock:
            instances = list(self._instances.values())
        for instance in instances:
            close = getattr(instance, "aclose", None)
            if close is not None:
                await close()
        self.clear()

    def clear(self) -> None:
        with self._lock:
            self._factories.clear()
            self._instances.clear()
