"""Single-method capability interface over retrieval and search collaborators.

Collaborators arrive in two shapes: an object exposing ``execute(options)``
(tool style, the query travels inside *options*) or a plain callable taking
``(query, options)``.  Either may be sync or async.  ``as_invocable`` wraps
both behind ``Invocable.invoke`` so the orchestrator only sees one interface.
"""

from __future__ import annotations

import inspect
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Invocable(Protocol):
    """Protocol for a query-driven collaborator."""

    async def invoke(self, query: str, options: dict[str, Any]) -> Any:
        """Run *query* with *options* and return the collaborator's raw response."""
        ...


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class ExecuteAdapter:
    """Adapter for objects exposing ``execute({"query": ..., **options})``."""

    def __init__(self, target: Any) -> None:
        self.target = target

    async def invoke(self, query: str, options: dict[str, Any]) -> Any:
        return await _resolve(self.target.execute({"query": query, **options}))


class FunctionAdapter:
    """Adapter for callables invoked as ``fn(query, options)``."""

    def __init__(self, target: Any) -> None:
        self.target = target

    async def invoke(self, query: str, options: dict[str, Any]) -> Any:
        return await _resolve(self.target(query, options))


def as_invocable(collaborator: Any) -> Invocable:
    """Wrap *collaborator* in the adapter matching its shape.

    An ``execute`` attribute wins over plain callability, so tool objects that
    also define ``__call__`` are still invoked through ``execute``.

    Raises:
        TypeError: If the collaborator is neither shape.
    """
    if isinstance(collaborator, (ExecuteAdapter, FunctionAdapter)):
        return collaborator
    if callable(getattr(collaborator, "execute", None)):
        return ExecuteAdapter(collaborator)
    if callable(collaborator):
        return FunctionAdapter(collaborator)
    raise TypeError(
        f"{type(collaborator).__name__} is neither callable nor exposes execute()"
    )
