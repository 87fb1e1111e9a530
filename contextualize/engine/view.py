"""Attribute-style access to contextualized properties.

Handlers read and write tracked properties through a view as if they were
plain attributes; each access is routed to the bag of whichever identifier
is active at that moment.

Example::

    context = create(["foo", "bar"])

    def first(request, response):
        view = context.view(request)
        view.foo = 5
        assert view.foo == 5
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from contextualize.engine.core import Contextualize


class ContextView:
    """Routes tracked attribute access on a request to the active bag."""

    __slots__ = ("_engine", "_request")

    def __init__(self, engine: "Contextualize", request: Any) -> None:
        object.__setattr__(self, "_engine", engine)
        object.__setattr__(self, "_request", request)

    def _check(self, name: str) -> None:
        if name not in self._engine.properties:
            raise AttributeError(f"'{name}' is not a contextualized property")

    def __getattr__(self, name: str) -> Any:
        self._check(name)
        return self._engine.read(self._request, name)

    def __setattr__(self, name: str, value: Any) -> None:
        self._check(name)
        self._engine.write(self._request, name, value)

    def __delattr__(self, name: str) -> None:
        self._check(name)
        self._engine.discard(self._request, name)

    def __dir__(self) -> list[str]:
        return list(self._engine.properties)

    def __repr__(self) -> str:
        return f"ContextView(context={self._engine.label!r}, properties={list(self._engine.properties)!r})"
