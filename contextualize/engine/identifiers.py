"""Identifier side table.

Identifiers name the namespaces handlers write into. They are kept in a table
owned by the engine, keyed by object identity, so handlers passed in by the
caller are never modified. Entries hold their objects weakly where the object
allows it, so an identifier lives only as long as the object it names.
"""

import itertools
import logging
import weakref
from collections import Counter
from types import MethodType
from typing import Any, Callable, Hashable, Optional

import structlog

from contextualize.exceptions import NotIdentifiedError

logger = structlog.wrap_logger(logging.getLogger(__name__))


def _identity(obj: Any) -> Hashable:
    # Bound methods are recreated on every attribute access
    if isinstance(obj, MethodType):
        return (id(obj.__self__), id(obj.__func__))
    return id(obj)


def _reference(obj: Any, callback: Callable[[Any], None]) -> Any:
    """Return a zero-argument getter for ``obj``, weak where possible."""
    if isinstance(obj, MethodType):
        # The function outlives the instance; only the instance is tracked
        target = obj.__self__
    else:
        target = obj
    try:
        return weakref.ref(target, callback)
    except TypeError:
        return lambda: target


def derive_name(obj: Any) -> Optional[str]:
    """Return the name an identifier is derived from, or None for anonymous objects."""
    name = getattr(obj, "__name__", None)
    if isinstance(name, str) and name.isidentifier():
        return name
    return None


class IdentifierStore:
    """Maps objects to the identifiers of their namespaces."""

    def __init__(self, strict: bool = True, anonymous_prefix: str = "anon"):
        self.strict = strict
        self.anonymous_prefix = anonymous_prefix
        # identity -> (reference, identifier)
        self._entries: dict[Hashable, tuple[Any, str]] = {}
        # identifier -> number of live holders
        self._claimed: Counter[str] = Counter()
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, obj: Any) -> Optional[str]:
        """Return the identifier of ``obj`` or None."""
        entry = self._entries.get(_identity(obj))
        if entry is None or entry[0]() is None:
            return None
        return entry[1]

    def get(self, obj: Any) -> Optional[str]:
        """
        Return the identifier of ``obj``.

        Raises:
            NotIdentifiedError: If none was assigned and the store is strict
        """
        identifier = self.lookup(obj)
        if identifier is None and self.strict:
            raise NotIdentifiedError(obj)
        return identifier

    def set(self, obj: Any, value: str) -> None:
        """Attach ``value`` to ``obj``, replacing any previous identifier."""
        if not isinstance(value, str):
            raise TypeError(f"Identifier must be a string, not {type(value).__name__}")
        key = _identity(obj)
        self._drop(key)

        def expire(ref: Any, key: Hashable = key) -> None:
            entry = self._entries.get(key)
            if entry is not None and entry[0] is ref:
                self._drop(key)

        self._entries[key] = (_reference(obj, expire), value)
        self._claimed[value] += 1

    def _drop(self, key: Hashable) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        self._claimed[entry[1]] -= 1
        if self._claimed[entry[1]] <= 0:
            del self._claimed[entry[1]]

    def claim(self, value: str) -> None:
        """Reserve ``value`` for an object whose identifier is stored elsewhere."""
        self._claimed[value] += 1

    def generate(self, name: Optional[str] = None) -> str:
        """Produce an unused identifier, preferring ``name`` when it is free."""
        candidate = name
        while not candidate or candidate in self._claimed:
            candidate = f"{name or self.anonymous_prefix}_{next(self._counter)}"
        return candidate

    def assign(self, obj: Any) -> str:
        """Give ``obj`` an identifier unless it already has one."""
        identifier = self.lookup(obj)
        if identifier is None:
            name = derive_name(obj)
            identifier = self.generate(name)
            self.set(obj, identifier)
            logger.debug("identifier_assigned", identifier=identifier, anonymous=name is None)
        return identifier
