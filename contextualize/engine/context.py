"""Active identifier tracking.

Each engine owns a serial number; the identifier currently in scope for that
engine lives in a single context variable mapping serial -> identifier.
Requests run in their own task, so the value is request scoped.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

_active_identifiers: ContextVar[Mapping[int, str]] = ContextVar(
    "contextualize_active_identifiers", default=MappingProxyType({})
)


def get_active(owner: int) -> Optional[str]:
    """Get the identifier active for an engine, if any."""
    return _active_identifiers.get().get(owner)


@contextmanager
def activate(owner: int, identifier: str) -> Iterator[None]:
    """Make ``identifier`` active for ``owner`` until the block exits."""
    current = _active_identifiers.get()
    token = _active_identifiers.set(MappingProxyType({**current, owner: identifier}))
    try:
        yield
    finally:
        _active_identifiers.reset(token)
