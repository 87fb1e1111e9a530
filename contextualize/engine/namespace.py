"""Per-request namespace storage.

The namespace is stored on the request under the engine's context label:
on ``request.state`` for Starlette requests, as an item for mutable mappings
such as an ASGI scope, and as a plain attribute otherwise.
"""

import logging
from collections.abc import MutableMapping
from typing import Any, Iterable, Optional

import structlog

from contextualize.exceptions import ContextLabelConflictError, UncontextualizedError

logger = structlog.wrap_logger(logging.getLogger(__name__))


class RequestNamespace(dict):
    """Identifier -> property bag mapping for a single request."""

    def __init__(self, owner: int, properties: tuple[str, ...]):
        super().__init__()
        self.owner = owner
        self.properties = properties

    def bag(self, identifier: Optional[str]) -> dict[str, Any]:
        """Return the bag for ``identifier``, creating it on first reference."""
        if identifier not in self:
            self[identifier] = {}
        return self[identifier]

    def restrict(self, identifiers: Iterable[Optional[str]]) -> dict[Optional[str], dict[str, Any]]:
        """Return a plain mapping limited to the identifiers present."""
        return {identifier: self[identifier] for identifier in identifiers if identifier in self}


def _load(request: Any, label: str) -> Any:
    if isinstance(request, MutableMapping):
        return request.get(label)
    return getattr(getattr(request, "state", request), label, None)


def _store(request: Any, label: str, value: Any) -> None:
    if isinstance(request, MutableMapping):
        request[label] = value
    else:
        setattr(getattr(request, "state", request), label, value)


class NamespaceStore:
    """Creates and finds the namespaces of one engine."""

    def __init__(self, label: str, owner: int, properties: tuple[str, ...]):
        self.label = label
        self.owner = owner
        self.properties = properties

    def find(self, request: Any) -> Optional[RequestNamespace]:
        """
        Return the request's namespace, or None when it was never installed.

        Raises:
            ContextLabelConflictError: If the slot holds something this engine did not create
        """
        value = _load(request, self.label)
        if value is None:
            return None
        if isinstance(value, RequestNamespace) and value.owner == self.owner:
            return value
        raise ContextLabelConflictError(self.label)

    def ensure_root(self, request: Any) -> RequestNamespace:
        """Install an empty namespace on ``request`` unless it already has one."""
        namespace = self.find(request)
        if namespace is None:
            namespace = RequestNamespace(self.owner, self.properties)
            _store(request, self.label, namespace)
            logger.debug("namespace_installed", context=self.label, properties=list(self.properties))
        return namespace

    def namespace(self, request: Any) -> RequestNamespace:
        """Return the request's namespace or raise ``UncontextualizedError``."""
        namespace = self.find(request)
        if namespace is None:
            raise UncontextualizedError(self.label)
        return namespace

    def bag_for(self, request: Any, identifier: Optional[str]) -> dict[str, Any]:
        """Return the property bag of ``identifier`` on ``request``."""
        return self.namespace(request).bag(identifier)
