"""The context isolation engine.

Handlers running one after another in a request pipeline often want to use
the same property names without stepping on each other. The engine gives
every wrapped handler its own property bag on the request and routes each
read and write of a tracked property to the bag of the handler that is
running. The bags can be recovered afterwards, all at once or per handler.

Typical wiring::

    context = create(["foo", "bar"])

    pipeline = Pipeline(
        context,                    # install the namespace
        context.isolate(first),     # first sees its own foo/bar
        context.isolate(second),    # so does second
    )

    context.resolve(request)                  # {"first": {...}, "second": {...}}
    context.isolate(first).resolve(request)   # first's bag only
"""

import itertools
import logging
from collections.abc import Mapping
from typing import Any, Optional

import structlog
from structlog.contextvars import bound_contextvars

from contextualize.config import ContextOptions, normalize_options
from contextualize.engine.context import activate, get_active
from contextualize.engine.identifiers import IdentifierStore, derive_name
from contextualize.engine.namespace import NamespaceStore, RequestNamespace
from contextualize.engine.units import Stage, Unit, invoke
from contextualize.engine.view import ContextView
from contextualize.exceptions import NotIdentifiedError, UncontextualizedError

logger = structlog.wrap_logger(logging.getLogger(__name__))

_serials = itertools.count(1)


class Wrapped(Unit):
    """A handler bound to its own identifier."""

    def __init__(self, engine: "Contextualize", handler: Stage, identifier: str):
        super().__init__(engine, handler, context=identifier)

    @property
    def original(self) -> Stage:
        return self._stage

    @property
    def identifier(self) -> str:
        return self.context

    async def __call__(self, request: Any, *args: Any) -> None:
        await self._engine._run_isolated(self._stage, self.context, request, *args)

    def __repr__(self) -> str:
        return f"Wrapped({self._stage!r}, identifier={self.context!r})"


class Contextualize(Unit):
    """
    Root stage of the engine.

    Calling it installs the request namespace; its methods wrap handlers,
    compose units and retrieve captured state.

    Args:
        options: A property name, a list of property names, a mapping of
            options or ``ContextOptions``. See ``normalize_options``.
    """

    def __init__(self, options: Any):
        self._options = normalize_options(options)
        self._serial = next(_serials)
        self._identifiers = IdentifierStore(
            strict=self._options.strict,
            anonymous_prefix=self._options.anonymous_prefix,
        )
        self._namespaces = NamespaceStore(
            label=self._options.context,
            owner=self._serial,
            properties=self._options.properties,
        )
        super().__init__(self, self._install)
        logger.debug(
            "engine_created",
            context=self.label,
            properties=list(self.properties),
            strict=self.strict,
        )

    @property
    def options(self) -> ContextOptions:
        return self._options

    @property
    def properties(self) -> tuple[str, ...]:
        return self._options.properties

    @property
    def label(self) -> str:
        return self._options.context

    @property
    def strict(self) -> bool:
        return self._options.strict

    # Namespace

    def _install(self, request: Any, *args: Any) -> None:
        self._namespaces.ensure_root(request)

    def install(self, request: Any) -> RequestNamespace:
        """Install the namespace on ``request`` (idempotent) and return it."""
        return self._namespaces.ensure_root(request)

    def is_contextualized(self, request: Any) -> bool:
        return self._namespaces.find(request) is not None

    # Identifiers

    def get_id(self, obj: Any) -> Optional[str]:
        """
        Return the identifier of ``obj``.

        Raises:
            NotIdentifiedError: If ``obj`` has none and the engine is strict
        """
        identifier = self._lookup(obj)
        if identifier is None and self.strict:
            raise NotIdentifiedError(obj)
        return identifier

    def set_id(self, obj: Any, value: str) -> None:
        """Attach identifier ``value`` to ``obj``."""
        self._store(obj, value)

    def _lookup(self, obj: Any) -> Optional[str]:
        # A custom getter is consulted first; the built-in table fills the gaps
        identifier = None
        if self._options.get_id is not None:
            identifier = self._options.get_id(obj)
        if not identifier:
            identifier = self._identifiers.lookup(obj)
        return identifier

    def _store(self, obj: Any, value: str) -> None:
        custom_get, custom_set = self._options.get_id, self._options.set_id
        if custom_set is not None:
            custom_set(obj, value)
        if custom_set is None or custom_get is None:
            # Keep the built-in table readable by whichever getter is not custom
            self._identifiers.set(obj, value)
        else:
            self._identifiers.claim(value)

    def _assign(self, handler: Stage) -> str:
        if self._options.get_id is None and self._options.set_id is None:
            return self._identifiers.assign(handler)
        identifier = self._lookup(handler)
        if not identifier:
            name = derive_name(handler)
            identifier = self._identifiers.generate(name)
            self._store(handler, identifier)
            logger.debug("identifier_assigned", identifier=identifier, anonymous=name is None)
        return identifier

    # Handlers

    def wrap(self, handler: Stage) -> Wrapped:
        """
        Bind ``handler`` to its own identifier.

        The identifier is assigned on the first wrap and reused afterwards.
        The returned stage requires the namespace to be installed first when
        the engine is strict, and installs it itself otherwise.

        Raises:
            TypeError: If ``handler`` is not callable
        """
        if not callable(handler):
            raise TypeError("Handler must be callable.")
        if isinstance(handler, Wrapped) and handler._engine is self:
            return handler
        return Wrapped(self, handler, self._assign(handler))

    async def _run_isolated(self, handler: Stage, identifier: str, request: Any, *args: Any) -> None:
        namespace = self._namespaces.find(request)
        if namespace is None:
            if self.strict:
                raise UncontextualizedError(self.label)
            namespace = self._namespaces.ensure_root(request)
        namespace.bag(identifier)

        with activate(self._serial, identifier), bound_contextvars(context_id=identifier):
            try:
                await invoke(handler, request, *args)
            except Exception as e:
                logger.warning("handler_failed", identifier=identifier, error=str(e))
                raise

    # Properties

    def _current(self, request: Any) -> dict[str, Any]:
        namespace = self._namespaces.namespace(request)
        identifier = get_active(self._serial)
        if identifier is None and self.strict:
            raise NotIdentifiedError(
                message="No isolated handler is running",
                suggestion="Access contextualized properties from inside a wrapped handler.",
            )
        return namespace.bag(identifier)

    def _check_property(self, name: str) -> None:
        if name not in self._options.properties:
            raise AttributeError(f"'{name}' is not a contextualized property")

    def read(self, request: Any, name: str) -> Any:
        """Read ``name`` from the active handler's bag (None when never set)."""
        self._check_property(name)
        return self._current(request).get(name)

    def write(self, request: Any, name: str, value: Any) -> None:
        """Write ``name`` into the active handler's bag."""
        self._check_property(name)
        self._current(request)[name] = value

    def discard(self, request: Any, name: str) -> None:
        """Remove ``name`` from the active handler's bag."""
        self._check_property(name)
        self._current(request).pop(name, None)

    def view(self, request: Any) -> ContextView:
        """Return attribute-style access to the tracked properties of ``request``."""
        return ContextView(self, request)

    # Retrieval

    def _resolve(self, request: Any, selector: Any, as_mapping: bool = False) -> Any:
        namespace = self._namespaces.namespace(request)
        return self._select(namespace, selector, as_mapping)

    def _select(self, namespace: RequestNamespace, selector: Any, as_mapping: bool) -> Any:
        if isinstance(selector, Unit):
            return self._select(namespace, selector.context, as_mapping)
        if selector is None:
            return namespace
        if isinstance(selector, str):
            if as_mapping:
                return namespace.restrict([selector])
            return namespace.get(selector)
        if isinstance(selector, (list, tuple, set, frozenset)):
            return namespace.restrict(selector)
        if callable(selector):
            identifier = self.get_id(selector)
            if identifier is None:
                return None
            return self._select(namespace, identifier, as_mapping)
        raise TypeError(f"Cannot select a context with {type(selector).__name__}")

    def __repr__(self) -> str:
        return f"Contextualize(context={self.label!r}, properties={list(self.properties)!r})"


def create(options: Any = None, **kwargs: Any) -> Contextualize:
    """
    Create a context isolation engine.

    Accepts the same loose input as ``normalize_options``; keyword arguments
    are merged into it, so ``create("foo", context="bananas")`` works.
    """
    if options is None:
        options = kwargs
    elif kwargs:
        if isinstance(options, str):
            options = [options]
        if isinstance(options, (list, tuple)):
            options = {"properties": list(options)}
        if isinstance(options, ContextOptions):
            options = options.model_dump(by_alias=True)
        if isinstance(options, Mapping):
            options = {**options, **kwargs}
    return Contextualize(options)
