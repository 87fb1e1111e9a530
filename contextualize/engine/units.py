"""Composable pipeline units.

A stage is any callable taking ``(request, *args)``; the host passes
``(request, response)``. Stages may be plain functions or coroutine
functions. Returning signals completion, raising short-circuits the rest of
the pipeline.

``Unit`` wraps a stage together with the engine's accessor surface so that
composed results can be installed in a pipeline and queried afterwards in the
same way as the engine itself.
"""

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from contextualize.engine.core import Contextualize
    from contextualize.engine.view import ContextView

Stage = Callable[..., Any]


async def invoke(stage: Stage, request: Any, *args: Any) -> None:
    """Run one stage, awaiting it when it returns an awaitable."""
    result = stage(request, *args)
    if inspect.isawaitable(result):
        await result


def _require_callable(stages: tuple[Any, ...]) -> None:
    for stage in stages:
        if not callable(stage):
            raise TypeError(f"Stage must be callable, not {type(stage).__name__}")


def serial(*stages: Stage) -> Stage:
    """Combine stages into one that runs them in order."""
    _require_callable(stages)

    async def run_serial(request: Any, *args: Any) -> None:
        for stage in stages:
            await invoke(stage, request, *args)

    return run_serial


def parallel(*stages: Stage) -> Stage:
    """
    Combine stages into one that runs them concurrently.

    Completes once every member has finished; the first member error (in
    declaration order) is raised after that.
    """
    _require_callable(stages)

    async def run_parallel(request: Any, *args: Any) -> None:
        results = await asyncio.gather(
            *(invoke(stage, request, *args) for stage in stages),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    return run_parallel


class Unit:
    """A callable pipeline stage carrying the engine's accessor surface."""

    def __init__(self, engine: "Contextualize", stage: Stage, **properties: Any):
        self._engine = engine
        self._stage = stage
        self.context = None
        self.__dict__.update(properties)

    async def __call__(self, request: Any, *args: Any) -> None:
        await invoke(self._stage, request, *args)

    def _surface(self) -> dict[str, Any]:
        return {name: value for name, value in vars(self).items() if not name.startswith("_")}

    @property
    def properties(self) -> tuple[str, ...]:
        return self._engine.properties

    @property
    def label(self) -> str:
        return self._engine.label

    @property
    def strict(self) -> bool:
        return self._engine.strict

    # Composition

    def chain(self, *stages: Stage) -> "Unit":
        """Return a unit running this one, then ``stages``, in strict sequence."""
        return Unit(self._engine, serial(self, *stages), **self._surface())

    def mixin(self, **properties: Any) -> "Unit":
        """Return a unit invoking this one and exposing extra ``properties``."""
        for name in properties:
            if name.startswith("_") or name in ("engine", "stage") or hasattr(Unit, name):
                raise TypeError(f"Cannot mix in reserved attribute '{name}'")
        return Unit(self._engine, self, **{**self._surface(), **properties})

    def isolate(self, handlers: Any) -> "Unit":
        """
        Return a unit running this one, then ``handlers`` under their own identifiers.

        A list of handlers runs as a group; resolving the result yields a
        mapping across all member identifiers.
        """
        if isinstance(handlers, (list, tuple)):
            members = [self._engine.wrap(handler) for handler in handlers]
            stage = parallel(*members)
            context: Any = [member.identifier for member in members]
        else:
            stage = self._engine.wrap(handlers)
            context = stage.identifier
        return self.mixin(context=context).chain(stage)

    # Delegates

    def wrap(self, handler: Stage) -> "Unit":
        return self._engine.wrap(handler)

    def resolve(self, request: Any, selector: Any = ..., as_mapping: bool = False) -> Any:
        """Return the namespace slice selected by ``selector`` (default: this unit's context)."""
        if selector is ...:
            selector = self.context
        return self._engine._resolve(request, selector, as_mapping)

    def view(self, request: Any) -> "ContextView":
        return self._engine.view(request)

    def read(self, request: Any, name: str) -> Any:
        return self._engine.read(request, name)

    def write(self, request: Any, name: str, value: Any) -> None:
        self._engine.write(request, name, value)

    def get_id(self, obj: Any) -> Optional[str]:
        return self._engine.get_id(obj)

    def set_id(self, obj: Any, value: str) -> None:
        self._engine.set_id(obj, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(context={self.context!r})"
