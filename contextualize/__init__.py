"""Per-handler isolation of request properties in sequential pipelines."""

__version__ = "0.1.0"

from contextualize.config import ContextOptions, Settings, get_settings, normalize_options
from contextualize.engine.core import Contextualize, Wrapped, create
from contextualize.engine.namespace import RequestNamespace
from contextualize.engine.units import Unit, parallel, serial
from contextualize.engine.view import ContextView
from contextualize.exceptions import (
    ConfigError,
    ContextLabelConflictError,
    ContextualizeError,
    NotIdentifiedError,
    UncontextualizedError,
)

__all__ = [
    "__version__",
    "create",
    "Contextualize",
    "ContextOptions",
    "ContextView",
    "RequestNamespace",
    "Settings",
    "Unit",
    "Wrapped",
    "get_settings",
    "normalize_options",
    "parallel",
    "serial",
    "ConfigError",
    "ContextLabelConflictError",
    "ContextualizeError",
    "NotIdentifiedError",
    "UncontextualizedError",
]
