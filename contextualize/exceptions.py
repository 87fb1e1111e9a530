"""Custom exceptions for contextualize.

Every error carries a machine-readable code and an actionable suggestion so
that the host application can surface it as a structured response.
"""

from typing import Any


class ContextualizeError(Exception):
    """Base exception for all contextualize errors.
    
    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for categorization
        suggestion: Actionable suggestion for resolving the error
        details: Additional context about the error
    """
    
    def __init__(
        self,
        message: str,
        error_code: str = "CONTEXTUALIZE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.suggestion = suggestion
        self.details = details or {}
        super().__init__(self._format_message())
    
    def _format_message(self) -> str:
        """Format error message with suggestion if available."""
        msg = f"[{self.error_code}] {self.message}"
        if self.suggestion:
            msg += f" Suggestion: {self.suggestion}"
        return msg
    
    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON response."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "suggestion": self.suggestion,
            "details": self.details,
        }


class ConfigError(ContextualizeError, TypeError):
    """Raised when construction options are malformed."""
    
    def __init__(
        self,
        message: str,
        invalid: list[Any] | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.invalid = invalid or []
        if suggestion is None:
            suggestion = "Pass a property name, a list of property names, or a mapping with 'properties'."
        
        details: dict[str, Any] = {}
        if invalid:
            details["invalid"] = [repr(entry) for entry in invalid]
        
        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            suggestion=suggestion,
            details=details,
        )


class UncontextualizedError(ContextualizeError):
    """Raised when a request has no namespace because the root stage never ran."""
    
    def __init__(
        self,
        label: str,
        suggestion: str = "Install the contextualize root stage before any isolated handler.",
    ) -> None:
        self.label = label
        super().__init__(
            message=f"Request is not contextualized (no '{label}' namespace)",
            error_code="UNCONTEXTUALIZED",
            suggestion=suggestion,
            details={"context": label},
        )


class NotIdentifiedError(ContextualizeError, LookupError):
    """Raised when an object has no identifier where one is required."""
    
    def __init__(
        self,
        target: Any = None,
        message: str | None = None,
        suggestion: str = "Wrap the handler first, or assign an identifier with set_id().",
    ) -> None:
        self.target = target
        if message is None:
            message = f"No context identifier assigned to {target!r}"
        super().__init__(
            message=message,
            error_code="NOT_IDENTIFIED",
            suggestion=suggestion,
        )


class ContextLabelConflictError(ContextualizeError):
    """Raised when the context label slot on a request is owned by something else."""
    
    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(
            message=f"Request slot '{label}' is already in use",
            error_code="CONTEXT_LABEL_CONFLICT",
            suggestion="Give each engine sharing a request a distinct 'context' label.",
            details={"context": label},
        )
