"""Configuration management using Pydantic Settings.

Two layers live here: process-wide ``Settings`` read from the environment,
and per-engine ``ContextOptions`` normalized from the loose input accepted by
``contextualize.create``.
"""

from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from contextualize.exceptions import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_prefix="CONTEXTUALIZE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(
        default="development",
        description="Environment: 'development', 'staging', or 'production'",
    )
    
    # Engine defaults
    default_context: str = Field(
        default="context",
        description="Name under which the request namespace is stored",
    )
    strict: bool = Field(
        default=True,
        description="Fail on missing identifiers and namespaces instead of defaulting",
    )
    anonymous_prefix: str = Field(
        default="anon",
        description="Prefix of identifiers generated for anonymous handlers",
    )
    
    # Example server settings
    host: str = Field(default="127.0.0.1", description="Example server bind address")
    port: int = Field(default=5553, description="Example server port")
    
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class ContextOptions(BaseModel):
    """Canonical engine configuration."""
    
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)
    
    properties: tuple[str, ...]
    context: str = Field(default_factory=lambda: get_settings().default_context)
    get_id: Optional[Callable[[Any], Optional[str]]] = Field(default=None, alias="get")
    set_id: Optional[Callable[[Any, str], None]] = Field(default=None, alias="set")
    strict: bool = Field(default_factory=lambda: get_settings().strict)
    anonymous_prefix: str = Field(default_factory=lambda: get_settings().anonymous_prefix)


def normalize_options(options: Any) -> ContextOptions:
    """
    Turn loose construction input into ``ContextOptions``.
    
    Args:
        options: A property name, a list of property names, a mapping of
            options, or an existing ``ContextOptions``.
        
    Returns:
        Validated options with defaults applied.
        
    Raises:
        ConfigError: If the input has the wrong shape or names non-string properties
    """
    if isinstance(options, ContextOptions):
        return options
    
    # Accept a single property name or a list of them
    if isinstance(options, str):
        options = [options]
    if isinstance(options, (list, tuple)):
        options = {"properties": list(options)}
    
    if not isinstance(options, Mapping):
        raise ConfigError(
            f"Options must be a string, a list of strings or a mapping, not {type(options).__name__}",
            invalid=[options],
        )
    
    options = dict(options)
    properties = options.get("properties")
    if not isinstance(properties, (list, tuple)):
        raise ConfigError("'properties' must be a list of strings", invalid=[properties])
    
    invalid = [entry for entry in properties if not isinstance(entry, str)]
    if invalid:
        raise ConfigError(f"Properties not strings: {invalid!r}", invalid=invalid)
    if not properties:
        raise ConfigError("At least one property must be contextualized")
    
    # Duplicates collapse, declaration order is kept
    options["properties"] = tuple(dict.fromkeys(properties))
    
    try:
        return ContextOptions.model_validate(options)
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        raise ConfigError(
            f"Invalid options: {', '.join(fields)}",
            suggestion="Check 'context' is a string and 'get'/'set' are callables.",
        ) from e
