# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.settings",
#   "purpose": "Define call configuration models and environment-backed resolver settings",
#   "sections": [
#     {
#       "id": "resolversettings",
#       "name": "ResolverSettings",
#       "anchor": "class-resolversettings",
#       "kind": "class"
#     },
#     {
#       "id": "get-settings",
#       "name": "get_settings",
#       "anchor": "function-get-settings",
#       "kind": "function"
#     },
#     {
#       "id": "invalidate-settings-cache",
#       "name": "invalidate_settings_cache",
#       "anchor": "function-invalidate-settings-cache",
#       "kind": "function"
#     },
#     {
#       "id": "resolveconfig",
#       "name": "ResolveConfig",
#       "anchor": "class-resolveconfig",
#       "kind": "class"
#     },
#     {
#       "id": "flushconfig",
#       "name": "FlushConfig",
#       "anchor": "class-flushconfig",
#       "kind": "class"
#     },
#     {
#       "id": "coerce-config",
#       "name": "coerce_config",
#       "anchor": "function-coerce-config",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Configuration models for layer resolution.

Two kinds of configuration live here.  :class:`ResolverSettings` carries
process-level tuning (pool sizes, HTTP timeouts, link mode, logging) and is
read from ``LAYERRESOLVE_*`` environment variables through
``pydantic-settings``.  :class:`ResolveConfig` and :class:`FlushConfig` carry
the per-call options; every field is required and validated before any
filesystem or network activity begins.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import Document

__all__ = [
    "ResolverSettings",
    "ResolveConfig",
    "FlushConfig",
    "get_settings",
    "invalidate_settings_cache",
    "coerce_config",
]

LOGGER = logging.getLogger("GeoStage.LayerResolve")

LinkMode = Literal["auto", "symlink", "copy"]


class ResolverSettings(BaseSettings):
    """Process-level knobs for downloads, fan-out, materialisation, and logging."""

    max_concurrent_downloads: int = Field(
        default=5,
        ge=1,
        le=64,
        description="Upper bound on simultaneous outbound transfers",
    )
    max_workers: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Worker threads used to fan out layer and stylesheet tasks",
    )
    connect_timeout_sec: float = Field(default=10.0, gt=0.0, le=120.0)
    read_timeout_sec: float = Field(default=60.0, gt=0.0, le=3600.0)
    follow_redirects: bool = Field(default=True)
    user_agent: str = Field(default="GeoStage-LayerResolve/0.1")
    link_mode: LinkMode = Field(
        default="auto",
        description="How resolved files enter the workspace (symlink, copy, or auto-detect)",
    )
    log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for JSON-lines log files; console only when unset",
    )

    model_config = SettingsConfigDict(
        env_prefix="LAYERRESOLVE_", case_sensitive=False, extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"log_level must be one of {sorted(valid_levels)}")
        return upper


_SETTINGS_LOCK = threading.Lock()
_SETTINGS_CACHE: Optional[ResolverSettings] = None


def get_settings() -> ResolverSettings:
    """Return memoised :class:`ResolverSettings` built from the environment."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = ResolverSettings()
            LOGGER.debug(
                "resolver settings loaded",
                extra={"stage": "config", "settings": _SETTINGS_CACHE.model_dump(mode="json")},
            )
        return _SETTINGS_CACHE


def invalidate_settings_cache() -> None:
    """Forget memoised settings so the next lookup re-reads the environment."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None


def _require_absolute(value: Path, field: str) -> Path:
    if not value.is_absolute():
        raise ValueError(f"{field} must be an absolute path, got {value}")
    return value


class ResolveConfig(BaseModel):
    """Options for a single :func:`~GeoStage.LayerResolve.pipeline.resolve` call."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    document: Document
    workspace_base: Path
    cache_base: Path

    @field_validator("document", mode="before")
    @classmethod
    def coerce_document(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return Document.from_mapping(value)
        return value

    @field_validator("workspace_base")
    @classmethod
    def validate_workspace(cls, value: Path) -> Path:
        return _require_absolute(value, "workspace_base")

    @field_validator("cache_base")
    @classmethod
    def validate_cache(cls, value: Path) -> Path:
        return _require_absolute(value, "cache_base")


class FlushConfig(BaseModel):
    """Options for a single :func:`~GeoStage.LayerResolve.flush.flush` call."""

    model_config = ConfigDict(frozen=True)

    workspace_base: Path
    cache_base: Path
    layer_name: str = Field(min_length=1)
    url: str = Field(min_length=1)

    @field_validator("workspace_base")
    @classmethod
    def validate_workspace(cls, value: Path) -> Path:
        return _require_absolute(value, "workspace_base")

    @field_validator("cache_base")
    @classmethod
    def validate_cache(cls, value: Path) -> Path:
        return _require_absolute(value, "cache_base")


ConfigT = TypeVar("ConfigT", ResolveConfig, FlushConfig)


def coerce_config(
    model: Type[ConfigT], config: Union[ConfigT, Mapping[str, Any], None]
) -> ConfigT:
    """Validate ``config`` into ``model``, raising :class:`ConfigurationError` on failure."""

    if config is None:
        raise ConfigurationError("options are required")
    if isinstance(config, model):
        return config
    if not isinstance(config, Mapping):
        raise ConfigurationError(
            f"options must be a mapping or {model.__name__}, got {type(config).__name__}"
        )
    try:
        return model.model_validate(dict(config))
    except PydanticValidationError as exc:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "options"
            if error.get("type") == "missing":
                problems.append(f"options.{location} is required")
            else:
                problems.append(f"options.{location}: {error.get('msg')}")
        raise ConfigurationError("; ".join(problems)) from exc
