"""Exception hierarchy shared across locator resolution, download, and inference.

Resolving a map document spans configuration parsing, HTTP retrieval, archive
extraction, workspace materialisation, and projection handling.  This module
groups those failure modes into a small hierarchy so callers can react to
high-level categories (for example, network failures vs. missing projections)
while still having access to the original cause through exception chaining.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "LayerResolveError",
    "ConfigurationError",
    "LocatorError",
    "NetworkError",
    "SrsError",
    "FilesystemError",
    "is_already_exists",
]


class LayerResolveError(RuntimeError):
    """Base exception for document resolution and cache flush failures."""


class ConfigurationError(LayerResolveError):
    """Raised when a required option is missing or malformed."""


class LocatorError(LayerResolveError):
    """Raised when a locator cannot be turned into a usable local file."""


class NetworkError(LayerResolveError):
    """Raised when fetching a remote resource fails."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class SrsError(LayerResolveError):
    """Raised when no spatial reference can be determined or parsed."""


class FilesystemError(LayerResolveError):
    """Raised for filesystem failures other than benign already-exists races."""


def is_already_exists(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` only reports that a target already exists."""

    if isinstance(exc, FileExistsError):
        return True
    cause = exc.__cause__
    return isinstance(cause, FileExistsError)
# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.errors",
#   "purpose": "Define the exception hierarchy used across resolution, download, and flush",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "locator", "name": "Locator & Network Errors", "anchor": "LOC", "kind": "api"},
#     {"id": "srs", "name": "Projection Errors", "anchor": "SRS", "kind": "api"},
#     {"id": "helpers", "name": "Error Classification Helpers", "anchor": "HLP", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===
