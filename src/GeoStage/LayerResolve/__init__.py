# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve",
#   "purpose": "Package initialization for GeoStage.LayerResolve",
#   "sections": [
#     {"id": "exports", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Public API for resolving map document datasources.

``resolve`` turns the URLs and paths referenced by a map document's layers and
stylesheets into local workspace paths a renderer can read, downloading,
caching and unpacking remote data on the way and filling in each layer's
driver type and spatial reference.  ``flush`` removes what resolution created
for a single URL-backed layer.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .download import DownloadCoordinator, get_default_coordinator
from .errors import (
    ConfigurationError,
    FilesystemError,
    LayerResolveError,
    LocatorError,
    NetworkError,
    SrsError,
)
from .flush import flush
from .models import Datasource, Document, Layer, Stylesheet
from .pipeline import ResolutionResult, resolve
from .settings import FlushConfig, ResolveConfig, ResolverSettings
from .srs import WEB_MERCATOR, WGS84, normalize_srs

__all__ = [
    "__version__",
    "resolve",
    "flush",
    "ResolutionResult",
    "ResolveConfig",
    "FlushConfig",
    "ResolverSettings",
    "Document",
    "Layer",
    "Datasource",
    "Stylesheet",
    "DownloadCoordinator",
    "get_default_coordinator",
    "normalize_srs",
    "WGS84",
    "WEB_MERCATOR",
    "LayerResolveError",
    "ConfigurationError",
    "LocatorError",
    "NetworkError",
    "SrsError",
    "FilesystemError",
]
