# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.locators",
#   "purpose": "Classify datasource locators and compute content-addressed cache and workspace paths",
#   "sections": [
#     {"id": "constants", "name": "Locator Constants", "anchor": "CON", "kind": "constants"},
#     {"id": "classification", "name": "Locator Classification", "anchor": "CLS", "kind": "api"},
#     {"id": "paths", "name": "Cache & Workspace Paths", "anchor": "PTH", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Locator classification and path arithmetic.

A locator is whatever the document author put in ``Datasource.file``: a URL,
an absolute path, or a path relative to the project workspace.  Remote
resources are cached under a content address derived from the exact URL text
so repeated resolutions map to the same cache entry::

    <cache>/<md5[:8]>-<basename>/<md5[:8]>-<basename>.zip   (archives, shapefiles)
    <cache>/<md5[:8]>-<basename>.csv                         (everything else)

Shapefiles need their sibling files (``.dbf``, ``.shx``, ``.prj``) to share a
basename, which is why that family gets a private directory per hash.
"""

from __future__ import annotations

import enum
import hashlib
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from .errors import LocatorError

__all__ = [
    "MULTI_FILE_EXTENSIONS",
    "URL_SCHEMES",
    "LocatorKind",
    "Locator",
    "classify_locator",
    "content_hash",
    "cache_path_for_url",
    "sidecar_path",
    "workspace_layers_dir",
    "workspace_path_for",
    "is_multi_file",
]

# --- Locator Constants ---------------------------------------------------------

MULTI_FILE_EXTENSIONS = frozenset({".zip", ".shp"})
URL_SCHEMES = frozenset({"http", "https", "ftp", "file"})


class LocatorKind(str, enum.Enum):
    """Where a locator points."""

    URL = "url"
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


@dataclass(frozen=True)
class Locator:
    """A classified locator.

    Attributes:
        raw: The locator exactly as written in the document.
        kind: Whether the locator is a URL, an absolute path, or a relative path.
        path: URL path component (for URLs) or the filesystem path as written.
        extension: Extension of ``path`` as written (case preserved).
    """

    raw: str
    kind: LocatorKind
    path: str
    extension: str

    @property
    def is_url(self) -> bool:
        return self.kind is LocatorKind.URL

    @property
    def basename(self) -> str:
        """Final path component without its extension."""

        name = posixpath.basename(self.path.rstrip("/"))
        if self.extension and name.endswith(self.extension):
            return name[: -len(self.extension)]
        return name


# --- Locator Classification ----------------------------------------------------


def classify_locator(raw: str) -> Locator:
    """Classify ``raw`` as a URL, absolute local path, or project-relative path.

    ``file:`` URLs are reported as absolute paths since no transfer is needed.
    Single letter schemes are Windows drive letters, not URLs.

    Raises:
        LocatorError: If ``raw`` is empty or a URL without a host.
    """

    if not raw or not raw.strip():
        raise LocatorError("datasource locator is empty")

    parsed = urlparse(raw)
    scheme = parsed.scheme.lower()
    if len(scheme) > 1:
        if scheme not in URL_SCHEMES:
            raise LocatorError(f"unsupported URL scheme {parsed.scheme!r} in {raw}")
        if scheme == "file":
            local = unquote(parsed.path)
            return Locator(raw, LocatorKind.ABSOLUTE, local, posixpath.splitext(local)[1])
        if not parsed.netloc:
            raise LocatorError(f"invalid URL {raw}: missing host")
        url_path = unquote(parsed.path)
        return Locator(raw, LocatorKind.URL, url_path, posixpath.splitext(url_path)[1])

    kind = LocatorKind.ABSOLUTE if Path(raw).is_absolute() else LocatorKind.RELATIVE
    return Locator(raw, kind, raw, Path(raw).suffix)


def is_multi_file(extension: str) -> bool:
    """Return ``True`` for formats that travel as a directory of siblings."""

    return extension.lower() in MULTI_FILE_EXTENSIONS


# --- Cache & Workspace Paths ---------------------------------------------------


def content_hash(url: str) -> str:
    """Return the eight hex character digest prefix used as a content address."""

    return hashlib.md5(url.encode("utf-8")).hexdigest()[:8]


def cache_path_for_url(cache_base: Path, locator: Locator) -> Path:
    """Return the canonical cache path for a URL locator.

    The result depends only on the URL text and its basename/extension.
    """

    if not locator.is_url:
        raise LocatorError(f"{locator.raw} is not a URL")
    key = f"{content_hash(locator.raw)}-{locator.basename}"
    if is_multi_file(locator.extension):
        return cache_base / key / f"{key}{locator.extension}"
    return cache_base / f"{key}{locator.extension}"


def sidecar_path(payload: Path) -> Path:
    """Return the hidden header sidecar path stored beside ``payload``."""

    return payload.with_name(f".{payload.name}")


def workspace_layers_dir(workspace_base: Path) -> Path:
    return workspace_base / "layers"


def workspace_path_for(
    workspace_base: Path, layer_name: str, extension: str, member: Optional[str] = None
) -> Path:
    """Return where a layer's data appears inside the workspace.

    Multi-file formats live in ``layers/<layer>/<member>``; single files are
    linked directly as ``layers/<layer><ext>``.
    """

    layers = workspace_layers_dir(workspace_base)
    if is_multi_file(extension):
        directory = layers / layer_name
        return directory / member if member else directory
    return layers / f"{layer_name}{extension}"
