# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.inference",
#   "purpose": "Infer datasource driver types, driver options, and spatial references",
#   "sections": [
#     {"id": "rules", "name": "Extension Rules", "anchor": "RUL", "kind": "constants"},
#     {"id": "extensions", "name": "Extension Discovery", "anchor": "EXT", "kind": "helpers"},
#     {"id": "inference", "name": "Type & SRS Inference", "anchor": "INF", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Driver type and spatial reference inference.

Inference is driven by the resolved file's extension.  Downloads whose URL
carried no extension are identified through the response headers saved in the
sidecar next to the cached payload: a ``Content-Disposition`` filename wins,
otherwise the ``Content-Type`` is mapped to an extension.

Explicit ``Datasource.type`` values are never replaced.  KML and RSS sources
are always WGS84, whatever the document says; delimited text and GeoJSON only
fall back to their default when the layer has no srs.  Shapefiles without an
srs read it from the sibling ``.prj`` file.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import unquote

from .download import read_header_sidecar
from .errors import LocatorError, SrsError
from .models import Datasource, Layer
from .srs import WGS84, ProjectionParser, parse_projection

LOGGER = logging.getLogger("GeoStage.LayerResolve.inference")

__all__ = [
    "Inference",
    "extension_from_headers",
    "effective_extension",
    "infer_datasource",
    "read_prj_srs",
    "apply_inference",
]

# --- Extension Rules -----------------------------------------------------------

_SRS_FROM_CONTENT = "<content>"


@dataclass(frozen=True)
class _Rule:
    type: str
    options: Mapping[str, Any] = field(default_factory=dict)
    srs: Optional[str] = None
    force_srs: bool = False


_SHAPE = _Rule("shape")
_GDAL = _Rule("gdal")
_GEOJSON = _Rule("ogr", {"layer_by_index": 0}, srs=_SRS_FROM_CONTENT)
_FEED = _Rule("ogr", {"layer_by_index": 0}, srs=WGS84, force_srs=True)
_DELIMITED = _Rule("csv", {"quiet": True}, srs=WGS84)

_EXTENSION_RULES: Dict[str, _Rule] = {
    ".shp": _SHAPE,
    ".zip": _SHAPE,
    ".geotiff": _GDAL,
    ".geotif": _GDAL,
    ".tif": _GDAL,
    ".tiff": _GDAL,
    ".vrt": _GDAL,
    ".geojson": _GEOJSON,
    ".json": _GEOJSON,
    ".kml": _FEED,
    ".rss": _FEED,
    ".csv": _DELIMITED,
    ".tsv": _DELIMITED,
    ".txt": _DELIMITED,
}

_GEO_MEDIA_TYPES: Dict[str, str] = {
    "application/vnd.google-earth.kml+xml": ".kml",
    "application/geo+json": ".geojson",
    "application/vnd.geo+json": ".geojson",
    "application/json": ".json",
    "application/zip": ".zip",
    "application/x-zip-compressed": ".zip",
    "application/rss+xml": ".rss",
    "text/csv": ".csv",
    "text/tab-separated-values": ".tsv",
    "text/plain": ".txt",
    "image/tiff": ".tif",
    "image/geotiff": ".tif",
}


@dataclass
class Inference:
    """Outcome of inspecting one datasource.

    Attributes:
        extension: Extension used for the lookup (lower-case, may be empty).
        type: Driver tag implied by the extension, if any.
        options: Extra datasource options implied by the extension.
        srs: Spatial reference implied by the format, if any.
        force_srs: Whether ``srs`` overrides a value set by the document.
    """

    extension: str
    type: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    srs: Optional[str] = None
    force_srs: bool = False


# --- Extension Discovery -------------------------------------------------------


def _filename_from_disposition(disposition: Optional[str]) -> Optional[str]:
    if not disposition:
        return None
    for part in (segment.strip() for segment in disposition.split(";")):
        lower = part.lower()
        if lower.startswith("filename*="):
            value = part.split("=", 1)[1].strip()
            _, _, encoded = value.partition("''")
            candidate = unquote(encoded or value).strip('"')
            if candidate:
                return candidate
        elif lower.startswith("filename="):
            candidate = part.split("=", 1)[1].strip().strip('"')
            if candidate:
                return candidate
    return None


def extension_from_headers(headers: Mapping[str, str]) -> str:
    """Derive a file extension from stored response headers ('' when unknown)."""

    lowered = {key.lower(): value for key, value in headers.items()}
    filename = _filename_from_disposition(lowered.get("content-disposition"))
    if filename:
        extension = os.path.splitext(filename)[1].lower()
        if extension:
            return extension

    content_type = (lowered.get("content-type") or "").split(";", 1)[0].strip().lower()
    if not content_type:
        return ""
    if content_type in _GEO_MEDIA_TYPES:
        return _GEO_MEDIA_TYPES[content_type]
    return (mimetypes.guess_extension(content_type, strict=False) or "").lower()


def effective_extension(file: Path, origin: Optional[Path] = None) -> str:
    """Return the extension used for inference, consulting the header sidecar if needed.

    The sidecar sits beside the cached payload: ``origin`` when the caller
    knows it, otherwise wherever ``file`` links to.
    """

    extension = file.suffix.lower()
    if extension:
        return extension
    target = origin if origin is not None else Path(os.path.realpath(file))
    headers = read_header_sidecar(target)
    if not headers:
        return ""
    extension = extension_from_headers(headers)
    LOGGER.debug(
        "extension derived from response headers",
        extra={"stage": "infer", "path": str(file), "extension": extension},
    )
    return extension


# --- Type & SRS Inference ------------------------------------------------------


def _geojson_srs(file: Path, parser: ProjectionParser) -> str:
    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise LocatorError(f"{file} does not exist") from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LocatorError(f"{file} is not valid JSON: {exc}") from exc
    crs = payload.get("crs") if isinstance(payload, dict) else None
    name = None
    if isinstance(crs, dict):
        properties = crs.get("properties")
        if isinstance(properties, dict):
            name = properties.get("name")
    if not name:
        return WGS84
    return parse_projection(str(name), parser)


def infer_datasource(
    datasource: Datasource,
    layer_name: str,
    *,
    parser: ProjectionParser,
    srs: Optional[str] = None,
    origin: Optional[Path] = None,
) -> Inference:
    """Inspect ``datasource`` and report the type, options and srs its extension implies.

    Args:
        datasource: Datasource whose ``file`` is already a resolved local path.
        layer_name: Name used in error messages.
        parser: Projection parser used for GeoJSON ``crs`` members.
        srs: The layer's current srs; content-derived srs is only computed without one.
        origin: Cached payload ``file`` was materialised from, if any.
    """

    if not datasource.file:
        raise LocatorError(f"layer `{layer_name}` has no datasource file")
    file = Path(datasource.file)
    extension = effective_extension(file, origin)
    rule = _EXTENSION_RULES.get(extension)
    if rule is None:
        return Inference(extension=extension)

    hint = rule.srs
    if hint == _SRS_FROM_CONTENT:
        hint = _geojson_srs(file, parser) if not srs else None
    return Inference(
        extension=extension,
        type=rule.type,
        options=dict(rule.options),
        srs=hint,
        force_srs=rule.force_srs,
    )


def read_prj_srs(shapefile: Path, parser: ProjectionParser, layer_name: str) -> str:
    """Return the proj4 srs declared by the ``.prj`` sibling of ``shapefile``."""

    prj = shapefile.with_suffix(".prj")
    try:
        text = prj.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as exc:
        raise SrsError(f"no projection found for layer `{layer_name}`: {prj} is missing") from exc
    except OSError as exc:
        raise SrsError(f"cannot read projection for layer `{layer_name}`: {exc}") from exc
    try:
        return parse_projection(text.strip(), parser)
    except SrsError as exc:
        raise SrsError(f"invalid projection for layer `{layer_name}` in {prj}: {exc}") from exc


def apply_inference(
    layer: Layer,
    layer_name: str,
    parser: ProjectionParser,
    *,
    origin: Optional[Path] = None,
) -> None:
    """Fill in ``layer``'s driver type, driver options and srs in place.

    Layers without a datasource file are left alone.  ``origin`` is the
    source the workspace entry was made from; its header sidecar types
    extensionless downloads even when the entry is a copy.

    Raises:
        SrsError: When no srs can be determined.
    """

    datasource = layer.datasource
    if datasource is None or not datasource.file:
        return

    inference = infer_datasource(datasource, layer_name, parser=parser, srs=layer.srs, origin=origin)
    if datasource.type is None and inference.type:
        datasource.type = inference.type
    for key, value in inference.options.items():
        setattr(datasource, key, value)
    if inference.srs and (inference.force_srs or not layer.srs):
        layer.srs = inference.srs

    if not layer.srs:
        if datasource.type == "shape":
            layer.srs = read_prj_srs(Path(datasource.file), parser, layer_name)
        else:
            raise SrsError(f"unable to determine SRS for layer `{layer_name}`")

    LOGGER.debug(
        "layer inferred",
        extra={"stage": "infer", "layer": layer_name, "type": datasource.type},
    )
