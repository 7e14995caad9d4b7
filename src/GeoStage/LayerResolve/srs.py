# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.srs",
#   "purpose": "Projection parsing collaborator and proj4 normalisation",
#   "sections": [
#     {"id": "constants", "name": "Well-known proj4 strings", "anchor": "CON", "kind": "constants"},
#     {"id": "parser", "name": "Projection parser", "anchor": "PAR", "kind": "api"},
#     {"id": "normalize", "name": "Legacy Mercator normalisation", "anchor": "NRM", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Spatial reference helpers.

Two jobs live here.  Turning projection text (``.prj`` WKT, ESRI WKT, EPSG
codes) into proj4 strings is delegated to a :class:`ProjectionParser`; the
default implementation uses ``pyproj``.  :func:`normalize_srs` rewrites the
legacy spherical Mercator encoding (the old "900913" definition) into the
canonical Web Mercator proj4 string renderers expect.
"""

from __future__ import annotations

from typing import Dict, Optional, Protocol, runtime_checkable

from .errors import SrsError

__all__ = [
    "WGS84",
    "WEB_MERCATOR",
    "ESRI_PREFIX",
    "ProjectionParser",
    "PyprojParser",
    "parse_projection",
    "srs_tokens",
    "is_legacy_mercator",
    "normalize_srs",
]

# --- Well-known proj4 strings --------------------------------------------------

WGS84 = "+proj=longlat +ellps=WGS84 +datum=WGS84 +no_defs"
WEB_MERCATOR = (
    "+proj=merc +a=6378137 +b=6378137 +lat_ts=0.0 +lon_0=0.0 +x_0=0.0 +y_0=0.0 "
    "+k=1.0 +units=m +nadgrids=@null +wktext +no_defs +over"
)
ESRI_PREFIX = "ESRI::"

_LEGACY_MERCATOR: Dict[str, str] = {
    "+a": "6378137",
    "+b": "6378137",
    "+lat_ts": "0.0",
    "+lon_0": "0.0",
    "+proj": "merc",
    "+units": "m",
    "+x_0": "0.0",
    "+y_0": "0.0",
}
# proj defaults; a missing key counts as carrying this value
_IMPLIED_DEFAULTS: Dict[str, str] = {"+units": "m"}

# --- Projection parser ---------------------------------------------------------


@runtime_checkable
class ProjectionParser(Protocol):
    """Converts projection text into a proj4 string."""

    def to_proj4(self, text: str) -> str:
        """Return the proj4 form of ``text`` or raise ``ValueError``/``SrsError``."""


class PyprojParser:
    """:class:`ProjectionParser` backed by ``pyproj``.

    ``ESRI::``-prefixed input is parsed as WKT with the prefix removed; any
    other input goes through ``CRS.from_user_input`` which accepts WKT, EPSG
    codes, URNs and proj strings.
    """

    def to_proj4(self, text: str) -> str:
        from pyproj import CRS
        from pyproj.exceptions import CRSError

        body = text.strip()
        try:
            if body.startswith(ESRI_PREFIX):
                crs = CRS.from_wkt(body[len(ESRI_PREFIX):].strip())
            else:
                crs = CRS.from_user_input(body)
            proj4 = crs.to_proj4()
        except CRSError as exc:
            raise SrsError(f"unparseable projection: {exc}") from exc
        if not proj4:
            raise SrsError("projection has no proj4 representation")
        return proj4.replace(" +type=crs", "").strip()


def parse_projection(text: str, parser: ProjectionParser) -> str:
    """Parse ``text`` as-is, then as ESRI WKT; the first success wins.

    Raises:
        SrsError: When neither attempt produces a proj4 string.
    """

    failures = []
    for candidate in (text, ESRI_PREFIX + text):
        try:
            proj4 = parser.to_proj4(candidate)
        except (SrsError, ValueError) as exc:
            failures.append(str(exc))
            continue
        if proj4:
            return proj4
    raise SrsError(f"malformed projection string ({'; '.join(failures) or 'empty result'})")


# --- Legacy Mercator normalisation ---------------------------------------------


def srs_tokens(srs: str) -> Dict[str, str]:
    """Return the ``key=value`` tokens of a proj4 string, with ``0`` read as ``0.0``."""

    tokens: Dict[str, str] = {}
    for token in srs.split():
        if "=" not in token:
            continue
        key, value = token.split("=", 1)
        tokens[key] = "0.0" if value == "0" else value
    return tokens


def is_legacy_mercator(srs: str) -> bool:
    """Return ``True`` when ``srs`` carries every legacy spherical Mercator parameter."""

    tokens = srs_tokens(srs)
    for key, expected in _LEGACY_MERCATOR.items():
        value = tokens.get(key, _IMPLIED_DEFAULTS.get(key))
        if value != expected:
            return False
    return True


def normalize_srs(srs: Optional[str]) -> Optional[str]:
    """Return the canonical form of ``srs``; unrecognised strings pass through unchanged."""

    if not srs:
        return srs
    if is_legacy_mercator(srs):
        return WEB_MERCATOR
    return srs
