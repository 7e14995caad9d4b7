# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.models",
#   "purpose": "Pydantic models for map documents, layers, datasources, and stylesheets",
#   "sections": [
#     {"id": "datasource", "name": "Datasource", "anchor": "class-datasource", "kind": "class"},
#     {"id": "layer", "name": "Layer", "anchor": "class-layer", "kind": "class"},
#     {"id": "stylesheet", "name": "Stylesheet", "anchor": "class-stylesheet", "kind": "class"},
#     {"id": "document", "name": "Document", "anchor": "class-document", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Document model for map-style layer definitions.

Only the keys the resolver reads or rewrites are modelled explicitly.  Every
model allows extra keys so renderer-specific options pass through resolution
untouched, and the conventional capitalised document keys (``Layer``,
``Stylesheet``, ``Datasource``) are accepted and emitted through aliases.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

__all__ = ["Datasource", "Layer", "Stylesheet", "Document"]


class Datasource(BaseModel):
    """Per-layer descriptor of where and how the renderer reads spatial data.

    Attributes:
        file: Locator for the data (URL, absolute path, or workspace-relative path).
        type: Driver tag such as ``shape``, ``gdal``, ``ogr``, ``csv`` or ``sqlite``.
        layer_by_index: Sub-layer index for multi-layer OGR sources.
        attachdb: Comma separated ``alias@path`` list for the sqlite driver.
        quiet: Suppress driver warnings (set for delimited text sources).
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, validate_assignment=True)

    file: Optional[str] = None
    type: Optional[str] = None
    layer_by_index: Optional[int] = None
    attachdb: Optional[str] = None
    quiet: Optional[bool] = None


class Layer(BaseModel):
    """A named map layer backed by a :class:`Datasource`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, validate_assignment=True)

    name: Optional[str] = None
    datasource: Optional[Datasource] = Field(default=None, alias="Datasource")
    srs: Optional[str] = None

    def display_name(self, index: int) -> str:
        """Return the layer name, falling back to ``layer-<index>``."""

        return self.name or f"layer-{index}"


class Stylesheet(BaseModel):
    """A stylesheet whose content has been loaded."""

    model_config = ConfigDict(extra="allow")

    id: str
    data: str


class Document(BaseModel):
    """A map document: ordered layers, ordered stylesheets, optional top-level srs."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, validate_assignment=True)

    layers: List[Layer] = Field(default_factory=list, alias="Layer")
    stylesheets: List[Union[Stylesheet, str]] = Field(default_factory=list, alias="Stylesheet")
    srs: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Document":
        """Build a document from a plain mapping such as parsed JSON or YAML."""

        return cls.model_validate(dict(payload))

    def to_mapping(self) -> Dict[str, Any]:
        """Return the document as plain data using the conventional key names."""

        return self.model_dump(by_alias=True, exclude_none=True)
