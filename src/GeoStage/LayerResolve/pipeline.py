# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.pipeline",
#   "purpose": "Resolve every external reference of a map document into local workspace paths",
#   "sections": [
#     {"id": "result", "name": "ResolutionResult", "anchor": "class-resolutionresult", "kind": "class"},
#     {"id": "first-error", "name": "First Error Cell", "anchor": "class-firsterror", "kind": "helpers"},
#     {"id": "pipeline", "name": "ResolutionPipeline", "anchor": "class-resolutionpipeline", "kind": "class"},
#     {"id": "resolve", "name": "resolve", "anchor": "function-resolve", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Document resolution pipeline.

``resolve`` deep-copies the input document and then runs, in order:

1. create ``<workspace>/layers``;
2. one task per stylesheet (load its text) and one task per layer
   (locate, download and cache, unpack, link into the workspace, rewrite
   sqlite ``attachdb`` paths, infer driver type and srs);
3. once every task has finished, normalise the document and layer srs.

Tasks run on a thread pool with no ordering between them; the stages of a
single layer run sequentially inside its task.  A failing task never cancels
its siblings.  The first failure observed becomes the reported error and
later ones are only logged, so a result carrying an error may still hold a
partially resolved document.  Already-exists conditions are not failures.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Union

from .archives import SHAPEFILE_EXTENSION
from .download import DownloadCoordinator, get_default_coordinator
from .errors import (
    FilesystemError,
    LayerResolveError,
    LocatorError,
    is_already_exists,
)
from .inference import apply_inference
from .locators import (
    Locator,
    LocatorKind,
    cache_path_for_url,
    classify_locator,
    workspace_layers_dir,
)
from .materialize import Materializer
from .models import Datasource, Document, Layer, Stylesheet
from .settings import ResolveConfig, ResolverSettings, coerce_config, get_settings
from .srs import ProjectionParser, PyprojParser, normalize_srs

LOGGER = logging.getLogger("GeoStage.LayerResolve.pipeline")

__all__ = ["ResolutionResult", "ResolutionPipeline", "resolve"]


@dataclass
class ResolutionResult:
    """Resolved document plus the first error observed while producing it.

    Attributes:
        document: Deep copy of the input with every resolvable reference resolved.
        error: First failure observed, or ``None``. When set, ``document`` may be incomplete.
    """

    document: Document
    error: Optional[LayerResolveError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> Document:
        """Return the document, raising the recorded error if there is one."""

        if self.error is not None:
            raise self.error
        return self.document


class _FirstError:
    """Single-assignment error cell shared by concurrently running tasks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.error: Optional[LayerResolveError] = None

    def record(self, error: LayerResolveError) -> bool:
        with self._lock:
            if self.error is not None:
                return False
            self.error = error
            return True


def _as_resolve_error(exc: BaseException) -> LayerResolveError:
    if isinstance(exc, LayerResolveError):
        return exc
    if isinstance(exc, OSError):
        error: LayerResolveError = FilesystemError(str(exc))
    else:
        error = LayerResolveError(f"{type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error


class ResolutionPipeline:
    """Resolve one document against one workspace and cache.

    Args:
        config: Validated call options.
        coordinator: Download coordinator; the process-wide one when omitted.
        parser: Projection parser; :class:`PyprojParser` when omitted.
        settings: Resolver settings; :func:`get_settings` when omitted.
    """

    def __init__(
        self,
        config: ResolveConfig,
        *,
        coordinator: Optional[DownloadCoordinator] = None,
        parser: Optional[ProjectionParser] = None,
        settings: Optional[ResolverSettings] = None,
    ) -> None:
        self.config = config
        self.settings = settings or get_settings()
        self.coordinator = coordinator or get_default_coordinator()
        self.parser: ProjectionParser = parser or PyprojParser()
        self.workspace_base = config.workspace_base
        self.cache_base = config.cache_base
        self.materializer = Materializer(self.workspace_base, self.settings.link_mode)
        self._errors = _FirstError()

    def run(self) -> ResolutionResult:
        document = self.config.document.model_copy(deep=True)

        try:
            workspace_layers_dir(self.workspace_base).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return ResolutionResult(document, _as_resolve_error(exc))

        tasks: List[Callable[[], None]] = []
        for index, entry in enumerate(document.stylesheets):
            if isinstance(entry, str):
                tasks.append(self._bind(self._resolve_stylesheet, document, index))
        for index, layer in enumerate(document.layers):
            tasks.append(self._bind(self._resolve_layer, layer, index))

        if tasks:
            workers = min(self.settings.max_workers, len(tasks))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="layerresolve") as executor:
                futures = [executor.submit(task) for task in tasks]
                for future in as_completed(futures):
                    future.result()

        self._normalize(document)
        error = self._errors.error
        LOGGER.info(
            "document resolved" if error is None else "document resolved with errors",
            extra={"stage": "resolve", "layers": len(document.layers)},
        )
        return ResolutionResult(document, error)

    def _bind(self, func: Callable[..., None], *args: Any) -> Callable[[], None]:
        def task() -> None:
            try:
                func(*args)
            except Exception as exc:  # every task failure is aggregated, never raised
                self._record(exc)

        return task

    def _record(self, exc: Exception) -> None:
        if is_already_exists(exc):
            LOGGER.debug("ignoring already-exists condition", extra={"stage": "resolve"})
            return
        error = _as_resolve_error(exc)
        if self._errors.record(error):
            LOGGER.warning("resolution failed: %s", error, extra={"stage": "resolve"})
        else:
            LOGGER.debug("additional resolution failure: %s", error, extra={"stage": "resolve"})

    # -- stylesheets -----------------------------------------------------------

    def _resolve_stylesheet(self, document: Document, index: int) -> None:
        entry = document.stylesheets[index]
        if not isinstance(entry, str):
            return
        locator = classify_locator(entry)
        if locator.is_url:
            data = self.coordinator.fetch_text(entry)
        else:
            path = self._local_path(locator)
            try:
                data = path.read_text(encoding="utf-8")
            except FileNotFoundError as exc:
                raise LocatorError(f"stylesheet {entry} not found at {path}") from exc
        document.stylesheets[index] = Stylesheet(id=entry, data=data)
        LOGGER.debug("stylesheet loaded", extra={"stage": "stylesheet", "path": entry})

    # -- layers ----------------------------------------------------------------

    def _resolve_layer(self, layer: Layer, index: int) -> None:
        datasource = layer.datasource
        if datasource is None or not datasource.file:
            return
        name = layer.display_name(index)
        locator = classify_locator(datasource.file)

        source = self._locate(locator, name)
        datasource.file = str(self._materialize(source, locator, name))
        self._rewrite_attachdb(datasource)
        apply_inference(layer, name, self.parser, origin=source)
        LOGGER.debug(
            "layer resolved",
            extra={"stage": "resolve", "layer": name, "path": datasource.file},
        )

    def _local_path(self, locator: Locator) -> Path:
        if locator.kind is LocatorKind.RELATIVE:
            return self.workspace_base / locator.path
        return Path(locator.path)

    def _locate(self, locator: Locator, layer_name: str) -> Path:
        if locator.is_url:
            destination = cache_path_for_url(self.cache_base, locator)
            return self.coordinator.fetch(locator.raw, destination)
        path = self._local_path(locator)
        if not path.exists():
            raise LocatorError(f"datasource for layer `{layer_name}` not found: {path}")
        return path

    def _materialize(self, source: Path, locator: Locator, layer_name: str) -> Path:
        extension = locator.extension
        if extension.lower() == ".zip":
            linked = self.materializer.destination_for(
                layer_name, extension, member=source.stem + SHAPEFILE_EXTENSION
            )
            if linked.exists():
                return linked
            source = self.coordinator.unpack(source, SHAPEFILE_EXTENSION)
        return self.materializer.link(source, layer_name, extension)

    def _rewrite_attachdb(self, datasource: Datasource) -> None:
        if datasource.type != "sqlite" or not datasource.attachdb:
            return
        entries = []
        for entry in datasource.attachdb.split(","):
            alias, separator, target = entry.partition("@")
            if separator and target and not os.path.isabs(target):
                target = str(self.workspace_base / target)
            entries.append(f"{alias}{separator}{target}")
        datasource.attachdb = ",".join(entries)

    # -- barrier ---------------------------------------------------------------

    def _normalize(self, document: Document) -> None:
        document.srs = normalize_srs(document.srs)
        for layer in document.layers:
            layer.srs = normalize_srs(layer.srs)


def resolve(
    config: Union[ResolveConfig, Mapping[str, Any]],
    *,
    coordinator: Optional[DownloadCoordinator] = None,
    parser: Optional[ProjectionParser] = None,
    settings: Optional[ResolverSettings] = None,
) -> ResolutionResult:
    """Resolve every datasource and stylesheet reference in a document.

    Args:
        config: :class:`ResolveConfig` or a mapping with ``document``,
            ``workspace_base`` and ``cache_base``.
        coordinator: Download coordinator to share; the process-wide default otherwise.
        parser: Projection parser; ``pyproj``-backed by default.
        settings: Resolver settings; read from the environment by default.

    Returns:
        :class:`ResolutionResult` with the resolved copy and the first error.

    Raises:
        ConfigurationError: If an option is missing or invalid; raised before any I/O.
    """

    options = coerce_config(ResolveConfig, config)
    return ResolutionPipeline(
        options, coordinator=coordinator, parser=parser, settings=settings
    ).run()
