"""Cache flushing for a single URL-backed layer.

Flushing undoes what resolution created for one layer: the workspace link is
removed (only when it really is a symbolic link, never an author's own file or
directory) and the cache entry for the URL is deleted together with its header
sidecar and any leftover in-flight temp file.  Targets that are already gone
are skipped, so flushing twice is harmless.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Any, List, Mapping, Union

from .errors import ConfigurationError, FilesystemError, LocatorError
from .locators import (
    cache_path_for_url,
    classify_locator,
    is_multi_file,
    sidecar_path,
    workspace_path_for,
)
from .settings import FlushConfig, coerce_config

LOGGER = logging.getLogger("GeoStage.LayerResolve.flush")

__all__ = ["flush"]


def _unlink(path: Path, removed: List[Path]) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise FilesystemError(f"cannot remove {path}: {exc}") from exc
    removed.append(path)


def _remove_workspace_link(config: FlushConfig, extension: str, removed: List[Path]) -> None:
    entry = workspace_path_for(config.workspace_base, config.layer_name, extension)
    if os.path.islink(entry):
        _unlink(entry, removed)
    elif os.path.lexists(entry):
        LOGGER.info(
            "leaving workspace entry that is not a link",
            extra={"stage": "flush", "layer": config.layer_name, "path": str(entry)},
        )


def _remove_cache_entry(cache_path: Path, extension: str, removed: List[Path]) -> None:
    if is_multi_file(extension):
        directory = cache_path.parent
        if not directory.exists():
            return
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise FilesystemError(f"cannot remove {directory}: {exc}") from exc
        removed.append(directory)
        return

    for target in (
        cache_path,
        sidecar_path(cache_path),
        cache_path.with_name(cache_path.name + ".download"),
    ):
        _unlink(target, removed)


def flush(config: Union[FlushConfig, Mapping[str, Any]]) -> List[Path]:
    """Remove the workspace link and cache entry created for ``config.url``.

    Args:
        config: :class:`FlushConfig` or a mapping with ``workspace_base``,
            ``cache_base``, ``layer_name`` and ``url``.

    Returns:
        Paths that were removed (empty when there was nothing to remove).

    Raises:
        ConfigurationError: If an option is missing or ``url`` is not a URL.
        FilesystemError: If an existing target cannot be removed.
    """

    options = coerce_config(FlushConfig, config)
    try:
        locator = classify_locator(options.url)
    except LocatorError as exc:
        raise ConfigurationError(f"options.url is invalid: {exc}") from exc
    if not locator.is_url:
        raise ConfigurationError(f"options.url must be a remote URL, got {options.url}")

    removed: List[Path] = []
    _remove_workspace_link(options, locator.extension, removed)
    _remove_cache_entry(cache_path_for_url(options.cache_base, locator), locator.extension, removed)
    LOGGER.info(
        "flushed layer cache",
        extra={"stage": "flush", "layer": options.layer_name, "url": options.url, "removed": len(removed)},
    )
    return removed
