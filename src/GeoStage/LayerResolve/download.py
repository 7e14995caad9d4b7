"""
Download Coordination

This module owns every outbound transfer made while resolving a document.  A
:class:`DownloadCoordinator` guarantees that at most one physical transfer per
URL is in flight at any moment (late callers join the running transfer and
observe its exact outcome), caps the total number of simultaneous transfers
with a bounded slot pool, and installs payloads atomically: bytes land in a
``.download`` temp file which is renamed onto the canonical cache path only
after the transfer finished, so no partial file is ever visible there.
Archive extraction into the cache is serialised per archive through the same
coordinator, so concurrent resolutions never rewrite members another one reads.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Dict, Mapping, Optional

from .archives import SHAPEFILE_EXTENSION, unpack_archive
from .errors import FilesystemError, LayerResolveError, NetworkError
from .locators import sidecar_path
from .logging_config import mask_sensitive_data
from .net import Fetcher, HttpFetcher
from .settings import get_settings

LOGGER = logging.getLogger("GeoStage.LayerResolve.download")

__all__ = [
    "DownloadCoordinator",
    "get_default_coordinator",
    "reset_default_coordinator",
    "write_header_sidecar",
    "read_header_sidecar",
]

_TEMP_SUFFIX = ".download"


def write_header_sidecar(payload: Path, headers: Mapping[str, str]) -> Path:
    """Persist ``headers`` as JSON in the hidden sidecar beside ``payload``."""

    target = sidecar_path(payload)
    temp = target.with_name(target.name + _TEMP_SUFFIX)
    temp.write_text(json.dumps(dict(headers), indent=2, sort_keys=True), encoding="utf-8")
    os.replace(temp, target)
    return target


def read_header_sidecar(payload: Path) -> Optional[Dict[str, str]]:
    """Return headers stored beside ``payload``, or ``None`` when absent or unreadable."""

    target = sidecar_path(payload)
    try:
        raw = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning(
            "ignoring malformed header sidecar",
            extra={"stage": "infer", "path": str(target)},
        )
        return None
    if not isinstance(data, dict):
        return None
    return {str(key).lower(): str(value) for key, value in data.items()}


class DownloadCoordinator:
    """Deduplicate and bound fetch-to-disk operations.

    Attributes:
        transfer_count: Number of physical transfers started by this coordinator.

    Args:
        fetcher: Transport performing the actual GET; :class:`HttpFetcher` by default.
        max_concurrent: Size of the slot pool shared by every outbound request.

    Examples:
        >>> coordinator = DownloadCoordinator(max_concurrent=2)
        >>> coordinator.max_concurrent
        2
    """

    def __init__(self, fetcher: Optional[Fetcher] = None, *, max_concurrent: int = 5) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._fetcher: Fetcher = fetcher if fetcher is not None else HttpFetcher()
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._inflight: Dict[str, "Future[Path]"] = {}
        self._extract_locks: Dict[Path, threading.Lock] = {}
        self.max_concurrent = max_concurrent
        self.transfer_count = 0

    @property
    def fetcher(self) -> Fetcher:
        return self._fetcher

    def in_flight(self) -> int:
        """Return how many distinct URLs are currently being transferred."""

        with self._lock:
            return len(self._inflight)

    def fetch(self, url: str, destination: Path) -> Path:
        """Ensure ``url`` is present at ``destination`` and return that path.

        Concurrent callers for the same URL share one transfer and all receive
        the same result or the same exception.  An already installed
        destination is returned without touching the network.

        Raises:
            NetworkError: Propagated verbatim from the fetcher.
            FilesystemError: When the payload cannot be installed.
        """

        with self._lock:
            pending = self._inflight.get(url)
            leader = pending is None
            if leader:
                pending = Future()
                pending.set_running_or_notify_cancel()
                self._inflight[url] = pending

        if not leader:
            LOGGER.debug("joining in-flight download", extra={"stage": "download", "url": url})
            return pending.result()

        try:
            path = self._install(url, destination)
        except BaseException as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(path)
            return path
        finally:
            with self._lock:
                self._inflight.pop(url, None)

    def unpack(self, archive: Path, primary_extension: str = SHAPEFILE_EXTENSION) -> Path:
        """Extract ``archive`` once and return its primary member.

        Callers unpacking the same archive wait for a single extraction;
        different archives unpack in parallel.
        """

        with self._lock:
            lock = self._extract_locks.setdefault(archive, threading.Lock())
        with lock:
            return unpack_archive(archive, primary_extension)

    def fetch_text(self, url: str) -> str:
        """Return the body of ``url`` as text while holding a transfer slot."""

        with self._slots:
            return self._fetcher.fetch_text(url)

    def _install(self, url: str, destination: Path) -> Path:
        if destination.exists():
            return destination
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"cannot create cache directory {destination.parent}: {exc}") from exc

        temp = destination.with_name(destination.name + _TEMP_SUFFIX)
        with self._slots:
            with self._lock:
                self.transfer_count += 1
            started = time.monotonic()
            LOGGER.info("downloading", extra={"stage": "download", "url": url})
            try:
                headers = self._fetcher.fetch_to_disk(url, temp)
                if headers:
                    write_header_sidecar(destination, headers)
                os.replace(temp, destination)
            except LayerResolveError:
                temp.unlink(missing_ok=True)
                raise
            except OSError as exc:
                temp.unlink(missing_ok=True)
                raise FilesystemError(f"cannot install download of {url}: {exc}") from exc
            except Exception as exc:
                temp.unlink(missing_ok=True)
                raise NetworkError(f"download of {url} failed: {exc}", url=url) from exc

        LOGGER.info(
            "download complete",
            extra={
                "stage": "download",
                "url": url,
                "path": str(destination),
                "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
                "headers": mask_sensitive_data(dict(headers or {})),
            },
        )
        return destination


_DEFAULT_LOCK = threading.Lock()
_DEFAULT_COORDINATOR: Optional[DownloadCoordinator] = None


def get_default_coordinator() -> DownloadCoordinator:
    """Return the process-wide coordinator sized from :class:`ResolverSettings`."""

    global _DEFAULT_COORDINATOR  # noqa: PLW0603

    with _DEFAULT_LOCK:
        if _DEFAULT_COORDINATOR is None:
            _DEFAULT_COORDINATOR = DownloadCoordinator(
                max_concurrent=get_settings().max_concurrent_downloads
            )
        return _DEFAULT_COORDINATOR


def reset_default_coordinator() -> None:
    """Drop the shared coordinator so the next lookup builds a fresh one."""

    global _DEFAULT_COORDINATOR  # noqa: PLW0603

    with _DEFAULT_LOCK:
        _DEFAULT_COORDINATOR = None
