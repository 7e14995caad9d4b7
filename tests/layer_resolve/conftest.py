"""Shared fakes and fixtures for the layer resolver tests."""

from __future__ import annotations

import io
import threading
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from GeoStage.LayerResolve.download import DownloadCoordinator, reset_default_coordinator
from GeoStage.LayerResolve.errors import NetworkError, SrsError
from GeoStage.LayerResolve.settings import ResolverSettings, invalidate_settings_cache

MERCATOR_PRJ = 'PROJCS["WGS_1984_Web_Mercator",GEOGCS["GCS_WGS_1984_Major_Auxiliary_Sphere"]]'
LEGACY_MERCATOR = (
    "+proj=merc +a=6378137 +b=6378137 +lat_ts=0.0 +lon_0=0.0 "
    "+x_0=0.0 +y_0=0 +k=1.0 +units=m +nadgrids=@null +no_defs"
)

Outcome = Union[Tuple[bytes, Dict[str, str]], BaseException]


class FakeFetcher:
    """In-memory :class:`Fetcher` that records every physical transfer.

    Setting ``gate`` holds every transfer until the event is set, which lets
    tests pile concurrent callers onto one in-flight download.
    """

    def __init__(self) -> None:
        self.responses: Dict[str, Outcome] = {}
        self.calls: List[str] = []
        self.text_calls: List[str] = []
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def add(self, url: str, body: bytes, headers: Optional[Dict[str, str]] = None) -> None:
        self.responses[url] = (body, dict(headers or {}))

    def fail(self, url: str, error: BaseException) -> None:
        self.responses[url] = error

    def _outcome(self, url: str) -> Tuple[bytes, Dict[str, str]]:
        outcome = self.responses.get(url)
        if outcome is None:
            raise NetworkError(f"GET {url} failed with HTTP 404", url=url, status_code=404)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def fetch_to_disk(self, url: str, destination: Path) -> Dict[str, str]:
        with self._lock:
            self.calls.append(url)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            body, headers = self._outcome(url)
            destination.write_bytes(body)
            return dict(headers)
        finally:
            with self._lock:
                self.active -= 1

    def fetch_text(self, url: str) -> str:
        with self._lock:
            self.text_calls.append(url)
        body, _ = self._outcome(url)
        return body.decode("utf-8")


class FakeParser:
    """Projection parser with a fixed lookup table.

    Anything already written as a proj4 string is returned unchanged; unknown
    text raises :class:`SrsError` like a real parser rejecting its input.
    """

    def __init__(self, table: Optional[Dict[str, str]] = None) -> None:
        self.table = dict(table or {})
        self.calls: List[str] = []

    def to_proj4(self, text: str) -> str:
        self.calls.append(text)
        key = text.strip()
        if key in self.table:
            return self.table[key]
        if key.startswith("+proj="):
            return key
        raise SrsError(f"unknown projection {text!r}")


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    for name in ("LAYERRESOLVE_LINK_MODE", "LAYERRESOLVE_LOG_LEVEL", "LAYERRESOLVE_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    invalidate_settings_cache()
    reset_default_coordinator()
    yield
    invalidate_settings_cache()
    reset_default_coordinator()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def coordinator(fetcher: FakeFetcher) -> DownloadCoordinator:
    return DownloadCoordinator(fetcher, max_concurrent=5)


@pytest.fixture
def parser() -> FakeParser:
    return FakeParser({MERCATOR_PRJ: LEGACY_MERCATOR, "EPSG:4326": "+proj=longlat +datum=WGS84 +no_defs"})


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings(link_mode="symlink", max_workers=4)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def shapefile_zip() -> Callable[..., bytes]:
    """Return a builder producing zipped shapefile bytes."""

    def build(base: str = "Roads", prj: Optional[str] = MERCATOR_PRJ, *, with_shp: bool = True) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("data/", b"")
            if with_shp:
                archive.writestr(f"data/{base}.SHP", b"shp-bytes")
            archive.writestr(f"data/{base}.dbf", b"dbf-bytes")
            archive.writestr(f"data/{base}.shx", b"shx-bytes")
            if prj is not None:
                archive.writestr(f"data/{base}.prj", prj)
            archive.writestr(f"__MACOSX/data/._{base}.shp", b"resource-fork")
            archive.writestr("README", b"no extension")
        return buffer.getvalue()

    return build
