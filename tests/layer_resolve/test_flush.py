"""Tests for flushing one layer's workspace link and cache entry."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from GeoStage.LayerResolve import flush, resolve
from GeoStage.LayerResolve.errors import ConfigurationError
from GeoStage.LayerResolve.locators import content_hash

ROADS_URL = "https://example.com/data/roads.zip"
POINTS_URL = "https://example.com/exports/points.csv"


@pytest.fixture
def resolved(coordinator, fetcher, parser, settings, workspace: Path, cache_dir: Path, shapefile_zip):
    fetcher.add(ROADS_URL, shapefile_zip())
    fetcher.add(POINTS_URL, b"x,y\n", {"content-type": "text/csv"})
    document = {
        "Layer": [
            {"name": "roads", "Datasource": {"file": ROADS_URL}},
            {"name": "points", "Datasource": {"file": POINTS_URL}},
        ]
    }

    def _resolve():
        result = resolve(
            {"document": document, "workspace_base": workspace, "cache_base": cache_dir},
            coordinator=coordinator,
            parser=parser,
            settings=settings,
        )
        assert result.ok, result.error
        return result

    _resolve()
    return _resolve


def _options(workspace: Path, cache_dir: Path, layer: str, url: str):
    return {"workspace_base": workspace, "cache_base": cache_dir, "layer_name": layer, "url": url}


def test_flush_archive_removes_link_and_cache_directory(resolved, workspace: Path, cache_dir: Path) -> None:
    key = f"{content_hash(ROADS_URL)}-roads"

    removed = flush(_options(workspace, cache_dir, "roads", ROADS_URL))

    assert removed == [workspace / "layers" / "roads", cache_dir / key]
    assert not os.path.lexists(workspace / "layers" / "roads")
    assert not (cache_dir / key).exists()
    assert (workspace / "layers" / "points.csv").exists()


def test_flush_single_file_removes_payload_and_sidecar(resolved, workspace: Path, cache_dir: Path) -> None:
    payload = cache_dir / f"{content_hash(POINTS_URL)}-points.csv"
    assert (cache_dir / f".{payload.name}").exists()

    removed = flush(_options(workspace, cache_dir, "points", POINTS_URL))

    assert removed == [workspace / "layers" / "points.csv", payload, cache_dir / f".{payload.name}"]
    assert not payload.exists()


def test_flush_twice_is_harmless(resolved, workspace: Path, cache_dir: Path) -> None:
    flush(_options(workspace, cache_dir, "points", POINTS_URL))
    assert flush(_options(workspace, cache_dir, "points", POINTS_URL)) == []


def test_resolve_after_flush_downloads_again(resolved, fetcher, workspace: Path, cache_dir: Path) -> None:
    assert fetcher.calls.count(POINTS_URL) == 1
    flush(_options(workspace, cache_dir, "points", POINTS_URL))

    resolved()

    assert fetcher.calls.count(POINTS_URL) == 2
    assert fetcher.calls.count(ROADS_URL) == 1


def test_flush_leaves_real_files_alone(workspace: Path, cache_dir: Path) -> None:
    (workspace / "layers").mkdir()
    authored = workspace / "layers" / "points.csv"
    authored.write_text("mine", encoding="utf-8")

    flush(_options(workspace, cache_dir, "points", POINTS_URL))

    assert authored.read_text(encoding="utf-8") == "mine"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"url": "/srv/data/points.csv"}, "must be a remote URL"),
        ({"url": "gopher://example.com/a.csv"}, "options.url is invalid"),
        ({"layer_name": ""}, "options.layer_name"),
        ({"cache_base": "relative/cache"}, "absolute"),
    ],
)
def test_flush_rejects_bad_options(workspace: Path, cache_dir: Path, overrides, message: str) -> None:
    options = _options(workspace, cache_dir, "points", POINTS_URL)
    options.update(overrides)
    with pytest.raises(ConfigurationError, match=message):
        flush(options)


def test_flush_requires_every_option(workspace: Path) -> None:
    with pytest.raises(ConfigurationError, match="options.cache_base is required"):
        flush({"workspace_base": workspace, "layer_name": "points", "url": POINTS_URL})
