"""Tests for environment-backed settings and call option validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from GeoStage.LayerResolve.errors import ConfigurationError
from GeoStage.LayerResolve.models import Document
from GeoStage.LayerResolve.settings import (
    FlushConfig,
    ResolveConfig,
    ResolverSettings,
    coerce_config,
    get_settings,
    invalidate_settings_cache,
)


def test_defaults() -> None:
    settings = ResolverSettings()
    assert settings.max_concurrent_downloads == 5
    assert settings.max_workers == 8
    assert settings.link_mode == "auto"
    assert settings.log_level == "INFO"
    assert settings.log_dir is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LAYERRESOLVE_MAX_CONCURRENT_DOWNLOADS", "2")
    monkeypatch.setenv("LAYERRESOLVE_LINK_MODE", "copy")
    monkeypatch.setenv("LAYERRESOLVE_LOG_LEVEL", "debug")
    monkeypatch.setenv("LAYERRESOLVE_LOG_DIR", str(tmp_path))

    settings = ResolverSettings()

    assert settings.max_concurrent_downloads == 2
    assert settings.link_mode == "copy"
    assert settings.log_level == "DEBUG"
    assert settings.log_dir == tmp_path


@pytest.mark.parametrize(
    "field, value",
    [("log_level", "chatty"), ("link_mode", "hardlink"), ("max_concurrent_downloads", 0)],
)
def test_invalid_settings_are_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        ResolverSettings(**{field: value})


def test_get_settings_is_memoised_until_invalidated(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("LAYERRESOLVE_MAX_WORKERS", "3")
    assert get_settings().max_workers == first.max_workers
    invalidate_settings_cache()
    assert get_settings().max_workers == 3


def test_resolve_config_accepts_mappings(tmp_path: Path) -> None:
    config = coerce_config(
        ResolveConfig,
        {
            "document": {"Layer": [{"name": "a"}]},
            "workspace_base": tmp_path,
            "cache_base": str(tmp_path / "cache"),
        },
    )
    assert isinstance(config.document, Document)
    assert config.document.layers[0].name == "a"
    assert config.cache_base == tmp_path / "cache"


def test_coerce_config_passes_instances_through(tmp_path: Path) -> None:
    config = FlushConfig(workspace_base=tmp_path, cache_base=tmp_path, layer_name="a", url="http://x/a.csv")
    assert coerce_config(FlushConfig, config) is config


def test_coerce_config_reports_every_problem(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        coerce_config(FlushConfig, {"workspace_base": tmp_path})
    message = str(excinfo.value)
    assert "options.cache_base is required" in message
    assert "options.layer_name is required" in message
    assert "options.url is required" in message


def test_coerce_config_rejects_non_mappings() -> None:
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        coerce_config(ResolveConfig, ["not", "a", "mapping"])
