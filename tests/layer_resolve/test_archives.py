"""Tests for flattening zipped shapefiles."""

from __future__ import annotations

from pathlib import Path

import pytest

from GeoStage.LayerResolve.archives import flattened_member_path, unpack_archive
from GeoStage.LayerResolve.errors import FilesystemError, LocatorError


def test_unpack_flattens_members_beside_archive(tmp_path: Path, shapefile_zip) -> None:
    archive = tmp_path / "3f2a9c1d-roads.zip"
    archive.write_bytes(shapefile_zip())

    primary = unpack_archive(archive)

    assert primary == tmp_path / "3f2a9c1d-roads.shp"
    assert primary.read_bytes() == b"shp-bytes"
    for extension in (".dbf", ".shx", ".prj"):
        assert (tmp_path / f"3f2a9c1d-roads{extension}").exists()
    assert sorted(path.name for path in tmp_path.iterdir()) == [
        "3f2a9c1d-roads.dbf",
        "3f2a9c1d-roads.prj",
        "3f2a9c1d-roads.shp",
        "3f2a9c1d-roads.shx",
        "3f2a9c1d-roads.zip",
    ]


def test_unpack_without_primary_member_fails(tmp_path: Path, shapefile_zip) -> None:
    archive = tmp_path / "empty.zip"
    archive.write_bytes(shapefile_zip(with_shp=False))

    with pytest.raises(LocatorError, match=r"\.shp payload not found"):
        unpack_archive(archive)


def test_unpack_rejects_non_archive(tmp_path: Path) -> None:
    archive = tmp_path / "oops.zip"
    archive.write_text("<html>not found</html>", encoding="utf-8")

    with pytest.raises(LocatorError, match="cannot open archive"):
        unpack_archive(archive)


def test_unpack_is_repeatable(tmp_path: Path, shapefile_zip) -> None:
    archive = tmp_path / "roads.zip"
    archive.write_bytes(shapefile_zip())

    assert unpack_archive(archive) == unpack_archive(archive)


def test_flattened_member_path_lowercases_extension(tmp_path: Path) -> None:
    archive = tmp_path / "abc-roads.zip"
    assert flattened_member_path(archive, "nested/dir/Roads.SHP") == tmp_path / "abc-roads.shp"


def test_finished_extraction_is_not_rewritten(tmp_path: Path, shapefile_zip) -> None:
    archive = tmp_path / "roads.zip"
    archive.write_bytes(shapefile_zip())
    unpack_archive(archive)
    (tmp_path / "roads.prj").write_text("edited", encoding="utf-8")

    assert unpack_archive(archive) == tmp_path / "roads.shp"
    assert (tmp_path / "roads.prj").read_text(encoding="utf-8") == "edited"


def test_failed_extraction_publishes_no_primary(tmp_path: Path, shapefile_zip, monkeypatch) -> None:
    import GeoStage.LayerResolve.archives as archives

    archive = tmp_path / "roads.zip"
    archive.write_bytes(shapefile_zip())
    real_replace = archives.os.replace

    def failing_replace(source, target):
        if str(target).endswith(".shx"):
            raise OSError("disk full")
        return real_replace(source, target)

    monkeypatch.setattr(archives.os, "replace", failing_replace)
    with pytest.raises(FilesystemError):
        unpack_archive(archive)

    assert not (tmp_path / "roads.shp").exists()
    assert not list(tmp_path.glob(".*.part"))
