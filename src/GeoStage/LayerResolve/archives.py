"""Archive extraction for zipped shapefiles.

A zipped shapefile is unpacked beside the archive with every member renamed to
``<archive-basename><member-extension>``.  Nested directories are flattened,
so ``data/Roads.SHP`` inside ``3f2a9c1d-roads.zip`` becomes
``3f2a9c1d-roads.shp``.  Members without an extension (directories) and
hidden members are skipped; when two members normalise to the same name the
later one wins.  Extraction is idempotent: a finished primary member is never
rewritten.
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional

from .errors import FilesystemError, LocatorError

LOGGER = logging.getLogger("GeoStage.LayerResolve.archives")

__all__ = ["SHAPEFILE_EXTENSION", "flattened_member_path", "unpack_archive"]

SHAPEFILE_EXTENSION = ".shp"


def _member_extension(name: str) -> str:
    return posixpath.splitext(posixpath.basename(name.rstrip("/")))[1]


def _is_hidden(name: str) -> bool:
    return any(part.startswith(".") for part in name.split("/") if part)


def flattened_member_path(archive_path: Path, member_name: str) -> Path:
    """Return where ``member_name`` lands when ``archive_path`` is unpacked."""

    return archive_path.with_name(archive_path.stem + _member_extension(member_name).lower())


def _extract_member(archive: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path) -> None:
    handle, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=target.parent)
    temp = Path(temp_name)
    try:
        with os.fdopen(handle, "wb") as sink, archive.open(info, "r") as source:
            shutil.copyfileobj(source, sink)
        os.chmod(temp, 0o644)
        os.replace(temp, target)
    except BaseException:
        temp.unlink(missing_ok=True)
        raise


def unpack_archive(
    archive_path: Path,
    primary_extension: str = SHAPEFILE_EXTENSION,
    *,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Extract ``archive_path`` beside itself and return the primary payload path.

    Every member is written to a temp file and renamed into place, and the
    primary member is renamed last.  An existing primary therefore means a
    previous extraction finished, and the archive is not touched again.

    Args:
        archive_path: Zip archive to unpack.
        primary_extension: Extension of the member the caller needs (``.shp``).
        logger: Optional logger for extraction telemetry.

    Returns:
        Path of the flattened primary member; only returned once every member
        has been written.

    Raises:
        LocatorError: If the archive cannot be read or has no primary member.
        FilesystemError: If writing a member fails.
    """

    log = logger or LOGGER
    primary = archive_path.with_name(archive_path.stem + primary_extension.lower())
    if primary.exists():
        log.debug("archive already extracted", extra={"stage": "extract", "path": str(archive_path)})
        return primary

    try:
        archive = zipfile.ZipFile(archive_path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise LocatorError(f"cannot open archive {archive_path}: {exc}") from exc

    with archive:
        members = [
            info
            for info in archive.infolist()
            if not info.is_dir() and _member_extension(info.filename) and not _is_hidden(info.filename)
        ]
        if not any(_member_extension(info.filename).lower() == primary_extension for info in members):
            raise LocatorError(f"{primary_extension} payload not found in archive {archive_path}")

        # siblings first so the primary only appears once the set is complete
        members.sort(key=lambda info: flattened_member_path(archive_path, info.filename) == primary)
        written: List[Path] = []
        for info in members:
            target = flattened_member_path(archive_path, info.filename)
            try:
                _extract_member(archive, info, target)
            except (OSError, zipfile.BadZipFile) as exc:
                raise FilesystemError(f"cannot extract {info.filename} from {archive_path}: {exc}") from exc
            written.append(target)

    log.info(
        "extracted archive",
        extra={"stage": "extract", "path": str(archive_path), "files": len(written)},
    )
    return primary
