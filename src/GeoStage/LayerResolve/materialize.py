# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.materialize",
#   "purpose": "Link resolved files and directories into the project workspace",
#   "sections": [
#     {"id": "capability", "name": "Symlink Capability Probe", "anchor": "CAP", "kind": "helpers"},
#     {"id": "materializer", "name": "Materializer", "anchor": "class-materializer", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Workspace materialisation.

The renderer reads layer data from ``<workspace>/layers``.  Multi-file formats
are exposed by linking the *directory* holding the shapefile and its siblings
to ``layers/<layer>/``; single-file formats are linked directly as
``layers/<layer><ext>``.  An existing destination is left untouched, which
makes re-resolution cheap but also means the first resolution of a layer name
wins for the lifetime of the workspace.

Symbolic links are used where the platform allows them.  Elsewhere the
materialiser copies, and says so in the log.
"""

from __future__ import annotations

import functools
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from .errors import FilesystemError
from .locators import is_multi_file, workspace_path_for
from .settings import LinkMode

LOGGER = logging.getLogger("GeoStage.LayerResolve.materialize")

__all__ = ["Materializer", "supports_symlinks"]


# --- Symlink Capability Probe --------------------------------------------------


@functools.lru_cache(maxsize=None)
def supports_symlinks() -> bool:
    """Return ``True`` when this process can create symbolic links."""

    if not hasattr(os, "symlink"):
        return False
    with tempfile.TemporaryDirectory(prefix="layerresolve-probe-") as scratch:
        target = Path(scratch) / "target"
        target.write_bytes(b"")
        try:
            os.symlink(target, Path(scratch) / "link")
        except (OSError, NotImplementedError):
            return False
    return True


# --- Materializer --------------------------------------------------------------


class Materializer:
    """Expose resolved sources inside a project workspace.

    Args:
        workspace_base: Absolute project directory; links go under ``layers/``.
        mode: ``symlink``, ``copy``, or ``auto`` (symlink when supported).
    """

    def __init__(self, workspace_base: Path, mode: LinkMode = "auto") -> None:
        self.workspace_base = workspace_base
        if mode == "auto":
            mode = "symlink" if supports_symlinks() else "copy"
        self.mode = mode
        if mode == "copy":
            LOGGER.warning(
                "symbolic links unavailable; workspace entries will be copies",
                extra={"stage": "link", "path": str(workspace_base)},
            )

    @property
    def uses_symlinks(self) -> bool:
        return self.mode == "symlink"

    def destination_for(self, layer_name: str, extension: str, member: Optional[str] = None) -> Path:
        return workspace_path_for(self.workspace_base, layer_name, extension, member)

    def link(self, source: Path, layer_name: str, extension: str) -> Path:
        """Materialise ``source`` for ``layer_name`` and return the path the layer should read.

        For the shapefile family ``source`` is the primary ``.shp`` file; its
        directory is linked and the returned path points at the file inside
        the link.  For everything else ``source`` itself is linked.

        Raises:
            FilesystemError: If creating the link or copy fails for any reason
                other than the destination already existing.
        """

        if is_multi_file(extension):
            destination_dir = self.destination_for(layer_name, extension)
            self._place(source.parent, destination_dir, directory=True)
            return destination_dir / source.name

        destination = self.destination_for(layer_name, extension)
        self._place(source, destination, directory=False)
        return destination

    def _place(self, source: Path, destination: Path, *, directory: bool) -> None:
        if os.path.lexists(destination):
            LOGGER.debug(
                "workspace entry already present",
                extra={"stage": "link", "path": str(destination)},
            )
            return
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if self.mode == "symlink":
                os.symlink(source, destination, target_is_directory=directory)
            elif directory:
                shutil.copytree(source, destination)
            else:
                shutil.copy2(source, destination)
        except FileExistsError:
            return
        except OSError as exc:
            raise FilesystemError(f"cannot link {source} to {destination}: {exc}") from exc
        LOGGER.debug(
            "workspace entry created",
            extra={"stage": "link", "path": str(destination), "mode": self.mode},
        )
