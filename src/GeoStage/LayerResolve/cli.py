# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.cli",
#   "purpose": "Typer CLI for resolving map documents and flushing cached layers",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "load-document", "name": "load_document", "anchor": "function-load-document", "kind": "function"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "resolve-cmd", "name": "resolve_cmd", "anchor": "function-resolve-cmd", "kind": "function"},
#     {"id": "flush-cmd", "name": "flush_cmd", "anchor": "function-flush-cmd", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for the layer resolver.

Example:
    $ layer-resolve resolve project.mml --workspace /srv/maps/demo
    $ layer-resolve flush roads https://example.com/roads.zip --workspace /srv/maps/demo
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
import typer
import yaml
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console

from . import __version__
from .errors import ConfigurationError, LayerResolveError
from .flush import flush
from .logging_config import setup_logging
from .models import Document
from .pipeline import resolve
from .settings import get_settings

_console = Console(stderr=True)

app = typer.Typer(
    name="layer-resolve",
    help="Resolve map document datasources into a local project workspace",
    no_args_is_help=True,
)


class CliContext:
    """Per-invocation state shared by the subcommands."""

    def __init__(self, verbosity: int = 0) -> None:
        self.verbosity = verbosity
        self.console = _console
        self.settings = get_settings()
        level = {0: self.settings.log_level, 1: "INFO"}.get(verbosity, "DEBUG")
        setup_logging(level, self.settings.log_dir)


_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def default_cache_dir() -> Path:
    return Path(platformdirs.user_cache_dir("layerresolve", "GeoStage"))


def load_document(path: Path) -> Document:
    """Load a JSON or YAML map document from ``path``."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read document {path}: {exc}") from exc
    try:
        if path.suffix.lower() in {".yml", ".yaml"}:
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"cannot parse document {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"document {path} must contain a mapping")
    try:
        return Document.from_mapping(payload)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"document {path} is malformed: {exc}") from exc


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"layer-resolve {__version__}")
        raise typer.Exit(0)


@app.callback(invoke_without_command=False)
def main(
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Resolve remote and local layer data for map documents."""
    global _context

    _context = CliContext(verbosity=verbosity)


@app.command("resolve")
def resolve_cmd(
    document: Path = typer.Argument(..., help="Map document (JSON or YAML)"),
    workspace: Path = typer.Option(..., "--workspace", "-w", help="Project workspace directory"),
    cache: Optional[Path] = typer.Option(None, "--cache", help="Download cache directory"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the resolved document here"),
) -> None:
    """Resolve DOCUMENT and print the resolved document as JSON."""
    ctx = get_context()
    cache_base = (cache or default_cache_dir()).resolve()
    try:
        result = resolve(
            {
                "document": load_document(document),
                "workspace_base": workspace.resolve(),
                "cache_base": cache_base,
            }
        )
    except ConfigurationError as exc:
        ctx.console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(2)

    payload: Dict[str, Any] = result.document.to_mapping()
    rendered = json.dumps(payload, indent=2)
    if output is not None:
        output.write_text(rendered + "\n", encoding="utf-8")
        ctx.console.print(f"[green]✓[/green] wrote {output}")
    else:
        typer.echo(rendered)

    if result.error is not None:
        ctx.console.print(f"[red]✗ {result.error}[/red]")
        raise typer.Exit(1)


@app.command("flush")
def flush_cmd(
    layer: str = typer.Argument(..., help="Layer name used when the document was resolved"),
    url: str = typer.Argument(..., help="Datasource URL of the layer"),
    workspace: Path = typer.Option(..., "--workspace", "-w", help="Project workspace directory"),
    cache: Optional[Path] = typer.Option(None, "--cache", help="Download cache directory"),
) -> None:
    """Remove the workspace link and cached download for one layer."""
    ctx = get_context()
    try:
        removed = flush(
            {
                "workspace_base": workspace.resolve(),
                "cache_base": (cache or default_cache_dir()).resolve(),
                "layer_name": layer,
                "url": url,
            }
        )
    except ConfigurationError as exc:
        ctx.console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(2)
    except LayerResolveError as exc:
        ctx.console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1)

    if not removed:
        ctx.console.print("nothing to flush")
    for path in removed:
        ctx.console.print(f"[cyan]removed[/cyan] {path}")


__all__ = ["app", "CliContext", "get_context", "load_document", "main"]
