"""CLI entry point for godocmirror -- a local Markdown mirror of Go's docs."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from .errors import MirrorError
from .layout import OutputLayout
from .models import MirrorConfig

app = typer.Typer(
    name="godocmirror",
    help="Mirror Go's API reference, website, blog, spec and release notes as Markdown.",
    add_completion=False,
)

console = Console()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose > 1:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose > 1)],
        force=True,
    )


def _load_config(**overrides: object) -> MirrorConfig:
    """Environment + CLI flags, or exit with a readable error."""
    try:
        return MirrorConfig.from_env(**overrides)
    except ValidationError as exc:
        console.print(f"[red]Error:[/red] invalid configuration:\n{exc}")
        raise typer.Exit(code=2)


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More log output (-v info, -vv debug)."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only errors."),
) -> None:
    """Create or update a local Markdown mirror of Go documentation."""
    _setup_logging(verbose, quiet)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def sync(
    root: Optional[Path] = typer.Argument(None, help="Output root (default: current directory)."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", help="Parallel converter workers."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Clone attempts before the tarball fallback."),
    private: bool = typer.Option(False, "--private", "-u", help="Document unexported symbols too; replaces the exported-only docs/ tree."),
    no_install: bool = typer.Option(False, "--no-install", help="Use the gomarkdoc already on PATH."),
    skip: Optional[List[str]] = typer.Option(None, "--skip", help="Skip a stage (repeatable)."),
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable progress bars."),
) -> None:
    """Run the full sync: API docs, site docs, blog, spec, release notes."""
    from .orchestrator import OPTIONAL_STAGES, run_async

    cfg = _load_config(
        concurrency=concurrency,
        git_retries=retries,
        include_private=True if private else None,
        skip_install=True if no_install else None,
    )

    unknown = sorted(set(skip or []) - set(OPTIONAL_STAGES))
    if unknown:
        console.print(
            f"[red]Error:[/red] Unknown stage(s): {', '.join(unknown)}.\n"
            f"  Valid stages: {', '.join(OPTIONAL_STAGES)}"
        )
        raise typer.Exit(code=2)

    try:
        asyncio.run(run_async(
            output_root=root,
            config=cfg,
            skip=tuple(skip or ()),
            show_progress=not no_progress,
        ))
    except MirrorError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)


@app.command()
def check() -> None:
    """Verify required tools are installed."""
    from .toolchain import REQUIRED_TOOLS, tool_report

    console.print("Checking required tools:")
    report = tool_report(REQUIRED_TOOLS)
    for tool, location in report.items():
        if location:
            console.print(f"  [green]✔[/green] {tool} [dim]{location}[/dim]")
        else:
            console.print(f"  [red]Missing:[/red] {tool}")
    if any(loc is None for loc in report.values()):
        console.print("Fix the missing tools above and re-run.")
        raise typer.Exit(code=1)
    console.print("All good.")


@app.command("print-config")
def print_config(
    root: Optional[Path] = typer.Argument(None, help="Output root (default: current directory)."),
) -> None:
    """Show effective settings and paths."""
    cfg = _load_config()
    layout = OutputLayout.from_root(root, cfg.scratch)
    for name, path in layout.describe().items():
        console.print(f"{name}={path}")
    for field_name in MirrorConfig.model_fields:
        if field_name == "scratch":
            continue
        console.print(f"{field_name.upper()}={getattr(cfg, field_name)!r}")


@app.command()
def clean(
    root: Optional[Path] = typer.Argument(None, help="Output root (default: current directory)."),
    api: bool = typer.Option(False, "--api", help="Also remove generated API docs."),
    deep: bool = typer.Option(False, "--deep", help="Remove scratch, mirror clone and all generated trees."),
) -> None:
    """Remove temporary files (and optionally generated content)."""
    cfg = _load_config()
    layout = OutputLayout.from_root(root, cfg.scratch)

    targets = [layout.scratch]
    if api or deep:
        targets.append(layout.api_root)
    if deep:
        targets += [layout.site_src, layout.site_root, layout.release_root]

    for target in targets:
        if target.exists():
            console.print(f"Removing {target}")
            shutil.rmtree(target)
        else:
            console.print(f"[dim]Not present: {target}[/dim]")


if __name__ == "__main__":
    app()
