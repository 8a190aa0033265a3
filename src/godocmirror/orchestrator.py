"""Orchestrator -- sequences the sub-pipelines of one mirror run.

Stages run strictly in order and the first fatal error (``MirrorError``)
ends the run; outputs written so far stay in place so a re-run simply
overwrites them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from rich.console import Console

from . import scanner, toolchain
from .converters import converter_names, get_converter, setup_converters
from .dispatcher import SkipLog, dispatch
from .errors import MirrorError
from .git import get_current_commit
from .layout import OutputLayout
from .models import BatchReport, MirrorConfig, RepositoryMirror, RunMeta, UnitKind, WorkUnit
from .tracker import StageState, StageTracker
from .transport import RetryPolicy, Transport, clone_or_update, fetch_url

logger = logging.getLogger(__name__)

console = Console()

STAGES: tuple[str, ...] = (
    "preflight",
    "package_docs",
    "site_mirror",
    "site_convert",
    "blog_copy",
    "spec",
    "release_notes",
    "summary",
)
# Stages a caller may skip; preflight and summary always run.
OPTIONAL_STAGES: tuple[str, ...] = STAGES[1:-1]


def _make_run_id() -> str:
    import secrets
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    suffix = secrets.token_hex(3)
    return f"{ts}_{suffix}"


@dataclass
class RunContext:
    """State owned by the orchestrator and lent to each sub-pipeline."""

    config: MirrorConfig
    layout: OutputLayout
    tracker: StageTracker = field(default_factory=lambda: StageTracker(STAGES))
    transport: Transport | None = None
    show_progress: bool = True
    skip: frozenset[str] = frozenset()
    mirror: RepositoryMirror | None = None
    reports: list[BatchReport] = field(default_factory=list)
    _skip_logs: dict[str, SkipLog] = field(default_factory=dict)

    def skip_log(self, converter_name: str) -> SkipLog:
        """Skip log for *converter_name*, truncated on first use in this run."""
        if converter_name not in self._skip_logs:
            self._skip_logs[converter_name] = SkipLog(self.layout.skip_log(converter_name))
        return self._skip_logs[converter_name]

    def fetch(self, url: str, dest: Path) -> Path:
        return fetch_url(url, dest, timeout=self.config.http_timeout)

    async def dispatch(self, name: str, units: list[WorkUnit], kind: UnitKind) -> BatchReport:
        converter = get_converter(kind)
        report = await dispatch(
            name,
            units,
            converter,
            self.config.concurrency,
            self.skip_log(converter.name),
            show_progress=self.show_progress,
        )
        self.reports.append(report)
        if report.skipped:
            console.print(f"  [yellow]{report.skipped}/{report.attempted} skipped.[/yellow]")
        return report


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


async def _run_preflight(ctx: RunContext) -> None:
    layout = ctx.layout
    for d in (layout.root, layout.scratch, layout.api_root):
        d.mkdir(parents=True, exist_ok=True)

    setup_converters(
        api_root=layout.api_root,
        release_cache=layout.release_html_dir,
        fetch=ctx.fetch,
        include_private=ctx.config.include_private,
    )
    # Every skip log starts empty, even for stages this run will not reach.
    for name in converter_names():
        ctx.skip_log(name)

    toolchain.require_tools(toolchain.REQUIRED_TOOLS)

    if "package_docs" not in ctx.skip:
        if ctx.config.skip_install:
            await asyncio.to_thread(toolchain.ensure_on_path, toolchain.go_bin_dir())
            toolchain.require_tools(["gomarkdoc"])
        else:
            console.print(f"Installing gomarkdoc@{ctx.config.gomarkdoc_ref} ...")
            await asyncio.to_thread(toolchain.install_gomarkdoc, ctx.config.gomarkdoc_ref)


async def _run_package_docs(ctx: RunContext) -> None:
    console.print("[bold]Enumerating[/bold] std and cmd packages (source-only) ...")
    units = await asyncio.to_thread(scanner.enumerate_packages, ctx.layout)
    console.print(
        f"  Generating Markdown for {len(units)} packages "
        f"(parallel={ctx.config.concurrency}) ..."
    )
    await ctx.dispatch("API docs", units, UnitKind.package_doc)


async def _run_site_mirror(ctx: RunContext) -> None:
    console.print(f"[bold]Mirroring[/bold] {ctx.config.site_repo_url} ...")
    policy = RetryPolicy(
        attempts=ctx.config.git_retries,
        backoff_seconds=ctx.config.backoff_seconds,
        branches=tuple(ctx.config.fallback_branches),
    )
    ctx.mirror = await asyncio.to_thread(
        clone_or_update,
        ctx.config.site_repo_url,
        ctx.layout.site_src,
        ctx.layout.scratch,
        ctx.transport,
        policy,
    )
    if ctx.mirror.source != "tarball":
        ctx.mirror.commit = await asyncio.to_thread(get_current_commit, ctx.layout.site_src)
    console.print(f"  Mirror ready ({ctx.mirror.source}): {ctx.mirror.local_path}")


async def _run_site_convert(ctx: RunContext) -> None:
    console.print("[bold]Converting[/bold] site HTML -> Markdown (excluding tour/) ...")
    pages = await asyncio.to_thread(scanner.enumerate_site_pages, ctx.layout)
    await ctx.dispatch("Site HTML", pages, UnitKind.site_html_page)

    native = await asyncio.to_thread(scanner.enumerate_native_pages, ctx.layout)
    console.print(f"  Copying {len(native)} native Markdown page(s) ...")
    await ctx.dispatch("Site Markdown", native, UnitKind.native_markdown_page)


async def _run_blog_copy(ctx: RunContext) -> None:
    articles = await asyncio.to_thread(scanner.enumerate_blog_articles, ctx.layout)
    console.print(f"[bold]Copying[/bold] {len(articles)} blog source(s) ...")
    await ctx.dispatch("Blog", articles, UnitKind.blog_article)


async def _run_spec(ctx: RunContext) -> None:
    console.print("[bold]Fetching[/bold] and converting the Go language spec ...")
    layout = ctx.layout
    await asyncio.to_thread(ctx.fetch, ctx.config.spec_url, layout.spec_html)
    unit = WorkUnit(
        kind=UnitKind.language_spec,
        source_ref=str(layout.spec_html),
        identity="ref/spec",
        output_path=str(layout.output_path(UnitKind.language_spec, "ref/spec")),
    )
    await ctx.dispatch("Language spec", [unit], UnitKind.language_spec)


async def _run_release_notes(ctx: RunContext) -> None:
    console.print("[bold]Fetching[/bold] and converting release notes ...")
    layout = ctx.layout
    index_html = layout.release_index_html
    await asyncio.to_thread(ctx.fetch, ctx.config.release_index_url, index_html)

    index = WorkUnit(
        kind=UnitKind.release_note,
        source_ref=str(index_html),
        identity="release-history",
        output_path=str(layout.output_path(UnitKind.release_note, "release-history")),
    )
    html = index_html.read_text(encoding="utf-8", errors="replace")
    notes = scanner.enumerate_release_notes(html, layout, ctx.config.release_base_url)
    console.print(f"  Found {len(notes)} release page(s).")
    await ctx.dispatch("Release notes", [index, *notes], UnitKind.release_note)


async def _run_summary(ctx: RunContext) -> None:
    layout = ctx.layout
    console.print("\n[bold green]Done![/bold green]")
    console.print(f"API docs:           {layout.api_root}")
    console.print(f"Site docs (MD):     {layout.site_root}")
    console.print(f"Release notes (MD): {layout.release_root}")

    attempted = sum(r.attempted for r in ctx.reports)
    skipped = sum(r.skipped for r in ctx.reports)
    console.print(f"Units:              {attempted} attempted, {skipped} skipped")
    logs = sorted({r.skip_log for r in ctx.reports if r.skip_log})
    for log in logs:
        console.print(f"[yellow]Note:[/yellow] some units were skipped. See {log}")


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


async def _stage(ctx: RunContext, name: str, fn: Callable[[RunContext], Awaitable[None]]) -> None:
    if name in ctx.skip:
        ctx.tracker.set_state(name, StageState.skipped)
        return
    ctx.tracker.set_state(name, StageState.running)
    try:
        await fn(ctx)
    except MirrorError as exc:
        ctx.tracker.set_state(name, StageState.error, str(exc))
        raise
    ctx.tracker.set_state(name, StageState.done)


def _write_meta(ctx: RunContext, meta: RunMeta) -> None:
    meta.finished_at = datetime.now(timezone.utc).isoformat()
    meta.stages = ctx.tracker.records()
    meta.batches = [r.summary() for r in ctx.reports]
    meta.site_commit = ctx.mirror.commit if ctx.mirror else None
    path = ctx.layout.run_meta
    if not path.parent.is_dir():
        return
    path.write_text(meta.model_dump_json(indent=2), encoding="utf-8")


async def run_async(
    output_root: str | Path | None = None,
    config: MirrorConfig | None = None,
    *,
    skip: list[str] | tuple[str, ...] = (),
    transport: Transport | None = None,
    show_progress: bool = True,
) -> RunContext:
    """Full pipeline: preflight -> package docs -> site mirror -> site convert
    -> blog copy -> spec -> release notes -> summary.

    Raises ``MirrorError`` on the first fatal failure.  Per-unit failures are
    recorded in the skip logs and never raise.
    """
    config = config or MirrorConfig.from_env()
    unknown = sorted(set(skip) - set(OPTIONAL_STAGES))
    if unknown:
        raise ValueError(f"Unknown stage(s): {', '.join(unknown)}")

    layout = OutputLayout.from_root(output_root, config.scratch)
    ctx = RunContext(
        config=config,
        layout=layout,
        transport=transport,
        show_progress=show_progress,
        skip=frozenset(skip),
    )
    meta = RunMeta(
        run_id=_make_run_id(),
        output_root=str(layout.root),
        started_at=datetime.now(timezone.utc).isoformat(),
    )

    try:
        await _stage(ctx, "preflight", _run_preflight)
        await _stage(ctx, "package_docs", _run_package_docs)
        await _stage(ctx, "site_mirror", _run_site_mirror)
        await _stage(ctx, "site_convert", _run_site_convert)
        await _stage(ctx, "blog_copy", _run_blog_copy)
        await _stage(ctx, "spec", _run_spec)
        await _stage(ctx, "release_notes", _run_release_notes)
        await _stage(ctx, "summary", _run_summary)
    except MirrorError as exc:
        meta.error = str(exc)
        raise
    finally:
        _write_meta(ctx, meta)
    return ctx
