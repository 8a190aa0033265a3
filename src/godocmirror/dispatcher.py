"""Bounded work dispatcher -- runs one converter over a batch of units."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from .converters import Converter, run_conversion
from .models import BatchReport, ConversionResult, ConversionStatus, WorkUnit

logger = logging.getLogger(__name__)

console = Console()


class SkipLog:
    """Append-only record of units that failed non-fatally.

    The file is truncated the first time it is opened in a run; after that
    every append is serialised so concurrent workers never interleave lines.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._count = 0
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")

    @staticmethod
    def format(result: ConversionResult, converter_name: str) -> str:
        unit = result.unit
        if result.status is ConversionStatus.skipped_missing_source:
            where = unit.source_dir or unit.source_ref
            return f"skip (missing source): {unit.identity} -> {where}"
        return f"skip ({converter_name} failed): {unit.identity}"

    def append(self, line: str) -> None:
        with self._lock:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line.rstrip("\n") + "\n")
            self._count += 1

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def entries(self) -> list[str]:
        with self._lock:
            if not self.path.exists():
                return []
            return [l for l in self.path.read_text(encoding="utf-8").splitlines() if l]


async def _convert_one(
    unit: WorkUnit,
    converter: Converter,
    sem: asyncio.Semaphore,
    skip_log: SkipLog,
) -> ConversionResult:
    """Convert a single unit under the concurrency cap."""
    async with sem:
        try:
            result = await asyncio.to_thread(run_conversion, unit, converter)
        except Exception as exc:  # converter bug: keep the batch going
            logger.exception("Unexpected error converting %s", unit.identity)
            result = ConversionResult(
                unit=unit,
                status=ConversionStatus.skipped_converter_failure,
                error_detail=repr(exc),
            )
    if result.skipped:
        await asyncio.to_thread(skip_log.append, SkipLog.format(result, converter.name))
    return result


async def dispatch(
    name: str,
    units: list[WorkUnit],
    converter: Converter,
    concurrency: int,
    skip_log: SkipLog,
    show_progress: bool = True,
) -> BatchReport:
    """Run *converter* over every unit, at most *concurrency* at a time.

    Every unit is attempted exactly once and no unit failure stops the batch.
    Results are returned in unit order.
    """
    sem = asyncio.Semaphore(max(1, concurrency))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        disable=not show_progress,
        transient=True,
    ) as progress:
        task = progress.add_task(name, total=len(units))

        async def _run_and_track(unit: WorkUnit) -> ConversionResult:
            result = await _convert_one(unit, converter, sem, skip_log)
            progress.advance(task)
            return result

        results: list[ConversionResult] = list(
            await asyncio.gather(*[_run_and_track(u) for u in units])
        )

    skipped = sum(1 for r in results if r.skipped)
    report = BatchReport(
        name=name,
        attempted=len(results),
        succeeded=len(results) - skipped,
        skipped=skipped,
        skip_log=str(skip_log.path) if skipped else None,
        results=results,
    )
    logger.info("%s: %d attempted, %d skipped", name, report.attempted, report.skipped)
    return report
