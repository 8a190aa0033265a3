"""Base protocol for converters and the single-unit invoker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..errors import ConversionError, SourceUnavailable
from ..models import ConversionResult, ConversionStatus, UnitKind, WorkUnit

logger = logging.getLogger(__name__)


@runtime_checkable
class Converter(Protocol):
    """Interface that every converter must satisfy.

    Implementations:
      - GomarkdocConverter (Go package -> Markdown, runs inside the package dir)
      - PandocConverter    (HTML -> GitHub-flavoured Markdown)
      - CopyConverter      (pass-through copy)
      - FetchingConverter  (fetch a URL, then delegate)
    """

    name: str

    def convert(self, unit: WorkUnit) -> Path:
        """Produce ``unit.output_path``; raise ``ConversionError`` on failure."""
        ...


def _missing_source(unit: WorkUnit) -> str | None:
    """Describe why *unit*'s local source is absent, or ``None`` if present."""
    if unit.kind is UnitKind.package_doc:
        if not unit.source_dir or not Path(unit.source_dir).is_dir():
            return f"missing dir: {unit.source_dir}"
        return None
    if "://" in unit.source_ref:
        # Remote sources are checked by the converter that fetches them.
        return None
    if not Path(unit.source_ref).is_file():
        return f"missing file: {unit.source_ref}"
    return None


def run_conversion(unit: WorkUnit, converter: Converter) -> ConversionResult:
    """Invoke *converter* once for *unit* and classify the outcome.

    Never raises for per-unit problems: a missing source is reported without
    calling the converter, and converter failures become skip results.
    """
    missing = _missing_source(unit)
    if missing is not None:
        return ConversionResult(
            unit=unit, status=ConversionStatus.skipped_missing_source, error_detail=missing,
        )

    Path(unit.output_path).parent.mkdir(parents=True, exist_ok=True)
    try:
        converter.convert(unit)
    except SourceUnavailable as exc:
        return ConversionResult(
            unit=unit, status=ConversionStatus.skipped_missing_source, error_detail=str(exc),
        )
    except (ConversionError, OSError) as exc:
        logger.debug("%s failed for %s: %s", converter.name, unit.identity, exc)
        return ConversionResult(
            unit=unit, status=ConversionStatus.skipped_converter_failure, error_detail=str(exc),
        )
    return ConversionResult(unit=unit, status=ConversionStatus.success)
