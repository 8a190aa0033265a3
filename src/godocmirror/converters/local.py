"""In-process converters: pass-through copy and fetch-then-convert."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable

from ..errors import SourceUnavailable, TransportError
from ..models import WorkUnit
from .base import Converter


class CopyConverter:
    """Copy the source verbatim (metadata preserved)."""

    name = "copy"

    def convert(self, unit: WorkUnit) -> Path:
        dest = Path(unit.output_path)
        shutil.copy2(unit.source_ref, dest)
        return dest


class FetchingConverter:
    """Fetch a remote unit into the HTML cache, then run *inner* on the copy.

    Shares *inner*'s name so its failures land in the same skip log.
    """

    def __init__(
        self,
        inner: Converter,
        cache_dir: Path,
        fetch: Callable[[str, Path], Path],
    ) -> None:
        self.inner = inner
        self.cache_dir = cache_dir
        self.fetch = fetch
        self.name = inner.name

    def cache_path(self, unit: WorkUnit) -> Path:
        return self.cache_dir / f"{unit.identity}.html"

    def convert(self, unit: WorkUnit) -> Path:
        if "://" not in unit.source_ref:
            # Already cached locally (e.g. the release history index).
            return self.inner.convert(unit)
        cached = self.cache_path(unit)
        try:
            self.fetch(unit.source_ref, cached)
        except TransportError as exc:
            raise SourceUnavailable(str(exc)) from exc
        return self.inner.convert(unit.model_copy(update={"source_ref": str(cached)}))
