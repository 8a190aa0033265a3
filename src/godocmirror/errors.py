"""Exception hierarchy.

``MirrorError`` subclasses are fatal: they abort the run and map to a
non-zero exit.  ``ConversionError`` subclasses are per-unit and only ever
end up in a skip log.
"""

from __future__ import annotations


class MirrorError(RuntimeError):
    """Base class for fatal pipeline errors."""


class PreflightError(MirrorError):
    """Required external tools are missing or could not be installed."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


class EnumerationError(MirrorError):
    """Work units could not be enumerated (toolchain query, content root)."""


class TransportError(MirrorError):
    """A fetch or the clone/fallback chain failed."""


class MirrorDivergedError(TransportError):
    """The local mirror cannot be fast-forwarded to the remote tip."""


class ConversionError(Exception):
    """An external converter failed for one unit."""


class SourceUnavailable(ConversionError):
    """The source of one unit could not be obtained."""
