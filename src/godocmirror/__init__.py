"""godocmirror - Local Markdown mirror of Go's documentation."""

from .models import (  # noqa: F401 -- public re-exports
    BatchReport,
    ConversionResult,
    ConversionStatus,
    MirrorConfig,
    RepositoryMirror,
    UnitKind,
    WorkUnit,
)
from .layout import OutputLayout
from .orchestrator import run_async

__version__ = "0.1.0"

__all__ = [
    "OutputLayout",
    "run_async",
    "BatchReport",
    "ConversionResult",
    "ConversionStatus",
    "MirrorConfig",
    "RepositoryMirror",
    "UnitKind",
    "WorkUnit",
]
