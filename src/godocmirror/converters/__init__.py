"""Conversion engine -- routes work units to the right converter by kind."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from ..models import UnitKind
from .base import Converter, run_conversion
from .external import GomarkdocConverter, PandocConverter
from .local import CopyConverter, FetchingConverter

__all__ = [
    "Converter",
    "CopyConverter",
    "FetchingConverter",
    "converter_names",
    "GomarkdocConverter",
    "PandocConverter",
    "get_converter",
    "register",
    "run_conversion",
    "setup_converters",
]

# Registry populated at startup via setup_converters().
_REGISTRY: dict[UnitKind, Converter] = {}


def register(kind: UnitKind, converter: Converter) -> None:
    """Register a converter instance for a unit kind."""
    _REGISTRY[kind] = converter


def converter_names() -> list[str]:
    """Distinct names of the registered converters, sorted."""
    return sorted({c.name for c in _REGISTRY.values()})


def get_converter(kind: UnitKind) -> Converter:
    """Return the converter for *kind*; ``KeyError`` if none is registered."""
    try:
        return _REGISTRY[kind]
    except KeyError:
        raise KeyError(f"No converter registered for {kind.value}") from None


def setup_converters(
    *,
    api_root: Path,
    release_cache: Path,
    fetch: Callable[[str, Path], Path],
    include_private: bool = False,
) -> None:
    """Register all built-in converters.

    Call once at pipeline startup.  Release notes are remote units, so their
    pandoc converter is wrapped in a fetch into *release_cache*.
    """
    pandoc = PandocConverter()
    copier = CopyConverter()

    register(UnitKind.package_doc, GomarkdocConverter(api_root, include_private=include_private))
    register(UnitKind.site_html_page, pandoc)
    register(UnitKind.language_spec, pandoc)
    register(UnitKind.native_markdown_page, copier)
    register(UnitKind.blog_article, copier)
    register(UnitKind.release_note, FetchingConverter(pandoc, release_cache, fetch))
