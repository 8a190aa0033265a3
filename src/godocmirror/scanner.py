"""Unit enumerator -- turns toolchain output and mirrored trees into work units."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from urllib.parse import urljoin, urlsplit

from .errors import EnumerationError
from .layout import EXCLUDED_SUBTREE, OutputLayout
from .models import UnitKind, WorkUnit
from .toolchain import go_list_packages

logger = logging.getLogger(__name__)

# Version-specific release doc links, e.g. href="/doc/go1.22".
RELEASE_LINK_RE = re.compile(r'/doc/go1[^"]+')

# Never descended into while walking the mirror.
SKIP_DIRS: set[str] = {".git"}


# ---------------------------------------------------------------------------
# Package docs
# ---------------------------------------------------------------------------


def parse_package_listing(text: str, layout: OutputLayout) -> list[WorkUnit]:
    """Parse ``ImportPath|Dir|#GoFiles|#CgoFiles`` lines into package units.

    Packages without any Go or cgo source (test-only or doc-only) are dropped.
    The result is deduplicated and sorted by import path.
    """
    seen: dict[str, WorkUnit] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        parts = line.split("|")
        if len(parts) != 4:
            raise EnumerationError(f"Unexpected go list line: {line!r}")
        import_path, directory, go_files, cgo_files = parts
        try:
            has_source = int(go_files) > 0 or int(cgo_files) > 0
        except ValueError as exc:
            raise EnumerationError(f"Unexpected go list line: {line!r}") from exc
        if not has_source or import_path in seen:
            continue
        seen[import_path] = WorkUnit(
            kind=UnitKind.package_doc,
            source_ref=import_path,
            source_dir=directory,
            identity=import_path,
            output_path=str(layout.output_path(UnitKind.package_doc, import_path)),
        )
    return [seen[k] for k in sorted(seen)]


def write_package_cache(units: list[WorkUnit], cache: Path) -> None:
    cache.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"{u.identity}|{u.source_dir}" for u in units]
    cache.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")


def enumerate_packages(layout: OutputLayout) -> list[WorkUnit]:
    """Every std + cmd package with compilable source, cached to packages.txt."""
    units = parse_package_listing(go_list_packages(), layout)
    write_package_cache(units, layout.packages_cache)
    return units


# ---------------------------------------------------------------------------
# Mirrored content
# ---------------------------------------------------------------------------


def _walk_content(root: Path, suffix: str, exclude_top: str | None,
                  required: bool = True) -> list[str]:
    """Content-relative (posix) paths of files ending in *suffix* under *root*."""
    if not root.is_dir():
        if required:
            raise EnumerationError(f"Content root not found: {root}")
        logger.warning("%s not found; nothing to enumerate.", root)
        return []

    root = root.resolve()
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).resolve().relative_to(root).as_posix()
        if rel_dir == ".":
            rel_dir = ""
        # Prune in-place so os.walk never enters excluded subtrees.
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in SKIP_DIRS and not (rel_dir == "" and d == exclude_top)
        )
        for fname in filenames:
            if fname.endswith(suffix):
                found.append(f"{rel_dir}/{fname}" if rel_dir else fname)
    found.sort()
    return found


def _content_units(layout: OutputLayout, root: Path, kind: UnitKind, suffix: str,
                   exclude_top: str | None, required: bool = True) -> list[WorkUnit]:
    return [
        WorkUnit(
            kind=kind,
            source_ref=str(root / rel),
            identity=rel,
            output_path=str(layout.output_path(kind, rel)),
        )
        for rel in _walk_content(root, suffix, exclude_top, required)
    ]


def enumerate_site_pages(layout: OutputLayout) -> list[WorkUnit]:
    """HTML pages of the site content, excluding the tour."""
    return _content_units(
        layout, layout.content_root, UnitKind.site_html_page, ".html", EXCLUDED_SUBTREE
    )


def enumerate_native_pages(layout: OutputLayout) -> list[WorkUnit]:
    """Pages already in Markdown, excluding the tour."""
    return _content_units(
        layout, layout.content_root, UnitKind.native_markdown_page, ".md", EXCLUDED_SUBTREE
    )


def enumerate_blog_articles(layout: OutputLayout) -> list[WorkUnit]:
    """Blog ``.article`` sources, copied verbatim under ``site-md/blog``."""
    return _content_units(
        layout, layout.blog_content_root, UnitKind.blog_article, ".article", None,
        required=False,
    )


# ---------------------------------------------------------------------------
# Release notes
# ---------------------------------------------------------------------------


def release_slug(link: str) -> str:
    """``/doc/go1.22#foo`` -> ``go1.22``."""
    path = urlsplit(link).path.rstrip("/")
    return path.rsplit("/", 1)[-1]


def find_release_links(html: str) -> list[str]:
    """Unique version doc paths in *html*, sorted, query/fragment stripped."""
    paths = {urlsplit(m.group(0)).path.rstrip("/") for m in RELEASE_LINK_RE.finditer(html)}
    return sorted(p for p in paths if release_slug(p))


def enumerate_release_notes(html: str, layout: OutputLayout, base_url: str) -> list[WorkUnit]:
    """One release-note unit per version link found in the index page."""
    units: dict[str, WorkUnit] = {}
    for path in find_release_links(html):
        slug = release_slug(path)
        if slug in units:
            continue
        units[slug] = WorkUnit(
            kind=UnitKind.release_note,
            source_ref=urljoin(base_url.rstrip("/") + "/", path.lstrip("/")),
            identity=slug,
            output_path=str(layout.output_path(UnitKind.release_note, slug)),
        )
    return [units[k] for k in sorted(units)]
