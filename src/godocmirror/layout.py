"""Output placer -- deterministic output paths derived from unit identity."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .models import UnitKind

MARKDOWN_EXT = ".md"
CONTENT_DIR = "_content"
EXCLUDED_SUBTREE = "tour"
BLOG_SUBDIR = "blog"


def resolve_root(raw: str | Path | None) -> Path:
    """Trim trailing whitespace and canonicalise *raw* (default: cwd)."""
    if raw is None:
        return Path.cwd().resolve()
    text = str(raw).rstrip()
    if not text:
        return Path.cwd().resolve()
    return Path(text).expanduser().resolve()


def _relative(identity: str) -> PurePosixPath:
    rel = PurePosixPath(identity.replace("\\", "/"))
    if rel.is_absolute() or ".." in rel.parts or not rel.parts:
        raise ValueError(f"Not a content-relative path: {identity!r}")
    return rel


@dataclass(frozen=True)
class OutputLayout:
    """Every path the pipeline reads or writes, relative to one output root."""

    root: Path
    scratch: Path

    @classmethod
    def from_root(cls, root: str | Path | None, scratch: str | Path | None = None) -> "OutputLayout":
        resolved = resolve_root(root)
        scratch_path = Path(scratch).expanduser().resolve() if scratch else resolved / "_tmp"
        return cls(root=resolved, scratch=scratch_path)

    # -- generated trees -------------------------------------------------

    @property
    def api_root(self) -> Path:
        return self.root / "docs"

    @property
    def site_src(self) -> Path:
        return self.root / "_site_src"

    @property
    def content_root(self) -> Path:
        return self.site_src / CONTENT_DIR

    @property
    def blog_content_root(self) -> Path:
        return self.content_root / BLOG_SUBDIR

    @property
    def site_root(self) -> Path:
        return self.root / "site-md"

    @property
    def release_root(self) -> Path:
        return self.root / "release-notes" / "md"

    # -- scratch ---------------------------------------------------------

    @property
    def packages_cache(self) -> Path:
        return self.scratch / "packages.txt"

    @property
    def spec_html(self) -> Path:
        return self.scratch / "go_spec.html"

    @property
    def release_html_dir(self) -> Path:
        return self.scratch / "release-notes" / "html"

    @property
    def release_index_html(self) -> Path:
        return self.release_html_dir / "release-history.html"

    @property
    def run_meta(self) -> Path:
        return self.scratch / "run_meta.json"

    def skip_log(self, converter_name: str) -> Path:
        return self.scratch / f"{converter_name}-skipped.txt"

    # -- per-kind derivation -------------------------------------------

    def output_path(self, kind: UnitKind, identity: str) -> Path:
        """Return the output path for a unit of *kind* identified by *identity*.

        Pure: the same ``(kind, identity)`` always yields the same path, and
        relative identities are taken against the content root, never the
        filesystem root.
        """
        if kind is UnitKind.package_doc:
            return self.api_root.joinpath(*_relative(identity).parts) / "README.md"
        if kind is UnitKind.site_html_page:
            rel = _relative(identity)
            if rel.suffix == ".html":
                rel = rel.with_suffix("")
            return self.site_root.joinpath(*rel.parts[:-1]) / f"{rel.name}{MARKDOWN_EXT}"
        if kind is UnitKind.native_markdown_page:
            return self.site_root.joinpath(*_relative(identity).parts)
        if kind is UnitKind.blog_article:
            return self.site_root.joinpath(BLOG_SUBDIR, *_relative(identity).parts)
        if kind is UnitKind.language_spec:
            return self.site_root / "ref" / f"spec{MARKDOWN_EXT}"
        if kind is UnitKind.release_note:
            slug = _relative(identity)
            if len(slug.parts) != 1:
                raise ValueError(f"Release slug must be a single segment: {identity!r}")
            return self.release_root / f"{slug.name}{MARKDOWN_EXT}"
        raise ValueError(f"Unknown unit kind: {kind!r}")

    def describe(self) -> dict[str, Path]:
        """Effective paths, in display order."""
        return {
            "ROOT": self.root,
            "SCRATCH": self.scratch,
            "API_MD_DIR": self.api_root,
            "SITE_DIR": self.site_src,
            "SITE_MD": self.site_root,
            "REL_MD_DIR": self.release_root,
            "PACKAGES_CACHE": self.packages_cache,
        }
