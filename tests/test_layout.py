"""Tests for output path derivation."""

from __future__ import annotations

from pathlib import Path

import pytest

from godocmirror.layout import OutputLayout, resolve_root
from godocmirror.models import UnitKind


@pytest.fixture
def layout(tmp_path: Path) -> OutputLayout:
    return OutputLayout.from_root(tmp_path / "out")


class TestOutputPath:
    def test_package_doc(self, layout):
        path = layout.output_path(UnitKind.package_doc, "net/http")
        assert path == layout.root / "docs" / "net" / "http" / "README.md"

    def test_site_html_strips_extension(self, layout):
        path = layout.output_path(UnitKind.site_html_page, "doc/effective_go.html")
        assert path == layout.root / "site-md" / "doc" / "effective_go.md"

    def test_site_html_keeps_inner_dots(self, layout):
        path = layout.output_path(UnitKind.site_html_page, "doc/go1.17_spec.html")
        assert path.name == "go1.17_spec.md"

    def test_native_markdown_is_verbatim(self, layout):
        path = layout.output_path(UnitKind.native_markdown_page, "doc/tutorial/getting-started.md")
        assert path == layout.root / "site-md" / "doc" / "tutorial" / "getting-started.md"

    def test_blog_article_under_blog(self, layout):
        path = layout.output_path(UnitKind.blog_article, "go1.article")
        assert path == layout.root / "site-md" / "blog" / "go1.article"

    def test_language_spec_is_fixed(self, layout):
        assert layout.output_path(UnitKind.language_spec, "anything") == (
            layout.root / "site-md" / "ref" / "spec.md"
        )

    def test_release_note(self, layout):
        path = layout.output_path(UnitKind.release_note, "go1.22")
        assert path == layout.root / "release-notes" / "md" / "go1.22.md"

    @pytest.mark.parametrize("bad", ["/etc/passwd", "../escape.html", "a/../../b.html", ""])
    def test_rejects_paths_outside_content(self, layout, bad):
        with pytest.raises(ValueError):
            layout.output_path(UnitKind.site_html_page, bad)

    def test_release_slug_must_be_single_segment(self, layout):
        with pytest.raises(ValueError):
            layout.output_path(UnitKind.release_note, "doc/go1.22")


class TestDeterminism:
    def test_identical_inputs_identical_paths(self, tmp_path):
        a = OutputLayout.from_root(tmp_path)
        b = OutputLayout.from_root(tmp_path)
        for kind, ident in [
            (UnitKind.package_doc, "cmd/go/internal/load"),
            (UnitKind.site_html_page, "doc/faq.html"),
            (UnitKind.release_note, "go1.21"),
        ]:
            assert str(a.output_path(kind, ident)) == str(b.output_path(kind, ident))

    def test_distinct_units_never_collide(self, layout):
        units = [
            (UnitKind.package_doc, "fmt"),
            (UnitKind.package_doc, "cmd/go"),
            (UnitKind.site_html_page, "doc/faq.html"),
            (UnitKind.native_markdown_page, "doc/faq.md.txt"),
            (UnitKind.native_markdown_page, "blog/intro.md"),
            (UnitKind.blog_article, "intro.article"),
            (UnitKind.language_spec, "ref/spec"),
            (UnitKind.release_note, "go1.22"),
            (UnitKind.release_note, "release-history"),
        ]
        paths = [layout.output_path(k, i) for k, i in units]
        assert len(set(paths)) == len(paths)

    def test_independent_of_mirror_location(self, tmp_path):
        layout = OutputLayout.from_root(tmp_path / "a")
        other = OutputLayout.from_root(tmp_path / "b")
        rel_a = layout.output_path(UnitKind.site_html_page, "doc/x.html").relative_to(layout.root)
        rel_b = other.output_path(UnitKind.site_html_page, "doc/x.html").relative_to(other.root)
        assert rel_a == rel_b


class TestRoots:
    def test_trailing_whitespace_trimmed(self, tmp_path):
        assert resolve_root(f"{tmp_path}  \t") == tmp_path.resolve()

    def test_default_is_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_root(None) == tmp_path.resolve()

    def test_scratch_defaults_inside_root(self, tmp_path):
        layout = OutputLayout.from_root(tmp_path)
        assert layout.scratch == tmp_path.resolve() / "_tmp"
        assert layout.packages_cache == layout.scratch / "packages.txt"
        assert layout.skip_log("gomarkdoc") == layout.scratch / "gomarkdoc-skipped.txt"

    def test_scratch_override(self, tmp_path):
        layout = OutputLayout.from_root(tmp_path / "out", tmp_path / "scratch")
        assert layout.scratch == (tmp_path / "scratch").resolve()
