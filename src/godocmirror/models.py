"""Pydantic models for the mirror pipeline."""

from __future__ import annotations

import os
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Work units
# ---------------------------------------------------------------------------

class UnitKind(str, Enum):
    package_doc = "package_doc"
    site_html_page = "site_html_page"
    native_markdown_page = "native_markdown_page"
    blog_article = "blog_article"
    language_spec = "language_spec"
    release_note = "release_note"


class WorkUnit(BaseModel):
    """One documentation source item converted into one output artifact."""

    model_config = ConfigDict(frozen=True)

    kind: UnitKind
    source_ref: str      # filesystem path or remote URL
    identity: str        # import path, content-relative path, or version slug
    output_path: str
    source_dir: str | None = None  # package_doc only: cwd for the generator


class ConversionStatus(str, Enum):
    success = "success"
    skipped_missing_source = "skipped_missing_source"
    skipped_converter_failure = "skipped_converter_failure"


class ConversionResult(BaseModel):
    """Outcome of invoking a converter once for a single unit."""

    model_config = ConfigDict(frozen=True)

    unit: WorkUnit
    status: ConversionStatus
    error_detail: str | None = None

    @property
    def skipped(self) -> bool:
        return self.status is not ConversionStatus.success


class BatchReport(BaseModel):
    """Aggregate of one dispatcher batch."""

    name: str
    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    skip_log: str | None = None
    results: list[ConversionResult] = Field(default_factory=list)

    def summary(self) -> dict[str, object]:
        """Compact form persisted in run metadata (no per-unit results)."""
        return self.model_dump(exclude={"results"})


# ---------------------------------------------------------------------------
# Mirror handle
# ---------------------------------------------------------------------------

class RepositoryMirror(BaseModel):
    """Local working copy (or snapshot) of the site-docs repository."""

    local_path: str
    remote_url: str
    present: bool = False
    source: str | None = None   # "clone" | "update" | "tarball"
    branch: str | None = None   # tarball branch when source == "tarball"
    commit: str | None = None   # HEAD after clone/update; None for snapshots


# ---------------------------------------------------------------------------
# Run metadata
# ---------------------------------------------------------------------------

class StageRecord(BaseModel):
    stage: str
    state: str
    detail: str = ""
    elapsed: float = 0.0


class RunMeta(BaseModel):
    """Metadata for a single mirror run, written to ``_tmp/run_meta.json``."""

    run_id: str
    output_root: str
    started_at: str
    finished_at: str | None = None
    stages: list[StageRecord] = Field(default_factory=list)
    site_commit: str | None = None
    batches: list[dict[str, object]] = Field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_SITE_REPO = "https://github.com/golang/website.git"
DEFAULT_SPEC_URL = "https://raw.githubusercontent.com/golang/go/master/doc/go_spec.html"
DEFAULT_RELEASE_INDEX = "https://go.dev/doc/devel/release"
DEFAULT_RELEASE_BASE = "https://go.dev"

_TRUTHY = {"1", "true", "yes", "on"}


def default_concurrency() -> int:
    return max(1, os.cpu_count() or 1)


class MirrorConfig(BaseModel):
    """Effective settings for one invocation.

    Precedence: CLI flag > environment variable > default.
    """

    concurrency: int = Field(default_factory=default_concurrency)
    """Maximum parallel converter invocations per batch."""

    scratch: str | None = None
    """Scratch directory; ``None`` means ``<root>/_tmp``."""

    git_retries: int = 4
    """Shallow clone attempts before the tarball fallback."""

    backoff_seconds: float = 2.0
    """Sleep between clone attempts is ``backoff_seconds * attempt``."""

    fallback_branches: list[str] = Field(default_factory=lambda: ["master", "main"])
    """Branches tried, in order, for the tarball fallback."""

    gomarkdoc_ref: str = "latest"
    """Version/ref passed to ``go install .../gomarkdoc@<ref>``."""

    include_private: bool = False
    """Document unexported symbols (``gomarkdoc -u``)."""

    skip_install: bool = False
    """Use the gomarkdoc already on PATH instead of running ``go install``."""

    site_repo_url: str = DEFAULT_SITE_REPO
    spec_url: str = DEFAULT_SPEC_URL
    release_index_url: str = DEFAULT_RELEASE_INDEX
    release_base_url: str = DEFAULT_RELEASE_BASE

    http_timeout: float = 60.0
    """Seconds before a single HTTP fetch is abandoned."""

    @field_validator("concurrency")
    @classmethod
    def _at_least_one_worker(cls, value: int) -> int:
        return max(1, value)

    @field_validator("git_retries")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("git_retries must be >= 1")
        return value

    @field_validator("include_private", mode="before")
    @classmethod
    def _parse_flag(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: object) -> "MirrorConfig":
        """Build a config from environment variables plus explicit overrides.

        Overrides whose value is ``None`` are ignored so optional CLI flags
        fall through to the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        mapping = {
            "CONCURRENCY": "concurrency",
            "SCRATCH": "scratch",
            "GIT_RETRIES": "git_retries",
            "GOMARKDOC_VERSION": "gomarkdoc_ref",
            "INCLUDE_PRIVATE": "include_private",
        }
        for env_name, field_name in mapping.items():
            raw = env.get(env_name, "").strip()
            if raw:
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
