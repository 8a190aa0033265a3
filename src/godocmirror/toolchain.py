"""External tool helpers -- presence checks, gomarkdoc install, ``go list``.

Thin wrappers around ``subprocess`` so the rest of the pipeline never builds
command lines itself.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from .errors import EnumerationError, PreflightError

logger = logging.getLogger(__name__)

REQUIRED_TOOLS: tuple[str, ...] = ("go", "git", "pandoc")
GOMARKDOC_MODULE = "github.com/princjef/gomarkdoc/cmd/gomarkdoc"

# One line per package: import path, directory, #GoFiles, #CgoFiles.
GO_LIST_FORMAT = "{{.ImportPath}}|{{.Dir}}|{{len .GoFiles}}|{{len .CgoFiles}}"
GO_LIST_SCOPES: tuple[str, ...] = ("std", "cmd")


def run_tool(
    args: list[str],
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *args* capturing output; never raises on a non-zero exit."""
    logger.debug("exec %s (cwd=%s)", " ".join(args), cwd or ".")
    return subprocess.run(
        args,
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
    )


def missing_tools(tools: tuple[str, ...] | list[str] = REQUIRED_TOOLS) -> list[str]:
    """Return the subset of *tools* not found on ``PATH``."""
    return [t for t in tools if shutil.which(t) is None]


def tool_report(tools: tuple[str, ...] | list[str] = REQUIRED_TOOLS) -> dict[str, str | None]:
    """Map each tool to its resolved path (``None`` when missing)."""
    return {t: shutil.which(t) for t in tools}


def require_tools(tools: tuple[str, ...] | list[str] = REQUIRED_TOOLS) -> None:
    missing = missing_tools(tools)
    if missing:
        raise PreflightError(
            "Missing required tool(s): " + ", ".join(missing), missing=missing
        )


def go_bin_dir() -> Path:
    """Directory ``go install`` writes binaries to."""
    gobin = run_tool(["go", "env", "GOBIN"])
    if gobin.returncode == 0 and gobin.stdout.strip():
        return Path(gobin.stdout.strip())
    gopath = run_tool(["go", "env", "GOPATH"])
    if gopath.returncode != 0 or not gopath.stdout.strip():
        raise PreflightError(f"go env GOPATH failed: {gopath.stderr.strip()}")
    # GOPATH may be a list; binaries go to the first entry.
    first = gopath.stdout.strip().split(os.pathsep)[0]
    return Path(first) / "bin"


def ensure_on_path(directory: Path) -> None:
    """Prepend *directory* to ``PATH`` for this process and its children."""
    current = os.environ.get("PATH", "")
    if str(directory) in current.split(os.pathsep):
        return
    os.environ["PATH"] = os.pathsep.join([str(directory), current]) if current else str(directory)


def install_gomarkdoc(ref: str = "latest") -> None:
    """``go install`` gomarkdoc at *ref* and make it runnable."""
    ensure_on_path(go_bin_dir())
    result = run_tool(["go", "install", f"{GOMARKDOC_MODULE}@{ref}"])
    if result.returncode != 0:
        raise PreflightError(
            f"go install gomarkdoc@{ref} failed: {result.stderr.strip()}",
            missing=["gomarkdoc"],
        )
    require_tools(["gomarkdoc"])


def go_list_packages(scopes: tuple[str, ...] = GO_LIST_SCOPES) -> str:
    """Raw ``go list`` output for *scopes*; failure is fatal."""
    result = run_tool(["go", "list", "-f", GO_LIST_FORMAT, *scopes])
    if result.returncode != 0:
        raise EnumerationError(
            f"go list {' '.join(scopes)} failed (exit {result.returncode}): "
            f"{result.stderr.strip()}"
        )
    return result.stdout
