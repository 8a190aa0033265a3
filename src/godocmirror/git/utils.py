"""Git helper utilities for the site mirror.

Thin wrappers around git CLI commands via ``subprocess``.  Query helpers
(``get_current_commit``) return ``None`` on failure; the mutating helpers
report success as a bool and leave the policy decision to the caller.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

# Abort transfers that stay below 1 KB/s for a minute.
_LOW_SPEED = ["-c", "http.lowSpeedLimit=1000", "-c", "http.lowSpeedTime=60"]


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def is_git_mirror(path: Path) -> bool:
    """True when *path* is a working copy (has a ``.git`` entry)."""
    return (path / ".git").exists()


def clone_shallow(url: str, dest: Path) -> bool:
    """Shallow, blobless, single-branch clone of *url* into *dest*."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    result = subprocess.run(
        [
            "git", *_LOW_SPEED,
            "clone", "--filter=blob:none", "--depth=1", "--single-branch",
            url, str(dest),
        ],
        capture_output=True,
        text=True,
        env=_git_env(),
    )
    if result.returncode != 0:
        logger.debug("git clone %s failed: %s", url, result.stderr.strip())
        return False
    return True


def pull_ff_only(repo_root: Path) -> tuple[bool, str]:
    """Fast-forward *repo_root* to its upstream tip.

    Returns ``(ok, stderr)``; a refusal to fast-forward is ``ok=False``.
    """
    result = subprocess.run(
        ["git", "-C", str(repo_root), *_LOW_SPEED, "pull", "--ff-only"],
        capture_output=True,
        text=True,
        env=_git_env(),
    )
    return result.returncode == 0, result.stderr.strip()


def get_current_commit(repo_root: Path) -> str | None:
    """Return the HEAD commit hash, or ``None`` if unavailable."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=repo_root,
            capture_output=True,
            text=True,
        )
    except OSError:
        return None
    if result.returncode == 0:
        return result.stdout.strip()
    return None
