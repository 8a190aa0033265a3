"""Git integration utilities."""

from .utils import (
    clone_shallow,
    get_current_commit,
    is_git_mirror,
    pull_ff_only,
)

__all__ = [
    "clone_shallow",
    "get_current_commit",
    "is_git_mirror",
    "pull_ff_only",
]
