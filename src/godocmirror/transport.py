"""Transport layer -- single-document fetches and the clone/update mirror.

``fetch_url`` is deliberately a single attempt: it is used for small,
critical documents where a failure should stop the run.

``clone_or_update`` drives a small state machine::

    cloning(1) -> cloning(2) -> ... -> cloning(N)
        |                                  |
        v                                  v
       done <- fallback_tarball(b0) -> fallback_tarball(b1) -> ... -> failed

The transitions (``advance``) are pure; the I/O goes through a ``Transport``
so the whole chain can be exercised with fakes.
"""

from __future__ import annotations

import http.client
import logging
import shutil
import tarfile
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol, runtime_checkable
from urllib.parse import urlsplit

from .errors import MirrorDivergedError, TransportError
from .git.utils import clone_shallow, is_git_mirror, pull_ff_only
from .models import RepositoryMirror

logger = logging.getLogger(__name__)

USER_AGENT = "godocmirror/0.1 (+https://go.dev)"
CODELOAD_URL = "https://codeload.github.com/{owner}/{repo}/tar.gz/refs/heads/{branch}"


# ---------------------------------------------------------------------------
# Single fetch
# ---------------------------------------------------------------------------


def fetch_url(url: str, dest: Path, timeout: float = 60.0) -> Path:
    """Download *url* to *dest* in one attempt; any failure is fatal."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(dest.name + ".part")
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as resp, partial.open("wb") as fh:
            shutil.copyfileobj(resp, fh)
            expected = resp.headers.get("Content-Length")
            received = fh.tell()
        # Chunked reads do not raise when the peer closes early.
        if expected is not None and expected.isdigit() and int(expected) != received:
            raise TransportError(
                f"Failed to fetch {url}: truncated ({received} of {expected} bytes)"
            )
    except TransportError:
        partial.unlink(missing_ok=True)
        raise
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
        partial.unlink(missing_ok=True)
        raise TransportError(f"Failed to fetch {url}: {exc}") from exc
    partial.replace(dest)
    return dest


# ---------------------------------------------------------------------------
# Retry / fallback state machine
# ---------------------------------------------------------------------------


class ClonePhase(Enum):
    cloning = "cloning"
    fallback_tarball = "fallback_tarball"
    done = "done"
    failed = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 4
    backoff_seconds: float = 2.0
    branches: tuple[str, ...] = ("master", "main")

    def delay(self, attempt: int) -> float:
        """Sleep after failed clone attempt number *attempt* (1-based)."""
        return self.backoff_seconds * attempt


@dataclass(frozen=True)
class CloneStep:
    phase: ClonePhase = ClonePhase.cloning
    attempt: int = 1
    branch_index: int = 0

    @property
    def terminal(self) -> bool:
        return self.phase in (ClonePhase.done, ClonePhase.failed)


def advance(step: CloneStep, ok: bool, policy: RetryPolicy) -> CloneStep:
    """Next step after *step* finished with outcome *ok*."""
    if step.terminal:
        return step
    if ok:
        return replace(step, phase=ClonePhase.done)
    if step.phase is ClonePhase.cloning:
        if step.attempt < policy.attempts:
            return replace(step, attempt=step.attempt + 1)
        if policy.branches:
            return replace(step, phase=ClonePhase.fallback_tarball, branch_index=0)
        return replace(step, phase=ClonePhase.failed)
    if step.branch_index + 1 < len(policy.branches):
        return replace(step, branch_index=step.branch_index + 1)
    return replace(step, phase=ClonePhase.failed)


# ---------------------------------------------------------------------------
# Transport backends
# ---------------------------------------------------------------------------


@runtime_checkable
class Transport(Protocol):
    """Network primitives used by ``clone_or_update``."""

    def clone(self, url: str, dest: Path) -> bool:
        ...

    def pull(self, repo: Path) -> tuple[bool, str]:
        ...

    def download(self, url: str, dest: Path) -> bool:
        ...


class GitTransport:
    """git CLI for clone/pull, urllib for tarball downloads."""

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    def clone(self, url: str, dest: Path) -> bool:
        return clone_shallow(url, dest)

    def pull(self, repo: Path) -> tuple[bool, str]:
        return pull_ff_only(repo)

    def download(self, url: str, dest: Path) -> bool:
        try:
            fetch_url(url, dest, timeout=self.timeout)
        except TransportError as exc:
            logger.info("%s", exc)
            return False
        return True


# ---------------------------------------------------------------------------
# Tarball fallback
# ---------------------------------------------------------------------------


def github_slug(remote_url: str) -> tuple[str, str] | None:
    """``https://github.com/golang/website.git`` -> ``("golang", "website")``."""
    parts = urlsplit(remote_url)
    if parts.hostname != "github.com":
        return None
    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2:
        return None
    repo = segments[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return segments[0], repo


def extract_snapshot(archive: Path, scratch: Path, dest: Path) -> bool:
    """Unpack a codeload tarball and merge its single top directory into *dest*."""
    staging = scratch / f"{archive.stem}-extract"
    if staging.exists():
        shutil.rmtree(staging)
    staging.mkdir(parents=True)
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(staging, filter="data")
    except (tarfile.TarError, OSError) as exc:
        logger.warning("Could not extract %s: %s", archive, exc)
        return False
    tops = [p for p in staging.iterdir() if p.is_dir()]
    if len(tops) != 1:
        logger.warning("Unexpected layout in %s (%d top-level dirs)", archive, len(tops))
        return False
    dest.mkdir(parents=True, exist_ok=True)
    shutil.copytree(tops[0], dest, dirs_exist_ok=True)
    return True


def _fetch_tarball(transport: Transport, owner: str, repo: str, branch: str,
                   scratch: Path, dest: Path) -> bool:
    url = CODELOAD_URL.format(owner=owner, repo=repo, branch=branch)
    archive = scratch / f"{repo}-{branch}.tgz"
    logger.info("Downloading %s ...", url)
    if not transport.download(url, archive):
        return False
    return extract_snapshot(archive, scratch, dest)


# ---------------------------------------------------------------------------
# Clone or update
# ---------------------------------------------------------------------------


def clone_or_update(
    remote_url: str,
    local_path: Path,
    scratch: Path,
    transport: Transport | None = None,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RepositoryMirror:
    """Make *local_path* hold the remote's current default-branch tip.

    An existing working copy is fast-forwarded (never reset); divergence is
    fatal.  Otherwise a shallow clone is retried per *policy* and, failing
    that, a tarball snapshot of each candidate branch is tried in order.
    """
    transport = transport or GitTransport()
    policy = policy or RetryPolicy()
    scratch.mkdir(parents=True, exist_ok=True)

    if is_git_mirror(local_path):
        logger.info("Updating %s ...", local_path)
        ok, detail = transport.pull(local_path)
        if not ok:
            raise MirrorDivergedError(
                f"Cannot fast-forward {local_path} to {remote_url}: {detail or 'git pull failed'}. "
                "Resolve the local changes or remove the mirror and re-run."
            )
        return RepositoryMirror(
            local_path=str(local_path), remote_url=remote_url, present=True, source="update",
        )

    # A non-empty, non-git directory (an earlier tarball snapshot) cannot be
    # cloned into directly; clone beside it and merge on success.
    occupied = local_path.exists() and any(local_path.iterdir())
    clone_dest = scratch / f"{local_path.name}-clone" if occupied else local_path

    slug = github_slug(remote_url)
    if slug is None:
        policy = replace(policy, branches=())

    step = CloneStep()
    source: str | None = None
    while not step.terminal:
        if step.phase is ClonePhase.cloning:
            logger.info("Cloning %s (attempt %d/%d) ...", remote_url, step.attempt, policy.attempts)
            if occupied and clone_dest.exists():
                shutil.rmtree(clone_dest)
            ok = transport.clone(remote_url, clone_dest)
            nxt = advance(step, ok, policy)
            if ok:
                if occupied:
                    shutil.copytree(clone_dest, local_path, dirs_exist_ok=True)
                source = "clone"
            elif nxt.phase is ClonePhase.cloning:
                sleep(policy.delay(step.attempt))
            elif nxt.phase is ClonePhase.fallback_tarball:
                logger.warning(
                    "Git clone failed after %d attempts. Falling back to tarball ...",
                    policy.attempts,
                )
        else:
            assert slug is not None
            branch = policy.branches[step.branch_index]
            ok = _fetch_tarball(transport, slug[0], slug[1], branch, scratch, local_path)
            nxt = advance(step, ok, policy)
            if ok:
                source = "tarball"
        if nxt.phase is ClonePhase.done:
            branch_used = policy.branches[step.branch_index] if source == "tarball" else None
            return RepositoryMirror(
                local_path=str(local_path),
                remote_url=remote_url,
                present=True,
                source=source,
                branch=branch_used,
            )
        step = nxt

    raise TransportError(
        f"Unable to obtain {remote_url}: clone failed after {policy.attempts} attempt(s) "
        f"and no tarball fallback succeeded. Check your network and retry."
    )
