"""Tests for the transport layer: fetch, retry state machine, tarball fallback."""

from __future__ import annotations

import io
import socket
import tarfile
import threading
from pathlib import Path

import pytest

from godocmirror.errors import MirrorDivergedError, TransportError
from godocmirror.transport import (
    ClonePhase,
    CloneStep,
    RetryPolicy,
    advance,
    clone_or_update,
    extract_snapshot,
    fetch_url,
    github_slug,
)

REMOTE = "https://github.com/golang/website.git"


def _write_tarball(dest: Path, top: str, files: dict[str, str]) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))


class FakeTransport:
    """Clone always fails unless told otherwise; tarballs exist per branch."""

    def __init__(self, clone_ok: bool = False, tar_branches: tuple[str, ...] = ("main",),
                 pull_ok: bool = True) -> None:
        self.clone_ok = clone_ok
        self.tar_branches = tar_branches
        self.pull_ok = pull_ok
        self.clone_calls: list[Path] = []
        self.downloads: list[str] = []
        self.pulls: list[Path] = []

    def clone(self, url: str, dest: Path) -> bool:
        self.clone_calls.append(dest)
        if self.clone_ok:
            (dest / ".git").mkdir(parents=True)
            (dest / "_content").mkdir()
            (dest / "_content" / "index.html").write_text("<h1>cloned</h1>")
        return self.clone_ok

    def pull(self, repo: Path) -> tuple[bool, str]:
        self.pulls.append(repo)
        if self.pull_ok:
            return True, ""
        return False, "fatal: Not possible to fast-forward, aborting."

    def download(self, url: str, dest: Path) -> bool:
        self.downloads.append(url)
        branch = url.rsplit("/", 1)[-1]
        if branch not in self.tar_branches:
            return False
        _write_tarball(dest, f"website-{branch}", {"_content/index.html": f"<h1>{branch}</h1>"})
        return True


class TestStateMachine:
    def test_retries_then_falls_back_in_branch_order(self):
        policy = RetryPolicy(attempts=3, branches=("master", "main"))
        step = CloneStep()
        seen = []
        while not step.terminal:
            seen.append((step.phase, step.attempt, step.branch_index))
            step = advance(step, False, policy)
        assert seen == [
            (ClonePhase.cloning, 1, 0),
            (ClonePhase.cloning, 2, 0),
            (ClonePhase.cloning, 3, 0),
            (ClonePhase.fallback_tarball, 3, 0),
            (ClonePhase.fallback_tarball, 3, 1),
        ]
        assert step.phase is ClonePhase.failed

    def test_success_is_terminal(self):
        policy = RetryPolicy()
        assert advance(CloneStep(), True, policy).phase is ClonePhase.done
        done = CloneStep(phase=ClonePhase.done)
        assert advance(done, False, policy) == done

    def test_no_branches_fails_after_clone_attempts(self):
        policy = RetryPolicy(attempts=1, branches=())
        assert advance(CloneStep(), False, policy).phase is ClonePhase.failed

    def test_backoff_grows_with_attempt(self):
        policy = RetryPolicy(backoff_seconds=2.0)
        assert [policy.delay(i) for i in (1, 2, 3)] == [2.0, 4.0, 6.0]


class TestCloneOrUpdate:
    def test_tarball_fallback_after_configured_attempts(self, tmp_path):
        transport = FakeTransport(clone_ok=False, tar_branches=("main",))
        sleeps: list[float] = []
        policy = RetryPolicy(attempts=3, backoff_seconds=2.0, branches=("master", "main"))
        local = tmp_path / "_site_src"

        mirror = clone_or_update(REMOTE, local, tmp_path / "_tmp", transport, policy, sleeps.append)

        assert len(transport.clone_calls) == 3
        assert sleeps == [2.0, 4.0]
        assert transport.downloads == [
            "https://codeload.github.com/golang/website/tar.gz/refs/heads/master",
            "https://codeload.github.com/golang/website/tar.gz/refs/heads/main",
        ]
        assert mirror.present and mirror.source == "tarball" and mirror.branch == "main"
        assert (local / "_content" / "index.html").read_text() == "<h1>main</h1>"

    def test_clone_success_first_try(self, tmp_path):
        transport = FakeTransport(clone_ok=True)
        sleeps: list[float] = []
        local = tmp_path / "_site_src"
        mirror = clone_or_update(REMOTE, local, tmp_path / "_tmp", transport, RetryPolicy(), sleeps.append)
        assert mirror.source == "clone"
        assert transport.clone_calls == [local]
        assert sleeps == [] and transport.downloads == []

    def test_everything_fails_is_fatal(self, tmp_path):
        transport = FakeTransport(clone_ok=False, tar_branches=())
        with pytest.raises(TransportError, match="Check your network"):
            clone_or_update(
                REMOTE, tmp_path / "_site_src", tmp_path / "_tmp", transport,
                RetryPolicy(attempts=2), lambda _s: None,
            )

    def test_existing_mirror_is_fast_forwarded(self, tmp_path):
        local = tmp_path / "_site_src"
        (local / ".git").mkdir(parents=True)
        transport = FakeTransport()
        mirror = clone_or_update(REMOTE, local, tmp_path / "_tmp", transport)
        assert mirror.source == "update"
        assert transport.pulls == [local]
        assert transport.clone_calls == []

    def test_diverged_mirror_is_fatal(self, tmp_path):
        local = tmp_path / "_site_src"
        (local / ".git").mkdir(parents=True)
        with pytest.raises(MirrorDivergedError, match="fast-forward"):
            clone_or_update(REMOTE, local, tmp_path / "_tmp", FakeTransport(pull_ok=False))
        assert (local / ".git").is_dir()

    def test_snapshot_dir_is_cloned_beside_and_merged(self, tmp_path):
        local = tmp_path / "_site_src"
        (local / "_content").mkdir(parents=True)
        (local / "_content" / "old.html").write_text("old")
        transport = FakeTransport(clone_ok=True)
        mirror = clone_or_update(REMOTE, local, tmp_path / "_tmp", transport)
        assert mirror.source == "clone"
        assert transport.clone_calls == [tmp_path / "_tmp" / "_site_src-clone"]
        assert (local / ".git").is_dir()
        assert (local / "_content" / "index.html").exists()

    def test_non_github_remote_has_no_fallback(self, tmp_path):
        transport = FakeTransport(clone_ok=False, tar_branches=("main",))
        with pytest.raises(TransportError):
            clone_or_update(
                "https://go.googlesource.com/website", tmp_path / "s", tmp_path / "t",
                transport, RetryPolicy(attempts=1), lambda _s: None,
            )
        assert transport.downloads == []


class TestHelpers:
    def test_github_slug(self):
        assert github_slug(REMOTE) == ("golang", "website")
        assert github_slug("https://github.com/golang/website") == ("golang", "website")
        assert github_slug("https://example.com/golang/website.git") is None

    def test_extract_snapshot_merges_top_dir(self, tmp_path):
        archive = tmp_path / "scratch" / "website-master.tgz"
        _write_tarball(archive, "website-master", {"_content/doc/faq.html": "faq", "README.md": "r"})
        dest = tmp_path / "site"
        assert extract_snapshot(archive, tmp_path / "scratch", dest)
        assert (dest / "_content" / "doc" / "faq.html").read_text() == "faq"
        assert (dest / "README.md").exists()

    def test_extract_snapshot_rejects_garbage(self, tmp_path):
        archive = tmp_path / "bad.tgz"
        archive.write_bytes(b"not a tarball")
        assert not extract_snapshot(archive, tmp_path, tmp_path / "site")

    def test_fetch_url_copies_content(self, tmp_path):
        src = tmp_path / "src.html"
        src.write_text("<p>spec</p>")
        dest = tmp_path / "cache" / "spec.html"
        assert fetch_url(src.as_uri(), dest) == dest
        assert dest.read_text() == "<p>spec</p>"
        assert not dest.with_name("spec.html.part").exists()

    def test_fetch_url_failure_is_fatal(self, tmp_path):
        with pytest.raises(TransportError):
            fetch_url((tmp_path / "missing.html").as_uri(), tmp_path / "out.html")
        assert not (tmp_path / "out.html").exists()


def _serve_once(body: bytes, content_length: int) -> str:
    """Answer a single HTTP request with *body*, advertising *content_length*."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]

    def _handle() -> None:
        conn, _addr = server.accept()
        with conn:
            conn.recv(65536)
            conn.sendall(
                b"HTTP/1.1 200 OK\r\n"
                + f"Content-Length: {content_length}\r\n".encode()
                + b"Content-Type: text/html\r\nConnection: close\r\n\r\n"
                + body
            )
        server.close()

    threading.Thread(target=_handle, daemon=True).start()
    return f"http://127.0.0.1:{port}/doc/go_spec.html"


class TestFetchOverHttp:
    @pytest.fixture(autouse=True)
    def _no_proxy(self, monkeypatch):
        for var in ("http_proxy", "HTTP_PROXY", "all_proxy", "ALL_PROXY"):
            monkeypatch.delenv(var, raising=False)

    def test_short_body_is_fatal(self, tmp_path):
        url = _serve_once(b"partial", content_length=100000)
        dest = tmp_path / "go_spec.html"
        with pytest.raises(TransportError, match="Failed to fetch"):
            fetch_url(url, dest, timeout=5)
        assert not dest.exists()
        assert not dest.with_name("go_spec.html.part").exists()

    def test_complete_body_is_kept(self, tmp_path):
        body = b"<html><p>spec</p></html>"
        url = _serve_once(body, content_length=len(body))
        dest = tmp_path / "go_spec.html"
        assert fetch_url(url, dest, timeout=5) == dest
        assert dest.read_bytes() == body
