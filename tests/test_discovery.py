from __future__ import annotations

import io
from pathlib import Path

import pytest

from flowshift.discovery import find_flow_files, should_migrate
from flowshift.exceptions import DiscoveryError


class _FakeGit:
    def __init__(self, stdout: bytes, *, returncode: int = 0, stderr: bytes = b"") -> None:
        self.stdout = io.BytesIO(stdout)
        self.stderr = io.BytesIO(stderr)
        self.returncode = returncode

    def wait(self) -> int:
        return self.returncode

    def __enter__(self) -> _FakeGit:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


def _factory(proc: _FakeGit, calls: list):
    def spawn(argv, **kwargs):
        calls.append((argv, kwargs["cwd"]))
        return proc

    return spawn


def test_should_migrate_filters_extension_and_directories() -> None:
    assert should_migrate("src/a.js")
    assert not should_migrate("src/a.ts")
    assert not should_migrate("vendor/lib/a.js", ignored_dirs=("vendor",))
    assert should_migrate("src/vendor.js", ignored_dirs=("vendor",))
    assert should_migrate("src/a.jsx", extensions=(".js", ".jsx"))
    assert not should_migrate("third_party/x/a.js", ignored_dirs=("/third_party/x/",))


def test_find_flow_files_lists_tracked_files(tmp_path: Path) -> None:
    calls: list = []
    proc = _FakeGit(b"src/a.js\0README.md\0vendor/b.js\0src/sp ace.js\0")
    found = find_flow_files(
        tmp_path,
        ignored_dirs=("vendor",),
        process_factory=_factory(proc, calls),
    )
    assert found == [str(tmp_path / "src/a.js"), str(tmp_path / "src/sp ace.js")]
    assert calls == [(["git", "ls-files", "-z"], tmp_path)]


def test_git_failure_is_a_discovery_error(tmp_path: Path) -> None:
    proc = _FakeGit(b"", returncode=128, stderr=b"fatal: not a git repository")
    with pytest.raises(DiscoveryError, match="not a git repository"):
        find_flow_files(tmp_path, process_factory=_factory(proc, []))


def test_truncated_listing_is_a_discovery_error(tmp_path: Path) -> None:
    proc = _FakeGit(b"src/a.js\0src/b")
    with pytest.raises(DiscoveryError):
        find_flow_files(tmp_path, process_factory=_factory(proc, []))


def test_missing_git_is_a_discovery_error(tmp_path: Path) -> None:
    def spawn(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    with pytest.raises(DiscoveryError):
        find_flow_files(tmp_path, process_factory=spawn)
