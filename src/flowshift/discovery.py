"""Candidate file discovery through the git index, so ignored files never show up."""

from __future__ import annotations

import subprocess
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Iterator, Sequence

from flowshift.exceptions import DiscoveryError


def _is_ignored(relative: str, ignored_dirs: Sequence[str]) -> bool:
    parts = PurePosixPath(relative).parts
    for ignored in ignored_dirs:
        ignored_parts = PurePosixPath(ignored.strip("/")).parts
        if ignored_parts and parts[: len(ignored_parts)] == ignored_parts:
            return True
    return False


def _split_entries(chunks: Iterable[bytes]) -> Iterator[str]:
    # `git ls-files -z` output, streamed so a large index is never buffered whole.
    pending = b""
    for chunk in chunks:
        pending += chunk
        *entries, pending = pending.split(b"\0")
        for entry in entries:
            if entry:
                yield entry.decode("utf-8", errors="surrogateescape")
    if pending:
        raise DiscoveryError(f"git ls-files output ended mid-entry: {pending!r}")


def should_migrate(
    relative: str,
    *,
    extensions: Sequence[str] = (".js",),
    ignored_dirs: Sequence[str] = (),
) -> bool:
    if PurePosixPath(relative).suffix not in extensions:
        return False
    return not _is_ignored(relative, ignored_dirs)


def find_flow_files(
    root: Path,
    *,
    extensions: Sequence[str] = (".js",),
    ignored_dirs: Sequence[str] = (),
    git_command: Sequence[str] = ("git",),
    process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
) -> list[str]:
    """Absolute paths of tracked files under ``root`` worth migrating."""
    try:
        proc = process_factory(
            [*git_command, "ls-files", "-z"],
            cwd=root,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        raise DiscoveryError(f"could not run git in {root}: {exc}") from exc
    assert proc.stdout is not None
    with proc:
        relatives = list(_split_entries(iter(lambda: proc.stdout.read(65536), b"")))
        stderr = proc.stderr.read() if proc.stderr is not None else b""
        returncode = proc.wait()
    if returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise DiscoveryError(f"git ls-files failed (exit {returncode}): {detail}")
    return [
        str(root / relative)
        for relative in relatives
        if should_migrate(relative, extensions=extensions, ignored_dirs=ignored_dirs)
    ]
