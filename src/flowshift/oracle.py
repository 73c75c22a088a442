"""Serialized access to `flow type-at-pos`.

The Flow server is shared by every worker and does not cope with concurrent
requests from one client well, so each worker funnels its queries through one
``FlowTypeAtPosQueue``: strict FIFO, one call in flight. The next call starts as
soon as the previous raw answer arrives, before that answer is sanitized and
parsed, which keeps the server busy while the worker does the parsing.
"""

from __future__ import annotations

import asyncio
import re
import subprocess
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

import typer

from flowshift.exceptions import BridgeError, OracleError
from flowshift.json_types import BabelNode
from flowshift.model import Location, display_path

DEFAULT_MAX_TYPE_LENGTH = 100

_QUALIFIER_SUFFIX = re.compile(r" \((implicit|explicit)\)$")
_NEEDS_QUOTES = re.compile(r"[^./_a-zA-Z0-9]")

RunQuery = Callable[[str, Location], Awaitable[str]]
ParseType = Callable[[str], Awaitable[BabelNode]]


def sanitize_type_at_pos_output(
    stdout: str,
    max_length: int = DEFAULT_MAX_TYPE_LENGTH,
) -> str | None:
    """The usable type text out of raw `flow type-at-pos` output, or None.

    >>> sanitize_type_at_pos_output("string (implicit)\\n")
    'string'
    """
    text = _QUALIFIER_SUFFIX.sub("", stdout.split("\n", 1)[0])
    if text == "(unknown)":
        return None
    # Long inferred types are unlikely to be what a person would write.
    if len(text) >= max_length:
        return None
    return text


def type_at_pos_argv(
    command: Sequence[str], path: str, location: Location
) -> list[str]:
    # Flow columns are 1-based.
    return [
        *command,
        "type-at-pos",
        path,
        str(location.start.line),
        str(location.start.column + 1),
        "--no-auto-start",
    ]


@dataclass
class FlowCommand:
    """Runs one `flow type-at-pos` process per query."""

    command: Sequence[str] = ("flow",)
    root: Path | None = None
    print_fn: Callable[[str], None] | None = None

    def _log(self, path: str, location: Location) -> None:
        shown = display_path(path, self.root or Path.cwd())
        if _NEEDS_QUOTES.search(shown):
            shown = f'"{shown}"'
        line = typer.style(
            f"flow type-at-pos {shown} {location.start.line} {location.start.column + 1}",
            dim=True,
        )
        if self.print_fn is not None:
            self.print_fn(line)
        else:
            typer.echo(line, err=True)

    async def __call__(self, path: str, location: Location) -> str:
        self._log(path, location)
        argv = type_at_pos_argv(self.command, path, location)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.root,
            )
            stdout, stderr = await proc.communicate()
        except OSError as exc:
            raise OracleError(f"could not run {argv[0]!r}: {exc}") from exc
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise OracleError(f"flow type-at-pos failed (exit {proc.returncode}): {detail}")
        return stdout.decode("utf-8", errors="replace")


@dataclass
class _PendingQuery:
    path: str
    location: Location
    future: asyncio.Future[str]


class FlowTypeAtPosQueue:
    def __init__(
        self,
        run_query: RunQuery,
        parse_type: ParseType,
        *,
        max_type_length: int = DEFAULT_MAX_TYPE_LENGTH,
    ) -> None:
        self._run_query = run_query
        self._parse_type = parse_type
        self.max_type_length = max_type_length
        self._pending: deque[_PendingQuery] = deque()
        self._active: asyncio.Task[str] | None = None

    @property
    def in_flight(self) -> bool:
        return self._active is not None

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def query(self, path: str, location: Location) -> BabelNode | None:
        """Flow's inferred type at ``location`` as a Babel Flow type node.

        Every failure mode (the command failing, no usable answer, an answer
        that does not parse) resolves to None.
        """
        entry = _PendingQuery(path, location, asyncio.get_running_loop().create_future())
        self._pending.append(entry)
        self._dispatch()
        try:
            stdout = await entry.future
        except OracleError:
            return None
        text = sanitize_type_at_pos_output(stdout, self.max_type_length)
        if text is None:
            return None
        try:
            return await self._parse_type(text)
        except BridgeError:
            return None

    def _dispatch(self) -> None:
        if self._active is not None or not self._pending:
            return
        entry = self._pending.popleft()
        task = asyncio.ensure_future(self._run_query(entry.path, entry.location))
        self._active = task
        task.add_done_callback(lambda done: self._finish(entry, done))

    def _finish(self, entry: _PendingQuery, task: asyncio.Task[str]) -> None:
        self._active = None
        # Start the next call before handing this answer back.
        self._dispatch()
        if entry.future.cancelled():
            return
        if task.cancelled():
            entry.future.cancel()
            return
        error = task.exception()
        if error is not None:
            entry.future.set_exception(error)
        else:
            entry.future.set_result(task.result())
