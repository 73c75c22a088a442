"""Primary side of a run: batching, worker sessions, stall detection, merging.

Lifetime of a worker session:

1. The primary sends a batch.
2. The worker migrates it and answers `next`.
3. The primary sends another batch, or a `report-request` once none are left.
4. The worker answers with its report and the primary shuts it down.

Workers pull batches as they finish, so slow batches never hold up the rest.
"""

from __future__ import annotations

import random
import subprocess
import sys
import time
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Callable, Protocol, Sequence

import typer

from flowshift.allowlists import load_allowlists
from flowshift.config import FlowshiftConfig
from flowshift.discovery import find_flow_files
from flowshift.exceptions import WorkerCrashedError, WorkerProtocolError
from flowshift.model import Batch, display_path
from flowshift.protocol import receive_message, send_message, wait_readable
from flowshift.report import log_report, merge_reports
from flowshift.schema import (
    BatchMessage,
    MigrationReport,
    NextMessage,
    ProtocolMessage,
    ReportMessage,
    ReportRequestMessage,
)


class WorkerState(StrEnum):
    IDLE = "idle"
    AWAITING_BATCH_RESULT = "awaiting-batch-result"
    AWAITING_REPORT = "awaiting-report"
    TERMINATED = "terminated"


class WorkerChannel(Protocol):
    @property
    def reader(self): ...

    def send(self, message: ProtocolMessage) -> None: ...

    def receive(self) -> ProtocolMessage | None: ...

    def terminate(self) -> None: ...


class ProcessWorkerChannel:
    """A `python -m flowshift.worker` child talking over its stdin/stdout."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.proc = process_factory(
            list(argv),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            cwd=cwd,
            # Unbuffered: the primary selects on the raw pipe.
            bufsize=0,
        )
        assert self.proc.stdin is not None
        assert self.proc.stdout is not None

    @property
    def reader(self):
        return self.proc.stdout

    def send(self, message: ProtocolMessage) -> None:
        try:
            send_message(self.proc.stdin, message)
        except BrokenPipeError as exc:
            raise WorkerCrashedError(f"worker exited (pid {self.proc.pid})") from exc

    def receive(self) -> ProtocolMessage | None:
        return receive_message(self.proc.stdout)

    def terminate(self) -> None:
        if self.proc.stdin is not None and not self.proc.stdin.closed:
            self.proc.stdin.close()
        try:
            self.proc.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.wait(timeout=1.0)
        if self.proc.stdout is not None:
            self.proc.stdout.close()


def worker_argv(config: FlowshiftConfig, *, python: str = sys.executable) -> list[str]:
    argv = [python, "-m", "flowshift.worker", "--root", str(config.root)]
    if config.config_path is not None:
        argv += ["--config", str(config.config_path)]
    return argv


@dataclass
class WorkerSession:
    number: int
    channel: WorkerChannel
    state: WorkerState = WorkerState.IDLE
    batch: Batch | None = None
    # Monotonic time at which the outstanding batch counts as stalled.
    deadline: float | None = None


@dataclass
class Orchestrator:
    files: Sequence[str]
    spawn: Callable[[int], WorkerChannel]
    workers: int
    batch_size: int = 50
    stall_seconds: float = 120.0
    rng: random.Random = field(default_factory=random.Random)
    cwd: Path = field(default_factory=Path.cwd)
    print_fn: Callable[[str], None] = typer.echo
    clock: Callable[[], float] = time.monotonic
    wait: Callable[[list, float | None], list] = wait_readable

    def __post_init__(self) -> None:
        self.sessions: list[WorkerSession] = []
        self.reports: list[MigrationReport] = []
        # Shuffled: neighbouring files tend to cost the same, spread them out.
        self._queue = list(self.files)
        self.rng.shuffle(self._queue)

    def pop_batch(self) -> Batch | None:
        if not self._queue:
            return None
        size = min(self.batch_size, len(self._queue))
        return [self._queue.pop() for _ in range(size)]

    def worker_count(self) -> int:
        batches = -(-len(self._queue) // self.batch_size)
        return min(self.workers, batches)

    def run(self) -> list[MigrationReport]:
        """Drive every worker to its report. Returns the per-worker reports."""
        self.print_fn(
            f"Spawning {self.worker_count()} workers to process {len(self._queue)} files"
        )
        try:
            for number in range(1, self.workers + 1):
                batch = self.pop_batch()
                if batch is None:
                    break
                session = WorkerSession(number, self.spawn(number))
                self.sessions.append(session)
                self._send_batch(session, batch)
            while True:
                live = [s for s in self.sessions if s.state is not WorkerState.TERMINATED]
                if not live:
                    break
                ready = self.wait([s.channel.reader for s in live], self._timeout(live))
                self._report_stalls([s for s in live if s.channel.reader not in ready])
                for session in live:
                    if session.channel.reader in ready:
                        self._handle(session, session.channel.receive())
        finally:
            for session in self.sessions:
                if session.state is not WorkerState.TERMINATED:
                    session.channel.terminate()
                    session.state = WorkerState.TERMINATED
        return self.reports

    def _send_batch(self, session: WorkerSession, batch: Batch) -> None:
        self.print_fn(f"Sending {len(batch)} files to worker #{session.number}")
        session.channel.send(BatchMessage(files=batch))
        session.batch = batch
        session.state = WorkerState.AWAITING_BATCH_RESULT
        session.deadline = self.clock() + self.stall_seconds

    def _timeout(self, live: list[WorkerSession]) -> float | None:
        deadlines = [s.deadline for s in live if s.deadline is not None]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - self.clock())

    def _report_stalls(self, live: list[WorkerSession]) -> None:
        now = self.clock()
        for session in live:
            if session.deadline is None or session.deadline > now:
                continue
            # Advisory only: reported once per batch, nothing is cancelled.
            session.deadline = None
            self.print_fn(
                f"Worker #{session.number} hasn't responded in "
                f"{self.stall_seconds:g} seconds after sending the batch:"
            )
            for path in session.batch or []:
                self.print_fn(f"• {display_path(path, self.cwd)}")

    def _handle(self, session: WorkerSession, message: ProtocolMessage | None) -> None:
        session.deadline = None
        match (session.state, message):
            case (_, None):
                raise WorkerCrashedError(
                    f"Worker #{session.number} exited before sending its report"
                )
            case (WorkerState.AWAITING_BATCH_RESULT, NextMessage()):
                session.batch = None
                session.state = WorkerState.IDLE
                batch = self.pop_batch()
                if batch is not None:
                    self._send_batch(session, batch)
                else:
                    session.channel.send(ReportRequestMessage())
                    session.state = WorkerState.AWAITING_REPORT
            case (WorkerState.AWAITING_REPORT, ReportMessage(data=report)):
                self.reports.append(report)
                session.channel.terminate()
                session.state = WorkerState.TERMINATED
            case _:
                raise WorkerProtocolError(
                    f"Worker #{session.number} sent {message.type!r} while {session.state.value}"
                )


def unmigrated_paths(report: MigrationReport) -> set[str]:
    return set(report.failed_files) | set(report.skipped_large_files)


def delete_originals(
    files: Sequence[str],
    *,
    keep: set[str],
    print_fn: Callable[[str], None] = typer.echo,
) -> None:
    print_fn("Deleting all the old files.")
    for path in files:
        if path in keep:
            continue
        Path(path).unlink(missing_ok=True)


def run_migration(
    config: FlowshiftConfig,
    *,
    spawn: Callable[[int], WorkerChannel] | None = None,
    rng: random.Random | None = None,
    print_fn: Callable[[str], None] = typer.echo,
    discover: Callable[[FlowshiftConfig], list[str]] | None = None,
) -> MigrationReport:
    settings = config.migrate
    if discover is None:
        files = find_flow_files(
            config.root,
            extensions=settings.extensions,
            ignored_dirs=settings.ignored_dirs,
        )
    else:
        files = discover(config)
    # The queue is consumed while dispatching; deletion needs the full list.
    all_files = list(files)
    if spawn is None:
        argv = worker_argv(config)
        spawn = lambda _number: ProcessWorkerChannel(argv, cwd=config.root)
    orchestrator = Orchestrator(
        files,
        spawn,
        workers=settings.workers,
        batch_size=settings.batch_size,
        stall_seconds=settings.stall_seconds,
        rng=rng or random.Random(),
        cwd=config.root,
        print_fn=print_fn,
    )
    reports = orchestrator.run()
    print_fn(f"Merging reports from {len(reports)} workers.")
    merged = merge_reports(reports)
    if settings.delete_originals:
        delete_originals(all_files, keep=unmigrated_paths(merged), print_fn=print_fn)
    log_report(
        merged,
        allowlists=load_allowlists(config.allowlists, root=config.root, print_fn=print_fn),
        cwd=config.root,
        print_fn=print_fn,
    )
    return merged
