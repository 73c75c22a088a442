from __future__ import annotations

import os
import random
import threading
from collections import deque
from pathlib import Path

import pytest

from flowshift.config import FlowshiftConfig, MigrateSettings
from flowshift.exceptions import WorkerCrashedError, WorkerProtocolError
from flowshift.orchestrator import Orchestrator, WorkerState, run_migration, worker_argv
from flowshift.protocol import receive_message, send_message
from flowshift.report import MigrationReporter
from flowshift.schema import (
    BatchMessage,
    MigrationReport,
    NextMessage,
    ReportMessage,
    ReportRequestMessage,
)
from flowshift.worker import serve


class _ScriptedChannel:
    """Answers synchronously; ``reader`` is the channel itself."""

    def __init__(self, number: int, *, on_batch=None) -> None:
        self.number = number
        self.inbox: deque = deque()
        self.sent: list = []
        self.terminated = False
        self.on_batch = on_batch or (lambda channel, files: NextMessage())
        self.reader = self

    def send(self, message) -> None:
        self.sent.append(message)
        match message:
            case BatchMessage(files=files):
                reply = self.on_batch(self, files)
                if reply is not None:
                    self.inbox.append(reply)
            case ReportRequestMessage():
                batches = [m.files for m in self.sent if isinstance(m, BatchMessage)]
                self.inbox.append(
                    ReportMessage(data=MigrationReport(failed_files=sorted(sum(batches, []))))
                )

    def receive(self):
        return self.inbox.popleft() if self.inbox else None

    def terminate(self) -> None:
        self.terminated = True


def _ready(readers: list, timeout) -> list:
    return [reader for reader in readers if reader.inbox]


def _orchestrator(files, channels: list, *, on_batch=None, wait=_ready, print_fn=None, **kw) -> Orchestrator:
    def spawn(number: int) -> _ScriptedChannel:
        channel = _ScriptedChannel(number, on_batch=on_batch)
        channels.append(channel)
        return channel

    return Orchestrator(
        files,
        spawn,
        rng=random.Random(7),
        cwd=Path("/repo"),
        wait=wait,
        print_fn=print_fn or (lambda _line: None),
        **kw,
    )


def test_every_file_is_sent_once_and_every_worker_reports() -> None:
    files = [f"/repo/src/{index}.js" for index in range(7)]
    channels: list[_ScriptedChannel] = []
    lines: list[str] = []
    orchestrator = _orchestrator(files, channels, workers=3, batch_size=2, print_fn=lines.append)
    reports = orchestrator.run()

    assert lines[0] == "Spawning 3 workers to process 7 files"
    sent = [
        path
        for channel in channels
        for message in channel.sent
        if isinstance(message, BatchMessage)
        for path in message.files
    ]
    assert sorted(sent) == sorted(files)
    assert all(
        len(message.files) <= 2
        for channel in channels
        for message in channel.sent
        if isinstance(message, BatchMessage)
    )
    for channel in channels:
        assert isinstance(channel.sent[-1], ReportRequestMessage)
        assert channel.terminated
    assert all(session.state is WorkerState.TERMINATED for session in orchestrator.sessions)
    assert len(reports) == 3
    assert sorted(path for report in reports for path in report.failed_files) == sorted(files)


def test_fewer_batches_than_workers_spawns_fewer_workers() -> None:
    channels: list[_ScriptedChannel] = []
    lines: list[str] = []
    orchestrator = _orchestrator(
        ["/repo/a.js", "/repo/b.js"], channels, workers=8, batch_size=50, print_fn=lines.append
    )
    reports = orchestrator.run()
    assert lines[0] == "Spawning 1 workers to process 2 files"
    assert lines[1] == "Sending 2 files to worker #1"
    assert len(channels) == 1
    assert len(reports) == 1


def test_no_files_spawns_nothing() -> None:
    channels: list[_ScriptedChannel] = []
    assert _orchestrator([], channels, workers=4).run() == []
    assert channels == []


def test_shuffle_is_driven_by_rng() -> None:
    files = [f"/repo/{index}.js" for index in range(20)]
    first: list[_ScriptedChannel] = []
    second: list[_ScriptedChannel] = []
    _orchestrator(files, first, workers=1, batch_size=20).run()
    _orchestrator(files, second, workers=1, batch_size=20).run()
    assert first[0].sent[0].files == second[0].sent[0].files
    assert sorted(first[0].sent[0].files) == sorted(files)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_stalled_worker_is_reported_once_per_batch() -> None:
    clock = _Clock()
    quiet_rounds = [2]

    def wait(readers: list, timeout):
        if quiet_rounds[0] > 0:
            quiet_rounds[0] -= 1
            clock.now += timeout if timeout is not None else 0.0
            return []
        return _ready(readers, timeout)

    channels: list[_ScriptedChannel] = []
    lines: list[str] = []
    orchestrator = _orchestrator(
        ["/repo/src/slow.js"],
        channels,
        workers=1,
        stall_seconds=30.0,
        wait=wait,
        clock=clock,
        print_fn=lines.append,
    )
    orchestrator.run()
    stalls = [line for line in lines if "hasn't responded" in line]
    assert stalls == ["Worker #1 hasn't responded in 30 seconds after sending the batch:"]
    assert "• src/slow.js" in lines


def test_stall_is_reported_while_other_workers_keep_answering() -> None:
    clock = _Clock()
    channels: list[_ScriptedChannel] = []

    def on_batch(channel, files):
        # The slow batch answers only once nothing else is left to read.
        return None if files == ["/repo/src/slow.js"] else NextMessage()

    def wait(readers: list, timeout):
        clock.now += 31.0
        ready = _ready(readers, timeout)
        if not ready:
            slow = next(channel for channel in channels if channel.reader in readers)
            slow.inbox.append(NextMessage())
            ready = [slow]
        return ready

    lines: list[str] = []
    orchestrator = _orchestrator(
        ["/repo/src/slow.js", "/repo/src/fast.js"],
        channels,
        on_batch=on_batch,
        wait=wait,
        print_fn=lines.append,
        workers=2,
        batch_size=1,
        stall_seconds=30.0,
        clock=clock,
    )
    orchestrator.run()
    slow_number = next(
        channel.number for channel in channels if channel.sent[0].files == ["/repo/src/slow.js"]
    )
    stalls = [line for line in lines if "hasn't responded" in line]
    assert stalls == [f"Worker #{slow_number} hasn't responded in 30 seconds after sending the batch:"]
    assert lines[lines.index(stalls[0]) + 1] == "• src/slow.js"


def test_worker_exit_before_report_is_fatal() -> None:
    channels: list[_ScriptedChannel] = []

    def vanish(channel, files):
        channel.inbox.append(None)
        return None

    orchestrator = _orchestrator(["/repo/a.js", "/repo/b.js"], channels, workers=2, batch_size=1, on_batch=vanish)
    with pytest.raises(WorkerCrashedError, match="Worker #1"):
        orchestrator.run()
    assert all(channel.terminated for channel in channels)


def test_out_of_order_message_is_a_protocol_error() -> None:
    channels: list[_ScriptedChannel] = []
    orchestrator = _orchestrator(
        ["/repo/a.js"],
        channels,
        workers=1,
        on_batch=lambda channel, files: ReportMessage(data=MigrationReport()),
    )
    with pytest.raises(WorkerProtocolError, match="'report' while awaiting-batch-result"):
        orchestrator.run()
    assert channels[0].terminated


class _ThreadChannel:
    """A real `serve` loop on a thread, connected through OS pipes."""

    def __init__(self, handled: list[str]) -> None:
        to_worker_r, to_worker_w = os.pipe()
        from_worker_r, from_worker_w = os.pipe()
        self._writer = os.fdopen(to_worker_w, "wb", buffering=0)
        self.reader = os.fdopen(from_worker_r, "rb", buffering=0)
        worker_in = os.fdopen(to_worker_r, "rb", buffering=0)
        worker_out = os.fdopen(from_worker_w, "wb", buffering=0)
        reporter = MigrationReporter()

        def handle(batch: list[str]) -> None:
            handled.extend(batch)
            for path in batch:
                if "broken" in path:
                    reporter.failed_file(path)

        def run() -> None:
            with worker_in, worker_out:
                serve(worker_in, worker_out, handle_batch=handle, reporter=reporter)

        self._thread = threading.Thread(target=run, daemon=True)
        self._thread.start()

    def send(self, message) -> None:
        send_message(self._writer, message)

    def receive(self):
        return receive_message(self.reader)

    def terminate(self) -> None:
        self._writer.close()
        self._thread.join(timeout=5)
        self.reader.close()


def test_run_migration_end_to_end(tmp_path: Path) -> None:
    names = ["a.js", "b.js", "broken.js", "c.js", "d.js"]
    for name in names:
        (tmp_path / name).write_text("// @flow\n", encoding="utf-8")
    handled: list[str] = []
    lines: list[str] = []
    config = FlowshiftConfig(
        root=tmp_path,
        migrate=MigrateSettings(workers=2, batch_size=2),
        allowlists={"failed_files": []},
    )
    merged = run_migration(
        config,
        spawn=lambda number: _ThreadChannel(handled),
        rng=random.Random(1),
        print_fn=lines.append,
        discover=lambda cfg: [str(cfg.root / name) for name in names],
    )
    assert sorted(handled) == sorted(str(tmp_path / name) for name in names)
    assert merged.failed_files == [str(tmp_path / "broken.js")]
    assert "Merging reports from 2 workers." in lines
    assert "Deleting all the old files." in lines
    assert lines.index("Merging reports from 2 workers.") < lines.index("Deleting all the old files.")
    assert "• broken.js" in lines
    assert sorted(path.name for path in tmp_path.iterdir()) == ["broken.js"]


def test_keep_originals(tmp_path: Path) -> None:
    (tmp_path / "a.js").write_text("// @flow\n", encoding="utf-8")
    lines: list[str] = []
    config = FlowshiftConfig(
        root=tmp_path, migrate=MigrateSettings(workers=1, delete_originals=False)
    )
    run_migration(
        config,
        spawn=lambda number: _ThreadChannel([]),
        print_fn=lines.append,
        discover=lambda cfg: [str(cfg.root / "a.js")],
    )
    assert (tmp_path / "a.js").exists()
    assert "Deleting all the old files." not in lines


def test_worker_argv(tmp_path: Path) -> None:
    config = FlowshiftConfig(root=tmp_path, config_path=tmp_path / "flowshift.toml")
    argv = worker_argv(config, python="python3")
    assert argv == [
        "python3",
        "-m",
        "flowshift.worker",
        "--root",
        str(tmp_path),
        "--config",
        str(tmp_path / "flowshift.toml"),
    ]
