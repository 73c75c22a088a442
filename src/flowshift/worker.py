"""Worker process: `python -m flowshift.worker --root ROOT [--config PATH]`.

stdin carries framed messages from the primary and stdout carries framed
replies, so everything meant for a person goes to stderr.
"""

from __future__ import annotations

import asyncio
import sys
import traceback
from pathlib import Path
from typing import Callable, Optional

import typer

from flowshift.batch import BatchContext, process_batch_async
from flowshift.bridge import BabelBridge
from flowshift.config import FlowshiftConfig, resolve_config
from flowshift.exceptions import WorkerProtocolError
from flowshift.model import Batch
from flowshift.oracle import FlowCommand, FlowTypeAtPosQueue
from flowshift.protocol import receive_message, send_message
from flowshift.report import MigrationReporter
from flowshift.schema import (
    BatchMessage,
    NextMessage,
    ReportMessage,
    ReportRequestMessage,
)

app = typer.Typer(add_completion=False)


def serve(
    stdin,
    stdout,
    *,
    handle_batch: Callable[[Batch], None],
    reporter: MigrationReporter,
) -> None:
    """Answer the primary until it closes our stdin."""
    while True:
        message = receive_message(stdin)
        match message:
            case None:
                return
            case BatchMessage(files=files):
                handle_batch(files)
                send_message(stdout, NextMessage())
            case ReportRequestMessage():
                send_message(stdout, ReportMessage(data=reporter.generate_report()))
            case _:
                raise WorkerProtocolError(f"worker received unexpected {message.type!r} message")


def build_oracle(config: FlowshiftConfig, bridge: BabelBridge) -> FlowTypeAtPosQueue | None:
    if not config.oracle.enabled:
        return None

    async def parse_type(text: str):
        return await asyncio.to_thread(bridge.parse_type, text)

    return FlowTypeAtPosQueue(
        FlowCommand(config.oracle.command, root=config.root),
        parse_type,
        max_type_length=config.oracle.max_type_length,
    )


def run_worker(
    config: FlowshiftConfig,
    *,
    stdin=None,
    stdout=None,
    bridge_factory: Callable[..., BabelBridge] = BabelBridge,
) -> None:
    reporter = MigrationReporter()
    stdin = stdin if stdin is not None else sys.stdin.buffer
    stdout = stdout if stdout is not None else sys.stdout.buffer
    with bridge_factory(
        config.bridge_command, printer_options=config.printer, cwd=config.root
    ) as bridge, asyncio.Runner() as runner:
        # One event loop for the worker's lifetime: the oracle queue outlives batches.
        context = BatchContext(
            reporter=reporter,
            bridge=bridge,
            settings=config.migrate,
            oracle=build_oracle(config, bridge),
        )
        serve(
            stdin,
            stdout,
            handle_batch=lambda batch: runner.run(process_batch_async(context, batch)),
            reporter=reporter,
        )


@app.command()
def main(
    root: Path = typer.Option(..., "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
) -> None:
    try:
        run_worker(resolve_config(root.resolve(), config))
    except Exception:
        typer.echo(traceback.format_exc().rstrip(), err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()  # pragma: no cover
