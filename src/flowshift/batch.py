"""Migration of one batch of files inside a worker.

Files of a batch are processed concurrently: while one file waits on the
filesystem or the oracle, another one is rewritten. A failure inside one file is
logged and recorded, the rest of the batch carries on.
"""

from __future__ import annotations

import asyncio
import re
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import typer

from flowshift.bridge import SyntaxBridge
from flowshift.config import MigrateSettings
from flowshift.migrate.visitor import migrate_to_typescript
from flowshift.model import Batch, FileStats, SourceFile
from flowshift.oracle import FlowTypeAtPosQueue
from flowshift.report import MigrationReporter

_FLOW_HEADER = re.compile(r"// @flow.*\n+")


def _echo_err(message: str) -> None:
    typer.echo(message, err=True)


@dataclass
class BatchContext:
    reporter: MigrationReporter
    bridge: SyntaxBridge
    settings: MigrateSettings = field(default_factory=MigrateSettings)
    oracle: FlowTypeAtPosQueue | None = None
    print_fn: Callable[[str], None] = _echo_err


@dataclass(frozen=True)
class MigratedFile:
    source_path: str
    target_path: str
    text: str


def apply_fixups(text: str) -> str:
    """Drop the `// @flow` header and turn Flow suppressions into TypeScript ones."""
    text = _FLOW_HEADER.sub("", text, count=1)
    return text.replace("// flow-disable-next-line", "// @ts-ignore")


def target_path_for(path: str, *, has_jsx: bool) -> str:
    return str(Path(path).with_suffix(".tsx" if has_jsx else ".ts"))


async def migrate_source_async(context: BatchContext, path: str, source: str) -> MigratedFile:
    tree = await asyncio.to_thread(context.bridge.parse, source)
    source_file = SourceFile(Path(path), tree)
    file_stats = FileStats()
    settings = context.settings
    await migrate_to_typescript(
        context.reporter,
        path,
        tree,
        file_stats,
        oracle=context.oracle,
        is_test_file=path.endswith(settings.test_file_suffix),
        helpers_namespace=settings.helpers_namespace,
        utils_module=settings.utils_module,
        utils_binding=settings.utils_binding,
    )
    printed = await asyncio.to_thread(context.bridge.print, tree, source)
    return MigratedFile(
        source_path=str(source_file.path),
        target_path=target_path_for(path, has_jsx=file_stats.has_jsx),
        text=apply_fixups(printed),
    )


async def read_source_async(context: BatchContext, path: str) -> str | None:
    """File text, or None when the file is over the size ceiling."""
    data = await asyncio.to_thread(Path(path).read_bytes)
    if len(data) > context.settings.max_file_bytes:
        context.reporter.skipped_large_file(path)
        return None
    return data.decode("utf-8")


async def process_file_async(context: BatchContext, path: str) -> MigratedFile | None:
    try:
        source = await read_source_async(context, path)
        if source is None:
            return None
        migrated = await migrate_source_async(context, path, source)
        await asyncio.to_thread(Path(migrated.target_path).write_text, migrated.text, "utf-8")
        return migrated
    except Exception:
        context.print_fn(f"Failed to migrate {path}:")
        context.print_fn(traceback.format_exc().rstrip())
        context.reporter.failed_file(path)
        return None


async def process_batch_async(context: BatchContext, batch: Batch) -> None:
    await asyncio.gather(*(process_file_async(context, path) for path in batch))
