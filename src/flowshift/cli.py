from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

from flowshift.allowlists import load_allowlists
from flowshift.batch import BatchContext, migrate_source_async, read_source_async
from flowshift.bridge import BabelBridge
from flowshift.config import FlowshiftConfig, resolve_config
from flowshift.exceptions import FlowshiftError
from flowshift.orchestrator import run_migration
from flowshift.report import MigrationReporter, log_report
from flowshift.worker import build_oracle

app = typer.Typer(add_completion=False)


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


@app.command()
def run(
    root: Path = typer.Argument(Path("."), help="Repository to migrate (a git work tree)."),
    config: Optional[Path] = typer.Option(None, "--config"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    stall_seconds: Optional[float] = typer.Option(None, "--stall-seconds", min=0.001),
    keep_originals: bool = typer.Option(
        False, "--keep-originals", help="Leave the .js files in place after migrating."
    ),
) -> None:
    """Migrate every tracked Flow file under ROOT to TypeScript."""
    overrides = {
        "workers": workers,
        "batch_size": batch_size,
        "stall_seconds": stall_seconds,
        "delete_originals": False if keep_originals else None,
    }
    try:
        settings = resolve_config(root.resolve(), config, migrate_overrides=overrides)
        run_migration(settings)
    except (FlowshiftError, OSError) as exc:
        _fail(f"flowshift: {exc}")


async def _migrate_one(settings: FlowshiftConfig, path: Path, reporter: MigrationReporter):
    with BabelBridge(
        settings.bridge_command, printer_options=settings.printer, cwd=settings.root
    ) as bridge:
        context = BatchContext(
            reporter=reporter,
            bridge=bridge,
            settings=settings.migrate,
            oracle=build_oracle(settings, bridge),
        )
        source = await read_source_async(context, str(path))
        if source is None:
            return None
        return await migrate_source_async(context, str(path), source)


@app.command("migrate-file")
def migrate_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    stdout: bool = typer.Option(
        False, "--stdout", help="Print the TypeScript instead of writing it next to PATH."
    ),
    no_oracle: bool = typer.Option(False, "--no-oracle", help="Do not ask Flow for types."),
) -> None:
    """Migrate a single file in-process, without workers."""
    try:
        settings = resolve_config(root.resolve(), config)
        if no_oracle:
            settings = _without_oracle(settings)
        reporter = MigrationReporter()
        migrated = asyncio.run(_migrate_one(settings, path.resolve(), reporter))
        if migrated is not None:
            if stdout:
                typer.echo(migrated.text, nl=False)
            else:
                Path(migrated.target_path).write_text(migrated.text, encoding="utf-8")
                typer.echo(f"Wrote {migrated.target_path}", err=True)
        log_report(
            reporter.generate_report(),
            allowlists=load_allowlists(settings.allowlists, root=settings.root),
            cwd=settings.root,
            print_fn=lambda line: typer.echo(line, err=True),
        )
    except (FlowshiftError, OSError) as exc:
        _fail(f"flowshift: {exc}")


def _without_oracle(settings: FlowshiftConfig) -> FlowshiftConfig:
    return replace(settings, oracle=replace(settings.oracle, enabled=False))


if __name__ == "__main__":  # pragma: no cover
    app()  # pragma: no cover
