from __future__ import annotations

import asyncio
import copy
from pathlib import Path

from flowshift.batch import (
    BatchContext,
    apply_fixups,
    migrate_source_async,
    process_batch_async,
    target_path_for,
)
from flowshift.config import MigrateSettings
from flowshift.exceptions import BridgeError
from flowshift.report import MigrationReporter
from tests.babel_fixtures import (
    expression_statement,
    ident,
    node,
    nullable,
    program,
    string_t,
    type_alias,
)


class _Bridge:
    """In-process parser/printer: trees are keyed by source text."""

    def __init__(self, trees: dict[str, dict]) -> None:
        self.trees = trees
        self.printed: list[dict] = []

    def parse(self, source: str) -> dict:
        if source not in self.trees:
            raise BridgeError(f"cannot parse {source!r}")
        return copy.deepcopy(self.trees[source])

    def parse_type(self, text: str) -> dict:  # pragma: no cover
        raise BridgeError("no types here")

    def print(self, tree: dict, source: str) -> str:
        self.printed.append(tree)
        kinds = " ".join(statement["type"] for statement in tree["program"]["body"])
        return f"// @flow\n\n{kinds}\n"


def _context(bridge: _Bridge, reporter: MigrationReporter, lines: list[str], **settings) -> BatchContext:
    return BatchContext(
        reporter=reporter,
        bridge=bridge,
        settings=MigrateSettings(**settings),
        print_fn=lines.append,
    )


def test_apply_fixups() -> None:
    text = "// @flow strict\n\nconst a = 1;\n// flow-disable-next-line\nfoo();\n// @flow\n"
    assert apply_fixups(text) == "const a = 1;\n// @ts-ignore\nfoo();\n// @flow\n"
    assert apply_fixups("const a = 1;\n") == "const a = 1;\n"


def test_target_path_for() -> None:
    assert target_path_for("/repo/a.js", has_jsx=False) == "/repo/a.ts"
    assert target_path_for("/repo/a.js", has_jsx=True) == "/repo/a.tsx"


def test_migrate_source(reporter: MigrationReporter) -> None:
    bridge = _Bridge({"alias": program(type_alias("Name", nullable(string_t())))})
    migrated = asyncio.run(
        migrate_source_async(_context(bridge, reporter, []), "/repo/src/a.js", "alias")
    )
    assert migrated.source_path == "/repo/src/a.js"
    assert migrated.target_path == "/repo/src/a.ts"
    assert migrated.text == "TSTypeAliasDeclaration\n"


def test_process_batch_writes_outputs_and_records_failures(
    tmp_path: Path, reporter: MigrationReporter
) -> None:
    jsx = node("JSXElement", openingElement=None, closingElement=None, children=[])
    bridge = _Bridge(
        {
            "plain": program(type_alias("Name", string_t())),
            "component": program(expression_statement(jsx)),
            "declare": program(node("DeclareFunction", id=ident("f"))),
        }
    )
    files = {name: tmp_path / f"{name}.js" for name in ("plain", "component", "broken", "declare", "huge")}
    for name, path in files.items():
        path.write_text(name if name != "huge" else "x" * 64, encoding="utf-8")
    lines: list[str] = []
    context = _context(bridge, reporter, lines, max_file_bytes=32)

    asyncio.run(process_batch_async(context, [str(path) for path in files.values()]))

    assert (tmp_path / "plain.ts").read_text(encoding="utf-8") == "TSTypeAliasDeclaration\n"
    assert (tmp_path / "component.tsx").read_text(encoding="utf-8") == "ExpressionStatement\n"
    assert not (tmp_path / "broken.ts").exists()
    assert not (tmp_path / "declare.ts").exists()
    assert not (tmp_path / "huge.ts").exists()
    report = reporter.generate_report()
    assert sorted(report.failed_files) == [str(files["broken"]), str(files["declare"])]
    assert report.skipped_large_files == [str(files["huge"])]
    assert f"Failed to migrate {files['broken']}:" in lines
    assert any("Unsupported AST node: 'DeclareFunction'" in line for line in lines)
