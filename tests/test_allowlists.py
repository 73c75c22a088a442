from __future__ import annotations

from pathlib import Path

from flowshift.allowlists import load_allowlists
from flowshift.report import FindingCategory


def test_inline_lists(tmp_path: Path) -> None:
    allowlists = load_allowlists(
        {"failed_files": ["src/a.js", " src/b.js ", ""]},
        root=tmp_path,
        print_fn=lambda _line: None,
    )
    assert allowlists == {FindingCategory.FAILED_FILES: frozenset({"src/a.js", "src/b.js"})}


def test_file_entries_skip_comments_and_blanks(tmp_path: Path) -> None:
    (tmp_path / "allow").mkdir()
    (tmp_path / "allow" / "params.txt").write_text(
        "# reviewed 2024\nsrc/a.js:3:1\n\nsrc/b.js:9:4  # legacy\n",
        encoding="utf-8",
    )
    allowlists = load_allowlists(
        {"unannotated_parameter": "allow/params.txt"},
        root=tmp_path,
        print_fn=lambda _line: None,
    )
    assert allowlists[FindingCategory.UNANNOTATED_PARAMETER] == frozenset(
        {"src/a.js:3:1", "src/b.js:9:4"}
    )


def test_unknown_and_malformed_entries_warn(tmp_path: Path) -> None:
    warnings: list[str] = []
    allowlists = load_allowlists(
        {"no_such_category": ["x"], "failed_files": 3},
        root=tmp_path,
        print_fn=warnings.append,
    )
    assert allowlists == {}
    assert len(warnings) == 2
    assert "no_such_category" in warnings[0]
    assert "failed_files" in warnings[1]
