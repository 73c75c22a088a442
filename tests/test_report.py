from __future__ import annotations

from flowshift.model import Location, Position
from flowshift.report import (
    FindingCategory,
    MigrationReporter,
    log_report,
    merge_reports,
    render_report,
)
from flowshift.schema import MigrationReport


def _loc(path: str, line: int, column: int = 0) -> Location:
    return Location(path, Position(line, column), Position(line, column + 1))


def _first_worker() -> MigrationReport:
    reporter = MigrationReporter()
    reporter.failed_file("/repo/src/b.js")
    reporter.unannotated_parameter(_loc("/repo/src/b.js", 9, 4))
    reporter.any_alias_used("FlowAnyObject")
    reporter.any_alias_used("FlowAnyObject")
    reporter.unrecognized_utility_type("$Diff")
    return reporter.generate_report()


def _second_worker() -> MigrationReport:
    reporter = MigrationReporter()
    reporter.failed_file("/repo/src/a.js")
    reporter.skipped_large_file("/repo/src/huge.js")
    reporter.unannotated_parameter(_loc("/repo/src/a.js", 3, 1))
    reporter.unannotated_parameter(_loc("/repo/src/b.js", 2, 0))
    reporter.any_alias_used("FlowAnyObject")
    reporter.any_alias_used("FlowAnyFunction")
    reporter.unrecognized_utility_type("$Diff")
    reporter.unrecognized_utility_type("$Call")
    return reporter.generate_report()


def test_merge_is_order_independent() -> None:
    forward = merge_reports([_first_worker(), _second_worker()])
    backward = merge_reports([_second_worker(), _first_worker()])
    assert forward == backward


def test_merge_combines_each_category() -> None:
    merged = merge_reports([_first_worker(), _second_worker()])
    assert merged.failed_files == ["/repo/src/a.js", "/repo/src/b.js"]
    assert merged.skipped_large_files == ["/repo/src/huge.js"]
    assert [(item.path, item.start.line) for item in merged.unannotated_parameter] == [
        ("/repo/src/a.js", 3),
        ("/repo/src/b.js", 2),
        ("/repo/src/b.js", 9),
    ]
    assert merged.any_alias_usage == {"FlowAnyFunction": 1, "FlowAnyObject": 3}
    assert merged.unrecognized_utility_types == ["$Call", "$Diff"]


def test_merge_of_nothing_is_empty() -> None:
    assert merge_reports([]) == MigrationReport()


def test_report_round_trips_through_json() -> None:
    report = _second_worker()
    assert MigrationReport.model_validate_json(report.model_dump_json()) == report


def test_render_report_sections() -> None:
    merged = merge_reports([_first_worker(), _second_worker()])
    lines = render_report(merged, cwd="/repo")
    assert lines[:4] == ["", "Skipped large files:", "• src/huge.js", ""]
    assert "Failed to migrate files:" in lines
    assert "• src/a.js:3:1" in lines
    assert "• FlowAnyObject: 3 time(s)" in lines
    alias_start = lines.index("Unsound type aliases inserted:")
    assert lines[alias_start + 1 : alias_start + 3] == [
        "• FlowAnyObject: 3 time(s)",
        "• FlowAnyFunction: 1 time(s)",
    ]
    assert "Type parameter with variance:" not in lines


def test_allowlisted_entries_are_suppressed() -> None:
    merged = merge_reports([_first_worker(), _second_worker()])
    allowlists = {
        FindingCategory.SKIPPED_LARGE_FILES: frozenset({"src/huge.js"}),
        FindingCategory.UNANNOTATED_PARAMETER: frozenset({"src/b.js:9:4"}),
        FindingCategory.UNRECOGNIZED_UTILITY_TYPES: frozenset({"$Call"}),
    }
    lines = render_report(merged, allowlists=allowlists, cwd="/repo")
    assert "Skipped large files:" not in lines
    assert "• src/b.js:9:4" not in lines
    assert "• src/b.js:2:0" in lines
    assert "• $Call" not in lines
    assert "• $Diff" in lines


def test_log_report_prints_every_line() -> None:
    printed: list[str] = []
    log_report(_first_worker(), cwd="/repo", print_fn=printed.append)
    assert printed == render_report(_first_worker(), cwd="/repo")
    assert "Failed to migrate files:" in printed
