"""Collects findings during a migration and renders the final report.

Every worker owns one ``MigrationReporter``; the primary merges the per-worker
``MigrationReport`` payloads with ``merge_reports`` once all of them arrived.
"""

from __future__ import annotations

from collections import Counter
from enum import StrEnum
from pathlib import Path
from typing import Callable, Iterable, Mapping

import typer

from flowshift.model import Location, display_path
from flowshift.schema import LocationDTO, MigrationReport


class FindingCategory(StrEnum):
    SKIPPED_LARGE_FILES = "skipped_large_files"
    FAILED_FILES = "failed_files"
    TYPE_PARAMETER_WITH_VARIANCE = "type_parameter_with_variance"
    OBJECT_PROPERTY_WITH_INTERNAL_NAME = "object_property_with_internal_name"
    OBJECT_PROPERTY_WITH_MINUS_VARIANCE = "object_property_with_minus_variance"
    UNSUPPORTED_TYPE_CAST = "unsupported_type_cast"
    UNANNOTATED_PARAMETER = "unannotated_parameter"
    ANY_ALIAS_USAGE = "any_alias_usage"
    UNRECOGNIZED_UTILITY_TYPES = "unrecognized_utility_types"


PATH_CATEGORIES: tuple[FindingCategory, ...] = (
    FindingCategory.SKIPPED_LARGE_FILES,
    FindingCategory.FAILED_FILES,
)

LOCATION_CATEGORIES: tuple[FindingCategory, ...] = (
    FindingCategory.TYPE_PARAMETER_WITH_VARIANCE,
    FindingCategory.OBJECT_PROPERTY_WITH_INTERNAL_NAME,
    FindingCategory.OBJECT_PROPERTY_WITH_MINUS_VARIANCE,
    FindingCategory.UNSUPPORTED_TYPE_CAST,
    FindingCategory.UNANNOTATED_PARAMETER,
)

_TITLES: dict[FindingCategory, str] = {
    FindingCategory.SKIPPED_LARGE_FILES: "Skipped large files:",
    FindingCategory.FAILED_FILES: "Failed to migrate files:",
    FindingCategory.TYPE_PARAMETER_WITH_VARIANCE: "Type parameter with variance:",
    FindingCategory.OBJECT_PROPERTY_WITH_INTERNAL_NAME: "Object property with an internal name:",
    FindingCategory.OBJECT_PROPERTY_WITH_MINUS_VARIANCE: "Object property with negative variance:",
    FindingCategory.UNSUPPORTED_TYPE_CAST: "Unsupported type cast:",
    FindingCategory.UNANNOTATED_PARAMETER: "Parameter left without an inferred type:",
    FindingCategory.ANY_ALIAS_USAGE: "Unsound type aliases inserted:",
    FindingCategory.UNRECOGNIZED_UTILITY_TYPES: "Unrecognized Flow utility types:",
}

Allowlists = Mapping[FindingCategory, frozenset[str]]


class MigrationReporter:
    """Per-worker accumulator. One method per finding category."""

    def __init__(self) -> None:
        self._paths: dict[FindingCategory, list[str]] = {
            category: [] for category in PATH_CATEGORIES
        }
        self._locations: dict[FindingCategory, list[Location]] = {
            category: [] for category in LOCATION_CATEGORIES
        }
        self._any_alias_usage: Counter[str] = Counter()
        self._unrecognized_utility_types: set[str] = set()

    def skipped_large_file(self, path: str | Path) -> None:
        self._paths[FindingCategory.SKIPPED_LARGE_FILES].append(str(path))

    def failed_file(self, path: str | Path) -> None:
        self._paths[FindingCategory.FAILED_FILES].append(str(path))

    def type_parameter_with_variance(self, location: Location) -> None:
        self._locations[FindingCategory.TYPE_PARAMETER_WITH_VARIANCE].append(location)

    def object_property_with_internal_name(self, location: Location) -> None:
        self._locations[FindingCategory.OBJECT_PROPERTY_WITH_INTERNAL_NAME].append(location)

    def object_property_with_minus_variance(self, location: Location) -> None:
        self._locations[FindingCategory.OBJECT_PROPERTY_WITH_MINUS_VARIANCE].append(location)

    def unsupported_type_cast(self, location: Location) -> None:
        self._locations[FindingCategory.UNSUPPORTED_TYPE_CAST].append(location)

    def unannotated_parameter(self, location: Location) -> None:
        self._locations[FindingCategory.UNANNOTATED_PARAMETER].append(location)

    def any_alias_used(self, alias: str) -> None:
        self._any_alias_usage[alias] += 1

    def unrecognized_utility_type(self, name: str) -> None:
        self._unrecognized_utility_types.add(name)

    def generate_report(self) -> MigrationReport:
        return MigrationReport(
            skipped_large_files=list(self._paths[FindingCategory.SKIPPED_LARGE_FILES]),
            failed_files=list(self._paths[FindingCategory.FAILED_FILES]),
            type_parameter_with_variance=self._dtos(FindingCategory.TYPE_PARAMETER_WITH_VARIANCE),
            object_property_with_internal_name=self._dtos(
                FindingCategory.OBJECT_PROPERTY_WITH_INTERNAL_NAME
            ),
            object_property_with_minus_variance=self._dtos(
                FindingCategory.OBJECT_PROPERTY_WITH_MINUS_VARIANCE
            ),
            unsupported_type_cast=self._dtos(FindingCategory.UNSUPPORTED_TYPE_CAST),
            unannotated_parameter=self._dtos(FindingCategory.UNANNOTATED_PARAMETER),
            any_alias_usage=dict(self._any_alias_usage),
            unrecognized_utility_types=sorted(self._unrecognized_utility_types),
        )

    def _dtos(self, category: FindingCategory) -> list[LocationDTO]:
        return [LocationDTO.from_location(location) for location in self._locations[category]]


def _location_key(location: LocationDTO) -> tuple[str, int, int, int, int]:
    return (
        location.path,
        location.start.line,
        location.start.column,
        location.end.line,
        location.end.column,
    )


def merge_reports(reports: Iterable[MigrationReport]) -> MigrationReport:
    """Merge worker reports into one.

    List categories are concatenated then put in (path, line, column) order,
    counts are summed per key and name sets are unioned, so the result does not
    depend on the order in which workers reported.
    """
    reports = list(reports)
    merged: dict[str, object] = {}
    for category in PATH_CATEGORIES:
        merged[category.value] = sorted(
            path for report in reports for path in getattr(report, category.value)
        )
    for category in LOCATION_CATEGORIES:
        merged[category.value] = sorted(
            (location for report in reports for location in getattr(report, category.value)),
            key=_location_key,
        )
    usage: Counter[str] = Counter()
    for report in reports:
        usage.update(report.any_alias_usage)
    merged[FindingCategory.ANY_ALIAS_USAGE.value] = {key: usage[key] for key in sorted(usage)}
    merged[FindingCategory.UNRECOGNIZED_UTILITY_TYPES.value] = sorted(
        {name for report in reports for name in report.unrecognized_utility_types}
    )
    return MigrationReport.model_validate(merged)


def _display_entries(
    report: MigrationReport,
    category: FindingCategory,
    cwd: str | Path,
) -> list[str]:
    if category in PATH_CATEGORIES:
        return [display_path(path, cwd) for path in getattr(report, category.value)]
    if category in LOCATION_CATEGORIES:
        return [
            location.to_location().display(cwd)
            for location in getattr(report, category.value)
        ]
    if category is FindingCategory.ANY_ALIAS_USAGE:
        ordered = sorted(report.any_alias_usage.items(), key=lambda item: (-item[1], item[0]))
        return [alias for alias, _count in ordered]
    return list(report.unrecognized_utility_types)


def render_report(
    report: MigrationReport,
    *,
    allowlists: Allowlists | None = None,
    cwd: str | Path | None = None,
) -> list[str]:
    """Render every non-empty category, minus the allowlisted entries."""
    base = cwd if cwd is not None else Path.cwd()
    lines: list[str] = []
    for category in FindingCategory:
        allowed = (allowlists or {}).get(category, frozenset())
        entries = [
            entry for entry in _display_entries(report, category, base) if entry not in allowed
        ]
        if not entries:
            continue
        lines.append("")
        lines.append(_TITLES[category])
        for entry in entries:
            if category is FindingCategory.ANY_ALIAS_USAGE:
                lines.append(f"• {entry}: {report.any_alias_usage[entry]} time(s)")
            else:
                lines.append(f"• {entry}")
    return lines


def log_report(
    report: MigrationReport,
    *,
    allowlists: Allowlists | None = None,
    cwd: str | Path | None = None,
    print_fn: Callable[[str], None] = typer.echo,
) -> None:
    for line in render_report(report, allowlists=allowlists, cwd=cwd):
        print_fn(line)
