from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, TypeAlias

from flowshift.json_types import BabelNode

Batch: TypeAlias = list[str]


@dataclass(frozen=True, order=True)
class Position:
    line: int
    column: int


@dataclass(frozen=True, order=True)
class Location:
    """A span inside one source file. Lines are 1-based, columns 0-based."""

    path: str
    start: Position
    end: Position

    @classmethod
    def from_node(cls, path: str | Path, node: Mapping[str, object]) -> Location | None:
        loc = node.get("loc")
        if not isinstance(loc, Mapping):
            return None
        start = loc.get("start")
        end = loc.get("end")
        if not isinstance(start, Mapping) or not isinstance(end, Mapping):
            return None
        return cls(
            path=str(path),
            start=Position(int(start.get("line", 0)), int(start.get("column", 0))),
            end=Position(int(end.get("line", 0)), int(end.get("column", 0))),
        )

    def display(self, cwd: str | Path) -> str:
        return f"{display_path(self.path, cwd)}:{self.start.line}:{self.start.column}"


def display_path(path: str | Path, cwd: str | Path) -> str:
    try:
        return os.path.relpath(str(path), str(cwd))
    except ValueError:
        return str(path)


@dataclass
class FileStats:
    has_jsx: bool = False


@dataclass(frozen=True)
class SourceFile:
    path: Path
    tree: BabelNode | None = field(default=None, compare=False, repr=False)
