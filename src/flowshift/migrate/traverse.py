"""Depth-first walker over Babel JSON trees.

A visitor is any object with ``visit_<Kind>(path)`` methods (called on the way
down) and ``leave_<Kind>(path)`` methods (called on the way up). A handler may
call ``path.replace_with(new_node)``; the walk then continues into the
replacement's children, and the matching ``leave_`` is looked up by the
replacement's kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator

from flowshift.grammar.typescript import inherit_location
from flowshift.json_types import BabelNode

# Keys that hold positional or comment metadata rather than child nodes.
_METADATA_KEYS = frozenset(
    {
        "loc",
        "start",
        "end",
        "range",
        "extra",
        "comments",
        "leadingComments",
        "trailingComments",
        "innerComments",
        "tokens",
        "errors",
    }
)


@dataclass
class NodePath:
    node: BabelNode
    parent_path: NodePath | None = None
    key: str | None = None
    index: int | None = None

    @property
    def kind(self) -> str:
        return str(self.node.get("type"))

    @property
    def parent(self) -> BabelNode | None:
        return self.parent_path.node if self.parent_path is not None else None

    @property
    def parent_kind(self) -> str | None:
        parent = self.parent
        return str(parent.get("type")) if parent is not None else None

    def replace_with(self, node: BabelNode) -> BabelNode:
        """Swap this node for ``node`` in its parent, keeping location and comments."""
        inherit_location(self.node, node)
        parent = self.parent
        if parent is not None and self.key is not None:
            if self.index is None:
                parent[self.key] = node
            else:
                container = parent[self.key]
                assert isinstance(container, list)
                container[self.index] = node
        self.node = node
        return node

    def ancestors(self) -> Iterator[NodePath]:
        current = self.parent_path
        while current is not None:
            yield current
            current = current.parent_path

    def find(self, predicate: Callable[[BabelNode], bool]) -> NodePath | None:
        """First of this path or its ancestors whose node satisfies ``predicate``."""
        if predicate(self.node):
            return self
        for ancestor in self.ancestors():
            if predicate(ancestor.node):
                return ancestor
        return None


def is_node(value: object) -> bool:
    return isinstance(value, dict) and "type" in value


def child_paths(path: NodePath) -> Iterator[NodePath]:
    for key in list(path.node):
        if key in _METADATA_KEYS:
            continue
        value = path.node.get(key)
        if is_node(value):
            assert isinstance(value, dict)
            yield NodePath(value, path, key)
        elif isinstance(value, list):
            # Index-based: handlers may replace list items in place.
            for index in range(len(value)):
                item = value[index]
                if is_node(item):
                    yield NodePath(item, path, key, index)


def traverse(root: BabelNode, visitor: object) -> None:
    _walk(NodePath(root), visitor)


def _walk(path: NodePath, visitor: object) -> None:
    enter = getattr(visitor, f"visit_{path.kind}", None)
    if enter is not None:
        enter(path)
    for child in child_paths(path):
        _walk(child, visitor)
    leave = getattr(visitor, f"leave_{path.kind}", None)
    if leave is not None:
        leave(path)
