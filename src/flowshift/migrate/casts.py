"""Rewrite of Flow type casts `(x: T)`.

Only shapes where an unchecked `as` is known to be no less safe than the Flow
cast become `as` expressions. Everything else is routed through the runtime
checked `u.cast<T>(x)` helper and recorded as a finding.
"""

from __future__ import annotations

from enum import StrEnum

from flowshift.grammar.typescript import encode_ts, identifier
from flowshift.invariants import never
from flowshift.json_types import BabelNode
from flowshift.migrate.traverse import NodePath
from flowshift.migrate.types import TypeMigrator

_LITERAL_KINDS = frozenset(
    {
        "StringLiteral",
        "NumericLiteral",
        "BooleanLiteral",
        "NullLiteral",
        "RegExpLiteral",
        "BigIntLiteral",
        "DecimalLiteral",
    }
)

_UNSOUND_GENERICS = frozenset({"Object", "Function"})


class CastStrategy(StrEnum):
    NESTED_UNSOUND = "nested-unsound"
    UNSOUND = "unsound"
    CONST_LITERAL = "const-literal"
    STRUCTURAL_LITERAL = "structural-literal"
    SAFE_CAST = "safe-cast"


def _annotation_type(cast: BabelNode) -> BabelNode:
    annotation = cast["typeAnnotation"]
    assert isinstance(annotation, dict)
    flow_type = annotation["typeAnnotation"]
    assert isinstance(flow_type, dict)
    return flow_type


def _expression(cast: BabelNode) -> BabelNode:
    expression = cast["expression"]
    assert isinstance(expression, dict)
    return expression


def is_unsound_flow_type(flow_type: BabelNode) -> bool:
    """`any`, or a bare `Object`/`Function` reference."""
    if flow_type.get("type") == "AnyTypeAnnotation":
        return True
    if flow_type.get("type") != "GenericTypeAnnotation" or flow_type.get("typeParameters"):
        return False
    type_id = flow_type.get("id") or {}
    assert isinstance(type_id, dict)
    return type_id.get("type") == "Identifier" and type_id.get("name") in _UNSOUND_GENERICS


def is_structural_literal(expression: object) -> bool:
    """True for literals and arrays/objects built only out of literals.

    `undefined` counts as a literal. Object methods and object spreads do not.
    """
    if not isinstance(expression, dict):
        return False
    kind = expression.get("type")
    if kind in _LITERAL_KINDS:
        return True
    if kind == "TemplateLiteral":
        return all(is_structural_literal(item) for item in expression.get("expressions") or [])
    if kind == "Identifier":
        return expression.get("name") == "undefined"
    if kind == "ArrayExpression":
        for element in expression.get("elements") or []:
            if element is None:
                continue
            if element.get("type") == "SpreadElement":
                element = element.get("argument")
            if not is_structural_literal(element):
                return False
        return True
    if kind == "ObjectExpression":
        for prop in expression.get("properties") or []:
            if prop.get("type") in ("ObjectMethod", "SpreadElement"):
                return False
            if prop.get("computed") and not is_structural_literal(prop.get("key")):
                return False
            if not is_structural_literal(prop.get("value")):
                return False
        return True
    return False


def _is_self_literal_cast(expression: BabelNode, flow_type: BabelNode) -> bool:
    match (expression.get("type"), flow_type.get("type")):
        case ("StringLiteral", "StringLiteralTypeAnnotation") | (
            "NumericLiteral",
            "NumberLiteralTypeAnnotation",
        ):
            return expression.get("value") == flow_type.get("value")
        case _:
            return False


def is_create_react_class_call(node: BabelNode) -> bool:
    callee = node.get("callee")
    return (
        node.get("type") == "CallExpression"
        and isinstance(callee, dict)
        and callee.get("type") == "Identifier"
        and callee.get("name") == "createReactClass"
    )


def select_cast_strategy(cast: BabelNode) -> CastStrategy:
    expression = _expression(cast)
    flow_type = _annotation_type(cast)
    if expression.get("type") == "TypeCastExpression" and is_unsound_flow_type(
        _annotation_type(expression)
    ):
        return CastStrategy.NESTED_UNSOUND
    if flow_type.get("type") == "AnyTypeAnnotation":
        return CastStrategy.UNSOUND
    if _is_self_literal_cast(expression, flow_type):
        return CastStrategy.CONST_LITERAL
    if is_structural_literal(expression):
        return CastStrategy.STRUCTURAL_LITERAL
    return CastStrategy.SAFE_CAST


def as_expression(expression: BabelNode, type_annotation: BabelNode) -> BabelNode:
    return {
        "type": "TSAsExpression",
        "expression": expression,
        "typeAnnotation": type_annotation,
        "extra": {"parenthesized": True},
    }


def rewrite_type_cast(
    path: NodePath,
    migrator: TypeMigrator,
    *,
    utils_binding: str = "u",
) -> CastStrategy:
    """Replace the TypeCastExpression at ``path`` and return the strategy used."""
    cast = path.node
    expression = _expression(cast)
    strategy = select_cast_strategy(cast)
    match strategy:
        case CastStrategy.NESTED_UNSOUND:
            inner_expression = _expression(expression)
            target = encode_ts(migrator.migrate_node(_annotation_type(cast)))
            if path.parent_kind == "ObjectProperty" and path.find(is_create_react_class_call):
                # Instance properties of createReactClass() need the double cast.
                inner = as_expression(
                    inner_expression,
                    encode_ts(migrator.migrate_node(_annotation_type(expression))),
                )
                replacement = as_expression(inner, target)
            else:
                replacement = as_expression(inner_expression, target)
        case CastStrategy.UNSOUND | CastStrategy.STRUCTURAL_LITERAL:
            replacement = as_expression(
                expression, encode_ts(migrator.migrate_node(_annotation_type(cast)))
            )
        case CastStrategy.CONST_LITERAL:
            replacement = as_expression(
                expression,
                {"type": "TSTypeReference", "typeName": identifier("const")},
            )
        case CastStrategy.SAFE_CAST:
            migrator.reporter.unsupported_type_cast(migrator.location(expression))
            replacement = {
                "type": "CallExpression",
                "callee": {
                    "type": "MemberExpression",
                    "object": identifier(utils_binding),
                    "property": identifier("cast"),
                    "computed": False,
                },
                "arguments": [expression],
                "typeParameters": {
                    "type": "TSTypeParameterInstantiation",
                    "params": [encode_ts(migrator.migrate_node(_annotation_type(cast)))],
                },
            }
        case _:
            never("unexpected cast strategy", strategy=strategy)
    path.replace_with(replacement)
    return strategy
