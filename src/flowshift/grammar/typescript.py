"""Target grammar: TypeScript type nodes as a closed sum type.

``encode_ts`` turns the dataclasses back into Babel ``TS*`` JSON nodes. A node
built from a Flow node carries it on ``origin``; encoding copies the origin's
location and comments onto the output so the printer keeps them in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TypeAlias, Union

from flowshift.invariants import never
from flowshift.json_types import BabelNode


class KeywordKind(StrEnum):
    ANY = "TSAnyKeyword"
    UNKNOWN = "TSUnknownKeyword"
    NEVER = "TSNeverKeyword"
    BOOLEAN = "TSBooleanKeyword"
    NUMBER = "TSNumberKeyword"
    STRING = "TSStringKeyword"
    SYMBOL = "TSSymbolKeyword"
    NULL = "TSNullKeyword"
    UNDEFINED = "TSUndefinedKeyword"
    VOID = "TSVoidKeyword"


@dataclass(frozen=True)
class TSNode:
    origin: BabelNode | None = field(default=None, compare=False, repr=False, kw_only=True)


@dataclass(frozen=True)
class TSKeyword(TSNode):
    kind: KeywordKind


@dataclass(frozen=True)
class TSThisType(TSNode):
    pass


@dataclass(frozen=True)
class TSLiteral(TSNode):
    value: str | int | float | bool


@dataclass(frozen=True)
class TSArray(TSNode):
    element_type: TSType


@dataclass(frozen=True)
class TSTuple(TSNode):
    element_types: tuple[TSType, ...]


@dataclass(frozen=True)
class TSUnion(TSNode):
    types: tuple[TSType, ...]


@dataclass(frozen=True)
class TSIntersection(TSNode):
    types: tuple[TSType, ...]


@dataclass(frozen=True)
class TSParenthesized(TSNode):
    type_annotation: TSType


@dataclass(frozen=True)
class TSIdentifier(TSNode):
    name: str


@dataclass(frozen=True)
class TSQualifiedName(TSNode):
    left: TSIdentifier | TSQualifiedName
    right: TSIdentifier


TSEntityName: TypeAlias = TSIdentifier | TSQualifiedName


@dataclass(frozen=True)
class TSTypeArgs(TSNode):
    params: tuple[TSType, ...]


@dataclass(frozen=True)
class TSTypeReference(TSNode):
    type_name: TSEntityName
    type_arguments: TSTypeArgs | None = None


@dataclass(frozen=True)
class TSTypeOperator(TSNode):
    operator: str
    type_annotation: TSType


@dataclass(frozen=True)
class TSIndexedAccess(TSNode):
    object_type: TSType
    index_type: TSType


@dataclass(frozen=True)
class TSTypeQuery(TSNode):
    expr_name: TSEntityName


@dataclass(frozen=True)
class TSTypeParam(TSNode):
    name: str
    constraint: TSType | None = None
    default: TSType | None = None


@dataclass(frozen=True)
class TSTypeParams(TSNode):
    params: tuple[TSTypeParam, ...]


@dataclass(frozen=True)
class TSFunctionParam(TSNode):
    name: str
    type_annotation: TSType
    optional: bool = False
    rest: bool = False


@dataclass(frozen=True)
class TSFunction(TSNode):
    params: tuple[TSFunctionParam, ...]
    return_type: TSType
    type_parameters: TSTypeParams | None = None


@dataclass(frozen=True)
class TSPropertySignature(TSNode):
    key: BabelNode
    type_annotation: TSType
    computed: bool = False
    optional: bool = False
    readonly: bool = False


@dataclass(frozen=True)
class TSMethodSignature(TSNode):
    key: BabelNode
    params: tuple[TSFunctionParam, ...]
    return_type: TSType
    type_parameters: TSTypeParams | None = None
    computed: bool = False
    optional: bool = False


@dataclass(frozen=True)
class TSIndexSignature(TSNode):
    parameter_name: str
    key_type: TSType
    value_type: TSType
    readonly: bool = False


TSTypeElement: TypeAlias = TSPropertySignature | TSMethodSignature | TSIndexSignature


@dataclass(frozen=True)
class TSTypeLiteral(TSNode):
    members: tuple[TSTypeElement, ...]


TSType: TypeAlias = Union[
    TSArray,
    TSFunction,
    TSIndexedAccess,
    TSIntersection,
    TSKeyword,
    TSLiteral,
    TSParenthesized,
    TSThisType,
    TSTuple,
    TSTypeLiteral,
    TSTypeOperator,
    TSTypeQuery,
    TSTypeReference,
    TSUnion,
]


def keyword(kind: KeywordKind, *, origin: BabelNode | None = None) -> TSKeyword:
    return TSKeyword(kind, origin=origin)


def is_keyword(node: TSNode, kind: KeywordKind) -> bool:
    return isinstance(node, TSKeyword) and node.kind is kind


def reference(*names: str, type_arguments: tuple[TSType, ...] | None = None) -> TSTypeReference:
    """`reference("h", "ObjectMap")` builds the type reference `h.ObjectMap`."""
    entity: TSEntityName = TSIdentifier(names[0])
    for name in names[1:]:
        entity = TSQualifiedName(entity, TSIdentifier(name))
    args = TSTypeArgs(type_arguments) if type_arguments is not None else None
    return TSTypeReference(entity, args)


def reference_name(node: TSNode) -> str | None:
    """Dotted name of an argument-free type reference, otherwise None."""
    if not isinstance(node, TSTypeReference) or node.type_arguments is not None:
        return None
    return entity_name_text(node.type_name)


def entity_name_text(name: TSEntityName) -> str:
    if isinstance(name, TSIdentifier):
        return name.name
    return f"{entity_name_text(name.left)}.{name.right.name}"


_INHERITED_KEYS = (
    "loc",
    "start",
    "end",
    "range",
    "leadingComments",
    "trailingComments",
    "innerComments",
    "comments",
)


def inherit_location(origin: BabelNode | None, target: BabelNode) -> BabelNode:
    if origin is None:
        return target
    for key in _INHERITED_KEYS:
        if key in origin and key not in target:
            target[key] = origin[key]
    return target


def identifier(name: str, **extra: object) -> BabelNode:
    node: BabelNode = {"type": "Identifier", "name": name}
    node.update(extra)
    return node


def ts_type_annotation(node: TSType, *, origin: BabelNode | None = None) -> BabelNode:
    return inherit_location(
        origin,
        {"type": "TSTypeAnnotation", "typeAnnotation": encode_ts(node)},
    )


def _literal(value: str | int | float | bool) -> BabelNode:
    if isinstance(value, bool):
        return {"type": "BooleanLiteral", "value": value}
    if isinstance(value, str):
        return {"type": "StringLiteral", "value": value}
    if value < 0:
        return {
            "type": "UnaryExpression",
            "operator": "-",
            "prefix": True,
            "argument": {"type": "NumericLiteral", "value": -value},
        }
    return {"type": "NumericLiteral", "value": value}


def encode_entity_name(name: TSEntityName) -> BabelNode:
    if isinstance(name, TSIdentifier):
        return inherit_location(name.origin, identifier(name.name))
    return inherit_location(
        name.origin,
        {
            "type": "TSQualifiedName",
            "left": encode_entity_name(name.left),
            "right": encode_entity_name(name.right),
        },
    )


def _function_param(param: TSFunctionParam) -> BabelNode:
    annotation = ts_type_annotation(param.type_annotation)
    if param.rest:
        node: BabelNode = {
            "type": "RestElement",
            "argument": identifier(param.name),
            "typeAnnotation": annotation,
        }
    else:
        node = identifier(param.name, typeAnnotation=annotation)
        if param.optional:
            node["optional"] = True
    return inherit_location(param.origin, node)


def encode_type_params(node: TSTypeParams) -> BabelNode:
    params = []
    for param in node.params:
        params.append(
            inherit_location(
                param.origin,
                {
                    "type": "TSTypeParameter",
                    "name": param.name,
                    "constraint": encode_ts(param.constraint) if param.constraint else None,
                    "default": encode_ts(param.default) if param.default else None,
                },
            )
        )
    return inherit_location(node.origin, {"type": "TSTypeParameterDeclaration", "params": params})


def encode_type_args(node: TSTypeArgs) -> BabelNode:
    return inherit_location(
        node.origin,
        {
            "type": "TSTypeParameterInstantiation",
            "params": [encode_ts(param) for param in node.params],
        },
    )


def encode_member(member: TSTypeElement) -> BabelNode:
    match member:
        case TSPropertySignature():
            payload: BabelNode = {
                "type": "TSPropertySignature",
                "key": member.key,
                "computed": member.computed,
                "optional": member.optional,
                "typeAnnotation": ts_type_annotation(member.type_annotation),
            }
            if member.readonly:
                payload["readonly"] = True
        case TSMethodSignature():
            payload = {
                "type": "TSMethodSignature",
                "key": member.key,
                "computed": member.computed,
                "optional": member.optional,
                "kind": "method",
                "typeParameters": (
                    encode_type_params(member.type_parameters)
                    if member.type_parameters
                    else None
                ),
                "parameters": [_function_param(param) for param in member.params],
                "typeAnnotation": ts_type_annotation(member.return_type),
            }
        case TSIndexSignature():
            payload = {
                "type": "TSIndexSignature",
                "parameters": [
                    identifier(
                        member.parameter_name,
                        typeAnnotation=ts_type_annotation(member.key_type),
                    )
                ],
                "typeAnnotation": ts_type_annotation(member.value_type),
            }
            if member.readonly:
                payload["readonly"] = True
        case _:
            never("unexpected type element", node=type(member).__name__)
    return inherit_location(member.origin, payload)


def encode_ts(node: TSType) -> BabelNode:
    match node:
        case TSKeyword():
            payload: BabelNode = {"type": node.kind.value}
        case TSThisType():
            payload = {"type": "TSThisType"}
        case TSLiteral():
            payload = {"type": "TSLiteralType", "literal": _literal(node.value)}
        case TSArray():
            payload = {"type": "TSArrayType", "elementType": encode_ts(node.element_type)}
        case TSTuple():
            payload = {
                "type": "TSTupleType",
                "elementTypes": [encode_ts(item) for item in node.element_types],
            }
        case TSUnion():
            payload = {"type": "TSUnionType", "types": [encode_ts(item) for item in node.types]}
        case TSIntersection():
            payload = {
                "type": "TSIntersectionType",
                "types": [encode_ts(item) for item in node.types],
            }
        case TSParenthesized():
            payload = {
                "type": "TSParenthesizedType",
                "typeAnnotation": encode_ts(node.type_annotation),
            }
        case TSFunction():
            payload = {
                "type": "TSFunctionType",
                "typeParameters": (
                    encode_type_params(node.type_parameters) if node.type_parameters else None
                ),
                "parameters": [_function_param(param) for param in node.params],
                "typeAnnotation": ts_type_annotation(node.return_type),
            }
        case TSTypeReference():
            payload = {
                "type": "TSTypeReference",
                "typeName": encode_entity_name(node.type_name),
                "typeParameters": (
                    encode_type_args(node.type_arguments) if node.type_arguments else None
                ),
            }
        case TSTypeOperator():
            payload = {
                "type": "TSTypeOperator",
                "operator": node.operator,
                "typeAnnotation": encode_ts(node.type_annotation),
            }
        case TSIndexedAccess():
            payload = {
                "type": "TSIndexedAccessType",
                "objectType": encode_ts(node.object_type),
                "indexType": encode_ts(node.index_type),
            }
        case TSTypeQuery():
            payload = {"type": "TSTypeQuery", "exprName": encode_entity_name(node.expr_name)}
        case TSTypeLiteral():
            payload = {
                "type": "TSTypeLiteral",
                "members": [encode_member(member) for member in node.members],
            }
        case _:
            never("unexpected typescript node", node=type(node).__name__)
    return inherit_location(node.origin, payload)


TS_TYPE_KINDS: frozenset[str] = frozenset(
    {kind.value for kind in KeywordKind}
    | {
        "TSThisType",
        "TSLiteralType",
        "TSArrayType",
        "TSTupleType",
        "TSUnionType",
        "TSIntersectionType",
        "TSParenthesizedType",
        "TSFunctionType",
        "TSTypeReference",
        "TSTypeOperator",
        "TSIndexedAccessType",
        "TSTypeQuery",
        "TSTypeLiteral",
    }
)
