"""Origin grammar: Flow type annotations as a closed sum type.

Each Babel Flow type node kind decodes into exactly one frozen dataclass below.
The original Babel node is kept on ``raw`` so that rewritten nodes can inherit
its source location and comments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Mapping, TypeAlias, Union

from flowshift.exceptions import UnsupportedConstructError
from flowshift.json_types import BabelNode
from flowshift.model import Location


class Variance(StrEnum):
    PLUS = "plus"
    MINUS = "minus"


@dataclass(frozen=True)
class FlowNode:
    raw: BabelNode | None = field(default=None, compare=False, repr=False, kw_only=True)


@dataclass(frozen=True)
class FlowIdentifier(FlowNode):
    name: str


@dataclass(frozen=True)
class FlowQualifiedIdentifier(FlowNode):
    qualification: FlowIdentifier | FlowQualifiedIdentifier
    id: FlowIdentifier


FlowEntityName: TypeAlias = FlowIdentifier | FlowQualifiedIdentifier


@dataclass(frozen=True)
class FlowAny(FlowNode):
    pass


@dataclass(frozen=True)
class FlowMixed(FlowNode):
    pass


@dataclass(frozen=True)
class FlowEmpty(FlowNode):
    pass


@dataclass(frozen=True)
class FlowExists(FlowNode):
    pass


@dataclass(frozen=True)
class FlowBoolean(FlowNode):
    pass


@dataclass(frozen=True)
class FlowNumber(FlowNode):
    pass


@dataclass(frozen=True)
class FlowString(FlowNode):
    pass


@dataclass(frozen=True)
class FlowSymbol(FlowNode):
    pass


@dataclass(frozen=True)
class FlowNullLiteral(FlowNode):
    pass


@dataclass(frozen=True)
class FlowVoid(FlowNode):
    pass


@dataclass(frozen=True)
class FlowThis(FlowNode):
    pass


@dataclass(frozen=True)
class FlowInterface(FlowNode):
    pass


@dataclass(frozen=True)
class FlowBooleanLiteral(FlowNode):
    value: bool


@dataclass(frozen=True)
class FlowNumberLiteral(FlowNode):
    value: int | float


@dataclass(frozen=True)
class FlowStringLiteral(FlowNode):
    value: str


@dataclass(frozen=True)
class FlowArray(FlowNode):
    element_type: FlowType


@dataclass(frozen=True)
class FlowNullable(FlowNode):
    type_annotation: FlowType


@dataclass(frozen=True)
class FlowTuple(FlowNode):
    types: tuple[FlowType, ...]


@dataclass(frozen=True)
class FlowUnion(FlowNode):
    types: tuple[FlowType, ...]


@dataclass(frozen=True)
class FlowIntersection(FlowNode):
    types: tuple[FlowType, ...]


@dataclass(frozen=True)
class FlowTypeof(FlowNode):
    argument: FlowType


@dataclass(frozen=True)
class FlowIndexedAccess(FlowNode):
    object_type: FlowType
    index_type: FlowType


@dataclass(frozen=True)
class FlowOptionalIndexedAccess(FlowNode):
    object_type: FlowType
    index_type: FlowType


@dataclass(frozen=True)
class FlowTypeArgs(FlowNode):
    params: tuple[FlowType, ...]


@dataclass(frozen=True)
class FlowGeneric(FlowNode):
    id: FlowEntityName
    type_arguments: FlowTypeArgs | None = None


@dataclass(frozen=True)
class FlowTypeParam(FlowNode):
    name: str
    bound: FlowType | None = None
    default: FlowType | None = None
    variance: Variance | None = None


@dataclass(frozen=True)
class FlowTypeParams(FlowNode):
    params: tuple[FlowTypeParam, ...]


@dataclass(frozen=True)
class FlowFunctionParam(FlowNode):
    name: str | None
    type_annotation: FlowType
    optional: bool = False


@dataclass(frozen=True)
class FlowFunction(FlowNode):
    params: tuple[FlowFunctionParam, ...]
    return_type: FlowType
    rest: FlowFunctionParam | None = None
    this_param: FlowFunctionParam | None = None
    type_parameters: FlowTypeParams | None = None


@dataclass(frozen=True)
class FlowObjectProperty(FlowNode):
    # Babel key node: Identifier, StringLiteral or NumericLiteral.
    key: BabelNode
    value: FlowType
    optional: bool = False
    variance: Variance | None = None
    method: bool = False
    kind: str = "init"
    static: bool = False
    proto: bool = False


@dataclass(frozen=True)
class FlowObjectSpread(FlowNode):
    argument: FlowType


@dataclass(frozen=True)
class FlowObjectIndexer(FlowNode):
    id: str | None
    key: FlowType
    value: FlowType
    variance: Variance | None = None
    static: bool = False


@dataclass(frozen=True)
class FlowObjectCallProperty(FlowNode):
    value: FlowType


@dataclass(frozen=True)
class FlowObjectInternalSlot(FlowNode):
    id: str


FlowObjectMember: TypeAlias = Union[
    FlowObjectProperty,
    FlowObjectSpread,
    FlowObjectIndexer,
    FlowObjectCallProperty,
    FlowObjectInternalSlot,
]


@dataclass(frozen=True)
class FlowObject(FlowNode):
    # Members in source order; spreads interleaved with own properties.
    members: tuple[FlowObjectMember, ...]
    exact: bool = False


FlowType: TypeAlias = Union[
    FlowAny,
    FlowArray,
    FlowBoolean,
    FlowBooleanLiteral,
    FlowEmpty,
    FlowExists,
    FlowFunction,
    FlowGeneric,
    FlowIndexedAccess,
    FlowInterface,
    FlowIntersection,
    FlowMixed,
    FlowNullLiteral,
    FlowNullable,
    FlowNumber,
    FlowNumberLiteral,
    FlowObject,
    FlowOptionalIndexedAccess,
    FlowString,
    FlowStringLiteral,
    FlowSymbol,
    FlowThis,
    FlowTuple,
    FlowTypeof,
    FlowUnion,
    FlowVoid,
]


class _Decoder:
    def __init__(self, path: str) -> None:
        self.path = path

    def unsupported(self, node: Mapping[str, object], detail: str = "") -> UnsupportedConstructError:
        return UnsupportedConstructError(
            str(node.get("type")),
            Location.from_node(self.path, node),
            detail,
        )

    def child(self, node: BabelNode, key: str) -> BabelNode | None:
        value = node.get(key)
        if value is None:
            return None
        if not isinstance(value, dict):
            raise self.unsupported(node, f"malformed {key!r}")
        return value

    def required(self, node: BabelNode, key: str) -> BabelNode:
        value = self.child(node, key)
        if value is None:
            raise self.unsupported(node, f"missing {key!r}")
        return value

    def children(self, node: BabelNode, key: str) -> list[BabelNode]:
        value = node.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise self.unsupported(node, f"malformed {key!r}")
        return [item for item in value if isinstance(item, dict)]

    def type(self, node: BabelNode) -> FlowType:
        kind = str(node.get("type"))
        decode = _TYPE_DECODERS.get(kind)
        if decode is None:
            raise self.unsupported(node)
        return decode(self, node)

    def types(self, node: BabelNode, key: str) -> tuple[FlowType, ...]:
        return tuple(self.type(item) for item in self.children(node, key))

    def entity_name(self, node: BabelNode) -> FlowEntityName:
        kind = node.get("type")
        if kind == "Identifier":
            return FlowIdentifier(str(node.get("name")), raw=node)
        if kind == "QualifiedTypeIdentifier":
            qualification = self.entity_name(self.required(node, "qualification"))
            identifier = self.entity_name(self.required(node, "id"))
            if not isinstance(identifier, FlowIdentifier):
                raise self.unsupported(node, "qualified id")
            return FlowQualifiedIdentifier(qualification, identifier, raw=node)
        raise self.unsupported(node)

    def variance(self, node: BabelNode) -> Variance | None:
        variance = self.child(node, "variance")
        if variance is None:
            return None
        try:
            return Variance(str(variance.get("kind")))
        except ValueError:
            raise self.unsupported(variance, "variance kind") from None

    def type_args(self, node: BabelNode | None) -> FlowTypeArgs | None:
        if node is None:
            return None
        return FlowTypeArgs(self.types(node, "params"), raw=node)

    def type_params(self, node: BabelNode | None) -> FlowTypeParams | None:
        if node is None:
            return None
        params = []
        for param in self.children(node, "params"):
            bound = self.child(param, "bound")
            default = self.child(param, "default")
            params.append(
                FlowTypeParam(
                    name=str(param.get("name")),
                    # `bound` is a TypeAnnotation wrapper around the actual type.
                    bound=self.type(self.required(bound, "typeAnnotation")) if bound else None,
                    default=self.type(default) if default else None,
                    variance=self.variance(param),
                    raw=param,
                )
            )
        return FlowTypeParams(tuple(params), raw=node)

    def function_param(self, node: BabelNode) -> FlowFunctionParam:
        name = self.child(node, "name")
        return FlowFunctionParam(
            name=str(name.get("name")) if name else None,
            type_annotation=self.type(self.required(node, "typeAnnotation")),
            optional=bool(node.get("optional")),
            raw=node,
        )

    def object_member(self, node: BabelNode) -> FlowObjectMember:
        kind = node.get("type")
        if kind == "ObjectTypeProperty":
            return FlowObjectProperty(
                key=self.required(node, "key"),
                value=self.type(self.required(node, "value")),
                optional=bool(node.get("optional")),
                variance=self.variance(node),
                method=bool(node.get("method")),
                kind=str(node.get("kind") or "init"),
                static=bool(node.get("static")),
                proto=bool(node.get("proto")),
                raw=node,
            )
        if kind == "ObjectTypeSpreadProperty":
            return FlowObjectSpread(self.type(self.required(node, "argument")), raw=node)
        if kind == "ObjectTypeIndexer":
            identifier = self.child(node, "id")
            return FlowObjectIndexer(
                id=str(identifier.get("name")) if identifier else None,
                key=self.type(self.required(node, "key")),
                value=self.type(self.required(node, "value")),
                variance=self.variance(node),
                static=bool(node.get("static")),
                raw=node,
            )
        if kind == "ObjectTypeCallProperty":
            return FlowObjectCallProperty(self.type(self.required(node, "value")), raw=node)
        if kind == "ObjectTypeInternalSlot":
            identifier = self.required(node, "id")
            return FlowObjectInternalSlot(str(identifier.get("name")), raw=node)
        raise self.unsupported(node)


def _source_order(node: BabelNode) -> tuple[int, int]:
    location = Location.from_node("", node)
    if location is None:
        return (0, 0)
    return (location.start.line, location.start.column)


def _decode_object(decoder: _Decoder, node: BabelNode) -> FlowObject:
    raw_members = [
        *decoder.children(node, "properties"),
        *decoder.children(node, "indexers"),
        *decoder.children(node, "callProperties"),
        *decoder.children(node, "internalSlots"),
    ]
    raw_members.sort(key=_source_order)
    return FlowObject(
        tuple(decoder.object_member(member) for member in raw_members),
        exact=bool(node.get("exact")),
        raw=node,
    )


def _decode_function(decoder: _Decoder, node: BabelNode) -> FlowFunction:
    rest = decoder.child(node, "rest")
    this_param = decoder.child(node, "this")
    return FlowFunction(
        params=tuple(decoder.function_param(param) for param in decoder.children(node, "params")),
        return_type=decoder.type(decoder.required(node, "returnType")),
        rest=decoder.function_param(rest) if rest else None,
        this_param=decoder.function_param(this_param) if this_param else None,
        type_parameters=decoder.type_params(decoder.child(node, "typeParameters")),
        raw=node,
    )


def _decode_typeof(decoder: _Decoder, node: BabelNode) -> FlowTypeof:
    argument = decoder.required(node, "argument")
    # Newer Babel releases put a bare (qualified) identifier here.
    if argument.get("type") in ("Identifier", "QualifiedTypeIdentifier"):
        return FlowTypeof(FlowGeneric(decoder.entity_name(argument), raw=argument), raw=node)
    return FlowTypeof(decoder.type(argument), raw=node)


def _leaf(cls: type[FlowNode]) -> Callable[[_Decoder, BabelNode], FlowType]:
    return lambda decoder, node: cls(raw=node)  # type: ignore[return-value]


_TYPE_DECODERS: dict[str, Callable[[_Decoder, BabelNode], FlowType]] = {
    "AnyTypeAnnotation": _leaf(FlowAny),
    "ArrayTypeAnnotation": lambda d, n: FlowArray(d.type(d.required(n, "elementType")), raw=n),
    "BooleanTypeAnnotation": _leaf(FlowBoolean),
    "BooleanLiteralTypeAnnotation": lambda d, n: FlowBooleanLiteral(bool(n.get("value")), raw=n),
    "EmptyTypeAnnotation": _leaf(FlowEmpty),
    "ExistsTypeAnnotation": _leaf(FlowExists),
    "FunctionTypeAnnotation": _decode_function,
    "GenericTypeAnnotation": lambda d, n: FlowGeneric(
        d.entity_name(d.required(n, "id")),
        d.type_args(d.child(n, "typeParameters")),
        raw=n,
    ),
    "IndexedAccessType": lambda d, n: FlowIndexedAccess(
        d.type(d.required(n, "objectType")),
        d.type(d.required(n, "indexType")),
        raw=n,
    ),
    "InterfaceTypeAnnotation": _leaf(FlowInterface),
    "IntersectionTypeAnnotation": lambda d, n: FlowIntersection(d.types(n, "types"), raw=n),
    "MixedTypeAnnotation": _leaf(FlowMixed),
    "NullLiteralTypeAnnotation": _leaf(FlowNullLiteral),
    "NullableTypeAnnotation": lambda d, n: FlowNullable(d.type(d.required(n, "typeAnnotation")), raw=n),
    "NumberLiteralTypeAnnotation": lambda d, n: FlowNumberLiteral(n.get("value"), raw=n),  # type: ignore[arg-type]
    "NumberTypeAnnotation": _leaf(FlowNumber),
    "ObjectTypeAnnotation": _decode_object,
    "OptionalIndexedAccessType": lambda d, n: FlowOptionalIndexedAccess(
        d.type(d.required(n, "objectType")),
        d.type(d.required(n, "indexType")),
        raw=n,
    ),
    "StringLiteralTypeAnnotation": lambda d, n: FlowStringLiteral(str(n.get("value")), raw=n),
    "StringTypeAnnotation": _leaf(FlowString),
    "SymbolTypeAnnotation": _leaf(FlowSymbol),
    "ThisTypeAnnotation": _leaf(FlowThis),
    "TupleTypeAnnotation": lambda d, n: FlowTuple(d.types(n, "types"), raw=n),
    "TypeofTypeAnnotation": _decode_typeof,
    "UnionTypeAnnotation": lambda d, n: FlowUnion(d.types(n, "types"), raw=n),
    "VoidTypeAnnotation": _leaf(FlowVoid),
}

FLOW_TYPE_KINDS: frozenset[str] = frozenset(_TYPE_DECODERS)


def decode_flow_type(node: BabelNode, path: str = "") -> FlowType:
    return _Decoder(path).type(node)


def decode_type_params(node: BabelNode, path: str = "") -> FlowTypeParams:
    params = _Decoder(path).type_params(node)
    assert params is not None
    return params


def decode_type_args(node: BabelNode, path: str = "") -> FlowTypeArgs:
    args = _Decoder(path).type_args(node)
    assert args is not None
    return args


def decode_entity_name(node: BabelNode, path: str = "") -> FlowEntityName:
    return _Decoder(path).entity_name(node)
