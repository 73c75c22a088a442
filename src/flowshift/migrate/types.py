"""Type-level rewrite: a total mapping from Flow type nodes to TypeScript ones.

Unsound origin constructs map onto named aliases of `any` (``FlowAnyObject``,
``FlowAnyExistential``...) rather than the bare keyword, so every such site
stays searchable by the construct that produced it.
"""

from __future__ import annotations

from dataclasses import replace

from flowshift.exceptions import UnsupportedConstructError
from flowshift.grammar.flow import (
    FlowAny,
    FlowArray,
    FlowBoolean,
    FlowBooleanLiteral,
    FlowEmpty,
    FlowEntityName,
    FlowExists,
    FlowFunction,
    FlowGeneric,
    FlowIdentifier,
    FlowIndexedAccess,
    FlowInterface,
    FlowIntersection,
    FlowMixed,
    FlowNullable,
    FlowNullLiteral,
    FlowNumber,
    FlowNumberLiteral,
    FlowObject,
    FlowObjectCallProperty,
    FlowObjectIndexer,
    FlowObjectInternalSlot,
    FlowObjectMember,
    FlowObjectProperty,
    FlowObjectSpread,
    FlowOptionalIndexedAccess,
    FlowString,
    FlowStringLiteral,
    FlowSymbol,
    FlowThis,
    FlowTuple,
    FlowType,
    FlowTypeArgs,
    FlowTypeof,
    FlowTypeParams,
    FlowUnion,
    FlowVoid,
    Variance,
    decode_flow_type,
)
from flowshift.grammar.typescript import (
    KeywordKind,
    TSArray,
    TSEntityName,
    TSFunction,
    TSFunctionParam,
    TSIdentifier,
    TSIndexedAccess,
    TSIndexSignature,
    TSIntersection,
    TSLiteral,
    TSMethodSignature,
    TSParenthesized,
    TSPropertySignature,
    TSQualifiedName,
    TSThisType,
    TSTuple,
    TSType,
    TSTypeArgs,
    TSTypeElement,
    TSTypeLiteral,
    TSTypeOperator,
    TSTypeParam,
    TSTypeParams,
    TSTypeQuery,
    TSTypeReference,
    TSUnion,
    entity_name_text,
    is_keyword,
    keyword,
    reference,
    reference_name,
)
from flowshift.invariants import never
from flowshift.json_types import BabelNode
from flowshift.model import Location, Position
from flowshift.report import MigrationReporter

ANY_OBJECT = "FlowAnyObject"
ANY_FUNCTION = "FlowAnyFunction"
ANY_EXISTENTIAL = "FlowAnyExistential"
ANY_SUBTYPE = "FlowAnySubtype"
ANY_INFERRED = "FlowAnyInferred"

ANY_ALIASES: frozenset[str] = frozenset(
    {ANY_OBJECT, ANY_FUNCTION, ANY_EXISTENTIAL, ANY_SUBTYPE, ANY_INFERRED}
)

# Index signature keys TypeScript accepts as-is.
_INDEXABLE_KEYS = (KeywordKind.STRING, KeywordKind.NUMBER)


class TypeMigrator:
    def __init__(
        self,
        reporter: MigrationReporter,
        path: str,
        *,
        helpers_namespace: str = "h",
    ) -> None:
        self.reporter = reporter
        self.path = path
        self.helpers_namespace = helpers_namespace

    def location(self, raw: BabelNode | None) -> Location:
        location = Location.from_node(self.path, raw or {})
        if location is None:
            return Location(self.path, Position(0, 0), Position(0, 0))
        return location

    def unsupported(self, raw: BabelNode | None, detail: str = "") -> UnsupportedConstructError:
        kind = str((raw or {}).get("type", "unknown"))
        return UnsupportedConstructError(kind, Location.from_node(self.path, raw or {}), detail)

    def migrate_node(self, raw: BabelNode) -> TSType:
        """Decode a Babel Flow type node and rewrite it."""
        return self.migrate_type(decode_flow_type(raw, self.path))

    def migrate_type(self, flow: FlowType) -> TSType:
        migrated = self._migrate(flow)
        if flow.raw is None:
            return migrated
        return replace(migrated, origin=flow.raw)

    def _migrate(self, flow: FlowType) -> TSType:
        match flow:
            case FlowAny():
                return keyword(KeywordKind.ANY)
            case FlowArray():
                return TSArray(self.migrate_type(flow.element_type))
            case FlowBoolean():
                return keyword(KeywordKind.BOOLEAN)
            case FlowBooleanLiteral():
                return TSLiteral(flow.value)
            case FlowNullLiteral():
                return keyword(KeywordKind.NULL)
            case FlowExists():
                # `*` is deprecated and checks like `any`.
                return self._any_alias(ANY_EXISTENTIAL)
            case FlowFunction():
                return self.migrate_function(flow)
            case FlowGeneric():
                return self._migrate_generic(flow)
            case FlowInterface():
                raise self.unsupported(flow.raw)
            case FlowIntersection():
                return TSIntersection(
                    tuple(_parenthesize_function(self.migrate_type(item)) for item in flow.types)
                )
            case FlowMixed():
                return keyword(KeywordKind.UNKNOWN)
            case FlowEmpty():
                return keyword(KeywordKind.NEVER)
            case FlowNullable():
                return TSUnion(
                    (
                        self.migrate_type(flow.type_annotation),
                        keyword(KeywordKind.NULL),
                        keyword(KeywordKind.UNDEFINED),
                    )
                )
            case FlowNumberLiteral():
                return TSLiteral(flow.value)
            case FlowNumber():
                return keyword(KeywordKind.NUMBER)
            case FlowObject():
                return self._migrate_object(flow)
            case FlowStringLiteral():
                return TSLiteral(flow.value)
            case FlowString():
                return keyword(KeywordKind.STRING)
            case FlowSymbol():
                return keyword(KeywordKind.SYMBOL)
            case FlowThis():
                return TSThisType()
            case FlowTuple():
                return TSTuple(tuple(self.migrate_type(item) for item in flow.types))
            case FlowTypeof():
                return self._migrate_typeof(flow)
            case FlowUnion():
                return self._migrate_union(flow)
            case FlowVoid():
                return keyword(KeywordKind.VOID)
            case FlowIndexedAccess():
                return TSIndexedAccess(
                    self.migrate_type(flow.object_type),
                    self.migrate_type(flow.index_type),
                )
            case FlowOptionalIndexedAccess():
                raise self.unsupported(flow.raw, "optional indexed access has no equivalent")
            case _:
                never("unexpected flow type node", node=type(flow).__name__)

    def _any_alias(self, alias: str, type_arguments: TSTypeArgs | None = None) -> TSTypeReference:
        self.reporter.any_alias_used(alias)
        return TSTypeReference(TSIdentifier(alias), type_arguments)

    def _helper(self, name: str, type_arguments: TSTypeArgs) -> TSTypeReference:
        return TSTypeReference(
            TSQualifiedName(TSIdentifier(self.helpers_namespace), TSIdentifier(name)),
            type_arguments,
        )

    def inferred_any(self) -> TSTypeReference:
        return self._any_alias(ANY_INFERRED)

    def migrate_function(self, flow: FlowFunction) -> TSFunction:
        params: list[TSFunctionParam] = []
        if flow.this_param is not None:
            params.append(
                TSFunctionParam(
                    "this",
                    self.migrate_type(flow.this_param.type_annotation),
                    origin=flow.this_param.raw,
                )
            )
        for index, param in enumerate(flow.params):
            params.append(
                TSFunctionParam(
                    # Unnamed function type parameters become `argN`.
                    param.name or f"arg{index + 1}",
                    self.migrate_type(param.type_annotation),
                    optional=param.optional,
                    origin=param.raw,
                )
            )
        if flow.rest is not None:
            # An optional rest parameter has no meaning, the flag is dropped.
            params.append(
                TSFunctionParam(
                    flow.rest.name or "rest",
                    self.migrate_type(flow.rest.type_annotation),
                    rest=True,
                    origin=flow.rest.raw,
                )
            )
        return TSFunction(
            tuple(params),
            self.migrate_type(flow.return_type),
            self.migrate_type_params(flow.type_parameters) if flow.type_parameters else None,
        )

    def migrate_entity_name(self, flow: FlowEntityName) -> TSEntityName:
        if isinstance(flow, FlowIdentifier):
            return TSIdentifier(flow.name, origin=flow.raw)
        return TSQualifiedName(
            self.migrate_entity_name(flow.qualification),
            TSIdentifier(flow.id.name, origin=flow.id.raw),
            origin=flow.raw,
        )

    def migrate_type_params(self, flow: FlowTypeParams) -> TSTypeParams:
        params = []
        for param in flow.params:
            if param.variance is not None:
                self.reporter.type_parameter_with_variance(self.location(param.raw))
            params.append(
                TSTypeParam(
                    param.name,
                    self.migrate_type(param.bound) if param.bound is not None else None,
                    self.migrate_type(param.default) if param.default is not None else None,
                    origin=param.raw,
                )
            )
        return TSTypeParams(tuple(params), origin=flow.raw)

    def migrate_type_args(self, flow: FlowTypeArgs) -> TSTypeArgs:
        return TSTypeArgs(tuple(self.migrate_type(param) for param in flow.params), origin=flow.raw)

    def _migrate_generic(self, flow: FlowGeneric) -> TSType:
        type_name = self.migrate_entity_name(flow.id)
        args = (
            self.migrate_type_args(flow.type_arguments)
            if flow.type_arguments is not None and flow.type_arguments.params
            else None
        )
        params = args.params if args is not None else ()
        name = entity_name_text(type_name)
        match (name, len(params)):
            case ("Object", 0):
                return self._any_alias(ANY_OBJECT)
            case ("Function", 0):
                return self._any_alias(ANY_FUNCTION)
            case ("$ReadOnlyArray", 1):
                return TSTypeReference(TSIdentifier("ReadonlyArray"), args)
            case ("$ReadOnly", 1):
                return TSTypeReference(TSIdentifier("Readonly"), args)
            case ("$Keys", 1):
                return TSTypeOperator("keyof", params[0])
            case ("$Values", 1):
                return self._helper("ObjectValues", args)
            case ("$Shape", 1):
                return TSTypeReference(TSIdentifier("Partial"), args)
            case ("$Exact", 1):
                # Exactness is not expressible and is ignored on object types too.
                return params[0]
            case ("$Subtype", 1):
                # Sound in one direction only, so it checks like `any`.
                return self._any_alias(ANY_SUBTYPE, args)
            case ("$PropertyType", 2) | ("$ElementType", 2):
                return TSIndexedAccess(params[0], params[1])
            case ("React.Node", 0):
                return reference("React", "ReactNode")
            case ("React.Element", 1):
                element = params[0]
                if is_keyword(element, KeywordKind.ANY) or reference_name(element) == ANY_EXISTENTIAL:
                    return TSTypeReference(
                        TSQualifiedName(TSIdentifier("React"), TSIdentifier("ReactElement")),
                        args,
                    )
                return reference(
                    "React",
                    "ReactElement",
                    type_arguments=(
                        TSTypeReference(
                            TSQualifiedName(TSIdentifier("React"), TSIdentifier("ComponentProps")),
                            args,
                        ),
                    ),
                )
            case _:
                if name.startswith("$"):
                    self.reporter.unrecognized_utility_type(name)
                return TSTypeReference(type_name, args)

    def _migrate_typeof(self, flow: FlowTypeof) -> TSType:
        argument = flow.argument
        if not isinstance(argument, FlowGeneric):
            raise self.unsupported(argument.raw, "typeof argument")
        if argument.type_arguments is not None and argument.type_arguments.params:
            raise self.unsupported(argument.raw, "type arguments on typeof argument")
        return TSTypeQuery(self.migrate_entity_name(argument.id))

    def _migrate_union(self, flow: FlowUnion) -> TSType:
        members = tuple(_parenthesize_function(self.migrate_type(item)) for item in flow.types)
        # A union with `any` in it is `any`. Inferred types produce these often.
        for member in members:
            if is_keyword(member, KeywordKind.ANY):
                return member
        return TSUnion(members)

    def _migrate_object(self, flow: FlowObject) -> TSType:
        # Exact and inexact objects migrate the same way.
        types: list[TSType] = []
        literal: list[TSTypeElement] = []

        def flush() -> None:
            if literal:
                types.append(TSTypeLiteral(tuple(literal)))
                literal.clear()

        for member in flow.members:
            if isinstance(member, FlowObjectSpread):
                flush()
                types.append(TSParenthesized(self.migrate_type(member.argument), origin=member.raw))
                continue
            migrated = self.migrate_object_member(member)
            if isinstance(migrated, TSIndexSignature) and not _is_indexable(migrated.key_type):
                # Index signatures only take string or number keys.
                flush()
                types.append(
                    self._helper("ObjectMap", TSTypeArgs((migrated.key_type, migrated.value_type)))
                )
                continue
            literal.append(migrated)
        flush()
        if not types:
            return TSTypeLiteral(())
        if len(types) == 1:
            return types[0]
        return TSIntersection(tuple(types))

    def migrate_object_member(self, member: FlowObjectMember) -> TSTypeElement:
        match member:
            case FlowObjectProperty():
                key = member.key
                if key.get("type") == "Identifier" and str(key.get("name", "")).startswith("$"):
                    self.reporter.object_property_with_internal_name(self.location(member.raw))
                if member.variance is Variance.MINUS:
                    self.reporter.object_property_with_minus_variance(self.location(member.raw))
                if member.kind != "init":
                    raise self.unsupported(member.raw, f"object type property kind {member.kind!r}")
                if member.proto:
                    raise self.unsupported(member.raw, "proto property")
                if member.static:
                    raise self.unsupported(member.raw, "static property")
                value = self.migrate_type(member.value)
                computed = key.get("type") != "Identifier"
                if not member.method:
                    return TSPropertySignature(
                        key,
                        value,
                        computed=computed,
                        optional=member.optional,
                        readonly=member.variance is Variance.PLUS,
                        origin=member.raw,
                    )
                if not isinstance(value, TSFunction):
                    raise self.unsupported(member.raw, "method without a function type")
                return TSMethodSignature(
                    key,
                    value.params,
                    value.return_type,
                    value.type_parameters,
                    computed=computed,
                    optional=member.optional,
                    origin=member.raw,
                )
            case FlowObjectIndexer():
                if member.variance is Variance.MINUS:
                    self.reporter.object_property_with_minus_variance(self.location(member.raw))
                if member.static:
                    raise self.unsupported(member.raw, "static indexer")
                return TSIndexSignature(
                    member.id or "key",
                    self.migrate_type(member.key),
                    self.migrate_type(member.value),
                    readonly=member.variance is Variance.PLUS,
                    origin=member.raw,
                )
            case FlowObjectCallProperty() | FlowObjectInternalSlot():
                raise self.unsupported(member.raw)
            case _:
                never("unexpected object type member", node=type(member).__name__)


def _parenthesize_function(node: TSType) -> TSType:
    # Function types bind loosely inside unions and intersections.
    if isinstance(node, TSFunction):
        return TSParenthesized(node)
    return node


def _is_indexable(key_type: TSType) -> bool:
    return any(is_keyword(key_type, kind) for kind in _INDEXABLE_KEYS)
