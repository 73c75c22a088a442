"""Statement and expression level rewrite of one Flow file to TypeScript.

``FlowToTypeScriptVisitor`` walks the whole Babel tree. Type-level subtrees are
handed to ``TypeMigrator`` at their root (annotations, aliases, parameter
lists), so the walk never descends into Flow type nodes.
"""

from __future__ import annotations

import asyncio

from flowshift.exceptions import UnsupportedConstructError
from flowshift.grammar.flow import decode_entity_name, decode_type_args, decode_type_params
from flowshift.grammar.typescript import (
    KeywordKind,
    TSTypeLiteral,
    encode_entity_name,
    encode_member,
    encode_ts,
    encode_type_args,
    encode_type_params,
    identifier,
    inherit_location,
    is_keyword,
    keyword,
    reference,
    ts_type_annotation,
)
from flowshift.json_types import BabelNode
from flowshift.migrate.casts import (
    CastStrategy,
    is_create_react_class_call,
    rewrite_type_cast,
)
from flowshift.migrate.traverse import NodePath, traverse
from flowshift.migrate.types import TypeMigrator
from flowshift.model import FileStats
from flowshift.oracle import FlowTypeAtPosQueue
from flowshift.report import MigrationReporter

DEFAULT_UTILS_MODULE = "client_server_shared/u"

FLOW_ONLY_KINDS: tuple[str, ...] = (
    "DeclareClass",
    "DeclareExportAllDeclaration",
    "DeclareExportDeclaration",
    "DeclareFunction",
    "DeclareInterface",
    "DeclareModule",
    "DeclareModuleExports",
    "DeclareOpaqueType",
    "DeclareTypeAlias",
    "DeclareVariable",
    "DeclaredPredicate",
    "EnumDeclaration",
    "InferredPredicate",
)

_FOR_HEADS = frozenset({"ForStatement", "ForInStatement", "ForOfStatement"})

_POSITION_KEYS = (
    "loc",
    "start",
    "end",
    "range",
    "comments",
    "leadingComments",
    "trailingComments",
    "innerComments",
)


def strip_positions(node: object) -> object:
    """Drop source positions from a tree parsed out of some other text."""
    if isinstance(node, list):
        for item in node:
            strip_positions(item)
    elif isinstance(node, dict):
        for key in _POSITION_KEYS:
            node.pop(key, None)
        for value in node.values():
            strip_positions(value)
    return node


def _binds_top_level(program: BabelNode, name: str) -> bool:
    for statement in program.get("body") or []:
        kind = statement.get("type")
        if kind == "ImportDeclaration":
            for specifier in statement.get("specifiers") or []:
                if (specifier.get("local") or {}).get("name") == name:
                    return True
        elif kind == "VariableDeclaration":
            for declarator in statement.get("declarations") or []:
                if (declarator.get("id") or {}).get("name") == name:
                    return True
        elif kind in ("FunctionDeclaration", "ClassDeclaration"):
            if (statement.get("id") or {}).get("name") == name:
                return True
    return False


def _widen_with_undefined(param: BabelNode) -> None:
    annotation = param.get("typeAnnotation")
    if not isinstance(annotation, dict) or annotation.get("type") != "TSTypeAnnotation":
        return
    inner = annotation["typeAnnotation"]
    assert isinstance(inner, dict)
    undefined: BabelNode = {"type": KeywordKind.UNDEFINED.value}
    if inner.get("type") == "TSUnionType":
        types = inner["types"]
        assert isinstance(types, list)
        if not any(item.get("type") == KeywordKind.UNDEFINED.value for item in types):
            types.append(undefined)
    else:
        annotation["typeAnnotation"] = {"type": "TSUnionType", "types": [inner, undefined]}


def reorder_optional_params(params: list[BabelNode]) -> None:
    """Make an optional parameter followed by a required one required.

    Only the trailing run of optional (or default-valued) parameters keeps its
    marker; earlier ones get `| undefined` instead. Rest elements are skipped.
    """
    trailing = True
    for param in reversed(params):
        kind = param.get("type")
        if kind == "RestElement":
            continue
        target = param
        marked = False
        if kind == "AssignmentPattern":
            marked = True
            left = param.get("left")
            assert isinstance(left, dict)
            target = left
            target.pop("optional", None)
        elif kind == "Identifier" and param.get("optional"):
            marked = True
        if not marked:
            trailing = False
            continue
        if trailing:
            continue
        if target.get("type") == "Identifier":
            target.pop("optional", None)
            _widen_with_undefined(target)


class FlowToTypeScriptVisitor:
    def __init__(
        self,
        migrator: TypeMigrator,
        *,
        file_stats: FileStats,
        oracle: FlowTypeAtPosQueue | None = None,
        is_test_file: bool = False,
        utils_module: str = DEFAULT_UTILS_MODULE,
        utils_binding: str = "u",
    ) -> None:
        self.migrator = migrator
        self.file_stats = file_stats
        self.oracle = oracle
        self.is_test_file = is_test_file
        self.utils_module = utils_module
        self.utils_binding = utils_binding
        self.needs_utils = False
        self.pending: list[asyncio.Future[None]] = []

    @property
    def reporter(self) -> MigrationReporter:
        return self.migrator.reporter

    def leave_Program(self, path: NodePath) -> None:
        if not self.needs_utils or _binds_top_level(path.node, self.utils_binding):
            return
        body = path.node["body"]
        assert isinstance(body, list)
        body.insert(
            0,
            {
                "type": "ImportDeclaration",
                "importKind": "value",
                "specifiers": [
                    {
                        "type": "ImportDefaultSpecifier",
                        "local": identifier(self.utils_binding),
                    }
                ],
                "source": {"type": "StringLiteral", "value": self.utils_module},
            },
        )

    # Type annotations

    def visit_TypeAnnotation(self, path: NodePath) -> None:
        flow_type = path.node["typeAnnotation"]
        assert isinstance(flow_type, dict)
        parent = path.parent
        grandparent = path.parent_path.parent_kind if path.parent_path else None
        if parent is not None and path.parent_kind == "Identifier" and grandparent != "VariableDeclarator":
            flow_type = self._widen_parameter(parent, flow_type)
        path.replace_with(ts_type_annotation(self.migrator.migrate_node(flow_type)))

    def _widen_parameter(self, param: BabelNode, flow_type: BabelNode) -> BabelNode:
        # TypeScript requires an argument for a `void` parameter, Flow does not.
        kind = flow_type.get("type")
        if kind == "NullableTypeAnnotation":
            # `x: ?T` -> `x?: T | null`
            param["optional"] = True
            inner = flow_type["typeAnnotation"]
            return inherit_location(
                flow_type,
                {
                    "type": "UnionTypeAnnotation",
                    "types": [inner, {"type": "NullLiteralTypeAnnotation"}],
                },
            )
        if kind == "UnionTypeAnnotation":
            types = flow_type.get("types") or []
            remaining = [item for item in types if item.get("type") != "VoidTypeAnnotation"]
            if len(remaining) == len(types) or not remaining:
                return flow_type
            # `x: T | void` -> `x?: T`
            param["optional"] = True
            if len(remaining) == 1:
                return remaining[0]
            return {**flow_type, "types": remaining}
        return flow_type

    def visit_TypeParameterDeclaration(self, path: NodePath) -> None:
        flow = decode_type_params(path.node, self.migrator.path)
        path.replace_with(encode_type_params(self.migrator.migrate_type_params(flow)))

    def visit_TypeParameterInstantiation(self, path: NodePath) -> None:
        flow = decode_type_args(path.node, self.migrator.path)
        path.replace_with(encode_type_args(self.migrator.migrate_type_args(flow)))

    def visit_ClassImplements(self, path: NodePath) -> None:
        path.replace_with(self._expression_with_type_arguments(path.node))

    def _expression_with_type_arguments(self, node: BabelNode) -> BabelNode:
        type_id = node["id"]
        assert isinstance(type_id, dict)
        type_args = node.get("typeParameters")
        return inherit_location(
            node,
            {
                "type": "TSExpressionWithTypeArguments",
                "expression": encode_entity_name(
                    self.migrator.migrate_entity_name(decode_entity_name(type_id, self.migrator.path))
                ),
                "typeParameters": (
                    encode_type_args(
                        self.migrator.migrate_type_args(
                            decode_type_args(type_args, self.migrator.path)
                        )
                    )
                    if isinstance(type_args, dict)
                    else None
                ),
            },
        )

    # Declarations and statements

    def visit_ImportDeclaration(self, path: NodePath) -> None:
        import_kind = path.node.get("importKind")
        if import_kind == "type":
            # `import type {X} from` -> `import {X} from`
            path.node["importKind"] = "value"
            return
        if import_kind == "typeof":
            # No TypeScript equivalent; left for a person.
            return
        if import_kind in (None, "value"):
            for specifier in path.node.get("specifiers") or []:
                if specifier.get("type") == "ImportSpecifier" and specifier.get("importKind") == "type":
                    specifier["importKind"] = None
            return
        raise self.migrator.unsupported(path.node, f"import kind {import_kind!r}")

    def visit_ExportNamedDeclaration(self, path: NodePath) -> None:
        path.node.pop("exportKind", None)

    def _type_params_or_none(self, node: BabelNode) -> BabelNode | None:
        raw = node.get("typeParameters")
        if not isinstance(raw, dict):
            return None
        flow = decode_type_params(raw, self.migrator.path)
        return encode_type_params(self.migrator.migrate_type_params(flow))

    def visit_TypeAlias(self, path: NodePath) -> None:
        right = path.node["right"]
        assert isinstance(right, dict)
        path.replace_with(
            {
                "type": "TSTypeAliasDeclaration",
                "id": path.node["id"],
                "typeParameters": self._type_params_or_none(path.node),
                "typeAnnotation": encode_ts(self.migrator.migrate_node(right)),
            }
        )

    def visit_OpaqueType(self, path: NodePath) -> None:
        if path.node.get("supertype"):
            raise self.migrator.unsupported(path.node, "opaque type with a supertype")
        # Opaqueness is dropped.
        impltype = path.node["impltype"]
        assert isinstance(impltype, dict)
        path.replace_with(
            {
                "type": "TSTypeAliasDeclaration",
                "id": path.node["id"],
                "typeParameters": self._type_params_or_none(path.node),
                "typeAnnotation": encode_ts(self.migrator.migrate_node(impltype)),
            }
        )

    def visit_InterfaceDeclaration(self, path: NodePath) -> None:
        node = path.node
        if node.get("mixins"):
            raise self.migrator.unsupported(node, "interface mixins")
        if node.get("implements"):
            raise self.migrator.unsupported(node, "interface implements")
        body = node["body"]
        assert isinstance(body, dict)
        migrated = self.migrator.migrate_node(body)
        if not isinstance(migrated, TSTypeLiteral):
            raise self.migrator.unsupported(body, "interface body is not an object literal type")
        extends = [self._expression_with_type_arguments(item) for item in node.get("extends") or []]
        path.replace_with(
            {
                "type": "TSInterfaceDeclaration",
                "id": node["id"],
                "typeParameters": self._type_params_or_none(node),
                "extends": extends or None,
                "body": inherit_location(
                    body,
                    {
                        "type": "TSInterfaceBody",
                        "body": [encode_member(member) for member in migrated.members],
                    },
                ),
            }
        )

    def visit_VariableDeclarator(self, path: NodePath) -> None:
        # Unlike Flow, TypeScript does not infer unannotated variables from
        # later assignments. Test files get `any` here, other files a person.
        if not self.is_test_file or path.parent_kind != "VariableDeclaration":
            return
        if path.parent_path is not None and path.parent_path.parent_kind in _FOR_HEADS:
            return
        declared = path.node.get("id")
        if not isinstance(declared, dict) or declared.get("type") != "Identifier":
            return
        if declared.get("typeAnnotation"):
            return
        init = path.node.get("init")
        if init is None:
            annotation = keyword(KeywordKind.ANY)
            declared["typeAnnotation"] = ts_type_annotation(annotation)
        elif init.get("type") == "ObjectExpression" and not init.get("properties"):
            declared["typeAnnotation"] = {
                "type": "TSTypeAnnotation",
                "typeAnnotation": {
                    "type": "TSTypeLiteral",
                    "members": [
                        {
                            "type": "TSIndexSignature",
                            "parameters": [
                                identifier(
                                    "key",
                                    typeAnnotation=ts_type_annotation(keyword(KeywordKind.STRING)),
                                )
                            ],
                            "typeAnnotation": ts_type_annotation(keyword(KeywordKind.ANY)),
                        }
                    ],
                },
            }
        elif init.get("type") == "ArrayExpression" and not init.get("elements"):
            declared["typeAnnotation"] = ts_type_annotation(
                reference("Array", type_arguments=(keyword(KeywordKind.ANY),))
            )

    # Functions

    def visit_FunctionDeclaration(self, path: NodePath) -> None:
        params = path.node.get("params") or []
        if not self.is_test_file:
            self._annotate_from_oracle(params)
            return
        for param in params:
            if param.get("type") == "Identifier" and not param.get("typeAnnotation"):
                param["typeAnnotation"] = ts_type_annotation(keyword(KeywordKind.ANY))

    def visit_ClassMethod(self, path: NodePath) -> None:
        self._annotate_from_oracle(path.node.get("params") or [])

    def visit_ObjectMethod(self, path: NodePath) -> None:
        if path.find(is_create_react_class_call):
            self._annotate_from_oracle(path.node.get("params") or [])

    def _leave_function(self, path: NodePath) -> None:
        params = path.node.get("params")
        if isinstance(params, list):
            reorder_optional_params(params)

    leave_FunctionDeclaration = _leave_function
    leave_FunctionExpression = _leave_function
    leave_ArrowFunctionExpression = _leave_function
    leave_ClassMethod = _leave_function
    leave_ClassPrivateMethod = _leave_function
    leave_ObjectMethod = _leave_function

    def _annotate_from_oracle(self, params: list[BabelNode]) -> None:
        for param in params:
            if param.get("type") != "Identifier" or param.get("typeAnnotation"):
                continue
            if self.oracle is None:
                self.reporter.unannotated_parameter(self.migrator.location(param))
            else:
                self.pending.append(asyncio.ensure_future(self._annotate_param(self.oracle, param)))

    async def _annotate_param(self, oracle: FlowTypeAtPosQueue, param: BabelNode) -> None:
        location = self.migrator.location(param)
        flow_type = await oracle.query(self.migrator.path, location)
        if flow_type is None:
            self.reporter.unannotated_parameter(location)
            return
        strip_positions(flow_type)
        # `empty` means no call site constrains the parameter: as good as `any`.
        if flow_type.get("type") == "EmptyTypeAnnotation":
            migrated = keyword(KeywordKind.ANY)
        else:
            try:
                migrated = self.migrator.migrate_node(flow_type)
            except UnsupportedConstructError:
                self.reporter.unannotated_parameter(location)
                return
        if is_keyword(migrated, KeywordKind.ANY):
            migrated = self.migrator.inferred_any()
        param["typeAnnotation"] = ts_type_annotation(migrated)

    async def wait_for_annotations(self) -> None:
        if self.pending:
            await asyncio.gather(*self.pending)

    # Classes

    def visit_ClassProperty(self, path: NodePath) -> None:
        variance = path.node.get("variance")
        if not isinstance(variance, dict):
            return
        path.node["variance"] = None
        if variance.get("kind") == "plus":
            # `+prop: T` -> `readonly prop: T`
            path.node["readonly"] = True
        else:
            self.reporter.object_property_with_minus_variance(self.migrator.location(path.node))

    visit_ClassPrivateProperty = visit_ClassProperty

    # Expressions and patterns

    def visit_TypeCastExpression(self, path: NodePath) -> None:
        strategy = rewrite_type_cast(path, self.migrator, utils_binding=self.utils_binding)
        if strategy is CastStrategy.SAFE_CAST:
            self.needs_utils = True

    def leave_AssignmentPattern(self, path: NodePath) -> None:
        # `x?: T = y` -> `x: T = y`
        left = path.node.get("left")
        if path.node.get("right") and isinstance(left, dict) and left.get("type") == "Identifier":
            left.pop("optional", None)

    def visit_JSXElement(self, path: NodePath) -> None:
        self.file_stats.has_jsx = True

    visit_JSXFragment = visit_JSXElement

    def _reject_flow_only(self, path: NodePath) -> None:
        raise self.migrator.unsupported(path.node, "Flow-only construct")


for _kind in FLOW_ONLY_KINDS:
    setattr(FlowToTypeScriptVisitor, f"visit_{_kind}", FlowToTypeScriptVisitor._reject_flow_only)


async def migrate_to_typescript(
    reporter: MigrationReporter,
    path: str,
    tree: BabelNode,
    file_stats: FileStats,
    *,
    oracle: FlowTypeAtPosQueue | None = None,
    is_test_file: bool = False,
    helpers_namespace: str = "h",
    utils_module: str = DEFAULT_UTILS_MODULE,
    utils_binding: str = "u",
) -> None:
    """Rewrite ``tree`` in place. Findings go to ``reporter``.

    Returns once every oracle query the walk started has been answered and
    applied.
    """
    migrator = TypeMigrator(reporter, path, helpers_namespace=helpers_namespace)
    visitor = FlowToTypeScriptVisitor(
        migrator,
        file_stats=file_stats,
        oracle=oracle,
        is_test_file=is_test_file,
        utils_module=utils_module,
        utils_binding=utils_binding,
    )
    traverse(tree, visitor)
    await visitor.wait_for_annotations()
