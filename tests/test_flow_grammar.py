from __future__ import annotations

import pytest

from flowshift.exceptions import UnsupportedConstructError
from flowshift.grammar.flow import (
    FlowArray,
    FlowGeneric,
    FlowIdentifier,
    FlowObject,
    FlowObjectIndexer,
    FlowObjectProperty,
    FlowObjectSpread,
    FlowQualifiedIdentifier,
    FlowString,
    FlowTypeArgs,
    FlowTypeof,
    Variance,
    decode_flow_type,
    decode_type_params,
)
from tests.babel_fixtures import (
    generic,
    indexer,
    node,
    number_t,
    object_t,
    prop,
    spread,
    string_t,
    type_params,
)


def test_decode_generic_with_arguments() -> None:
    decoded = decode_flow_type(generic("Array", string_t()))
    assert decoded == FlowGeneric(FlowIdentifier("Array"), FlowTypeArgs((FlowString(),)))


def test_decode_keeps_raw_node_for_locations() -> None:
    raw = node("ArrayTypeAnnotation", elementType=string_t(), at=(3, 4))
    decoded = decode_flow_type(raw)
    assert isinstance(decoded, FlowArray)
    assert decoded.raw is raw
    assert decoded.element_type.raw is raw["elementType"]


def test_decode_qualified_generic() -> None:
    decoded = decode_flow_type(generic("React.Node"))
    assert isinstance(decoded, FlowGeneric)
    assert decoded.id == FlowQualifiedIdentifier(FlowIdentifier("React"), FlowIdentifier("Node"))


def test_decode_typeof_with_bare_identifier() -> None:
    raw = node("TypeofTypeAnnotation", argument={"type": "Identifier", "name": "foo"})
    decoded = decode_flow_type(raw)
    assert decoded == FlowTypeof(FlowGeneric(FlowIdentifier("foo")))


def test_decode_object_members_in_source_order() -> None:
    raw = object_t(
        prop("b", string_t(), at=(2, 2)),
        spread(generic("Base"), at=(1, 2)),
        indexer(string_t(), number_t(), name="k", at=(3, 2)),
    )
    decoded = decode_flow_type(raw)
    assert isinstance(decoded, FlowObject)
    assert [type(member) for member in decoded.members] == [
        FlowObjectSpread,
        FlowObjectProperty,
        FlowObjectIndexer,
    ]
    assert decoded.members[2].id == "k"


def test_decode_property_variance() -> None:
    decoded = decode_flow_type(object_t(prop("a", string_t(), variance="plus")))
    assert isinstance(decoded, FlowObject)
    member = decoded.members[0]
    assert isinstance(member, FlowObjectProperty)
    assert member.variance is Variance.PLUS


def test_decode_type_params_reads_variance_and_bound() -> None:
    raw = type_params("T", variance="minus")
    raw["params"][0]["bound"] = node("TypeAnnotation", typeAnnotation=string_t())
    decoded = decode_type_params(raw)
    assert decoded.params[0].name == "T"
    assert decoded.params[0].variance is Variance.MINUS
    assert decoded.params[0].bound == FlowString()


def test_decode_unknown_kind_raises_with_location() -> None:
    raw = node("KeyofTypeAnnotation", at=(7, 3))
    with pytest.raises(UnsupportedConstructError) as excinfo:
        decode_flow_type(raw, "/repo/a.js")
    assert excinfo.value.kind == "KeyofTypeAnnotation"
    assert excinfo.value.location is not None
    assert excinfo.value.location.start.line == 7
    assert "/repo/a.js:7:3" in str(excinfo.value)


def test_decode_bad_variance_kind_is_unsupported() -> None:
    raw = object_t(prop("a", string_t()))
    raw["properties"][0]["variance"] = {"type": "Variance", "kind": "sideways"}
    with pytest.raises(UnsupportedConstructError):
        decode_flow_type(raw)
