"""JSON-like value types used for Babel syntax trees and protocol frames.

A Babel node is a JSON object with a ``type`` discriminator; the parser and
printer collaborators exchange whole files in this shape.
"""

from __future__ import annotations

from typing import TypeAlias


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONArray: TypeAlias = list[JSONValue]

BabelNode: TypeAlias = dict[str, object]
