"""Parse the compact picoschema notation used in prompt files into schema nodes.

Examples::

    boolean
    {"question": "string, The student's question", "moduleName?": "string"}
    {"events(array, Scheduled events)": {"title": "string"}}
    {"level(enum)": ["Beginner", "Intermediate", "Advanced"]}
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from study_flow.schema import (
    ANY,
    ArraySchema,
    EnumSchema,
    FieldSpec,
    ObjectSchema,
    PrimitiveSchema,
    SchemaNode,
)

PRIMITIVE_TYPES = frozenset({"string", "number", "integer", "boolean", "any"})
KEY_RE = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?P<optional>\?)?(?:\((?P<kind>[^,)]+)(?:,(?P<desc>[^)]*))?\))?$")


def parse_picoschema(raw: Any) -> SchemaNode:
    if raw is None:
        return ANY
    if isinstance(raw, str):
        return _parse_type_string(raw)
    if isinstance(raw, Mapping):
        return _parse_object(raw, description="")
    raise ValueError(f"Unsupported schema declaration: {raw!r}")


def _parse_type_string(raw: str) -> PrimitiveSchema:
    type_name, _, description = raw.partition(",")
    type_name = type_name.strip()
    if type_name not in PRIMITIVE_TYPES:
        raise ValueError(f"Unknown schema type {type_name!r}; expected one of {sorted(PRIMITIVE_TYPES)}.")
    return PrimitiveSchema(type=type_name, description=description.strip())  # type: ignore[arg-type]


def _parse_object(raw: Mapping[str, Any], *, description: str) -> ObjectSchema:
    fields: list[FieldSpec] = []
    for key, value in raw.items():
        match = KEY_RE.match(str(key).strip())
        if match is None:
            raise ValueError(f"Invalid schema key {key!r}.")
        name = match.group("name")
        required = match.group("optional") is None
        kind = (match.group("kind") or "").strip()
        key_description = (match.group("desc") or "").strip()
        if kind:
            shape = _parse_wrapped(kind, value, key_description, name)
            field_description = key_description
        else:
            if isinstance(value, Mapping):
                raise ValueError(f"Nested object {name!r} must be declared as {name}(object).")
            shape = _parse_field_value(value, name)
            field_description = shape.description
        fields.append(FieldSpec(name=name, shape=shape, required=required, description=field_description))
    return ObjectSchema(fields=tuple(fields), description=description)


def _parse_field_value(value: Any, name: str) -> PrimitiveSchema:
    if not isinstance(value, str):
        raise ValueError(f"Field {name!r} must be declared with a type string, got {value!r}.")
    return _parse_type_string(value)


def _parse_wrapped(kind: str, value: Any, description: str, name: str) -> SchemaNode:
    if kind == "array":
        if isinstance(value, Mapping):
            items: SchemaNode = _parse_object(value, description="")
        else:
            items = _parse_field_value(value, name)
        return ArraySchema(items=items, description=description)
    if kind == "object":
        if not isinstance(value, Mapping):
            raise ValueError(f"Field {name!r} declared as object needs a mapping of fields.")
        return _parse_object(value, description=description)
    if kind == "enum":
        if not isinstance(value, (list, tuple)) or not value:
            raise ValueError(f"Field {name!r} declared as enum needs a non-empty list of values.")
        return EnumSchema(values=tuple(value), description=description)
    raise ValueError(f"Unknown wrapper {kind!r} on field {name!r}.")
