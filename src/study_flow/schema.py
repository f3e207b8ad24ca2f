"""Structural schemas and the validator that enforces them.

Schema nodes are declarations only. Each node is compiled once into a pydantic
type and validated through a cached ``TypeAdapter``; values come back
JSON-shaped (objects as dicts, arrays as lists).
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    Strict,
    StrictBool,
    StrictStr,
    TypeAdapter,
    create_model,
)
from pydantic import ValidationError as PydanticValidationError

from study_flow.errors import ValidationError, Violation

PrimitiveType = Literal["string", "number", "integer", "boolean", "any"]


class PrimitiveSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["primitive"] = "primitive"
    type: PrimitiveType
    description: str = ""


class EnumSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["enum"] = "enum"
    values: tuple[Any, ...]
    description: str = ""


class ArraySchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["array"] = "array"
    items: SchemaNode
    description: str = ""


class FieldSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    shape: SchemaNode
    required: bool = True
    description: str = ""


class ObjectSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["object"] = "object"
    fields: tuple[FieldSpec, ...] = ()
    description: str = ""

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


SchemaNode = Annotated[
    Union[PrimitiveSchema, EnumSchema, ArraySchema, ObjectSchema],
    Field(discriminator="kind"),
]

ArraySchema.model_rebuild()
FieldSpec.model_rebuild()
ObjectSchema.model_rebuild()

ANY = PrimitiveSchema(type="any")


def _integral_float_to_int(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _int_to_float(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


# Strict types never accept a bool as a number or a number as a string.
STRICT_TYPES: dict[str, Any] = {
    "string": StrictStr,
    "number": Annotated[float, Strict(), BeforeValidator(_int_to_float)],
    "integer": Annotated[int, Strict(), BeforeValidator(_integral_float_to_int)],
    "boolean": StrictBool,
    "any": Any,
}

# Lax types coerce model output such as "true" or "3".
LAX_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "any": Any,
}

COMPILED_MODEL_CONFIG = ConfigDict(extra="ignore", json_schema_extra={"additionalProperties": False})


@lru_cache(maxsize=None)
def compile_type(node: SchemaNode, *, strict: bool = True, name: str = "Output") -> Any:
    """Build the pydantic type for ``node``; object nodes become models named after their path."""
    if isinstance(node, ObjectSchema):
        return _compile_object(node, strict=strict, name=name)
    if isinstance(node, PrimitiveSchema):
        annotation = (STRICT_TYPES if strict else LAX_TYPES)[node.type]
    elif isinstance(node, EnumSchema):
        annotation = Literal[node.values]  # type: ignore[valid-type]
    elif isinstance(node, ArraySchema):
        annotation = list[compile_type(node.items, strict=strict, name=f"{name}Item")]  # type: ignore[misc]
    else:
        raise TypeError(f"Unknown schema node: {node!r}")
    if node.description:
        return Annotated[annotation, Field(description=node.description)]
    return annotation


def _compile_object(node: ObjectSchema, *, strict: bool, name: str) -> type[BaseModel]:
    fields: dict[str, Any] = {}
    for index, spec in enumerate(node.fields):
        # Declared names go through aliases so they never collide with BaseModel attributes.
        annotation = compile_type(spec.shape, strict=strict, name=name + spec.name[:1].upper() + spec.name[1:])
        description = spec.description or None
        if spec.required:
            fields[f"field_{index}"] = (annotation, Field(alias=spec.name, description=description))
        else:
            fields[f"field_{index}"] = (
                Optional[annotation],
                Field(default=None, alias=spec.name, description=description),
            )
    return create_model(name, __config__=COMPILED_MODEL_CONFIG, __doc__=node.description or None, **fields)


@lru_cache(maxsize=None)
def type_adapter(node: SchemaNode, *, strict: bool = True) -> TypeAdapter[Any]:
    return TypeAdapter(compile_type(node, strict=strict))


def validate(schema: SchemaNode, value: Any, *, label: str = "value", strict: bool = True) -> Any:
    """
    Check ``value`` against ``schema`` and return it narrowed to the schema's shape.

    Every violation is reported in one ``ValidationError``. Unknown keys are
    dropped and optional fields that are absent or ``None`` are left out.
    With ``strict=False`` scalars are coerced the way pydantic's lax mode does.
    """
    try:
        result = type_adapter(schema, strict=strict).validate_python(value)
    except PydanticValidationError as exc:
        raise ValidationError(violations_from(exc), label=label) from exc
    return to_plain(result)


def validate_json(schema: SchemaNode, text: str | bytes, *, label: str = "value") -> Any:
    """
    Parse ``text`` as JSON and check it against ``schema`` in lax mode.

    Raises ``ValueError`` when the text is not JSON at all.
    """
    try:
        result = type_adapter(schema, strict=False).validate_json(text)
    except PydanticValidationError as exc:
        errors = exc.errors()
        if any(err["type"] == "json_invalid" for err in errors):
            raise ValueError(f"Not valid JSON: {errors[0]['msg']}") from exc
        raise ValidationError(violations_from(exc), label=label) from exc
    return to_plain(result)


def violations_from(exc: PydanticValidationError) -> list[Violation]:
    violations: list[Violation] = []
    for err in exc.errors():
        if err["type"] == "missing":
            message = "missing required field"
        else:
            message = f"{err['msg']}, got {json_type_name(err.get('input'))}"
        violations.append(Violation(format_loc(err["loc"]), message))
    return violations


def format_loc(loc: tuple[int | str, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path


def to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        out: dict[str, Any] = {}
        for name, info in type(value).model_fields.items():
            item = getattr(value, name)
            if item is None and not info.is_required():
                continue
            out[info.alias or name] = to_plain(item)
        return out
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def to_json_schema(node: SchemaNode) -> dict[str, Any]:
    """JSON Schema for ``node``, used as the model's output-shape hint."""
    return type_adapter(node).json_schema()


def strip_descriptions(node: SchemaNode) -> SchemaNode:
    if isinstance(node, ArraySchema):
        return node.model_copy(update={"items": strip_descriptions(node.items), "description": ""})
    if isinstance(node, ObjectSchema):
        fields = tuple(
            spec.model_copy(update={"shape": strip_descriptions(spec.shape), "description": ""})
            for spec in node.fields
        )
        return node.model_copy(update={"fields": fields, "description": ""})
    return node.model_copy(update={"description": ""})


def same_shape(left: SchemaNode, right: SchemaNode) -> bool:
    return strip_descriptions(left) == strip_descriptions(right)
