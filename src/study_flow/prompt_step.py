"""A schema-bound exchange with the generative model."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

from study_flow.errors import ModelOutputError, ValidationError
from study_flow.json_utils import extract_first_json_value, strip_code_fence
from study_flow.model_client import ModelClient
from study_flow.models.loaded_prompt_file import LoadedPromptFile
from study_flow.schema import EnumSchema, ObjectSchema, PrimitiveSchema, SchemaNode, validate, validate_json

logger = logging.getLogger(__name__)

BOOLEAN_WORD_RE = re.compile(r"^\W*(true|false|yes|no)\b", re.IGNORECASE)
SCHEMA_NAME_RE = re.compile(r"[^A-Za-z0-9_-]")


class PromptStep:
    def __init__(self, loaded: LoadedPromptFile) -> None:
        self.loaded: LoadedPromptFile = loaded

    @property
    def name(self) -> str:
        return self.loaded.name

    @property
    def input_schema(self) -> SchemaNode:
        return self.loaded.input_schema

    @property
    def output_schema(self) -> SchemaNode:
        return self.loaded.output_schema

    def render(self, data: Mapping[str, Any]) -> str:
        validated = validate(self.input_schema, data, label=f"input for prompt {self.name!r}")
        return self.loaded.template.render(validated)

    async def invoke(self, model_client: ModelClient, data: Mapping[str, Any]) -> Any:
        """
        Validate ``data``, render the template, call the model once and return
        the response validated against the output schema.
        """
        rendered = self.render(data)
        raw_output = await model_client.generate(
            rendered,
            self.output_schema,
            system_prompt=self.loaded.system_prompt,
            config=self.loaded.config,
            schema_name=SCHEMA_NAME_RE.sub("_", self.name),
        )
        output = parse_model_output(raw_output, self.output_schema, prompt_name=self.name)
        logger.debug("Prompt %s produced %s output", self.name, type(output).__name__)
        return output


def parse_model_output(raw_output: Any, schema: SchemaNode, *, prompt_name: str) -> Any:
    """
    Coerce a raw model response into ``schema``.

    String outputs are taken verbatim. Anything else is read as JSON and
    validated in lax mode; text that is not JSON falls back to boolean words,
    bare enum literals, or the first JSON value embedded in the text.
    """
    if raw_output is None:
        raise ModelOutputError(f"Prompt {prompt_name!r} returned no output.", raw_output=raw_output)
    label = f"output of prompt {prompt_name!r}"
    if not isinstance(raw_output, str):
        return _validate_output(schema, raw_output, raw_output, label)
    if isinstance(schema, PrimitiveSchema) and schema.type == "string":
        return raw_output

    body = strip_code_fence(raw_output)
    try:
        return validate_json(schema, body, label=label)
    except ValidationError as exc:
        wrapped = _single_wrapped_value(body)
        if isinstance(schema, ObjectSchema) or wrapped is None:
            raise ModelOutputError(str(exc), raw_output=raw_output, violations=exc.violations) from exc
        # A scalar answer wrapped in an object, e.g. {"result": true}.
        return _validate_output(schema, wrapped[0], raw_output, label)
    except ValueError:
        value = _salvage_text(body, schema, raw_output, prompt_name)
    return _validate_output(schema, value, raw_output, label)


def _validate_output(schema: SchemaNode, value: Any, raw_output: Any, label: str) -> Any:
    try:
        return validate(schema, value, label=label, strict=False)
    except ValidationError as exc:
        raise ModelOutputError(str(exc), raw_output=raw_output, violations=exc.violations) from exc


def _single_wrapped_value(body: str) -> tuple[Any] | None:
    try:
        decoded = json.loads(body)
    except json.JSONDecodeError:
        return None
    if isinstance(decoded, dict) and len(decoded) == 1:
        return (next(iter(decoded.values())),)
    return None


def _salvage_text(text: str, schema: SchemaNode, raw_output: str, prompt_name: str) -> Any:
    if isinstance(schema, PrimitiveSchema):
        if schema.type == "any":
            return raw_output
        if schema.type == "boolean":
            match = BOOLEAN_WORD_RE.match(text)
            if match is None:
                raise ModelOutputError(
                    f"Prompt {prompt_name!r} output is not a valid boolean: {text[:80]!r}",
                    raw_output=raw_output,
                )
            return match.group(1).lower()
        return text
    if isinstance(schema, EnumSchema):
        return text
    try:
        return json.loads(extract_first_json_value(text))
    except ValueError as exc:
        raise ModelOutputError(f"Prompt {prompt_name!r} output is not valid JSON: {exc}", raw_output=raw_output) from exc
