"""Generative-model collaborator used by prompt steps."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx
from openai import APIError
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from study_flow.errors import ExternalServiceError
from study_flow.models.model_spec import OPENAI_BASE_URL, ModelSpec
from study_flow.models.prompt_spec import PromptConfig
from study_flow.schema import ObjectSchema, PrimitiveSchema, SchemaNode, to_json_schema

logger = logging.getLogger(__name__)


class ModelClient:
    """
    Submits one rendered prompt and returns the raw model output.

    Subclass or wrap this to add retries, deduplication or timeouts; the
    prompt step itself issues exactly one call per invocation.
    """

    async def generate(
        self,
        prompt: str,
        output_schema: SchemaNode,
        *,
        system_prompt: str = "",
        config: PromptConfig | None = None,
        schema_name: str = "output",
    ) -> Any:
        raise NotImplementedError("ModelClient.generate must be implemented by subclasses.")


class OpenAIModelClient(ModelClient):
    def __init__(self, model_spec: ModelSpec, model: OpenAIChatModel | None = None) -> None:
        self.model_spec: ModelSpec = model_spec
        self.model: OpenAIChatModel = model if model is not None else build_model(model_spec)

    async def generate(
        self,
        prompt: str,
        output_schema: SchemaNode,
        *,
        system_prompt: str = "",
        config: PromptConfig | None = None,
        schema_name: str = "output",
    ) -> Any:
        agent = Agent(
            self.model,
            instructions=build_output_instructions(output_schema),
            system_prompt=_normalize_system_prompt(system_prompt),
            output_type=str,
            model_settings=self._build_model_settings(output_schema, config, schema_name),
        )
        logger.debug("Submitting %d-character prompt to %s", len(prompt), self.model_spec.model_name)
        try:
            result = await agent.run(prompt)
        except (AgentRunError, APIError, httpx.HTTPError) as exc:
            raise ExternalServiceError(f"Model call to {self.model_spec.model_name} failed: {exc}") from exc
        return result.output

    def _build_model_settings(
        self,
        output_schema: SchemaNode,
        config: PromptConfig | None,
        schema_name: str,
    ) -> ModelSettings:
        settings: ModelSettings = {
            "temperature": self.model_spec.temperature,
            "max_tokens": self.model_spec.max_tokens,
        }
        if config is not None:
            if config.temperature is not None:
                settings["temperature"] = config.temperature
            if config.max_tokens is not None:
                settings["max_tokens"] = config.max_tokens
        extra_body = self._build_extra_body(output_schema, schema_name)
        if extra_body:
            settings["extra_body"] = extra_body
        return settings

    def _build_extra_body(self, output_schema: SchemaNode, schema_name: str) -> dict[str, Any]:
        if self.model_spec.provider != "openai-compatible" or is_plain_text(output_schema):
            return {}
        if self.model_spec.base_url != OPENAI_BASE_URL:
            # Ollama OpenAI-compatible API uses "format": "json" to force JSON output.
            return {"format": "json"}
        if not isinstance(output_schema, ObjectSchema):
            # OpenAI structured outputs require an object at the root.
            return {}
        return {
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "schema": to_json_schema(output_schema),
                    "strict": all_fields_required(output_schema),
                },
            }
        }


def is_plain_text(schema: SchemaNode) -> bool:
    return isinstance(schema, PrimitiveSchema) and schema.type in ("string", "any")


def all_fields_required(schema: SchemaNode) -> bool:
    if isinstance(schema, ObjectSchema):
        return all(spec.required and all_fields_required(spec.shape) for spec in schema.fields)
    items = getattr(schema, "items", None)
    if items is not None:
        return all_fields_required(items)
    return True


def build_output_instructions(output_schema: SchemaNode) -> str | None:
    if is_plain_text(output_schema):
        return None
    rendered = json.dumps(to_json_schema(output_schema), indent=2, sort_keys=True)
    return f"Respond only with JSON that matches this JSON Schema, with no surrounding text:\n{rendered}"


def _normalize_system_prompt(text: str) -> str | list[str]:
    if text:
        return text
    return []


def build_model(model_spec: ModelSpec) -> OpenAIChatModel:
    api_key = os.environ.get(model_spec.api_key_env, "noop")
    provider = OpenAIProvider(base_url=model_spec.base_url, api_key=api_key)
    return OpenAIChatModel(model_spec.model_name, provider=provider)
