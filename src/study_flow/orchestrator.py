"""Helper for running flows by name."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from study_flow.context import FlowContext
from study_flow.flow import FlowDefinition, run_flow
from study_flow.flows import BUILTIN_FLOWS
from study_flow.input_adaptors import InputAdaptor
from study_flow.model_client import ModelClient, OpenAIModelClient
from study_flow.models.model_spec import ModelSpec
from study_flow.prompt_registry import PromptRegistry
from study_flow.settings import Settings
from study_flow.store.document_store import DocumentStore


class Orchestrator:
    def __init__(
        self,
        prompt_roots: list[Path] | None = None,
        model_spec: Optional[ModelSpec] = None,
        *,
        model_client: Optional[ModelClient] = None,
        store: Optional[DocumentStore] = None,
        flows: Optional[Mapping[str, FlowDefinition]] = None,
    ) -> None:
        self.registry: PromptRegistry = PromptRegistry(prompt_roots or [])
        client = model_client if model_client is not None else OpenAIModelClient(model_spec or ModelSpec())
        self.context: FlowContext = FlowContext(model_client=client, prompts=self.registry, store=store)
        self.flows: dict[str, FlowDefinition] = dict(flows if flows is not None else BUILTIN_FLOWS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Orchestrator":
        store: Optional[DocumentStore] = None
        if settings.firestore_project:
            from study_flow.store.firestore_store import FirestoreDocumentStore

            store = FirestoreDocumentStore(project=settings.firestore_project)
        return cls(settings.prompt_dirs, settings.to_model_spec(), store=store)

    def list_flows(self) -> list[str]:
        return sorted(self.flows)

    async def run(self, flow_name: str, input_data: InputAdaptor | Mapping[str, Any]) -> Any:
        flow = self.flows.get(flow_name)
        if flow is None:
            raise KeyError(f"Unknown flow {flow_name!r}; available: {', '.join(self.list_flows())}")
        payload = input_data.load() if isinstance(input_data, InputAdaptor) else input_data
        return await run_flow(self.context, flow, payload)
