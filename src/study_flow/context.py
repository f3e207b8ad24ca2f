"""Explicit collaborators shared by flow invocations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from study_flow.model_client import ModelClient
from study_flow.prompt_registry import PromptRegistry
from study_flow.prompt_step import PromptStep
from study_flow.store.document_store import DocumentStore


@dataclass
class FlowContext:
    """
    Owned by the caller: built once at process start and passed to every
    flow run. Invocations only read from it.
    """

    model_client: ModelClient
    prompts: PromptRegistry
    store: Optional[DocumentStore] = None

    def prompt_step(self, name: str) -> PromptStep:
        return PromptStep(self.prompts.get(name))

    def require_store(self) -> DocumentStore:
        if self.store is None:
            raise RuntimeError("No document store configured for this context.")
        return self.store
