"""Model types for prompt configuration and runtime."""

from study_flow.models.loaded_prompt_file import LoadedPromptFile
from study_flow.models.model_spec import ModelSpec
from study_flow.models.prompt_spec import PromptConfig
from study_flow.models.prompt_spec import PromptSpec
from study_flow.models.prompt_spec import SchemaSection

__all__ = [
    "LoadedPromptFile",
    "ModelSpec",
    "PromptConfig",
    "PromptSpec",
    "SchemaSection",
]
