"""Process-level configuration read from the environment."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from study_flow.models.model_spec import OPENAI_BASE_URL, ModelSpec


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STUDY_FLOW_",
        env_file=".env",
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    provider: str = "openai-compatible"
    base_url: str = OPENAI_BASE_URL
    api_key_env: str = "OPENAI_API_KEY"
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 2048

    prompt_dirs: list[Path] = Field(default_factory=list)
    # Firestore is used only when a project is configured.
    firestore_project: Optional[str] = None
    admin_student_ids: list[str] = Field(default_factory=list)
    log_level: str = "INFO"

    def to_model_spec(self) -> ModelSpec:
        return ModelSpec(
            provider=self.provider,
            base_url=self.base_url,
            api_key_env=self.api_key_env,
            model_name=self.model_name,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
