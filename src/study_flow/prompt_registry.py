"""Prompt file discovery and caching."""

from __future__ import annotations

import logging
from pathlib import Path

import frontmatter

from study_flow.models.loaded_prompt_file import LoadedPromptFile

logger = logging.getLogger(__name__)

BUILTIN_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


def prompt_name_for(path: Path) -> str:
    post = frontmatter.load(str(path))
    name = post.metadata.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return path.stem


class PromptRegistry:
    def __init__(self, prompt_roots: list[Path], *, include_builtin: bool = True):
        roots = list(prompt_roots)
        if include_builtin and BUILTIN_PROMPTS_DIR not in roots:
            roots.append(BUILTIN_PROMPTS_DIR)
        self.prompt_roots = roots
        self._cache: dict[str, LoadedPromptFile] = {}
        self._index: dict[str, Path] | None = None

    def _build_index(self) -> dict[str, Path]:
        index: dict[str, Path] = {}
        for root in self.prompt_roots:
            if not root.exists():
                continue
            for path in sorted(root.rglob("*.md")):
                name = prompt_name_for(path)
                if name in index:
                    logger.debug("Prompt %s at %s shadowed by %s", name, path, index[name])
                    continue
                index[name] = path
        return index

    def _get_index(self) -> dict[str, Path]:
        if self._index is None:
            self._index = self._build_index()
        return self._index

    def list_prompts(self) -> list[str]:
        index = self._get_index()
        return sorted(set(index) | set(self._cache))

    def register(self, loaded: LoadedPromptFile) -> None:
        """Add an in-memory prompt, taking precedence over files with the same name."""
        self._cache[loaded.name] = loaded

    def get(self, name: str) -> LoadedPromptFile:
        if name in self._cache:
            return self._cache[name]
        index = self._get_index()
        path = index.get(name)
        if path is None:
            raise FileNotFoundError(f"Prompt not found: {name} (searched: {self.prompt_roots})")
        loaded = LoadedPromptFile(path)
        self._cache[name] = loaded
        return loaded
