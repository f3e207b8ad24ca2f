"""Input adaptors for flow runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml


class InputAdaptor:
    def load(self) -> dict[str, Any]:
        raise NotImplementedError("InputAdaptor.load must be implemented by subclasses.")


def _as_object(raw: Any, source: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError(f"Flow input from {source} must be a JSON object.")
    return raw


class FileInput(InputAdaptor):
    def __init__(self, path: Path) -> None:
        if not path.exists():
            raise FileNotFoundError(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in (".yaml", ".yml"):
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
        self._data = _as_object(raw, str(path))

    def load(self) -> dict[str, Any]:
        return dict(self._data)


class TextInput(InputAdaptor):
    def __init__(self, text: str) -> None:
        self._text = text

    def load(self) -> dict[str, Any]:
        return _as_object(json.loads(self._text), "inline text")
