import json
from pathlib import Path

import pytest

from study_flow.input_adaptors import FileInput, TextInput


def test_file_input_reads_json(tmp_path: Path) -> None:
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps({"question": "Why?", "moduleName": "Physics"}), encoding="utf-8")

    adaptor = FileInput(input_path)

    assert adaptor.load() == {"question": "Why?", "moduleName": "Physics"}


def test_file_input_reads_yaml(tmp_path: Path) -> None:
    input_path = tmp_path / "input.yaml"
    input_path.write_text("events:\n  - title: Math\n    dayOfWeek: Monday\nuserGoals: rest\n", encoding="utf-8")

    data = FileInput(input_path).load()

    assert data == {"events": [{"title": "Math", "dayOfWeek": "Monday"}], "userGoals": "rest"}


def test_file_input_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        FileInput(tmp_path / "missing.json")


def test_file_input_rejects_non_object(tmp_path: Path) -> None:
    input_path = tmp_path / "input.json"
    input_path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        FileInput(input_path)


def test_text_input_parses_json_on_load() -> None:
    assert TextInput('{"question": "Why?"}').load() == {"question": "Why?"}
    with pytest.raises(ValueError):
        TextInput('"just a string"').load()
    with pytest.raises(json.JSONDecodeError):
        TextInput("not json").load()
