from typing import Any

import anyio
import pytest

from study_flow.context import FlowContext
from study_flow.errors import ExternalServiceError, ModelOutputError, ValidationError
from study_flow.flow import FlowDefinition, FlowStep, run_flow
from study_flow.flows.answer_audio_question import answer_audio_question
from study_flow.flows.answer_student_question import answer_student_question
from study_flow.flows.organize_time import organize_time
from study_flow.input_adaptors import TextInput
from study_flow.model_client import ModelClient
from study_flow.models import LoadedPromptFile
from study_flow.models.prompt_spec import PromptConfig
from study_flow.orchestrator import Orchestrator
from study_flow.picoschema import parse_picoschema
from study_flow.prompt_registry import PromptRegistry
from study_flow.schema import SchemaNode


class ScriptedModelClient(ModelClient):
    """Returns (or raises) a scripted response per prompt and records each call."""

    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    async def generate(
        self,
        prompt: str,
        output_schema: SchemaNode,
        *,
        system_prompt: str = "",
        config: PromptConfig | None = None,
        schema_name: str = "output",
    ) -> Any:
        self.calls.append((schema_name, prompt))
        response = self.responses[schema_name]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def called(self) -> list[str]:
        return [name for name, _prompt in self.calls]

    def prompt_for(self, name: str) -> str:
        for called_name, prompt in self.calls:
            if called_name == name:
                return prompt
        raise AssertionError(f"{name} was not called")


def _context(responses: dict[str, Any], registry: PromptRegistry | None = None) -> FlowContext:
    return FlowContext(model_client=ScriptedModelClient(responses), prompts=registry or PromptRegistry([]))


def _client(context: FlowContext) -> ScriptedModelClient:
    assert isinstance(context.model_client, ScriptedModelClient)
    return context.model_client


QUESTION = {"question": "What is 2+2?", "moduleName": "Arithmetic"}
PHOTOSYNTHESIS = {"question": "Explain photosynthesis", "moduleName": "Biology"}


@pytest.mark.anyio
async def test_answer_student_question_skips_resource_when_not_needed() -> None:
    context = _context(
        {
            "should-include-external-resources": "false",
            "answer-question": "2+2 equals 4.",
        }
    )

    result = await answer_student_question(context, QUESTION)

    assert result == {"answer": "2+2 equals 4.", "usedExternalResources": False}
    client = _client(context)
    assert client.called == ["should-include-external-resources", "answer-question"]
    answer_prompt = client.prompt_for("answer-question")
    assert answer_prompt.startswith("Question: What is 2+2?\n")
    assert "Additional Resource" not in answer_prompt


@pytest.mark.anyio
async def test_answer_student_question_uses_resource_when_needed() -> None:
    context = _context(
        {
            "should-include-external-resources": "true",
            "get-external-resource": "Chapter 4 explains how chloroplasts turn light into sugar.",
            "answer-question": "Plants use sunlight to make glucose from water and carbon dioxide.",
        }
    )

    result = await answer_student_question(context, PHOTOSYNTHESIS)

    assert result == {
        "answer": "Plants use sunlight to make glucose from water and carbon dioxide.",
        "usedExternalResources": True,
    }
    client = _client(context)
    assert client.called == ["should-include-external-resources", "get-external-resource", "answer-question"]
    assert "in the Biology module:\nExplain photosynthesis" in client.prompt_for("get-external-resource")
    answer_prompt = client.prompt_for("answer-question")
    assert answer_prompt.startswith("Question: Explain photosynthesis\n")
    assert "Additional Resource: Chapter 4 explains how chloroplasts turn light into sugar." in answer_prompt


class RoutingModelClient(ModelClient):
    """Answers depend on the prompt text so concurrent runs can be told apart."""

    async def generate(
        self,
        prompt: str,
        output_schema: SchemaNode,
        *,
        system_prompt: str = "",
        config: PromptConfig | None = None,
        schema_name: str = "output",
    ) -> Any:
        await anyio.sleep(0)
        if schema_name == "should-include-external-resources":
            return "true" if "photosynthesis" in prompt else "false"
        if schema_name == "get-external-resource":
            return "Chloroplast summary."
        return "with resource" if "Additional Resource" in prompt else "without resource"


@pytest.mark.anyio
async def test_concurrent_runs_on_one_context_stay_isolated() -> None:
    context = FlowContext(model_client=RoutingModelClient(), prompts=PromptRegistry([]))
    results: dict[str, dict[str, Any]] = {}

    async def run(key: str, question: dict[str, str]) -> None:
        results[key] = await answer_student_question(context, question)

    async with anyio.create_task_group() as tg:
        tg.start_soon(run, "math", QUESTION)
        tg.start_soon(run, "bio", PHOTOSYNTHESIS)

    assert results["math"] == {"answer": "without resource", "usedExternalResources": False}
    assert results["bio"] == {"answer": "with resource", "usedExternalResources": True}


@pytest.mark.anyio
async def test_model_failure_propagates_with_failing_step() -> None:
    context = _context(
        {
            "should-include-external-resources": "false",
            "answer-question": ExternalServiceError("connection reset"),
        }
    )

    with pytest.raises(ExternalServiceError) as exc_info:
        await answer_student_question(context, QUESTION)

    assert "connection reset" in str(exc_info.value)
    assert any("failed at step answer" in note for note in exc_info.value.__notes__)


@pytest.mark.anyio
async def test_invalid_flow_input_fails_before_any_model_call() -> None:
    context = _context({})

    with pytest.raises(ValidationError) as exc_info:
        await answer_student_question(context, {"question": "Why?"})

    assert exc_info.value.paths == ["moduleName"]
    assert any("<input>" in note for note in exc_info.value.__notes__)
    assert _client(context).calls == []


@pytest.mark.anyio
async def test_unparseable_decision_stops_the_flow() -> None:
    context = _context({"should-include-external-resources": "It depends on the student."})

    with pytest.raises(ModelOutputError):
        await answer_student_question(context, QUESTION)

    assert _client(context).called == ["should-include-external-resources"]


@pytest.mark.anyio
async def test_organize_time_renders_each_event() -> None:
    context = _context({"organize-time": '{"suggestions": ["Add a break after Math."]}'})
    events = [
        {"title": "Math", "dayOfWeek": "Monday", "startTime": "09:00", "endTime": "10:00", "description": "Algebra"},
        {"title": "Art", "dayOfWeek": "Tuesday", "startTime": "11:00", "endTime": "12:00"},
    ]

    result = await organize_time(context, {"events": events})

    assert result == {"suggestions": ["Add a break after Math."]}
    prompt = _client(context).prompt_for("organize-time")
    assert "Monday: 09:00-10:00 - Math (Algebra)\nTuesday: 11:00-12:00 - Art\n" in prompt
    assert "goals/priorities" not in prompt


@pytest.mark.anyio
async def test_organize_time_includes_goals() -> None:
    context = _context({"organize-time": '{"suggestions": []}'})

    result = await organize_time(context, {"events": [], "userGoals": "More sleep"})

    assert result == {"suggestions": []}
    assert "The user has specified the following goals/priorities:\nMore sleep\n" in _client(context).prompt_for(
        "organize-time"
    )


@pytest.mark.anyio
async def test_answer_audio_question_returns_answer_object() -> None:
    context = _context({"answer-audio-question": '```json\n{"answer": "Photosynthesis makes sugar."}\n```'})

    result = await answer_audio_question(context, {"question": "What is photosynthesis?"})

    assert result == {"answer": "Photosynthesis makes sugar."}
    assert "out loud:\nWhat is photosynthesis?" in _client(context).prompt_for("answer-audio-question")


def _registry_with(*loaded: LoadedPromptFile) -> PromptRegistry:
    registry = PromptRegistry([], include_builtin=False)
    for item in loaded:
        registry.register(item)
    return registry


def _text_prompt(name: str, template: str) -> LoadedPromptFile:
    return LoadedPromptFile.from_parts(
        name=name,
        input_schema=parse_picoschema({"text": "string"}),
        output_schema=parse_picoschema("string"),
        template=template,
    )


@pytest.mark.anyio
async def test_skipped_step_is_never_invoked_and_default_is_used() -> None:
    registry = _registry_with(_text_prompt("draft", "Draft {{text}}"), _text_prompt("polish", "Polish {{text}}"))
    context = _context({"polish": "polished"}, registry)
    flow = FlowDefinition(
        name="writer",
        input_schema=parse_picoschema({"text": "string"}),
        output_schema=parse_picoschema("string"),
        steps=(
            FlowStep(
                id="draft",
                prompt="draft",
                build_input=lambda scope: scope["input"],
                when=lambda scope: False,
                default="fallback draft",
            ),
            FlowStep(id="polish", prompt="polish", build_input=lambda scope: {"text": scope["draft"]}),
        ),
    )

    result = await run_flow(context, flow, {"text": "essay"})

    assert result == "polished"
    assert _client(context).calls == [("polish", "Polish fallback draft")]


@pytest.mark.anyio
async def test_final_prompt_must_match_flow_output_without_assemble() -> None:
    context = _context({}, _registry_with(_text_prompt("draft", "Draft {{text}}")))
    flow = FlowDefinition(
        name="mismatch",
        input_schema=parse_picoschema({"text": "string"}),
        output_schema=parse_picoschema({"result": "string"}),
        steps=(FlowStep(id="draft", prompt="draft", build_input=lambda scope: scope["input"]),),
    )

    with pytest.raises(ValueError):
        await run_flow(context, flow, {"text": "x"})

    assert _client(context).calls == []


@pytest.mark.anyio
async def test_assembled_output_is_validated() -> None:
    context = _context({"draft": "ok"}, _registry_with(_text_prompt("draft", "Draft {{text}}")))
    flow = FlowDefinition(
        name="bad-assemble",
        input_schema=parse_picoschema({"text": "string"}),
        output_schema=parse_picoschema({"result": "string"}),
        steps=(FlowStep(id="draft", prompt="draft", build_input=lambda scope: scope["input"]),),
        assemble=lambda scope: {"result": len(scope["draft"])},
    )

    with pytest.raises(ValidationError) as exc_info:
        await run_flow(context, flow, {"text": "x"})

    assert exc_info.value.paths == ["result"]


@pytest.mark.anyio
async def test_unknown_prompt_fails_before_any_model_call() -> None:
    context = _context({}, _registry_with())
    flow = FlowDefinition(
        name="missing",
        input_schema=parse_picoschema({"text": "string"}),
        output_schema=parse_picoschema("string"),
        steps=(FlowStep(id="draft", prompt="nope", build_input=lambda scope: scope["input"]),),
    )

    with pytest.raises(FileNotFoundError):
        await run_flow(context, flow, {"text": "x"})


@pytest.mark.parametrize(
    "steps",
    [
        (),
        (FlowStep(id="input", prompt="p", build_input=dict),),
        (FlowStep(id="a", prompt="p", build_input=dict), FlowStep(id="a", prompt="q", build_input=dict)),
    ],
)
def test_flow_definition_rejects_bad_steps(steps: tuple[FlowStep, ...]) -> None:
    with pytest.raises(ValueError):
        FlowDefinition(name="bad", input_schema=parse_picoschema(None), output_schema=parse_picoschema(None), steps=steps)


@pytest.mark.anyio
async def test_orchestrator_runs_flow_from_text_input() -> None:
    client = ScriptedModelClient({"organize-time": '{"suggestions": ["Sleep earlier."]}'})
    orch = Orchestrator(model_client=client)

    result = await orch.run("organize-time", TextInput('{"events": []}'))

    assert result == {"suggestions": ["Sleep earlier."]}
    assert orch.list_flows() == ["answer-audio-question", "answer-student-question", "organize-time"]


@pytest.mark.anyio
async def test_orchestrator_unknown_flow() -> None:
    orch = Orchestrator(model_client=ScriptedModelClient({}))

    with pytest.raises(KeyError):
        await orch.run("does-not-exist", {})
