"""Answer a question asked through voice navigation."""

from __future__ import annotations

from typing import Any, Mapping

from study_flow.context import FlowContext
from study_flow.flow import FlowDefinition, FlowStep, run_flow
from study_flow.picoschema import parse_picoschema

NAME = "answer-audio-question"

FLOW = FlowDefinition(
    name=NAME,
    description="Short spoken-style answer to a transcribed question.",
    input_schema=parse_picoschema({"question": "string", "studentId?": "string"}),
    output_schema=parse_picoschema({"answer": "string"}),
    steps=(
        FlowStep(
            id="answer",
            prompt="answer-audio-question",
            build_input=lambda scope: scope["input"],
        ),
    ),
)


async def answer_audio_question(context: FlowContext, input_data: Mapping[str, Any]) -> dict[str, Any]:
    return await run_flow(context, FLOW, input_data)
