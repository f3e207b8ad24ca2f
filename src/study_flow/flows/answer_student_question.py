"""Answer a student's question, consulting an external resource when useful."""

from __future__ import annotations

from typing import Any, Mapping

from study_flow.context import FlowContext
from study_flow.flow import FlowDefinition, FlowStep, Scope, run_flow
from study_flow.picoschema import parse_picoschema

NAME = "answer-student-question"

INPUT_SCHEMA = parse_picoschema(
    {
        "question": "string, The question the student is asking.",
        "moduleName": "string, The name of the module the question is related to.",
        "studentId?": "string, The ID of the student asking the question.",
    }
)

OUTPUT_SCHEMA = parse_picoschema(
    {
        "answer": "string, The answer to the student's question.",
        "usedExternalResources": "boolean, Whether external resources were used to answer the question.",
    }
)


def _needs_resource(scope: Scope) -> bool:
    return scope["decide"] is True


def _assemble(scope: Scope) -> dict[str, Any]:
    return {
        "answer": scope["answer"] or "",
        "usedExternalResources": scope["decide"] is True,
    }


FLOW = FlowDefinition(
    name=NAME,
    description="Answer a student question, optionally using a summarized external resource.",
    input_schema=INPUT_SCHEMA,
    output_schema=OUTPUT_SCHEMA,
    steps=(
        FlowStep(
            id="decide",
            prompt="should-include-external-resources",
            build_input=lambda scope: {"question": scope["input"]["question"]},
        ),
        FlowStep(
            id="resource",
            prompt="get-external-resource",
            build_input=lambda scope: {
                "question": scope["input"]["question"],
                "moduleName": scope["input"]["moduleName"],
            },
            when=_needs_resource,
            default="",
        ),
        FlowStep(
            id="answer",
            prompt="answer-question",
            build_input=lambda scope: {
                "question": scope["input"]["question"],
                "externalResource": scope["resource"] or "",
            },
        ),
    ),
    assemble=_assemble,
)


async def answer_student_question(context: FlowContext, input_data: Mapping[str, Any]) -> dict[str, Any]:
    return await run_flow(context, FLOW, input_data)
