"""Suggest schedule improvements for a student's timetable."""

from __future__ import annotations

from typing import Any, Mapping

from study_flow.context import FlowContext
from study_flow.flow import FlowDefinition, FlowStep, run_flow
from study_flow.picoschema import parse_picoschema

NAME = "organize-time"

INPUT_SCHEMA = parse_picoschema(
    {
        "events(array, A list of events in the user schedule.)": {
            "title": "string",
            "dayOfWeek": "string, Day of the week, e.g. Monday.",
            "startTime": "string, HH:MM",
            "endTime": "string, HH:MM",
            "description?": "string",
        },
        "userGoals?": "string, Optional goals or priorities for time management.",
    }
)

OUTPUT_SCHEMA = parse_picoschema({"suggestions(array)": "string"})

FLOW = FlowDefinition(
    name=NAME,
    description="Analyze a weekly schedule and return actionable suggestions.",
    input_schema=INPUT_SCHEMA,
    output_schema=OUTPUT_SCHEMA,
    steps=(
        FlowStep(
            id="organize",
            prompt="organize-time",
            build_input=lambda scope: scope["input"],
        ),
    ),
)


async def organize_time(context: FlowContext, input_data: Mapping[str, Any]) -> dict[str, Any]:
    return await run_flow(context, FLOW, input_data)
