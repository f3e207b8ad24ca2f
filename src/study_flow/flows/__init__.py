"""Built-in flows, keyed by name."""

from study_flow.flow import FlowDefinition
from study_flow.flows import answer_audio_question
from study_flow.flows import answer_student_question
from study_flow.flows import organize_time

BUILTIN_FLOWS: dict[str, FlowDefinition] = {
    module.NAME: module.FLOW
    for module in (answer_student_question, organize_time, answer_audio_question)
}

__all__ = ["BUILTIN_FLOWS"]
