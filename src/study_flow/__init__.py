"""Public package exports."""

from study_flow.context import FlowContext
from study_flow.errors import ExternalServiceError
from study_flow.errors import ModelOutputError
from study_flow.errors import ValidationError
from study_flow.flow import FlowDefinition
from study_flow.flow import FlowStep
from study_flow.flow import run_flow
from study_flow.orchestrator import Orchestrator

__all__ = [
    "ExternalServiceError",
    "FlowContext",
    "FlowDefinition",
    "FlowStep",
    "ModelOutputError",
    "Orchestrator",
    "ValidationError",
    "run_flow",
]
