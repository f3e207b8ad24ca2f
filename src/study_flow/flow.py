"""Flow definitions and the sequential orchestrator that runs them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from study_flow.context import FlowContext
from study_flow.prompt_step import PromptStep
from study_flow.schema import SchemaNode, same_shape, validate

logger = logging.getLogger(__name__)

INPUT_KEY = "input"

Scope = Mapping[str, Any]


class FlowStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    SKIPPED = "skipped"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass(frozen=True)
class FlowStep:
    """
    One prompt reference in a flow.

    ``build_input`` maps the scope (the flow input under ``"input"`` plus every
    earlier step output under its id) to this step's input. When ``when``
    returns false the step is skipped and ``default`` stands in for its output.
    """

    id: str
    prompt: str
    build_input: Callable[[Scope], Mapping[str, Any]]
    when: Optional[Callable[[Scope], bool]] = None
    default: Any = None


@dataclass(frozen=True)
class FlowDefinition:
    name: str
    input_schema: SchemaNode
    output_schema: SchemaNode
    steps: tuple[FlowStep, ...]
    assemble: Optional[Callable[[Scope], Any]] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError(f"Flow {self.name!r} must declare at least one step.")
        seen: set[str] = set()
        for step in self.steps:
            if step.id == INPUT_KEY:
                raise ValueError(f"Step id {INPUT_KEY!r} is reserved (flow {self.name!r}).")
            if step.id in seen:
                raise ValueError(f"Duplicate step id {step.id!r} in flow {self.name!r}.")
            seen.add(step.id)


@dataclass
class FlowInvocation:
    """State of one run. Discarded once the run returns or fails."""

    flow: FlowDefinition
    status: FlowStatus = FlowStatus.PENDING
    input: Any = None
    outputs: dict[str, Any] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    current_step: Optional[str] = None

    def scope(self) -> Scope:
        return MappingProxyType({INPUT_KEY: self.input, **self.outputs})

    def start_step(self, step: FlowStep) -> None:
        self.current_step = step.id
        self.status = FlowStatus.RUNNING
        logger.debug("Flow %s: step %s running", self.flow.name, step.id)

    def complete_step(self, step: FlowStep, output: Any) -> None:
        self.outputs[step.id] = output
        self.status = FlowStatus.COMPLETE
        logger.debug("Flow %s: step %s complete", self.flow.name, step.id)

    def skip_step(self, step: FlowStep) -> None:
        self.current_step = step.id
        self.outputs[step.id] = step.default
        self.skipped.append(step.id)
        self.status = FlowStatus.SKIPPED
        logger.debug("Flow %s: step %s skipped", self.flow.name, step.id)

    def finish(self) -> None:
        self.status = FlowStatus.FINISHED
        self.current_step = None
        logger.info("Flow %s finished (skipped: %s)", self.flow.name, ", ".join(self.skipped) or "none")

    def fail(self, exc: BaseException) -> None:
        self.status = FlowStatus.FAILED
        self.outputs.clear()
        logger.warning("Flow %s failed at %s: %s", self.flow.name, self.current_step or "input", exc)


def check_final_shape(flow: FlowDefinition, final_step: PromptStep) -> None:
    if flow.assemble is not None:
        return
    if not same_shape(final_step.output_schema, flow.output_schema):
        raise ValueError(
            f"Flow {flow.name!r} has no assemble function, so its final prompt "
            f"{final_step.name!r} must produce the flow's output schema."
        )


async def run_flow(context: FlowContext, flow: FlowDefinition, initial_input: Mapping[str, Any]) -> Any:
    """
    Run ``flow`` step by step and return its validated composite output.

    Any error aborts the remaining steps and propagates unchanged, with a note
    naming the failing step; partial outputs are discarded.
    """
    invocation = FlowInvocation(flow=flow)
    try:
        invocation.input = validate(flow.input_schema, initial_input, label=f"input for flow {flow.name!r}")
        prompt_steps = [context.prompt_step(step.prompt) for step in flow.steps]
        check_final_shape(flow, prompt_steps[-1])

        for step, prompt_step in zip(flow.steps, prompt_steps):
            scope = invocation.scope()
            if step.when is not None and not step.when(scope):
                invocation.skip_step(step)
                continue
            invocation.start_step(step)
            output = await prompt_step.invoke(context.model_client, step.build_input(scope))
            invocation.complete_step(step, output)

        scope = invocation.scope()
        if flow.assemble is not None:
            result = flow.assemble(scope)
        else:
            result = scope[flow.steps[-1].id]
        final = validate(flow.output_schema, result, label=f"output of flow {flow.name!r}")
    except Exception as exc:
        invocation.fail(exc)
        exc.add_note(f"Flow {flow.name!r} failed at step {invocation.current_step or '<input>'}.")
        raise
    invocation.finish()
    return final
