"""Worker dispatch – maps a plan step onto a worker agent and runs it.

Resolution is exact: the assigned agent name must equal a worker's ``name``
and the assigned step name must equal one of that worker's step names, both
case-sensitive.  Nothing here falls back to another agent or step.

:meth:`WorkerDispatch.dispatch` never raises for ordinary failures; every
outcome, including exceptions thrown by the generation layer, comes back as
a :class:`DispatchOutcome`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from maestro.agents.base import AgentInvocation
from maestro.agents.registry import AgentRegistry, registry
from maestro.config import settings
from maestro.errors import AgentResolutionError
from maestro.generation import TextGenerator
from maestro.models import (
    AgentDefinition,
    AgentStep,
    OrchestrationPlan,
    OrchestrationStep,
    StepStatus,
)
from maestro.storage.agents import AgentStore
from maestro.storage.analytics import TaskRecorder
from maestro.utils.logging import get_logger, truncate_for_log
from maestro.utils.prompts import STEP_CONTEXT

logger = get_logger(__name__)

_MISSING = "(none)"


@dataclass
class DispatchOutcome:
    """Settled result of one step dispatch: ``Completed`` or ``Failed``."""

    status: StepStatus
    result: str | None = None
    error: str | None = None
    task_record_id: str | None = None

    @classmethod
    def failed(cls, error: str, task_record_id: str | None = None) -> "DispatchOutcome":
        return cls(status=StepStatus.FAILED, error=error, task_record_id=task_record_id)


def configuration_error(agent_name: str | None, step_name: str | None) -> str:
    return (
        f"Configuration error: Agent '{agent_name or ''}' or step "
        f"'{step_name or ''}' not found."
    )


def previous_result(plan: OrchestrationPlan, step: OrchestrationStep) -> str | None:
    """Result of the closest earlier step that completed."""
    earlier = [s for s in plan.parsed_steps if s.serial_number < step.serial_number]
    for candidate in reversed(earlier):
        if candidate.status == StepStatus.COMPLETED and candidate.result:
            return candidate.result
    return None


class WorkerDispatch:
    """Resolves plan assignments against the worker agents in an :class:`AgentStore`."""

    def __init__(
        self,
        agent_store: AgentStore,
        client: TextGenerator,
        recorder: TaskRecorder | None = None,
        *,
        agent_registry: AgentRegistry | None = None,
        planner_agent_id: str | None = None,
        default_model: str | None = None,
        append_step_context: bool | None = None,
    ) -> None:
        self.agent_store = agent_store
        self.client = client
        self.recorder = recorder
        self.registry = agent_registry or registry
        self.planner_agent_id = planner_agent_id or settings.planner_agent_id
        self.default_model = default_model
        self.append_step_context = (
            settings.append_step_context if append_step_context is None else append_step_context
        )

    async def worker_agents(self) -> list[AgentDefinition]:
        """Every stored agent except the planner itself."""
        agents = await self.agent_store.list_agents()
        return [a for a in agents if a.id != self.planner_agent_id]

    async def resolve(
        self,
        agent_name: str | None,
        step_name: str | None,
    ) -> tuple[AgentDefinition, AgentStep]:
        if not agent_name or not step_name:
            raise AgentResolutionError(configuration_error(agent_name, step_name))
        for agent in await self.worker_agents():
            if agent.name != agent_name:
                continue
            for agent_step in agent.steps:
                if agent_step.name == step_name:
                    return agent, agent_step
            break
        raise AgentResolutionError(configuration_error(agent_name, step_name))

    async def invoke_action(
        self,
        agent_name: str,
        action_name: str,
        params: dict[str, Any],
        plan_id: str | None = None,
    ) -> AgentInvocation:
        """Run a named action on a worker, outside any plan step.

        Unlike :meth:`resolve`, the action picks the worker's best matching
        step and falls back to its first step.
        """
        definition = next((a for a in await self.worker_agents() if a.name == agent_name), None)
        if definition is None:
            raise AgentResolutionError(f"Agent '{agent_name}' not found.")
        worker = self.registry.create(
            definition,
            client=self.client,
            recorder=self.recorder,
            default_model=self.default_model,
        )
        logger.info("dispatch.action", agent=agent_name, action=action_name, plan_id=plan_id)
        return await worker.invoke_action(action_name, params, plan_id=plan_id)

    def build_params(self, plan: OrchestrationPlan, step: OrchestrationStep) -> dict[str, Any]:
        return {
            "user_goal": plan.user_goal,
            "task_name": step.task_name,
            "task_description": step.task_description,
            "input": step.input_summary,
            "expected_output": step.output_summary,
            "previous_result": previous_result(plan, step),
        }

    async def dispatch(self, plan: OrchestrationPlan, step: OrchestrationStep) -> DispatchOutcome:
        try:
            definition, agent_step = await self.resolve(
                step.assigned_agent_name, step.assigned_agent_step_name
            )
        except AgentResolutionError as exc:
            logger.warning(
                "dispatch.unresolved",
                plan_id=plan.id,
                agent=step.assigned_agent_name,
                step=step.assigned_agent_step_name,
            )
            return DispatchOutcome.failed(str(exc))

        worker = self.registry.create(
            definition,
            client=self.client,
            recorder=self.recorder,
            default_model=self.default_model,
        )
        params = self.build_params(plan, step)
        try:
            prompt = worker.build_prompt(agent_step, params)
            if self.append_step_context:
                prompt += STEP_CONTEXT.format(
                    **{k: (v if v else _MISSING) for k, v in params.items()}
                )
            invocation = await worker.invoke_step(
                agent_step,
                params,
                plan_id=plan.id,
                action_name=agent_step.name,
                prompt=prompt,
                input_summary=step.input_summary or f"Plan step {step.serial_number}: {step.task_name}",
            )
        except Exception as exc:
            logger.error(
                "dispatch.exception",
                plan_id=plan.id,
                agent=definition.name,
                step=agent_step.name,
                error=f"{type(exc).__name__}: {exc}",
                exc_info=True,
            )
            return DispatchOutcome.failed(str(exc) or type(exc).__name__)

        response = invocation.response
        if response.error:
            return DispatchOutcome.failed(response.error, invocation.task_record_id)
        if not response.text:
            return DispatchOutcome.failed(
                f"Agent '{definition.name}' returned no text.", invocation.task_record_id
            )

        if settings.log_agent_io:
            logger.info(
                "dispatch.result",
                plan_id=plan.id,
                agent=definition.name,
                text=truncate_for_log(response.text, settings.log_max_chars),
            )
        return DispatchOutcome(
            status=StepStatus.COMPLETED,
            result=response.text,
            task_record_id=invocation.task_record_id,
        )
