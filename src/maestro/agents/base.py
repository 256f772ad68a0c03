"""Worker agent – an :class:`AgentDefinition` bound to a generation backend.

The base class handles step selection, prompt construction, the generation
call and analytics recording so that specialised agents only override the
hooks they need (``resolve_step``, ``build_params``).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from maestro.config import settings
from maestro.errors import NoStepsError
from maestro.generation import TextGenerator
from maestro.models import (
    AgentDefinition,
    AgentStep,
    GenerationOptions,
    GenerationResponse,
    TaskExecutionRecord,
    TaskRecordStatus,
    utcnow,
)
from maestro.storage.analytics import TaskRecorder, approx_tokens, record_safely
from maestro.utils.logging import get_logger, truncate_text
from maestro.utils.templates import find_placeholders, resolve_template

logger = get_logger(__name__)


@dataclass
class AgentInvocation:
    """Outcome of one step invocation."""

    step: AgentStep
    prompt: str
    response: GenerationResponse
    record: TaskExecutionRecord | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def task_record_id(self) -> str | None:
        return self.record.id if self.record else None


class WorkerAgent:
    """Runs the steps of one agent definition."""

    def __init__(
        self,
        definition: AgentDefinition,
        client: TextGenerator,
        recorder: TaskRecorder | None = None,
        default_model: str | None = None,
    ) -> None:
        self.definition = definition
        self.client = client
        self.recorder = recorder
        self.default_model = default_model or settings.default_model
        if not definition.steps:
            logger.warning("agent.no_steps", agent=definition.name, agent_id=definition.id)

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    # ── step selection ───────────────────────────────────────────────

    def find_step(self, step_name: str) -> AgentStep | None:
        """Exact, case-sensitive lookup by step name."""
        return next((s for s in self.definition.steps if s.name == step_name), None)

    def resolve_step(self, action_name: str) -> AgentStep:
        """Pick the step for *action_name*.

        Policy: a step whose name equals *action_name* ignoring case wins;
        otherwise the agent's first step is used.  An agent without steps
        cannot serve any action.
        """
        if not self.definition.steps:
            raise NoStepsError(
                f"{self.name}: No suitable step found for action '{action_name}' "
                "and no default step available."
            )
        wanted = action_name.strip().lower()
        for step in self.definition.steps:
            if step.name.lower() == wanted:
                return step
        return self.definition.steps[0]

    # ── prompt construction ──────────────────────────────────────────

    def build_params(self, step: AgentStep, params: dict[str, Any]) -> dict[str, Any]:
        """Hook for subclasses to add defaults before template resolution."""
        return dict(params)

    def build_prompt(self, step: AgentStep, params: dict[str, Any]) -> str:
        prompt = resolve_template(step.instruction, self.build_params(step, params))
        missing = find_placeholders(prompt)
        if missing:
            logger.debug("agent.unfilled_placeholders", agent=self.name, step=step.name, missing=missing)
        return prompt

    # ── invocation ───────────────────────────────────────────────────

    async def invoke_action(
        self,
        action_name: str,
        params: dict[str, Any],
        plan_id: str | None = None,
    ) -> AgentInvocation:
        step = self.resolve_step(action_name)
        return await self.invoke_step(step, params, plan_id=plan_id, action_name=action_name)

    async def invoke_step(
        self,
        step: AgentStep,
        params: dict[str, Any],
        *,
        plan_id: str | None = None,
        action_name: str | None = None,
        prompt: str | None = None,
        input_summary: str | None = None,
        record: bool = True,
    ) -> AgentInvocation:
        """Run *step* and record the call.

        *prompt* overrides template resolution when the caller has already
        built the full prompt.  Callers that keep their own analytics pass
        ``record=False``.
        """
        if prompt is None:
            prompt = self.build_prompt(step, params)
        options = GenerationOptions.for_step(
            step,
            system_instruction=self.definition.global_system_instruction,
            default_model=self.default_model,
            agent_id=self.id,
            plan_id=plan_id,
        )

        started_at = utcnow()
        logger.info("agent.invoke", agent=self.name, step=step.name, plan_id=plan_id)
        response = await self.client.generate(prompt, options)
        completed_at = utcnow()
        if not record:
            return AgentInvocation(
                step=step,
                prompt=prompt,
                response=response,
                started_at=started_at,
                completed_at=completed_at,
            )

        status = TaskRecordStatus.FAILED if response.error else TaskRecordStatus.COMPLETED
        if response.text:
            output_summary: str | None = truncate_text(response.text, settings.record_output_chars)
        else:
            output_summary = None if response.error else "No text output"

        if input_summary is None:
            try:
                params_text = json.dumps(params, default=str)
            except (TypeError, ValueError):
                params_text = str(params)
            input_summary = (
                f"Params: {truncate_text(params_text, settings.record_input_chars)} "
                f"Prompt snippet: {truncate_text(prompt, 100)}"
            )

        stored = await record_safely(
            self.recorder,
            TaskExecutionRecord(
                agent_id=self.id,
                agent_name=self.name,
                step_id=step.id,
                step_name=step.name,
                action_name=action_name or step.name,
                plan_id=plan_id,
                status=status,
                started_at=started_at,
                completed_at=completed_at,
                input_summary=input_summary,
                output_summary=output_summary,
                error=response.error,
                approx_input_tokens=approx_tokens(prompt),
                approx_output_tokens=approx_tokens(response.text),
            ),
        )
        return AgentInvocation(
            step=step,
            prompt=prompt,
            response=response,
            record=stored,
            started_at=started_at,
            completed_at=completed_at,
        )
