"""Maestro planner – the language-model side of orchestration.

Responsibilities:
1. Turn a user goal into a draft plan (planner call + :func:`parse_plan`).
2. Hold short conversations about agents, flagging replies that look like
   a new agent design.
3. Answer free-form "advanced" prompts.

Every planner call is recorded in analytics as one task of the Maestro
agent, whatever the outcome.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from maestro.agents.base import AgentInvocation, WorkerAgent
from maestro.agents.builtin import MAESTRO_STEP_NAME
from maestro.agents.registry import AgentRegistry, registry
from maestro.config import settings
from maestro.errors import PlannerUnavailableError
from maestro.generation import TextGenerator
from maestro.models import ChatMessage, TaskExecutionRecord, TaskRecordStatus
from maestro.orchestrator.parser import (
    ConversationalReply,
    ParseResult,
    PlanDrafted,
    PlanMalformed,
    parse_plan,
)
from maestro.orchestrator.summary import build_agent_summary
from maestro.storage.agents import AgentStore
from maestro.storage.analytics import TaskRecorder, approx_tokens, record_safely
from maestro.utils.logging import get_logger, truncate_for_log, truncate_text
from maestro.utils.prompts import ADVANCED_REQUEST, CHAT_REQUEST, PLAN_REQUEST

logger = get_logger(__name__)

NO_TEXT_ERROR = "Maestro returned no text."


@dataclass(frozen=True)
class PlannerFailed:
    """The planner call itself failed; no plan was produced."""

    error: str
    task_record_id: str | None = None


DraftResult = ParseResult | PlannerFailed


@dataclass
class PlannerReply:
    """Answer to a chat message or an advanced prompt."""

    text: str | None = None
    error: str | None = None
    is_agent_definition: bool = False
    task_record_id: str | None = None

    def as_message(self) -> ChatMessage:
        return ChatMessage(
            sender="maestro",
            content=self.text if self.text is not None else f"Error: {self.error}",
            is_agent_definition=self.is_agent_definition,
            task_record_id=self.task_record_id,
        )


def is_potential_agent_definition(text: str) -> bool:
    """Heuristic check for a reply that designs a new agent."""
    lower = text.lower()
    if "### new agent design" in lower:
        return True
    return (
        "**agent name:**" in lower
        and "**steps:**" in lower
        and ("**instruction:**" in lower or "**prompt:**" in lower)
    )


class MaestroPlanner:
    """Drives the Maestro agent for planning, chat and advanced prompts."""

    def __init__(
        self,
        agent_store: AgentStore,
        client: TextGenerator,
        recorder: TaskRecorder | None = None,
        *,
        planner_agent_id: str | None = None,
        agent_registry: AgentRegistry | None = None,
        default_model: str | None = None,
        history_window: int | None = None,
    ) -> None:
        self.agent_store = agent_store
        self.client = client
        self.recorder = recorder
        self.planner_agent_id = planner_agent_id or settings.planner_agent_id
        self.registry = agent_registry or registry
        self.default_model = default_model
        self.history_window = (
            settings.chat_history_window if history_window is None else history_window
        )

    # ── plumbing ─────────────────────────────────────────────────────

    async def _planner(self) -> WorkerAgent:
        definition = await self.agent_store.get_agent_by_id(self.planner_agent_id)
        if definition is None or not definition.steps:
            raise PlannerUnavailableError("Maestro Agent is not configured correctly.")
        return self.registry.create(
            definition,
            client=self.client,
            recorder=self.recorder,
            default_model=self.default_model,
        )

    async def agent_summary(self) -> str:
        agents = await self.agent_store.list_agents()
        return build_agent_summary(a for a in agents if a.id != self.planner_agent_id)

    async def _call(
        self,
        request_text: str,
        *,
        mode: str,
        include_agents: bool,
        disable_thinking: bool | None = None,
    ) -> tuple[WorkerAgent, AgentInvocation]:
        planner = await self._planner()
        step = planner.resolve_step(MAESTRO_STEP_NAME)
        if disable_thinking is not None:
            step = step.model_copy(update={"disable_thinking": disable_thinking})
        params = {
            "user_goal_or_chat_input_or_advanced_prompt": request_text,
            "available_agents_json_summary": await self.agent_summary() if include_agents else "[]",
        }
        logger.info("planner.call", mode=mode, include_agents=include_agents)
        invocation = await planner.invoke_step(step, params, action_name=mode, record=False)
        if settings.log_agent_io and invocation.response.text:
            logger.info(
                "planner.response",
                mode=mode,
                text=truncate_for_log(invocation.response.text, settings.log_max_chars),
            )
        return planner, invocation

    async def _record(
        self,
        planner: WorkerAgent,
        invocation: AgentInvocation,
        *,
        status: TaskRecordStatus,
        input_summary: str,
        error: str | None,
        plan_id: str | None = None,
    ) -> str | None:
        text = invocation.response.text
        stored = await record_safely(
            self.recorder,
            TaskExecutionRecord(
                agent_id=planner.id,
                agent_name=planner.name,
                step_id=invocation.step.id,
                step_name=invocation.step.name,
                action_name=invocation.step.name,
                plan_id=plan_id,
                status=status,
                started_at=invocation.started_at,
                completed_at=invocation.completed_at,
                input_summary=input_summary,
                output_summary=(
                    truncate_text(text, settings.record_output_chars) if text else None
                ),
                error=error,
                approx_input_tokens=approx_tokens(invocation.prompt),
                approx_output_tokens=approx_tokens(text),
            ),
        )
        return stored.id if stored else None

    # ── modes ────────────────────────────────────────────────────────

    async def draft_plan(self, goal: str) -> DraftResult:
        """Ask the planner for a plan and parse it.

        The caller decides what to persist: a :class:`PlanDrafted` or
        :class:`PlanMalformed` plan is normally saved, a
        :class:`ConversationalReply` or :class:`PlannerFailed` never is.
        """
        goal = goal.strip()
        if not goal:
            raise ValueError("Please enter a goal.")

        planner, invocation = await self._call(
            PLAN_REQUEST.format(goal=goal), mode="plan", include_agents=True
        )
        response = invocation.response
        input_summary = f"Goal: {truncate_text(goal, settings.record_input_chars)} (Plan Gen)"

        if response.error or not response.text:
            error = response.error or NO_TEXT_ERROR
            record_id = await self._record(
                planner,
                invocation,
                status=TaskRecordStatus.FAILED,
                input_summary=input_summary,
                error=error,
            )
            logger.error("planner.draft_failed", error=error)
            return PlannerFailed(error=error, task_record_id=record_id)

        result = parse_plan(response.text, goal)
        match result:
            case PlanDrafted(plan):
                note = None
                plan_id: str | None = plan.id
            case PlanMalformed(plan):
                note = "Maestro output was an unparsable plan."
                plan_id = plan.id
            case ConversationalReply():
                note = "Maestro responded conversationally, not with a plan."
                plan_id = None

        await self._record(
            planner,
            invocation,
            status=TaskRecordStatus.COMPLETED,
            input_summary=input_summary,
            error=note,
            plan_id=plan_id,
        )
        return result

    async def chat(self, message: str, history: Sequence[ChatMessage] = ()) -> PlannerReply:
        message = message.strip()
        if not message:
            raise ValueError("Please enter a message.")

        window = list(history)[-self.history_window :] if self.history_window > 0 else []
        lines = [
            f"{'User' if m.sender == 'user' else 'Maestro'}: {m.content}" for m in window
        ]
        lines.append(f"User: {message}")
        conversation = "\n".join(lines)

        planner, invocation = await self._call(
            CHAT_REQUEST.format(conversation=conversation),
            mode="chat",
            include_agents="agent" in message.lower(),
            disable_thinking=False,
        )
        response = invocation.response
        input_summary = f"Chat: {truncate_text(message, settings.record_input_chars)}"

        if response.error or not response.text:
            error = response.error or NO_TEXT_ERROR
            record_id = await self._record(
                planner,
                invocation,
                status=TaskRecordStatus.FAILED,
                input_summary=input_summary,
                error=error,
            )
            return PlannerReply(error=error, task_record_id=record_id)

        record_id = await self._record(
            planner,
            invocation,
            status=TaskRecordStatus.COMPLETED,
            input_summary=input_summary,
            error=None,
        )
        return PlannerReply(
            text=response.text,
            is_agent_definition=is_potential_agent_definition(response.text),
            task_record_id=record_id,
        )

    async def advanced(self, prompt: str) -> PlannerReply:
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Please enter a prompt.")

        planner, invocation = await self._call(
            ADVANCED_REQUEST.format(prompt=prompt), mode="advanced", include_agents=True
        )
        response = invocation.response
        error = response.error or (None if response.text else NO_TEXT_ERROR)
        record_id = await self._record(
            planner,
            invocation,
            status=TaskRecordStatus.FAILED if error else TaskRecordStatus.COMPLETED,
            input_summary=f"Advanced Prompt: {truncate_text(prompt, settings.record_input_chars)}",
            error=error,
        )
        if error:
            return PlannerReply(error=error, task_record_id=record_id)
        return PlannerReply(text=response.text, task_record_id=record_id)
