"""Tests for the Maestro planner: drafting, chat and advanced prompts."""

from __future__ import annotations

import pytest
from conftest import FakeGenerator

from maestro.agents import MAESTRO_ID
from maestro.errors import PlannerUnavailableError
from maestro.models import ChatMessage, GenerationResponse, PlanStatus, TaskRecordStatus
from maestro.orchestrator.parser import ConversationalReply, PlanDrafted, PlanMalformed
from maestro.orchestrator.planner import (
    NO_TEXT_ERROR,
    MaestroPlanner,
    PlannerFailed,
    PlannerReply,
    is_potential_agent_definition,
)
from maestro.storage import InMemoryAgentStore, InMemoryTaskRecorder

PLAN_TEXT = """\
## Maestro Orchestration Plan
---
**Plan Step 1: Research**
*   **Assigned Agent:** `Alpha Agent`
*   **Assigned Agent Step:** `Do Alpha`
---
**Plan Step 2: Write**
*   **Assigned Agent:** `Beta Agent`
*   **Assigned Agent Step:** `Do Beta`
"""

AGENT_DESIGN = """\
### New Agent Design
**Agent Name:** Tea Critic
**Steps:**
1. **Instruction:** Review the tea.
"""


class TestDraftPlan:
    @pytest.mark.asyncio
    async def test_drafted_plan(
        self, planner: MaestroPlanner, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        generator.script(MAESTRO_ID, PLAN_TEXT)

        result = await planner.draft_plan("  Write about tea  ")

        assert isinstance(result, PlanDrafted)
        assert result.plan.user_goal == "Write about tea"
        assert result.plan.status == PlanStatus.PENDING_APPROVAL
        assert [s.assigned_agent_name for s in result.plan.parsed_steps] == ["Alpha Agent", "Beta Agent"]

        (record,) = await recorder.list_records(MAESTRO_ID)
        assert record.status == TaskRecordStatus.COMPLETED
        assert record.plan_id == result.plan.id
        assert record.error is None
        assert record.input_summary == "Goal: Write about tea (Plan Gen)"

    @pytest.mark.asyncio
    async def test_prompt_carries_goal_and_worker_summary(
        self, planner: MaestroPlanner, generator: FakeGenerator
    ) -> None:
        await planner.draft_plan("Write about tea")

        prompt, options = generator.calls[0]
        assert "User Goal (for Orchestration Plan):\nWrite about tea" in prompt
        assert '"name":"Alpha Agent"' in prompt
        assert "Maestro Orchestrator Agent" not in prompt
        assert options.agent_id == MAESTRO_ID

    @pytest.mark.asyncio
    async def test_conversational_reply_recorded_with_note(
        self, planner: MaestroPlanner, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        generator.script(MAESTRO_ID, "Could you tell me more about your audience?")

        result = await planner.draft_plan("Write about tea")

        assert isinstance(result, ConversationalReply)
        (record,) = await recorder.list_records(MAESTRO_ID)
        assert record.status == TaskRecordStatus.COMPLETED
        assert record.plan_id is None
        assert record.error == "Maestro responded conversationally, not with a plan."

    @pytest.mark.asyncio
    async def test_malformed_plan(
        self, planner: MaestroPlanner, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        generator.script(MAESTRO_ID, "First plan step: research. Second: write.")

        result = await planner.draft_plan("Write about tea")

        assert isinstance(result, PlanMalformed)
        assert result.plan.status == PlanStatus.FAILED
        (record,) = await recorder.list_records(MAESTRO_ID)
        assert record.error == "Maestro output was an unparsable plan."

    @pytest.mark.asyncio
    async def test_generation_error(
        self, planner: MaestroPlanner, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        generator.script(MAESTRO_ID, GenerationResponse(error="API key not valid"))

        result = await planner.draft_plan("Write about tea")

        assert isinstance(result, PlannerFailed)
        assert result.error == "API key not valid"
        (record,) = await recorder.list_records(MAESTRO_ID)
        assert record.status == TaskRecordStatus.FAILED
        assert result.task_record_id == record.id

    @pytest.mark.asyncio
    async def test_empty_reply_is_a_failure(self, planner: MaestroPlanner, generator: FakeGenerator) -> None:
        generator.script(MAESTRO_ID, GenerationResponse(text=""))
        result = await planner.draft_plan("Write about tea")
        assert result == PlannerFailed(error=NO_TEXT_ERROR, task_record_id=result.task_record_id)

    @pytest.mark.asyncio
    async def test_blank_goal_rejected(self, planner: MaestroPlanner, generator: FakeGenerator) -> None:
        with pytest.raises(ValueError):
            await planner.draft_plan("   ")
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_missing_planner_agent(self, generator: FakeGenerator) -> None:
        planner = MaestroPlanner(InMemoryAgentStore(), generator)
        with pytest.raises(PlannerUnavailableError):
            await planner.draft_plan("Write about tea")


class TestChat:
    @pytest.mark.asyncio
    async def test_history_window_and_flag(
        self, agent_store: InMemoryAgentStore, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        planner = MaestroPlanner(agent_store, generator, recorder, history_window=2)
        generator.script(MAESTRO_ID, AGENT_DESIGN)
        history = [
            ChatMessage(sender="user", content="oldest"),
            ChatMessage(sender="maestro", content="older reply"),
            ChatMessage(sender="user", content="recent"),
        ]

        reply = await planner.chat("Design a tea critic", history)

        assert reply.text == AGENT_DESIGN
        assert reply.is_agent_definition
        assert reply.task_record_id is not None
        prompt, options = generator.calls[0]
        assert "oldest" not in prompt
        assert "Maestro: older reply\nUser: recent\nUser: Design a tea critic" in prompt
        assert options.disable_thinking is False

    @pytest.mark.asyncio
    async def test_agent_summary_only_when_agents_mentioned(
        self, planner: MaestroPlanner, generator: FakeGenerator
    ) -> None:
        await planner.chat("hello there")
        await planner.chat("Which agent writes posts?")

        first, second = (prompt for prompt, _ in generator.calls)
        assert "Alpha Agent" not in first
        assert "Alpha Agent" in second

    @pytest.mark.asyncio
    async def test_error_reply_message(self, planner: MaestroPlanner, generator: FakeGenerator) -> None:
        generator.script(MAESTRO_ID, GenerationResponse(error="quota exceeded"))

        reply = await planner.chat("hi")

        assert reply.text is None
        message = reply.as_message()
        assert message.sender == "maestro"
        assert message.content == "Error: quota exceeded"


class TestAdvanced:
    @pytest.mark.asyncio
    async def test_advanced_prompt(
        self, planner: MaestroPlanner, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        generator.script(MAESTRO_ID, "a thoughtful answer")

        reply = await planner.advanced("Compare my agents")

        assert reply == PlannerReply(text="a thoughtful answer", task_record_id=reply.task_record_id)
        assert "Advanced User Prompt:\nCompare my agents" in generator.calls[0][0]
        (record,) = await recorder.list_records(MAESTRO_ID)
        assert record.input_summary == "Advanced Prompt: Compare my agents"
        assert record.status == TaskRecordStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_advanced_failure_recorded(
        self, planner: MaestroPlanner, generator: FakeGenerator, recorder: InMemoryTaskRecorder
    ) -> None:
        generator.script(MAESTRO_ID, GenerationResponse(error="boom"))

        reply = await planner.advanced("Compare my agents")

        assert reply.error == "boom"
        (record,) = await recorder.list_records(MAESTRO_ID)
        assert record.status == TaskRecordStatus.FAILED


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        (AGENT_DESIGN, True),
        ("**Agent Name:** X\n**Steps:**\n**Prompt:** do it", True),
        ("**Agent Name:** X\n**Steps:** none", False),
        ("Just chatting about agents.", False),
    ],
)
def test_agent_definition_heuristic(text: str, expected: bool) -> None:
    assert is_potential_agent_definition(text) is expected
