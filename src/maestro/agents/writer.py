"""Content Writer Agent – validates its inputs before calling the model."""

from __future__ import annotations

from typing import Any

from maestro.agents.base import AgentInvocation, WorkerAgent
from maestro.agents.builtin import CONTENT_WRITER_ID
from maestro.agents.registry import registry
from maestro.models import GenerationResponse

WRITE_CONTENT_ACTION = "writeContent"


@registry.register(CONTENT_WRITER_ID)
class ContentWriterAgent(WorkerAgent):
    async def invoke_action(
        self,
        action_name: str,
        params: dict[str, Any],
        plan_id: str | None = None,
    ) -> AgentInvocation:
        step = self.resolve_step(action_name)
        if action_name == WRITE_CONTENT_ACTION and not isinstance(params.get("topic"), str):
            return AgentInvocation(
                step=step,
                prompt="",
                response=GenerationResponse(
                    error="Missing or invalid 'topic' parameter for writeContent action."
                ),
            )
        return await self.invoke_step(step, params, plan_id=plan_id, action_name=action_name)
