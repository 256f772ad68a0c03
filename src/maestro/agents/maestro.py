"""Maestro Orchestrator Agent – the planner's own worker wrapper."""

from __future__ import annotations

from typing import Any

from maestro.agents.base import WorkerAgent
from maestro.agents.builtin import MAESTRO_ID
from maestro.agents.registry import registry
from maestro.errors import NoStepsError
from maestro.models import AgentStep


@registry.register(MAESTRO_ID)
class MaestroAgent(WorkerAgent):
    """Looser step matching and an empty agent summary by default."""

    def resolve_step(self, action_name: str) -> AgentStep:
        if not self.definition.steps:
            raise NoStepsError(
                f"{self.name}: No suitable step found for action '{action_name}' "
                "and no default step available."
            )
        wanted = action_name.strip().lower()
        for step in self.definition.steps:
            if wanted and wanted in step.name.lower():
                return step
        return self.definition.steps[0]

    def build_params(self, step: AgentStep, params: dict[str, Any]) -> dict[str, Any]:
        merged = dict(params)
        if not merged.get("available_agents_json_summary"):
            merged["available_agents_json_summary"] = "[]"
        return merged
