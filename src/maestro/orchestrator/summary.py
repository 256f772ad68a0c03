"""Compact JSON summary of worker agents for the planner prompt."""

from __future__ import annotations

import json
from collections.abc import Iterable

from maestro.config import settings
from maestro.models import AgentDefinition
from maestro.utils.logging import get_logger

logger = get_logger(__name__)


def _clip(text: str | None, limit: int) -> str | None:
    if text is None:
        return None
    return text[:limit]


def build_agent_summary(
    agents: Iterable[AgentDefinition],
    instruction_chars: int | None = None,
    description_chars: int | None = None,
) -> str:
    """Serialise *agents* without whitespace, bounding every long field.

    Step instructions are cut to *instruction_chars* and always followed by
    ``"..."``; resource and tool descriptions are cut to *description_chars*.
    """
    instruction_chars = instruction_chars or settings.summary_instruction_chars
    description_chars = description_chars or settings.summary_description_chars

    summary = [
        {
            "name": agent.name,
            "description": agent.description,
            "documentationPurpose": agent.documentation_purpose,
            "steps": [
                {
                    "name": step.name,
                    "instruction_summary": step.instruction[:instruction_chars] + "...",
                    "provider": step.provider_type.value,
                    "model": step.model,
                }
                for step in agent.steps
            ],
            "ragResources": [
                {
                    "name": r.name,
                    "type": r.type,
                    "description": _clip(r.description, description_chars),
                }
                for r in agent.rag_resources
            ],
            "tools": [
                {"name": t.name, "description": _clip(t.description, description_chars)}
                for t in agent.tools
            ],
        }
        for agent in agents
    ]
    try:
        return json.dumps(summary, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        logger.warning("summary.serialise_failed", error=str(exc))
        return "[]"
