"""Built-in agent catalogue, seeded into the agent store at startup."""

from __future__ import annotations

from maestro.config import settings
from maestro.models import AgentDefinition, AgentStep
from maestro.utils import prompts

KEYWORD_RESEARCHER_ID = "predef_keyword_researcher"
CONTENT_PLANNER_ID = "predef_content_planner"
CONTENT_WRITER_ID = "predef_content_writer"
META_TAG_GENERATOR_ID = "predef_meta_tag_generator"
MAESTRO_ID = "predef_maestro_orchestrator"

MAESTRO_STEP_NAME = "Process User Request (Plan, Chat, or Design)"


def builtin_agents(default_model: str | None = None) -> list[AgentDefinition]:
    """Return fresh copies of the predefined agents."""
    model = default_model or settings.default_model

    def _step(agent_id: str, name: str, instruction: str, **extra: object) -> AgentStep:
        return AgentStep(
            id=f"{agent_id}_step_1",
            name=name,
            instruction=instruction,
            model=model,
            **extra,
        )

    return [
        AgentDefinition(
            id=KEYWORD_RESEARCHER_ID,
            name="Keyword Researcher Agent",
            description="Generates a list of SEO keywords based on a main topic.",
            global_system_instruction=prompts.KEYWORD_RESEARCHER_SYSTEM,
            is_predefined=True,
            documentation_purpose="Generate relevant SEO keywords for a given topic.",
            steps=[_step(KEYWORD_RESEARCHER_ID, "Generate Keywords", prompts.KEYWORD_RESEARCHER_STEP)],
        ),
        AgentDefinition(
            id=CONTENT_PLANNER_ID,
            name="Content Planner Agent",
            description="Creates a structured content outline for a given topic.",
            global_system_instruction=prompts.CONTENT_PLANNER_SYSTEM,
            is_predefined=True,
            documentation_purpose="Produce a blog post outline: title, introduction, sections, conclusion.",
            steps=[_step(CONTENT_PLANNER_ID, "Generate Content Outline", prompts.CONTENT_PLANNER_STEP)],
        ),
        AgentDefinition(
            id=CONTENT_WRITER_ID,
            name="Content Writer Agent",
            description="Drafts a specific piece of content based on topic, type, and length.",
            global_system_instruction=prompts.CONTENT_WRITER_SYSTEM,
            is_predefined=True,
            documentation_purpose="Write a piece of content for a topic, content type and length.",
            steps=[_step(CONTENT_WRITER_ID, "Write Content Piece", prompts.CONTENT_WRITER_STEP)],
        ),
        AgentDefinition(
            id=META_TAG_GENERATOR_ID,
            name="Meta Tag Generator Agent",
            description="Generates SEO-friendly meta titles and descriptions (JSON output).",
            global_system_instruction=prompts.META_TAG_SYSTEM,
            is_predefined=True,
            documentation_purpose="Generate a meta title and description as JSON from a content summary.",
            steps=[
                _step(
                    META_TAG_GENERATOR_ID,
                    "Generate Meta Tags (JSON)",
                    prompts.META_TAG_STEP,
                    is_json_output=True,
                )
            ],
        ),
        AgentDefinition(
            id=MAESTRO_ID,
            name="Maestro Orchestrator Agent",
            description=(
                "A master agent that analyzes user goals, orchestrates plans using other "
                "worker agents, and assists in designing new agents through conversation."
            ),
            global_system_instruction=prompts.MAESTRO_SYSTEM,
            is_predefined=True,
            documentation_purpose="Draft orchestration plans, chat about agents and design new ones.",
            steps=[_step(MAESTRO_ID, MAESTRO_STEP_NAME, prompts.MAESTRO_STEP_INSTRUCTION)],
        ),
    ]
