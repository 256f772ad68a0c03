"""Pydantic domain models shared across the orchestration pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _short_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ────────────────────────────────────────────────────────────────────
# Enums
# ────────────────────────────────────────────────────────────────────

class ProviderType(str, Enum):
    """Backend families a step can be routed to."""

    GOOGLE_GEMINI = "google_gemini"
    GENERIC_REST = "generic_rest"
    OPENAI_COMPATIBLE = "openai_compatible"


class PlanStatus(str, Enum):
    DRAFT = "Draft"
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.CANCELLED)


class StepStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    CANCELLED = "Cancelled"

    @property
    def is_settled(self) -> bool:
        return self in (
            StepStatus.COMPLETED,
            StepStatus.FAILED,
            StepStatus.SKIPPED,
            StepStatus.CANCELLED,
        )


class TaskRecordStatus(str, Enum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    IN_PROGRESS = "In Progress"


# ────────────────────────────────────────────────────────────────────
# Agent definitions
# ────────────────────────────────────────────────────────────────────

class AgentStep(BaseModel):
    """One prompt template of an agent, with its generation parameters."""

    id: str = Field(default_factory=lambda: _short_id("step"))
    name: str
    instruction: str
    model: str = ""
    provider_type: ProviderType = ProviderType.GOOGLE_GEMINI
    api_endpoint: str | None = None
    api_key: str | None = None
    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None
    is_json_output: bool = False
    disable_thinking: bool = False


class RagResource(BaseModel):
    name: str
    type: str = "text_content"
    description: str = ""
    content: str | None = None
    url: str | None = None


class AgentTool(BaseModel):
    name: str
    description: str = ""
    api_endpoint: str | None = None
    method: str = "GET"


class AgentDefinition(BaseModel):
    """A named bundle of steps that a plan step can delegate to."""

    id: str = Field(default_factory=lambda: _short_id("agent"))
    name: str
    description: str = ""
    global_system_instruction: str | None = None
    steps: list[AgentStep] = Field(default_factory=list)
    is_predefined: bool = False
    documentation_purpose: str = ""
    rag_resources: list[RagResource] = Field(default_factory=list)
    tools: list[AgentTool] = Field(default_factory=list)


# ────────────────────────────────────────────────────────────────────
# Generation
# ────────────────────────────────────────────────────────────────────

class GenerationOptions(BaseModel):
    """Model parameters for a single generation call."""

    model: str
    provider_type: ProviderType = ProviderType.GOOGLE_GEMINI
    api_endpoint: str | None = None
    api_key: str | None = None
    system_instruction: str | None = None
    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None
    is_json_output: bool = False
    disable_thinking: bool = False
    # Correlation only, never sent to the backend.
    agent_id: str | None = None
    step_id: str | None = None
    plan_id: str | None = None

    @classmethod
    def for_step(
        cls,
        step: AgentStep,
        *,
        system_instruction: str | None = None,
        default_model: str = "",
        agent_id: str | None = None,
        plan_id: str | None = None,
    ) -> "GenerationOptions":
        return cls(
            model=step.model or default_model,
            provider_type=step.provider_type,
            api_endpoint=step.api_endpoint,
            api_key=step.api_key,
            system_instruction=system_instruction,
            temperature=step.temperature,
            top_k=step.top_k,
            top_p=step.top_p,
            is_json_output=step.is_json_output,
            disable_thinking=step.disable_thinking,
            agent_id=agent_id,
            step_id=step.id,
            plan_id=plan_id,
        )


class GenerationResponse(BaseModel):
    """Uniform result of a generation call: either ``text`` or ``error``."""

    text: str | None = None
    error: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None


# ────────────────────────────────────────────────────────────────────
# Orchestration plans
# ────────────────────────────────────────────────────────────────────

class OrchestrationStep(BaseModel):
    """A single step of a plan, created ``Pending`` by the parser."""

    id: str = Field(default_factory=lambda: _short_id("step"))
    plan_id: str
    serial_number: int
    task_name: str
    task_description: str | None = None
    assigned_agent_name: str | None = None
    assigned_agent_step_name: str | None = None
    input_summary: str | None = None
    output_summary: str | None = None
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    result: str | None = None
    error: str | None = None
    logs: list[str] = Field(default_factory=list)
    original_markdown_lines: list[str] = Field(default_factory=list)
    task_record_id: str | None = None


class OrchestrationPlan(BaseModel):
    """Top-level aggregate: one user goal and its ordered steps."""

    id: str = Field(default_factory=lambda: _short_id("plan"))
    title: str | None = None
    user_goal: str
    raw_plan_text: str = ""
    parsed_steps: list[OrchestrationStep] = Field(default_factory=list)
    status: PlanStatus = PlanStatus.PENDING_APPROVAL
    current_step_index_to_execute: int = 0
    overall_progress: int = 0
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def touch(self) -> None:
        self.updated_at = utcnow()


# ────────────────────────────────────────────────────────────────────
# Analytics
# ────────────────────────────────────────────────────────────────────

class TaskExecutionRecord(BaseModel):
    """One agent invocation, as seen by the analytics recorder."""

    id: str = Field(default_factory=lambda: _short_id("task"))
    agent_id: str
    agent_name: str = ""
    step_id: str = ""
    step_name: str = ""
    action_name: str | None = None
    plan_id: str | None = None
    status: TaskRecordStatus
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None
    input_summary: str = ""
    output_summary: str | None = None
    error: str | None = None
    approx_input_tokens: int = 0
    approx_output_tokens: int = 0


class AgentUsageStats(BaseModel):
    agent_id: str
    total_runs: int = 0
    completed_runs: int = 0
    failed_runs: int = 0
    success_rate: float = 0.0
    avg_duration_ms: float = 0.0
    approx_input_tokens: int = 0
    approx_output_tokens: int = 0


# ────────────────────────────────────────────────────────────────────
# Maestro chat
# ────────────────────────────────────────────────────────────────────

class ChatMessage(BaseModel):
    sender: str  # "user" | "maestro"
    content: str
    is_agent_definition: bool = False
    task_record_id: str | None = None
