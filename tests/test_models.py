"""Tests for data models."""

from maestro.models import (
    AgentDefinition,
    AgentStep,
    ChatMessage,
    GenerationOptions,
    GenerationResponse,
    OrchestrationPlan,
    OrchestrationStep,
    PlanStatus,
    ProviderType,
    StepStatus,
)


def test_plan_defaults() -> None:
    plan = OrchestrationPlan(user_goal="Write about tea")
    assert plan.status == PlanStatus.PENDING_APPROVAL
    assert plan.current_step_index_to_execute == 0
    assert plan.overall_progress == 0
    assert plan.parsed_steps == []
    assert plan.id.startswith("plan_")


def test_plan_ids_are_unique() -> None:
    assert OrchestrationPlan(user_goal="a").id != OrchestrationPlan(user_goal="a").id


def test_touch_moves_updated_at() -> None:
    plan = OrchestrationPlan(user_goal="a")
    before = plan.updated_at
    plan.touch()
    assert plan.updated_at >= before


def test_step_defaults() -> None:
    step = OrchestrationStep(plan_id="plan_1", serial_number=1, task_name="Research")
    assert step.status == StepStatus.PENDING
    assert step.logs == []
    assert step.result is None


def test_terminal_and_settled_statuses() -> None:
    assert {s for s in PlanStatus if s.is_terminal} == {
        PlanStatus.COMPLETED,
        PlanStatus.FAILED,
        PlanStatus.CANCELLED,
    }
    assert not StepStatus.PENDING.is_settled
    assert not StepStatus.IN_PROGRESS.is_settled
    assert StepStatus.SKIPPED.is_settled


def test_status_values_serialise_as_labels() -> None:
    plan = OrchestrationPlan(user_goal="a", status=PlanStatus.PENDING_APPROVAL)
    assert plan.model_dump(mode="json")["status"] == "Pending Approval"


def test_agent_definition() -> None:
    agent = AgentDefinition(
        name="Writer",
        steps=[AgentStep(name="Draft", instruction="Write {{topic}}")],
    )
    assert agent.id.startswith("agent_")
    assert agent.steps[0].provider_type == ProviderType.GOOGLE_GEMINI
    assert not agent.is_predefined


def test_generation_options_for_step() -> None:
    step = AgentStep(
        name="Draft",
        instruction="x",
        provider_type=ProviderType.OPENAI_COMPATIBLE,
        api_endpoint="https://llm.test",
        temperature=0.3,
        is_json_output=True,
    )
    options = GenerationOptions.for_step(
        step, system_instruction="sys", default_model="fallback", agent_id="a1", plan_id="p1"
    )
    assert options.model == "fallback"
    assert options.provider_type == ProviderType.OPENAI_COMPATIBLE
    assert options.temperature == 0.3
    assert options.is_json_output
    assert options.step_id == step.id
    assert (options.agent_id, options.plan_id) == ("a1", "p1")


def test_step_model_wins_over_default() -> None:
    step = AgentStep(name="Draft", instruction="x", model="own-model")
    assert GenerationOptions.for_step(step, default_model="fallback").model == "own-model"


def test_generation_response_ok() -> None:
    assert GenerationResponse(text="hi").ok
    assert not GenerationResponse(error="boom").ok
    assert not GenerationResponse().ok


def test_chat_message() -> None:
    msg = ChatMessage(sender="user", content="hello")
    assert not msg.is_agent_definition
    assert msg.task_record_id is None
