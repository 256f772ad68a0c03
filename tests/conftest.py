"""Shared fixtures: a scripted generation backend, stores and services."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from maestro.agents import MAESTRO_ID, builtin_agents
from maestro.models import (
    AgentDefinition,
    AgentStep,
    GenerationOptions,
    GenerationResponse,
    OrchestrationPlan,
    OrchestrationStep,
    PlanStatus,
)
from maestro.orchestrator.dispatch import WorkerDispatch
from maestro.orchestrator.engine import PlanEngine
from maestro.orchestrator.planner import MaestroPlanner
from maestro.storage import InMemoryAgentStore, InMemoryPlanStore, InMemoryTaskRecorder


class FakeGenerator:
    """In-process stand-in for :class:`GenerationClient`.

    Outcomes are scripted per agent id (``None`` is the catch-all queue).
    A scripted outcome may be a string (returned as text), a
    :class:`GenerationResponse`, or an exception instance (raised).  Calls for
    a gated agent block until the gate is opened.
    """

    def __init__(self, default_text: str = "ok") -> None:
        self.default_text = default_text
        self.calls: list[tuple[str, GenerationOptions]] = []
        self._scripts: dict[str | None, list[Any]] = {}
        self._gates: dict[str, asyncio.Event] = {}

    def script(self, agent_id: str | None, *outcomes: Any) -> None:
        self._scripts.setdefault(agent_id, []).extend(outcomes)

    def gate(self, agent_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self._gates[agent_id] = event
        return event

    def calls_for(self, agent_id: str) -> list[tuple[str, GenerationOptions]]:
        return [c for c in self.calls if c[1].agent_id == agent_id]

    def called_agents(self) -> list[str | None]:
        return [options.agent_id for _, options in self.calls]

    async def wait_until_called(self, agent_id: str, count: int = 1) -> None:
        for _ in range(500):
            if len(self.calls_for(agent_id)) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"{agent_id} was not called {count} time(s)")

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResponse:
        self.calls.append((prompt, options))
        gate = self._gates.get(options.agent_id or "")
        if gate is not None:
            await gate.wait()

        queue = self._scripts.get(options.agent_id) or self._scripts.get(None) or []
        outcome: Any = queue.pop(0) if queue else self.default_text
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, GenerationResponse):
            return outcome
        return GenerationResponse(text=str(outcome))


def make_agent(agent_id: str, name: str, *step_names: str) -> AgentDefinition:
    return AgentDefinition(
        id=agent_id,
        name=name,
        description=f"{name} for tests",
        steps=[
            AgentStep(
                id=f"{agent_id}_{i}",
                name=step_name,
                instruction=f"{step_name} for {{{{user_goal}}}}",
                model="test-model",
            )
            for i, step_name in enumerate(step_names, start=1)
        ],
    )


def make_plan(*assignments: tuple[str, str], goal: str = "Write a blog post about tea") -> OrchestrationPlan:
    """Build a ``Pending Approval`` plan; one step per (agent, step) pair."""
    plan = OrchestrationPlan(user_goal=goal, raw_plan_text="**Plan Step 1: ...**")
    plan.parsed_steps = [
        OrchestrationStep(
            plan_id=plan.id,
            serial_number=i,
            task_name=f"Task {i}",
            assigned_agent_name=agent,
            assigned_agent_step_name=step,
        )
        for i, (agent, step) in enumerate(assignments, start=1)
    ]
    plan.status = PlanStatus.PENDING_APPROVAL
    return plan


ALPHA = ("Alpha Agent", "Do Alpha")
BETA = ("Beta Agent", "Do Beta")
GAMMA = ("Gamma Agent", "Do Gamma")
GAP = ("N/A (New Capability Needed)", "")


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def worker_agents() -> list[AgentDefinition]:
    return [
        make_agent("agent_alpha", *ALPHA),
        make_agent("agent_beta", *BETA),
        make_agent("agent_gamma", *GAMMA),
    ]


@pytest.fixture
def maestro_agent() -> AgentDefinition:
    return next(a for a in builtin_agents("test-model") if a.id == MAESTRO_ID)


@pytest.fixture
def agent_store(worker_agents: list[AgentDefinition], maestro_agent: AgentDefinition) -> InMemoryAgentStore:
    return InMemoryAgentStore([*worker_agents, maestro_agent])


@pytest.fixture
def plan_store() -> InMemoryPlanStore:
    return InMemoryPlanStore()


@pytest.fixture
def recorder() -> InMemoryTaskRecorder:
    return InMemoryTaskRecorder()


@pytest.fixture
def dispatch(
    agent_store: InMemoryAgentStore,
    generator: FakeGenerator,
    recorder: InMemoryTaskRecorder,
) -> WorkerDispatch:
    return WorkerDispatch(agent_store, generator, recorder, append_step_context=True)


@pytest.fixture
def engine(plan_store: InMemoryPlanStore, dispatch: WorkerDispatch) -> PlanEngine:
    return PlanEngine(plan_store, dispatch, step_timeout_secs=5, result_max_chars=8000)


@pytest.fixture
def planner(
    agent_store: InMemoryAgentStore,
    generator: FakeGenerator,
    recorder: InMemoryTaskRecorder,
) -> MaestroPlanner:
    return MaestroPlanner(agent_store, generator, recorder)
