"""Runtime wiring – builds stores, clients and services from settings."""

from __future__ import annotations

from dataclasses import dataclass

from maestro.agents import builtin_agents
from maestro.config import Settings, settings as default_settings
from maestro.generation import GenerationClient, TextGenerator
from maestro.orchestrator.dispatch import WorkerDispatch
from maestro.orchestrator.engine import PlanEngine
from maestro.orchestrator.planner import MaestroPlanner
from maestro.storage import (
    AgentStore,
    InMemoryAgentStore,
    InMemoryPlanStore,
    InMemoryTaskRecorder,
    JsonFileAgentStore,
    JsonFilePlanStore,
    JsonlTaskRecorder,
    PlanStore,
    TaskRecorder,
)
from maestro.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Runtime:
    plan_store: PlanStore
    agent_store: AgentStore
    recorder: TaskRecorder
    client: TextGenerator
    planner: MaestroPlanner
    dispatch: WorkerDispatch
    engine: PlanEngine

    async def close(self) -> None:
        await self.engine.shutdown()
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
        await self.recorder.close()
        await self.agent_store.close()
        await self.plan_store.close()
        logger.info("runtime.closed")


async def build_runtime(
    *,
    config: Settings | None = None,
    client: TextGenerator | None = None,
    plan_store: PlanStore | None = None,
    agent_store: AgentStore | None = None,
    recorder: TaskRecorder | None = None,
) -> Runtime:
    """Assemble a :class:`Runtime`; explicit arguments override *config*."""
    config = config or default_settings

    if plan_store is None:
        plan_store = JsonFilePlanStore(config.plans_path) if config.plans_path else InMemoryPlanStore()
    if agent_store is None:
        agent_store = (
            JsonFileAgentStore(config.agents_path) if config.agents_path else InMemoryAgentStore()
        )
    if recorder is None:
        recorder = (
            JsonlTaskRecorder(config.analytics_path) if config.analytics_path else InMemoryTaskRecorder()
        )
    if client is None:
        client = GenerationClient(
            api_key=config.google_api_key,
            gemini_base_url=config.gemini_base_url,
            timeout_secs=config.request_timeout_secs,
            max_retries=config.max_retries,
            retry_backoff_secs=config.retry_backoff_secs,
        )

    await plan_store.open()
    await agent_store.open()
    if config.seed_builtin_agents:
        added = await agent_store.seed(builtin_agents(config.default_model))
        if added:
            logger.info("runtime.seeded_agents", added=added)

    dispatch = WorkerDispatch(
        agent_store,
        client,
        recorder,
        planner_agent_id=config.planner_agent_id,
        default_model=config.default_model,
        append_step_context=config.append_step_context,
    )
    planner = MaestroPlanner(
        agent_store,
        client,
        recorder,
        planner_agent_id=config.planner_agent_id,
        default_model=config.default_model,
        history_window=config.chat_history_window,
    )
    engine = PlanEngine(
        plan_store,
        dispatch,
        step_timeout_secs=config.step_timeout_secs,
        result_max_chars=config.step_result_max_chars,
    )
    return Runtime(
        plan_store=plan_store,
        agent_store=agent_store,
        recorder=recorder,
        client=client,
        planner=planner,
        dispatch=dispatch,
        engine=engine,
    )
