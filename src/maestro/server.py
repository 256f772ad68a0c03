"""FastAPI application – the HTTP gateway to the Maestro orchestrator."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from maestro import __version__
from maestro.config import settings
from maestro.errors import (
    AgentResolutionError,
    InvalidTransitionError,
    NoStepsError,
    PlanNotFoundError,
    PlannerUnavailableError,
)
from maestro.models import (
    AgentDefinition,
    AgentUsageStats,
    ChatMessage,
    OrchestrationPlan,
    PlanStatus,
    TaskExecutionRecord,
)
from maestro.orchestrator.parser import ConversationalReply, PlanDrafted, PlanMalformed
from maestro.orchestrator.planner import PlannerFailed
from maestro.runtime import Runtime, build_runtime
from maestro.storage.plans import PlanFilter
from maestro.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

RuntimeFactory = Callable[[], Awaitable[Runtime]]


# ────────────────────────────────────────────────────────────────────
# Request / response bodies
# ────────────────────────────────────────────────────────────────────


class DraftRequest(BaseModel):
    goal: str = Field(..., min_length=1, description="The high-level user goal.")
    auto_approve: bool = Field(default=False, description="Approve and run a drafted plan at once.")


class DraftResponse(BaseModel):
    outcome: Literal["drafted", "malformed", "conversational"]
    plan: OrchestrationPlan | None = None
    reply: str | None = None
    error: str | None = None


class PlanListResponse(BaseModel):
    items: list[OrchestrationPlan]
    page: int
    per_page: int
    total: int
    total_pages: int


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    reply: ChatMessage
    error: str | None = None


class PromptRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


class PromptResponse(BaseModel):
    text: str | None = None
    error: str | None = None
    task_record_id: str | None = None


class ActionRequest(BaseModel):
    params: dict[str, Any] = Field(default_factory=dict, description="Template values for the step.")
    plan_id: str | None = None


class ActionResponse(BaseModel):
    step: str
    text: str | None = None
    error: str | None = None
    task_record_id: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = __version__
    timestamp: str = ""
    running_plans: int = 0


def _redact(agent: AgentDefinition) -> AgentDefinition:
    """Hide per-step API keys in API output."""
    redacted = agent.model_copy(deep=True)
    for step in redacted.steps:
        if step.api_key:
            step.api_key = "***"
    return redacted


# ────────────────────────────────────────────────────────────────────
# Application factory
# ────────────────────────────────────────────────────────────────────


def create_app(runtime_factory: RuntimeFactory | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
        setup_logging()
        runtime = await (runtime_factory or build_runtime)()
        app.state.runtime = runtime
        resumed = await runtime.engine.resume_running()
        logger.info("server.startup", port=settings.api_port, resumed_plans=len(resumed))
        yield
        await runtime.close()
        logger.info("server.shutdown")

    app = FastAPI(
        title="Maestro Orchestrator",
        description="Plans multi-step goals with a planner model and runs them across worker agents.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PlanNotFoundError)
    async def _not_found(request: Request, exc: PlanNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def _conflict(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PlannerUnavailableError)
    async def _unavailable(request: Request, exc: PlannerUnavailableError) -> JSONResponse:
        logger.error("api.planner_unavailable", error=str(exc))
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    def _runtime(request: Request) -> Runtime:
        return request.app.state.runtime

    # ── meta ─────────────────────────────────────────────────────────

    @app.get("/")
    async def root():
        return {"message": "Maestro Orchestrator API is running", "docs": "/docs"}

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        running = await _runtime(request).plan_store.list(PlanFilter(status=PlanStatus.RUNNING))
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            running_plans=len(running),
        )

    # ── agents ───────────────────────────────────────────────────────

    @app.get("/agents", response_model=list[AgentDefinition])
    async def list_agents(request: Request) -> list[AgentDefinition]:
        agents = await _runtime(request).agent_store.list_agents()
        return [_redact(a) for a in agents]

    @app.get("/agents/{name}", response_model=AgentDefinition)
    async def get_agent(name: str, request: Request) -> AgentDefinition:
        agent = await _runtime(request).agent_store.get_agent(name)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"Agent '{name}' not found")
        return _redact(agent)

    @app.post("/agents/{name}/actions/{action}", response_model=ActionResponse)
    async def invoke_action(name: str, action: str, req: ActionRequest, request: Request) -> ActionResponse:
        """Run one action on a worker agent directly."""
        try:
            invocation = await _runtime(request).dispatch.invoke_action(
                name, action, req.params, plan_id=req.plan_id
            )
        except AgentResolutionError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except NoStepsError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return ActionResponse(
            step=invocation.step.name,
            text=invocation.response.text,
            error=invocation.response.error,
            task_record_id=invocation.task_record_id,
        )

    # ── plans ────────────────────────────────────────────────────────

    @app.post("/plans/draft", response_model=DraftResponse)
    async def draft_plan(req: DraftRequest, request: Request) -> DraftResponse:
        """Ask Maestro for a plan; drafted and malformed plans are stored."""
        runtime = _runtime(request)
        try:
            result = await runtime.planner.draft_plan(req.goal)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        match result:
            case PlannerFailed(error=error):
                raise HTTPException(status_code=502, detail=error)
            case ConversationalReply(text=text):
                return DraftResponse(outcome="conversational", reply=text)
            case PlanMalformed(plan=plan):
                stored = await runtime.plan_store.save(plan)
                return DraftResponse(outcome="malformed", plan=stored, error=stored.error)
            case PlanDrafted(plan=plan):
                stored = await runtime.plan_store.save(plan)
                if req.auto_approve:
                    stored = await runtime.engine.approve_and_run(stored.id)
                return DraftResponse(outcome="drafted", plan=stored)

    @app.get("/plans", response_model=PlanListResponse)
    async def list_plans(
        request: Request,
        status: PlanStatus | None = None,
        search: str = "",
        page: int = Query(default=1, ge=1),
        per_page: int = Query(default=settings.plans_per_page, ge=1, le=100),
    ) -> PlanListResponse:
        result = await _runtime(request).plan_store.page(
            PlanFilter(status=status, search=search), page=page, per_page=per_page
        )
        return PlanListResponse(
            items=result.items,
            page=result.page,
            per_page=result.per_page,
            total=result.total,
            total_pages=result.total_pages,
        )

    @app.get("/plans/{plan_id}", response_model=OrchestrationPlan)
    async def get_plan(plan_id: str, request: Request) -> OrchestrationPlan:
        return await _runtime(request).engine.get(plan_id)

    @app.post("/plans/{plan_id}/approve", response_model=OrchestrationPlan)
    async def approve_plan(plan_id: str, request: Request, run: bool = True) -> OrchestrationPlan:
        engine = _runtime(request).engine
        if run:
            return await engine.approve_and_run(plan_id)
        return await engine.approve(plan_id)

    @app.post("/plans/{plan_id}/start", response_model=OrchestrationPlan)
    async def start_plan(plan_id: str, request: Request) -> OrchestrationPlan:
        return await _runtime(request).engine.start(plan_id)

    @app.post("/plans/{plan_id}/cancel", response_model=OrchestrationPlan)
    async def cancel_plan(plan_id: str, request: Request) -> OrchestrationPlan:
        return await _runtime(request).engine.cancel(plan_id)

    @app.delete("/plans/{plan_id}", status_code=204)
    async def delete_plan(plan_id: str, request: Request) -> Response:
        await _runtime(request).engine.delete(plan_id)
        return Response(status_code=204)

    # ── maestro chat / advanced prompt ───────────────────────────────

    @app.post("/maestro/chat", response_model=ChatResponse)
    async def chat(req: ChatRequest, request: Request) -> ChatResponse:
        try:
            reply = await _runtime(request).planner.chat(req.message, req.history)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ChatResponse(reply=reply.as_message(), error=reply.error)

    @app.post("/maestro/prompt", response_model=PromptResponse)
    async def advanced_prompt(req: PromptRequest, request: Request) -> PromptResponse:
        try:
            reply = await _runtime(request).planner.advanced(req.prompt)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return PromptResponse(text=reply.text, error=reply.error, task_record_id=reply.task_record_id)

    # ── analytics ────────────────────────────────────────────────────

    @app.get("/analytics/records", response_model=list[TaskExecutionRecord])
    async def list_records(request: Request, agent_id: str | None = None) -> list[TaskExecutionRecord]:
        return await _runtime(request).recorder.list_records(agent_id)

    @app.get("/analytics/agents/{agent_id}", response_model=AgentUsageStats)
    async def agent_stats(agent_id: str, request: Request) -> AgentUsageStats:
        return await _runtime(request).recorder.agent_stats(agent_id)

    return app


app = create_app()
