"""Plan Execution Engine – lifecycle and sequential execution of plans.

A plan moves through an explicit state machine::

    Draft ─┐
           ├─▶ Approved ─▶ Running ─┬─▶ Completed
    Pending Approval ─┘             ├─▶ Failed
                                    └─▶ Cancelled   (from any non-terminal state)

Each running plan is executed by one ``asyncio.Task`` owned by the engine.
Steps run strictly one after another: a step is marked ``In Progress`` and
persisted, dispatched, then settled and persisted again.  Both writes go
through :meth:`PlanStore.update`, and both first check that the plan is
still ``Running`` so that an external cancellation always wins over an
in-flight step.

API calls (approve, start, cancel, delete, resume) raise
:class:`InvalidTransitionError` for illegal moves.  The run loop itself
**never raises**: failures are written onto the step, or onto the plan when
something unexpected breaks the loop.
"""

from __future__ import annotations

import asyncio
import math

import structlog

from maestro.config import settings
from maestro.errors import InvalidTransitionError, PlanNotFoundError
from maestro.models import OrchestrationPlan, OrchestrationStep, PlanStatus, StepStatus, utcnow
from maestro.orchestrator.dispatch import DispatchOutcome, WorkerDispatch
from maestro.orchestrator.parser import is_capability_gap
from maestro.storage.plans import PlanFilter, PlanStore
from maestro.utils.logging import get_logger, truncate_text

logger = get_logger(__name__)

SKIPPED_RESULT = "Step skipped - requires new agent/capability."
SKIPPED_ERROR = "Identified as a gap requiring new agent/step."

# ────────────────────────────────────────────────────────────────────
# State machine
# ────────────────────────────────────────────────────────────────────

PLAN_TRANSITIONS: dict[PlanStatus, frozenset[PlanStatus]] = {
    PlanStatus.DRAFT: frozenset(
        {PlanStatus.PENDING_APPROVAL, PlanStatus.APPROVED, PlanStatus.CANCELLED}
    ),
    PlanStatus.PENDING_APPROVAL: frozenset({PlanStatus.APPROVED, PlanStatus.CANCELLED}),
    PlanStatus.APPROVED: frozenset({PlanStatus.RUNNING, PlanStatus.CANCELLED}),
    PlanStatus.RUNNING: frozenset(
        {PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.CANCELLED}
    ),
    PlanStatus.COMPLETED: frozenset(),
    PlanStatus.FAILED: frozenset(),
    PlanStatus.CANCELLED: frozenset(),
}

STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.IN_PROGRESS, StepStatus.CANCELLED}),
    StepStatus.IN_PROGRESS: frozenset(
        {
            StepStatus.COMPLETED,
            StepStatus.FAILED,
            StepStatus.SKIPPED,
            StepStatus.CANCELLED,
        }
    ),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.FAILED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
    StepStatus.CANCELLED: frozenset(),
}


def can_transition(current: PlanStatus, target: PlanStatus) -> bool:
    return target in PLAN_TRANSITIONS[current]


def can_step_transition(current: StepStatus, target: StepStatus) -> bool:
    return target in STEP_TRANSITIONS[current]


def _require(current: PlanStatus, target: PlanStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError("Plan", current.value, target.value)


def progress_percent(done: float, total: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if total <= 0:
        return 100
    return min(100, math.floor(done / total * 100 + 0.5))


def _clock() -> str:
    return utcnow().strftime("%H:%M:%S")


# ────────────────────────────────────────────────────────────────────
# Engine
# ────────────────────────────────────────────────────────────────────


class PlanEngine:
    """Owns plan transitions and the per-plan execution tasks."""

    def __init__(
        self,
        plan_store: PlanStore,
        dispatch: WorkerDispatch,
        *,
        step_timeout_secs: float | None = None,
        result_max_chars: int | None = None,
    ) -> None:
        self.plan_store = plan_store
        self.dispatch = dispatch
        self.step_timeout_secs = (
            settings.step_timeout_secs if step_timeout_secs is None else step_timeout_secs
        )
        self.result_max_chars = result_max_chars or settings.step_result_max_chars
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # ── lookups ──────────────────────────────────────────────────────

    async def get(self, plan_id: str) -> OrchestrationPlan:
        plan = await self.plan_store.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def is_executing(self, plan_id: str) -> bool:
        task = self._tasks.get(plan_id)
        return task is not None and not task.done()

    # ── transitions ──────────────────────────────────────────────────

    async def _transition(self, plan_id: str, target: PlanStatus, **changes: object) -> OrchestrationPlan:
        def mutate(plan: OrchestrationPlan) -> OrchestrationPlan:
            _require(plan.status, target)
            plan.status = target
            for key, value in changes.items():
                setattr(plan, key, value)
            return plan

        updated = await self.plan_store.update(plan_id, mutate)
        if updated is None:
            raise PlanNotFoundError(plan_id)
        logger.info("engine.plan_transition", plan_id=plan_id, status=target.value)
        return updated

    async def approve(self, plan_id: str) -> OrchestrationPlan:
        return await self._transition(plan_id, PlanStatus.APPROVED)

    async def start(self, plan_id: str) -> OrchestrationPlan:
        """Move an approved plan to ``Running`` and schedule its execution."""
        plan = await self._transition(
            plan_id,
            PlanStatus.RUNNING,
            current_step_index_to_execute=0,
            overall_progress=0,
        )
        self._schedule(plan_id)
        return plan

    async def approve_and_run(self, plan_id: str) -> OrchestrationPlan:
        await self.approve(plan_id)
        return await self.start(plan_id)

    async def cancel(self, plan_id: str) -> OrchestrationPlan:
        """Cancel a non-terminal plan immediately.

        Pending and in-progress steps become ``Cancelled``; settled steps are
        left as they are.  An in-flight step keeps running but its outcome is
        discarded when it tries to commit.
        """

        def mutate(plan: OrchestrationPlan) -> OrchestrationPlan:
            _require(plan.status, PlanStatus.CANCELLED)
            plan.status = PlanStatus.CANCELLED
            for step in plan.parsed_steps:
                if can_step_transition(step.status, StepStatus.CANCELLED):
                    step.status = StepStatus.CANCELLED
                    step.logs.append(f"[{_clock()}] Cancelled step {step.serial_number}.")
            settled = sum(
                1
                for s in plan.parsed_steps
                if s.status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)
            )
            plan.overall_progress = progress_percent(settled, len(plan.parsed_steps))
            return plan

        updated = await self.plan_store.update(plan_id, mutate)
        if updated is None:
            raise PlanNotFoundError(plan_id)
        logger.info("engine.plan_cancelled", plan_id=plan_id)
        return updated

    async def delete(self, plan_id: str) -> None:
        plan = await self.get(plan_id)
        if plan.status == PlanStatus.RUNNING:
            raise InvalidTransitionError("Plan", plan.status.value, "Deleted")
        await self.plan_store.delete(plan_id)
        logger.info("engine.plan_deleted", plan_id=plan_id, status=plan.status.value)

    # ── scheduling ───────────────────────────────────────────────────

    def _schedule(self, plan_id: str) -> None:
        if self.is_executing(plan_id):
            return
        self._tasks[plan_id] = asyncio.create_task(self.run(plan_id), name=f"plan-{plan_id}")

    async def resume(self, plan_id: str) -> OrchestrationPlan:
        """Continue a ``Running`` plan from its cursor (crash recovery)."""
        plan = await self.get(plan_id)
        if plan.status != PlanStatus.RUNNING:
            raise InvalidTransitionError("Plan", plan.status.value, PlanStatus.RUNNING.value)
        self._schedule(plan_id)
        logger.info(
            "engine.plan_resumed",
            plan_id=plan_id,
            cursor=plan.current_step_index_to_execute,
        )
        return plan

    async def resume_running(self) -> list[str]:
        plans = await self.plan_store.list(PlanFilter(status=PlanStatus.RUNNING))
        for plan in plans:
            self._schedule(plan.id)
        if plans:
            logger.info("engine.resume_running", plans=[p.id for p in plans])
        return [p.id for p in plans]

    async def wait(self, plan_id: str) -> OrchestrationPlan:
        """Wait for the plan's execution task, then return the stored plan."""
        task = self._tasks.get(plan_id)
        if task is not None:
            await task
        return await self.get(plan_id)

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ── run loop ─────────────────────────────────────────────────────

    async def run(self, plan_id: str) -> None:
        """Execute a running plan to a terminal state.  Never raises."""
        with structlog.contextvars.bound_contextvars(plan_id=plan_id):
            try:
                await self._run(plan_id)
            except asyncio.CancelledError:
                # Shutdown: the plan stays Running and is resumed on restart.
                logger.warning("engine.run_interrupted")
                raise
            except Exception as exc:
                logger.error(
                    "engine.run_crashed",
                    error=f"{type(exc).__name__}: {exc}",
                    exc_info=True,
                )
                await self._fail_plan(plan_id, f"Internal error during execution: {exc}")
            finally:
                task = self._tasks.get(plan_id)
                if task is not None and task is asyncio.current_task():
                    del self._tasks[plan_id]

    async def _run(self, plan_id: str) -> None:
        plan = await self.plan_store.get(plan_id)
        if plan is None or plan.status != PlanStatus.RUNNING:
            return

        total = len(plan.parsed_steps)
        logger.info(
            "engine.run_start",
            steps=total,
            cursor=plan.current_step_index_to_execute,
        )
        for index in range(plan.current_step_index_to_execute, total):
            begun = await self._begin_step(plan_id, index)
            if begun is None:
                logger.info("engine.run_stopped", index=index, reason="plan no longer running")
                return
            plan, step = begun
            if step is None:
                # Already settled by an earlier run; the cursor moved past it.
                continue

            outcome = await self._execute_step(plan, step)

            committed = await self._commit_step(plan_id, index, outcome)
            if committed is None:
                logger.info(
                    "engine.outcome_discarded",
                    step=step.serial_number,
                    outcome=outcome.status.value,
                )
                return
            if committed.status != PlanStatus.RUNNING:
                logger.warning("engine.run_halted", step=step.serial_number, error=outcome.error)
                return

        await self._complete(plan_id)

    async def _begin_step(
        self,
        plan_id: str,
        index: int,
    ) -> tuple[OrchestrationPlan, OrchestrationStep | None] | None:
        """Mark step *index* ``In Progress``.

        Returns ``None`` when the plan is no longer running, and a ``None``
        step when the step was already settled.
        """
        skipped = False

        def mutate(plan: OrchestrationPlan) -> OrchestrationPlan | None:
            nonlocal skipped
            if plan.status != PlanStatus.RUNNING:
                return None
            step = plan.parsed_steps[index]
            total = len(plan.parsed_steps)
            if step.status.is_settled:
                skipped = True
                plan.current_step_index_to_execute = index + 1
                return plan
            if step.status == StepStatus.IN_PROGRESS:
                step.logs.append(f"[{_clock()}] Restarting interrupted step {step.serial_number}.")
            step.status = StepStatus.IN_PROGRESS
            step.started_at = utcnow()
            step.completed_at = None
            step.duration_ms = None
            step.logs.append(f"[{_clock()}] Starting step {step.serial_number}: {step.task_name}")
            plan.current_step_index_to_execute = index
            plan.overall_progress = progress_percent(index + 0.5, total)
            return plan

        updated = await self.plan_store.update(plan_id, mutate)
        if updated is None:
            return None
        if skipped:
            return updated, None
        step = updated.parsed_steps[index]
        logger.info(
            "engine.step_start",
            step=step.serial_number,
            task=step.task_name,
            agent=step.assigned_agent_name,
        )
        return updated, step

    async def _execute_step(self, plan: OrchestrationPlan, step: OrchestrationStep) -> DispatchOutcome:
        """Resolve and run one step.  Never raises."""
        if is_capability_gap(step.assigned_agent_name):
            return DispatchOutcome(
                status=StepStatus.SKIPPED,
                result=SKIPPED_RESULT,
                error=SKIPPED_ERROR,
            )

        timeout = self.step_timeout_secs
        try:
            if timeout and timeout > 0:
                return await asyncio.wait_for(self.dispatch.dispatch(plan, step), timeout=timeout)
            return await self.dispatch.dispatch(plan, step)
        except asyncio.TimeoutError:
            logger.error("engine.step_timeout", step=step.serial_number, timeout_secs=timeout)
            return DispatchOutcome.failed(f"Step timed out after {timeout:g}s.")
        except Exception as exc:
            logger.error(
                "engine.step_exception",
                step=step.serial_number,
                error=f"{type(exc).__name__}: {exc}",
            )
            return DispatchOutcome.failed(str(exc) or type(exc).__name__)

    async def _commit_step(
        self,
        plan_id: str,
        index: int,
        outcome: DispatchOutcome,
    ) -> OrchestrationPlan | None:
        """Settle step *index* with *outcome* unless the plan left ``Running``."""

        def mutate(plan: OrchestrationPlan) -> OrchestrationPlan | None:
            if plan.status != PlanStatus.RUNNING:
                return None
            step = plan.parsed_steps[index]
            if not can_step_transition(step.status, outcome.status):
                return None
            now = utcnow()
            step.status = outcome.status
            step.completed_at = now
            if step.started_at is not None:
                step.duration_ms = int((now - step.started_at).total_seconds() * 1000)
            step.result = (
                truncate_text(outcome.result, self.result_max_chars) if outcome.result else None
            )
            step.error = outcome.error
            step.task_record_id = outcome.task_record_id
            step.logs.append(f"[{_clock()}] {outcome.status.value} step {step.serial_number}.")
            plan.overall_progress = progress_percent(index + 1, len(plan.parsed_steps))
            if outcome.status == StepStatus.FAILED:
                plan.status = PlanStatus.FAILED
            else:
                plan.current_step_index_to_execute = index + 1
            return plan

        updated = await self.plan_store.update(plan_id, mutate)
        if updated is not None:
            step = updated.parsed_steps[index]
            logger.info(
                "engine.step_settled",
                step=step.serial_number,
                status=step.status.value,
                duration_ms=step.duration_ms,
            )
        return updated

    async def _complete(self, plan_id: str) -> None:
        def mutate(plan: OrchestrationPlan) -> OrchestrationPlan | None:
            if plan.status != PlanStatus.RUNNING:
                return None
            plan.status = PlanStatus.COMPLETED
            plan.overall_progress = 100
            plan.current_step_index_to_execute = len(plan.parsed_steps)
            return plan

        if await self.plan_store.update(plan_id, mutate) is not None:
            logger.info("engine.plan_completed")

    async def _fail_plan(self, plan_id: str, error: str) -> None:
        def mutate(plan: OrchestrationPlan) -> OrchestrationPlan | None:
            if plan.status != PlanStatus.RUNNING:
                return None
            plan.status = PlanStatus.FAILED
            plan.error = error
            return plan

        try:
            await self.plan_store.update(plan_id, mutate)
        except Exception as exc:
            logger.error("engine.fail_plan_failed", error=f"{type(exc).__name__}: {exc}")
