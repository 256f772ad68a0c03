"""Plan store – the persisted collection of drafted, running and past plans.

Stores hand out deep copies: a plan read from the store is never aliased
with the stored instance, so every change goes through :meth:`PlanStore.save`
or the atomic :meth:`PlanStore.update`.  One ``asyncio.Lock`` per store
serialises access.
"""

from __future__ import annotations

import asyncio
import json
import math
import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from maestro.models import OrchestrationPlan, PlanStatus
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

# Optional mutation for :meth:`PlanStore.update`; returning None leaves the
# stored plan untouched.
PlanMutator = Callable[[OrchestrationPlan], "OrchestrationPlan | None"]


@dataclass
class PlanFilter:
    status: PlanStatus | None = None
    search: str = ""

    def matches(self, plan: OrchestrationPlan) -> bool:
        if self.status is not None and plan.status != self.status:
            return False
        term = self.search.strip().lower()
        if term and term not in plan.user_goal.lower():
            return False
        return True


@dataclass
class PlanPage:
    items: list[OrchestrationPlan] = field(default_factory=list)
    page: int = 1
    per_page: int = 5
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.per_page > 0 else 0


class PlanStore(ABC):
    """Keyed plan collection with filtering and pagination."""

    def __init__(self) -> None:
        self._plans: dict[str, OrchestrationPlan] = {}
        self._lock = asyncio.Lock()

    # ── persistence hooks ────────────────────────────────────────────

    @abstractmethod
    async def open(self) -> None:
        """Load any existing plans."""
        ...

    @abstractmethod
    async def _persist(self, plans: dict[str, OrchestrationPlan]) -> None:
        """Write *plans* as the whole collection; called with the lock held.

        The in-memory collection is only replaced once this returns, so a
        failed write leaves memory matching what is on disk.
        """
        ...

    async def close(self) -> None:
        """Release resources."""

    async def _commit(self, plans: dict[str, OrchestrationPlan]) -> None:
        await self._persist(plans)
        self._plans = plans

    # ── public API ───────────────────────────────────────────────────

    async def save(self, plan: OrchestrationPlan) -> OrchestrationPlan:
        stored = plan.model_copy(deep=True)
        stored.touch()
        async with self._lock:
            await self._commit({**self._plans, stored.id: stored})
        return stored.model_copy(deep=True)

    async def get(self, plan_id: str) -> OrchestrationPlan | None:
        async with self._lock:
            plan = self._plans.get(plan_id)
            return plan.model_copy(deep=True) if plan else None

    async def update(self, plan_id: str, mutate: PlanMutator) -> OrchestrationPlan | None:
        """Atomic read-modify-write.

        *mutate* receives a private copy of the plan.  When it returns a plan
        that plan replaces the stored one; when it returns ``None`` nothing is
        written.  Returns the stored copy, or ``None`` if the plan is missing
        or the mutation declined.
        """
        async with self._lock:
            current = self._plans.get(plan_id)
            if current is None:
                return None
            updated = mutate(current.model_copy(deep=True))
            if updated is None:
                return None
            updated.touch()
            await self._commit({**self._plans, plan_id: updated})
            return updated.model_copy(deep=True)

    async def delete(self, plan_id: str) -> bool:
        async with self._lock:
            if plan_id not in self._plans:
                return False
            await self._commit({k: v for k, v in self._plans.items() if k != plan_id})
        return True

    async def list(self, plan_filter: PlanFilter | None = None) -> list[OrchestrationPlan]:
        """Matching plans, newest first."""
        plan_filter = plan_filter or PlanFilter()
        async with self._lock:
            plans = [p.model_copy(deep=True) for p in self._plans.values() if plan_filter.matches(p)]
        return sorted(plans, key=lambda p: p.created_at, reverse=True)

    async def page(
        self,
        plan_filter: PlanFilter | None = None,
        page: int = 1,
        per_page: int = 5,
    ) -> PlanPage:
        plans = await self.list(plan_filter)
        per_page = max(1, per_page)
        page = max(1, page)
        start = (page - 1) * per_page
        return PlanPage(
            items=plans[start : start + per_page],
            page=page,
            per_page=per_page,
            total=len(plans),
        )


class InMemoryPlanStore(PlanStore):
    async def open(self) -> None:
        pass

    async def _persist(self, plans: dict[str, OrchestrationPlan]) -> None:
        pass


class JsonFilePlanStore(PlanStore):
    """Whole-collection JSON file, rewritten atomically on every change."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)

    async def open(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("plan_store.load_failed", path=str(self.path), error=str(exc))
            return
        async with self._lock:
            for item in raw:
                try:
                    plan = OrchestrationPlan.model_validate(item)
                except ValueError as exc:
                    logger.warning("plan_store.bad_entry", error=str(exc))
                    continue
                self._plans[plan.id] = plan
        logger.info("plan_store.loaded", path=str(self.path), plans=len(self._plans))

    async def _persist(self, plans: dict[str, OrchestrationPlan]) -> None:
        payload = [p.model_dump(mode="json") for p in plans.values()]
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
