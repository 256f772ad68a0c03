"""Exception hierarchy for the orchestration API surface.

These are raised by API-level calls (approve, cancel, delete, lookups).
The plan run loop itself never raises; it records failures on the plan.
"""

from __future__ import annotations


class MaestroError(Exception):
    """Base class for all orchestrator errors."""


class PlanNotFoundError(MaestroError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(f"Plan '{plan_id}' not found")
        self.plan_id = plan_id


class InvalidTransitionError(MaestroError):
    """Raised when a plan or step is asked to move to a state it cannot reach."""

    def __init__(self, entity: str, current: str, requested: str) -> None:
        super().__init__(f"{entity} cannot transition from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class AgentResolutionError(MaestroError):
    """An assigned agent / step name did not match any known worker."""


class NoStepsError(MaestroError):
    """A worker agent has no steps to run."""


class PlannerUnavailableError(MaestroError):
    """The planner agent definition is missing or has no steps."""
