"""Storage sub-package – plan store, agent store and analytics recorder."""

from maestro.storage.agents import AgentStore, InMemoryAgentStore, JsonFileAgentStore
from maestro.storage.analytics import (
    InMemoryTaskRecorder,
    JsonlTaskRecorder,
    NullTaskRecorder,
    TaskRecorder,
    approx_tokens,
    record_safely,
)
from maestro.storage.plans import (
    InMemoryPlanStore,
    JsonFilePlanStore,
    PlanFilter,
    PlanPage,
    PlanStore,
)

__all__ = [
    "AgentStore",
    "InMemoryAgentStore",
    "JsonFileAgentStore",
    "TaskRecorder",
    "NullTaskRecorder",
    "InMemoryTaskRecorder",
    "JsonlTaskRecorder",
    "approx_tokens",
    "record_safely",
    "PlanStore",
    "InMemoryPlanStore",
    "JsonFilePlanStore",
    "PlanFilter",
    "PlanPage",
]
