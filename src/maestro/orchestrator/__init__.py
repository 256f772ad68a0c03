"""Orchestrator sub-package – planner, plan parser, dispatch and execution engine."""

from maestro.orchestrator.dispatch import DispatchOutcome, WorkerDispatch
from maestro.orchestrator.engine import PlanEngine
from maestro.orchestrator.parser import (
    ConversationalReply,
    ParseResult,
    PlanDrafted,
    PlanMalformed,
    parse_plan,
)
from maestro.orchestrator.planner import MaestroPlanner, PlannerFailed, PlannerReply
from maestro.orchestrator.summary import build_agent_summary

__all__ = [
    "ConversationalReply",
    "DispatchOutcome",
    "MaestroPlanner",
    "ParseResult",
    "PlanDrafted",
    "PlanEngine",
    "PlanMalformed",
    "PlannerFailed",
    "PlannerReply",
    "WorkerDispatch",
    "build_agent_summary",
    "parse_plan",
]
