"""Agents sub-package – worker agents bound to stored definitions.

Importing this module triggers registration of the specialised workers via
``@registry.register`` decorators.
"""

from maestro.agents.base import AgentInvocation, WorkerAgent
from maestro.agents.builtin import MAESTRO_ID, builtin_agents
from maestro.agents.maestro import MaestroAgent
from maestro.agents.registry import registry
from maestro.agents.writer import ContentWriterAgent

__all__ = [
    "AgentInvocation",
    "WorkerAgent",
    "MaestroAgent",
    "ContentWriterAgent",
    "MAESTRO_ID",
    "builtin_agents",
    "registry",
]
