"""Agent Registry – maps agent definition ids to worker classes.

Specialised workers self-register via the ``@registry.register`` decorator.
Any definition without a registered class (for example a user-designed
agent) runs on the plain :class:`WorkerAgent`.

Usage in an agent module::

    from maestro.agents.registry import registry

    @registry.register("predef_my_agent")
    class MyAgent(WorkerAgent):
        ...

Usage from dispatch::

    worker = registry.create(definition, client=client, recorder=recorder)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from maestro.agents.base import WorkerAgent
from maestro.utils.logging import get_logger

if TYPE_CHECKING:
    from maestro.generation import TextGenerator
    from maestro.models import AgentDefinition
    from maestro.storage.analytics import TaskRecorder

logger = get_logger(__name__)


class AgentRegistry:
    """Registry mapping agent id → worker class."""

    def __init__(self) -> None:
        self._classes: dict[str, type[WorkerAgent]] = {}

    def register(self, agent_id: str):  # type: ignore[no-untyped-def]
        """Class decorator that registers a worker class under *agent_id*."""

        def wrapper(cls: type[WorkerAgent]) -> type[WorkerAgent]:
            if agent_id in self._classes:
                logger.warning(
                    "registry.overwrite",
                    agent_id=agent_id,
                    old=self._classes[agent_id].__name__,
                    new=cls.__name__,
                )
            self._classes[agent_id] = cls
            return cls

        return wrapper

    def get(self, agent_id: str) -> type[WorkerAgent]:
        """Return the worker class for *agent_id*, defaulting to :class:`WorkerAgent`."""
        return self._classes.get(agent_id, WorkerAgent)

    def has(self, agent_id: str) -> bool:
        return agent_id in self._classes

    def create(
        self,
        definition: AgentDefinition,
        *,
        client: TextGenerator,
        recorder: TaskRecorder | None = None,
        default_model: str | None = None,
    ) -> WorkerAgent:
        cls = self.get(definition.id)
        return cls(definition, client, recorder=recorder, default_model=default_model)

    def __repr__(self) -> str:
        return f"AgentRegistry([{', '.join(self._classes)}])"


registry = AgentRegistry()
