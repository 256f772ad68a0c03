"""Agent store – keyed collection of agent definitions.

Lookups by ``name`` are exact and case-sensitive; the name is what a plan
step refers to.  Definitions are returned as copies so a running plan works
on a read-only snapshot.
"""

from __future__ import annotations

import asyncio
import json
import os
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from maestro.models import AgentDefinition
from maestro.utils.logging import get_logger

logger = get_logger(__name__)


class AgentStore(ABC):
    def __init__(self) -> None:
        self._agents: dict[str, AgentDefinition] = {}
        self._lock = asyncio.Lock()

    @abstractmethod
    async def open(self) -> None:
        ...

    @abstractmethod
    async def _persist(self, agents: dict[str, AgentDefinition]) -> None:
        """Write *agents* as the whole collection; called with the lock held."""
        ...

    async def close(self) -> None:
        """Release resources."""

    async def _commit(self, agents: dict[str, AgentDefinition]) -> None:
        await self._persist(agents)
        self._agents = agents

    async def list_agents(self) -> list[AgentDefinition]:
        async with self._lock:
            return [a.model_copy(deep=True) for a in self._agents.values()]

    async def get_agent(self, name: str) -> AgentDefinition | None:
        async with self._lock:
            for agent in self._agents.values():
                if agent.name == name:
                    return agent.model_copy(deep=True)
        return None

    async def get_agent_by_id(self, agent_id: str) -> AgentDefinition | None:
        async with self._lock:
            agent = self._agents.get(agent_id)
            return agent.model_copy(deep=True) if agent else None

    async def save(self, agent: AgentDefinition) -> AgentDefinition:
        stored = agent.model_copy(deep=True)
        async with self._lock:
            clash = next(
                (a for a in self._agents.values() if a.name == stored.name and a.id != stored.id),
                None,
            )
            if clash is not None:
                logger.warning("agent_store.duplicate_name", name=stored.name, existing_id=clash.id)
            await self._commit({**self._agents, stored.id: stored})
        return stored.model_copy(deep=True)

    async def delete(self, agent_id: str) -> bool:
        async with self._lock:
            if agent_id not in self._agents:
                return False
            await self._commit({k: v for k, v in self._agents.items() if k != agent_id})
        return True

    async def seed(self, agents: Iterable[AgentDefinition]) -> int:
        """Insert *agents* whose id is not stored yet; returns how many were added."""
        async with self._lock:
            staged = dict(self._agents)
            for agent in agents:
                if agent.id not in staged:
                    staged[agent.id] = agent.model_copy(deep=True)
            added = len(staged) - len(self._agents)
            if added:
                await self._commit(staged)
        return added


class InMemoryAgentStore(AgentStore):
    def __init__(self, agents: Iterable[AgentDefinition] = ()) -> None:
        super().__init__()
        for agent in agents:
            self._agents[agent.id] = agent.model_copy(deep=True)

    async def open(self) -> None:
        pass

    async def _persist(self, agents: dict[str, AgentDefinition]) -> None:
        pass


class JsonFileAgentStore(AgentStore):
    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)

    async def open(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("agent_store.load_failed", path=str(self.path), error=str(exc))
            return
        async with self._lock:
            for item in raw:
                try:
                    agent = AgentDefinition.model_validate(item)
                except ValueError as exc:
                    logger.warning("agent_store.bad_entry", error=str(exc))
                    continue
                self._agents[agent.id] = agent

    async def _persist(self, agents: dict[str, AgentDefinition]) -> None:
        payload = [a.model_dump(mode="json") for a in agents.values()]
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
