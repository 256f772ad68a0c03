"""Task execution recorder – best-effort analytics for agent invocations.

Every planner or worker call produces one :class:`TaskExecutionRecord`.
Recording is fire-and-forget: :func:`record_safely` logs and swallows any
recorder failure so that analytics can never fail the underlying operation.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

from maestro.models import AgentUsageStats, TaskExecutionRecord, TaskRecordStatus
from maestro.utils.logging import get_logger

logger = get_logger(__name__)


def approx_tokens(text: str | None) -> int:
    """Rough token estimate: whitespace-separated word count."""
    if not text:
        return 0
    return len(text.split())


def _finalise(record: TaskExecutionRecord) -> TaskExecutionRecord:
    if record.completed_at is not None and record.duration_ms is None:
        delta = record.completed_at - record.started_at
        record = record.model_copy(update={"duration_ms": int(delta.total_seconds() * 1000)})
    return record


class TaskRecorder(ABC):
    """Abstract sink for task execution records."""

    @abstractmethod
    async def record(self, record: TaskExecutionRecord) -> TaskExecutionRecord:
        """Persist *record* and return the stored copy (with duration filled)."""
        ...

    @abstractmethod
    async def list_records(self, agent_id: str | None = None) -> list[TaskExecutionRecord]:
        """Return records, newest first, optionally limited to one agent."""
        ...

    async def agent_stats(self, agent_id: str) -> AgentUsageStats:
        records = await self.list_records(agent_id)
        stats = AgentUsageStats(agent_id=agent_id, total_runs=len(records))
        durations: list[int] = []
        for rec in records:
            if rec.status == TaskRecordStatus.COMPLETED:
                stats.completed_runs += 1
            elif rec.status == TaskRecordStatus.FAILED:
                stats.failed_runs += 1
            if rec.duration_ms is not None:
                durations.append(rec.duration_ms)
            stats.approx_input_tokens += rec.approx_input_tokens
            stats.approx_output_tokens += rec.approx_output_tokens
        if records:
            stats.success_rate = round(stats.completed_runs / len(records) * 100, 1)
        if durations:
            stats.avg_duration_ms = round(sum(durations) / len(durations), 1)
        return stats

    async def close(self) -> None:
        """Release resources."""


class NullTaskRecorder(TaskRecorder):
    """No-op implementation when analytics are disabled."""

    async def record(self, record: TaskExecutionRecord) -> TaskExecutionRecord:
        return _finalise(record)

    async def list_records(self, agent_id: str | None = None) -> list[TaskExecutionRecord]:
        return []


class InMemoryTaskRecorder(TaskRecorder):
    def __init__(self) -> None:
        self._records: list[TaskExecutionRecord] = []

    async def record(self, record: TaskExecutionRecord) -> TaskExecutionRecord:
        stored = _finalise(record)
        self._records.append(stored)
        return stored

    async def list_records(self, agent_id: str | None = None) -> list[TaskExecutionRecord]:
        records = [r for r in self._records if agent_id is None or r.agent_id == agent_id]
        return sorted(records, key=lambda r: r.started_at, reverse=True)


class JsonlTaskRecorder(TaskRecorder):
    """Append-only JSON Lines file, one record per line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def record(self, record: TaskExecutionRecord) -> TaskExecutionRecord:
        stored = _finalise(record)
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(stored.model_dump_json() + "\n")
        return stored

    async def list_records(self, agent_id: str | None = None) -> list[TaskExecutionRecord]:
        if not self.path.exists():
            return []
        records: list[TaskExecutionRecord] = []
        async with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                rec = TaskExecutionRecord.model_validate_json(line)
            except ValueError as exc:
                logger.warning("analytics.bad_line", path=str(self.path), line=lineno, error=str(exc))
                continue
            if agent_id is None or rec.agent_id == agent_id:
                records.append(rec)
        return sorted(records, key=lambda r: r.started_at, reverse=True)


async def record_safely(
    recorder: TaskRecorder | None,
    record: TaskExecutionRecord,
) -> TaskExecutionRecord | None:
    """Record *record*, never letting a recorder failure escape."""
    if recorder is None:
        return None
    try:
        return await recorder.record(record)
    except Exception as exc:
        logger.warning(
            "analytics.record_failed",
            agent_id=record.agent_id,
            step=record.step_name,
            error=f"{type(exc).__name__}: {exc}",
        )
        return None
