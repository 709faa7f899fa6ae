"""Process-memory stores for run status and background jobs.

Both are lost on restart. Status entries are last-write-wins per session
key; jobs are purged opportunistically once older than the TTL.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from loguru import logger

from marketseg.config import settings
from marketseg.models.events import ProcessingPhase, ProcessingStatus
from marketseg.services.cost_tracker import CostSummary


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SessionState:
    status: ProcessingStatus | None = None
    costs: CostSummary | None = None
    updated_at: datetime = field(default_factory=_utcnow)


class StatusStore:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionState] = {}

    def _state(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = SessionState()
            self._sessions[session_id] = state
        return state

    def update(self, session_id: str, status: ProcessingStatus) -> None:
        state = self._state(session_id)
        state.status = status
        state.updated_at = _utcnow()
        logger.debug(f"[StatusStore] {session_id}: {status.phase.value} {status.progress}% - {status.message}")

    def fail(self, session_id: str, message: str) -> ProcessingStatus:
        """Record the terminal error phase, keeping the last reported progress."""
        previous = self.get(session_id)
        status = ProcessingStatus(
            phase=ProcessingPhase.ERROR,
            message=message,
            progress=previous.progress if previous else 0,
        )
        self.update(session_id, status)
        return status

    def get(self, session_id: str) -> ProcessingStatus | None:
        state = self._sessions.get(session_id)
        return state.status if state else None

    def set_costs(self, session_id: str, summary: CostSummary) -> None:
        self._state(session_id).costs = summary

    def get_costs(self, session_id: str) -> CostSummary | None:
        state = self._sessions.get(session_id)
        return state.costs if state else None

    def snapshot(self, session_id: str) -> dict[str, Any]:
        """``{phase, message, progress, costs}`` as pushed to clients; keys absent until known."""
        data: dict[str, Any] = {}
        status = self.get(session_id)
        if status is not None:
            data.update(status.to_dict())
        costs = self.get_costs(session_id)
        data["costs"] = (costs or CostSummary()).to_dict()
        return data

    def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(slots=True)
class Job:
    id: str
    status: JobStatus = JobStatus.PROCESSING
    result: dict[str, Any] | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=_utcnow)


class JobStore:
    def __init__(self, ttl_seconds: int | None = None, clock: Callable[[], datetime] = _utcnow):
        self.ttl = timedelta(seconds=settings.job_ttl_seconds if ttl_seconds is None else ttl_seconds)
        self._clock = clock
        self._jobs: dict[str, Job] = {}

    def create(self, job_id: str | None = None) -> Job:
        job = Job(id=job_id or uuid.uuid4().hex[:12], started_at=self._clock())
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def complete(self, job_id: str, result: dict[str, Any]) -> None:
        job = self._jobs.get(job_id)
        if job is not None:
            job.status = JobStatus.COMPLETED
            job.result = result

    def fail(self, job_id: str, error: str) -> None:
        job = self._jobs.get(job_id)
        if job is not None:
            job.status = JobStatus.ERROR
            job.error = error

    def purge_expired(self, statuses: StatusStore | None = None) -> int:
        """Drop jobs older than the TTL, along with their entries in ``statuses``."""
        cutoff = self._clock() - self.ttl
        expired = [job_id for job_id, job in self._jobs.items() if job.started_at < cutoff]
        for job_id in expired:
            del self._jobs[job_id]
            if statuses is not None:
                statuses.clear(job_id)
        if expired:
            logger.info(f"[JobStore] Purged {len(expired)} expired jobs")
        return len(expired)

    def __len__(self) -> int:
        return len(self._jobs)


status_store = StatusStore()
job_store = JobStore()
