# FILE: blender_agent/jobs/queue.py
"""
Async generation job queue.

Jobs run strictly FIFO on a single worker task, so at most one queued
generation talks to Blender at a time. The transport's single-flight rule
still applies to requests that bypass the queue.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from blender_agent.errors import AgentError

logger = logging.getLogger(__name__)

JobRunner = Callable[[Dict[str, Any], str], Awaitable[Any]]


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GenerationJob:
    id: str
    user_id: str
    payload: Dict[str, Any]
    status: JobStatus = JobStatus.QUEUED
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class GenerationJobQueue:
    def __init__(self, runner: JobRunner, max_retained: int = 500):
        self._runner = runner
        self.max_retained = max_retained
        self._jobs: Dict[str, GenerationJob] = {}
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self.running:
            logger.warning("[jobs] worker already running")
            return
        self._task = asyncio.create_task(self._worker())
        logger.info("[jobs] worker started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[jobs] worker stopped")

    def submit(self, payload: Dict[str, Any], user_id: str) -> GenerationJob:
        job = GenerationJob(id=str(uuid.uuid4()), user_id=user_id, payload=dict(payload))
        self._jobs[job.id] = job
        self._queue.put_nowait(job.id)
        self._prune()
        logger.info("[jobs] queued %s (depth=%d)", job.id, self.depth)
        return job

    def get(self, job_id: str, user_id: str) -> Optional[GenerationJob]:
        """A job is visible only to the user who submitted it."""
        job = self._jobs.get(job_id)
        if job is None or job.user_id != user_id:
            return None
        return job

    def list_for_user(self, user_id: str) -> List[GenerationJob]:
        return [job for job in self._jobs.values() if job.user_id == user_id]

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                job = self._jobs.get(job_id)
                if job is not None:
                    await self._run_job(job)
            finally:
                self._queue.task_done()

    async def _run_job(self, job: GenerationJob) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = _now()
        try:
            outcome = await self._runner(job.payload, job.user_id)
            job.result = outcome.to_dict() if hasattr(outcome, "to_dict") else outcome
            job.status = JobStatus.SUCCEEDED
        except AgentError as exc:
            job.error = exc.to_dict()
            job.status = JobStatus.FAILED
            logger.warning("[jobs] %s failed: %s", job.id, exc.message)
        except Exception as exc:
            logger.exception("[jobs] %s crashed: %s", job.id, exc)
            job.error = {"error": str(exc), "kind": "INTERNAL"}
            job.status = JobStatus.FAILED
        finally:
            job.finished_at = _now()

    def _prune(self) -> None:
        finished = [
            job for job in self._jobs.values() if job.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)
        ]
        overflow = len(self._jobs) - self.max_retained
        for job in sorted(finished, key=lambda j: j.created_at)[: max(0, overflow)]:
            del self._jobs[job.id]


__all__ = ["JobStatus", "GenerationJob", "GenerationJobQueue"]
