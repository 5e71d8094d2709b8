"""
Background execution of generation jobs.

``GenerationGate`` caps how many generations run at once in this process;
callers that find it full get ``GenerationBusyError`` immediately instead of
queueing.  ``JobRunner`` launches a job coroutine as an ``asyncio.Task`` and
records its outcome in the job store.

Usage
-----
    runner = JobRunner(store, GenerationGate(1))
    runner.start(job_id, build_document(job_id))
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Coroutine, Dict

from folio.services.errors import GenerationBusyError
from folio.services.job_store import JobStatus, JobStore

logger = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Concurrency gate
# ---------------------------------------------------------------------------

class GenerationGate:
    """Non-blocking semaphore: a slot is either free now or the caller is refused."""

    def __init__(self, limit: int = 1) -> None:
        self.limit = max(1, limit)
        self._in_use = 0

    @property
    def busy(self) -> bool:
        return self._in_use >= self.limit

    @property
    def in_use(self) -> int:
        return self._in_use

    def acquire(self) -> None:
        if self.busy:
            raise GenerationBusyError(f"{self._in_use} generation(s) already running")
        self._in_use += 1

    def release(self) -> None:
        self._in_use = max(0, self._in_use - 1)

    @contextlib.asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

class JobRunner:
    """Manages background generation tasks keyed by job id."""

    def __init__(self, store: JobStore, gate: GenerationGate) -> None:
        self.store = store
        self.gate = gate
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    @property
    def active(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    def start(self, job_id: str, coro: Coroutine[Any, Any, Dict[str, Any]]) -> asyncio.Task:
        """
        Launch *coro* for *job_id*.  The gate slot is taken synchronously so
        a full gate raises ``GenerationBusyError`` before anything is
        scheduled.  *coro* returns the fields to merge into the record on
        success; any exception marks the job as ``error``.
        """
        try:
            self.gate.acquire()
        except GenerationBusyError:
            coro.close()
            raise

        async def _wrapper() -> None:
            try:
                await self.store.patch(job_id, {"status": JobStatus.RUNNING.value, "started_at": utcnow_iso()})
                result = await coro
                await self.store.patch(
                    job_id,
                    {**result, "status": JobStatus.DONE.value, "finished_at": utcnow_iso()},
                )
                logger.info("Job %s finished", job_id)
            except asyncio.CancelledError:
                await self.store.patch(
                    job_id,
                    {"status": JobStatus.ERROR.value, "error": "cancelled", "finished_at": utcnow_iso()},
                )
                raise
            except Exception as exc:
                logger.error("Job %s failed: %s", job_id, exc, exc_info=True)
                await self.store.patch(
                    job_id,
                    {
                        "status": JobStatus.ERROR.value,
                        "error": str(exc)[:300] or exc.__class__.__name__,
                        "error_type": exc.__class__.__name__,
                        "trace_tail": traceback.format_exc(limit=3)[-800:],
                        "finished_at": utcnow_iso(),
                    },
                )
            finally:
                self.gate.release()

        task = asyncio.create_task(_wrapper())
        self._tasks[job_id] = task
        # Cleanup reference when done
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))
        logger.info("Job %s started", job_id)
        return task

    async def shutdown(self) -> None:
        """Cancel every running job (used on application shutdown)."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
