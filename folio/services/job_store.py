"""
Short-lived status records for asynchronous generation jobs.

Usage
-----
    store = InMemoryJobStore(ttl_seconds=3600, max_entries=25)
    await store.put(job_id, {"status": JobStatus.QUEUED.value})
    await store.patch(job_id, {"status": JobStatus.RUNNING.value})
    record = await store.get(job_id)

Records expire ``ttl`` seconds after their last write.  When more than
``max_entries`` records exist the oldest are dropped, finished jobs first.
``run_sweeper`` is started by the application lifespan to purge expired
records periodically.
"""
from __future__ import annotations

import abc
import asyncio
import dataclasses
import enum
import logging
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job status enum
# ---------------------------------------------------------------------------

class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


_FINISHED = frozenset({JobStatus.DONE.value, JobStatus.ERROR.value})


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class JobStore(abc.ABC):
    """Key/value store for job records with per-record time-to-live."""

    @abc.abstractmethod
    async def put(self, job_id: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        ...

    @abc.abstractmethod
    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def patch(
        self, job_id: str, partial: Dict[str, Any], ttl: Optional[float] = None
    ) -> Optional[Dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def delete(self, job_id: str) -> bool:
        ...

    @abc.abstractmethod
    async def sweep(self) -> int:
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class _Entry:
    value: Dict[str, Any]
    expires_at: float
    created_at: float


class InMemoryJobStore(JobStore):
    """Process-local store; good enough for a single worker."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 25,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _expiry(self, ttl: Optional[float]) -> float:
        return self._clock() + (self.ttl_seconds if ttl is None else ttl)

    async def put(self, job_id: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        now = self._clock()
        self._entries[job_id] = _Entry(dict(value), self._expiry(ttl), now)
        self._prune()

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(job_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(job_id, None)
            return None
        return dict(entry.value)

    async def patch(
        self, job_id: str, partial: Dict[str, Any], ttl: Optional[float] = None
    ) -> Optional[Dict[str, Any]]:
        """Merge *partial* into an existing record; ``None`` if it is gone."""
        if await self.get(job_id) is None:
            return None
        entry = self._entries[job_id]
        entry.value.update(partial)
        entry.expires_at = self._expiry(ttl)
        return dict(entry.value)

    async def delete(self, job_id: str) -> bool:
        return self._entries.pop(job_id, None) is not None

    async def sweep(self) -> int:
        """Drop expired records, then enforce ``max_entries``.  Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired) + self._prune()

    def _prune(self) -> int:
        removed = 0
        while len(self._entries) > self.max_entries:
            by_age = sorted(self._entries.items(), key=lambda kv: kv[1].created_at)
            finished = [k for k, e in by_age if e.value.get("status") in _FINISHED]
            victim = finished[0] if finished else by_age[0][0]
            del self._entries[victim]
            removed += 1
        if removed:
            logger.info("job store: pruned %d record(s) over the %d-entry cap", removed, self.max_entries)
        return removed


async def run_sweeper(store: JobStore, interval: float) -> None:
    """Sweep *store* every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = await store.sweep()
        if removed:
            logger.info("job sweeper: removed %d record(s)", removed)
