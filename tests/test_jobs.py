"""Tests for the job store, generation gate and job runner."""
import asyncio

import pytest

from folio.services.errors import GenerationBusyError
from folio.services.job_runner import GenerationGate, JobRunner
from folio.services.job_store import InMemoryJobStore, JobStatus


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_put_get_patch():
    store = InMemoryJobStore()
    await store.put("a", {"status": "queued"})
    patched = await store.patch("a", {"status": "running", "progress": 0.5})

    assert patched == {"status": "running", "progress": 0.5}
    assert await store.get("a") == patched
    assert await store.patch("missing", {"status": "done"}) is None


@pytest.mark.asyncio
async def test_records_expire_after_ttl():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=60, clock=clock)
    await store.put("a", {"status": "queued"})

    clock.now += 59
    assert await store.get("a") is not None
    clock.now += 2
    assert await store.get("a") is None
    assert len(store) == 0


@pytest.mark.asyncio
async def test_patch_refreshes_ttl():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=60, clock=clock)
    await store.put("a", {"status": "queued"})
    clock.now += 50
    await store.patch("a", {"status": "running"})
    clock.now += 50
    assert (await store.get("a"))["status"] == "running"


@pytest.mark.asyncio
async def test_sweep_removes_expired():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=10, clock=clock)
    await store.put("old", {"status": "done"})
    clock.now += 5
    await store.put("new", {"status": "running"})
    clock.now += 6

    assert await store.sweep() == 1
    assert await store.get("new") is not None


@pytest.mark.asyncio
async def test_cap_evicts_finished_jobs_first():
    clock = FakeClock()
    store = InMemoryJobStore(max_entries=2, clock=clock)
    await store.put("running-old", {"status": JobStatus.RUNNING.value})
    clock.now += 1
    await store.put("done", {"status": JobStatus.DONE.value})
    clock.now += 1
    await store.put("queued-new", {"status": JobStatus.QUEUED.value})

    assert len(store) == 2
    assert await store.get("done") is None
    assert await store.get("running-old") is not None


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_gate_refuses_when_full():
    gate = GenerationGate(1)
    async with gate.slot():
        assert gate.busy
        with pytest.raises(GenerationBusyError):
            gate.acquire()
    assert not gate.busy
    assert gate.in_use == 0


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_runner_records_success():
    store = InMemoryJobStore()
    gate = GenerationGate(1)
    runner = JobRunner(store, gate)
    await store.put("j1", {"status": JobStatus.QUEUED.value})

    async def work():
        return {"answer": 42}

    task = runner.start("j1", work())
    await task

    record = await store.get("j1")
    assert record["status"] == JobStatus.DONE.value
    assert record["answer"] == 42
    assert "started_at" in record and "finished_at" in record
    assert gate.in_use == 0
    assert not runner.is_running("j1")


@pytest.mark.asyncio
async def test_runner_records_failure():
    store = InMemoryJobStore()
    runner = JobRunner(store, GenerationGate(1))
    await store.put("j2", {"status": JobStatus.QUEUED.value})

    async def work():
        raise ValueError("bad input")

    await runner.start("j2", work())

    record = await store.get("j2")
    assert record["status"] == JobStatus.ERROR.value
    assert record["error"] == "bad input"
    assert record["error_type"] == "ValueError"
    assert runner.gate.in_use == 0


@pytest.mark.asyncio
async def test_runner_refuses_second_job_when_gate_full():
    store = InMemoryJobStore()
    runner = JobRunner(store, GenerationGate(1))
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return {}

    async def never():
        return {}

    task = runner.start("first", slow())
    second = never()
    with pytest.raises(GenerationBusyError):
        runner.start("second", second)
    assert runner.active == 1

    release.set()
    await task
    assert runner.active == 0


@pytest.mark.asyncio
async def test_shutdown_cancels_running_jobs():
    store = InMemoryJobStore()
    runner = JobRunner(store, GenerationGate(1))
    await store.put("j3", {"status": JobStatus.QUEUED.value})

    async def forever():
        await asyncio.Event().wait()
        return {}

    runner.start("j3", forever())
    await asyncio.sleep(0)
    await runner.shutdown()

    record = await store.get("j3")
    assert record["status"] == JobStatus.ERROR.value
    assert record["error"] == "cancelled"
    assert runner.gate.in_use == 0
