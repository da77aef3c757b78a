from __future__ import annotations

import asyncio
import random

import pytest

from ingestion.errors import ExtractionFailed, ImageValidationError
from ingestion.images import ImagePayload
from pipelines.coordinator import SUPERSEDED_REASON, CoordinatorMode, JobCoordinator, JobStatus


class ScriptedRunner:
    """Runner with per-job latency and optional failures, recording start/end order."""

    def __init__(self, latencies=None, failures=None, crashes=None, fallback=()):
        self.latencies = latencies or {}
        self.failures = failures or set()
        self.crashes = crashes or set()
        self.fallback = set(fallback)
        self.events: list[tuple[str, int]] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, job, on_fallback):
        self.events.append(("start", job.id))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if job.id in self.fallback:
                on_fallback("Tentando alternativa...")
            await asyncio.sleep(self.latencies.get(job.id, 0))
        finally:
            self.active -= 1
            self.events.append(("end", job.id))
        if job.id in self.failures:
            raise ExtractionFailed("Não foi possível ler o boletim.")
        if job.id in self.crashes:
            raise RuntimeError("boom")
        return f"result-{job.id}"


def _build(runner, settings, mode=CoordinatorMode.INDEPENDENT, **kwargs):
    applied: list[tuple[int, str]] = []
    errors: list[tuple[int, str]] = []
    notices = []
    coordinator = JobCoordinator(
        runner,
        mode=mode,
        settings=settings,
        on_result=lambda job, result: applied.append((job.id, result)),
        on_error=lambda job, exc: errors.append((job.id, exc.reason)),
        on_notice=notices.append,
        **kwargs,
    )
    return coordinator, applied, errors, notices


def test_invalid_image_is_rejected_before_a_job_exists(test_settings):
    coordinator, applied, _, _ = _build(ScriptedRunner(), test_settings)
    document = ImagePayload(data=b"\x00" * 4096, content_type="application/pdf")

    with pytest.raises(ImageValidationError):
        asyncio.run(coordinator.submit(0, document))

    assert coordinator.current_job_id(0) is None
    assert applied == []


def test_repeated_submits_inside_debounce_window_are_dropped(test_settings, png_image):
    settings = test_settings.model_copy(update={"submit_debounce_seconds": 0.5})
    now = [100.0]
    coordinator, applied, _, _ = _build(ScriptedRunner(), settings, clock=lambda: now[0])

    async def scenario():
        first = await coordinator.submit(0, png_image)
        now[0] = 100.2
        duplicate = await coordinator.submit(0, png_image)
        other_slot = await coordinator.submit(1, png_image)
        now[0] = 100.8
        later = await coordinator.submit(0, png_image)
        return first, duplicate, other_slot, later

    first, duplicate, other_slot, later = asyncio.run(scenario())

    assert duplicate is None
    assert first is not None and other_slot is not None and later is not None
    assert [job_id for job_id, _ in applied] == [first.id, other_slot.id, later.id]


def test_exclusive_mode_processes_jobs_fifo_one_at_a_time(test_settings, png_image):
    runner = ScriptedRunner(latencies={1: 0.03, 2: 0.01, 3: 0.0})
    coordinator, applied, _, notices = _build(runner, test_settings, mode=CoordinatorMode.EXCLUSIVE)

    async def scenario():
        return await asyncio.gather(*(coordinator.submit(slot, png_image) for slot in range(3)))

    jobs = asyncio.run(scenario())

    assert [job.id for job in jobs] == [1, 2, 3]
    assert runner.events == [
        ("start", 1),
        ("end", 1),
        ("start", 2),
        ("end", 2),
        ("start", 3),
        ("end", 3),
    ]
    assert runner.max_active == 1
    assert [job_id for job_id, _ in applied] == [1, 2, 3]
    assert [(notice.kind, notice.slot_index) for notice in notices] == [("queued", 1), ("queued", 2)]
    assert all(job.status is JobStatus.DONE for job in jobs)


def test_failed_job_does_not_block_the_queue(test_settings, png_image):
    runner = ScriptedRunner(failures={1}, crashes={2})
    coordinator, applied, errors, notices = _build(runner, test_settings, mode=CoordinatorMode.EXCLUSIVE)

    async def scenario():
        return await asyncio.gather(*(coordinator.submit(slot, png_image) for slot in range(3)))

    jobs = asyncio.run(scenario())

    assert [job.status for job in jobs] == [JobStatus.ERROR, JobStatus.ERROR, JobStatus.DONE]
    assert errors == [(1, "Não foi possível ler o boletim."), (2, ExtractionFailed.default_reason)]
    assert applied == [(3, "result-3")]
    assert [notice.kind for notice in notices].count("error") == 2


def test_independent_mode_runs_slots_concurrently(test_settings, png_image):
    runner = ScriptedRunner(latencies={1: 0.02, 2: 0.02})
    coordinator, applied, _, notices = _build(runner, test_settings)

    async def scenario():
        await asyncio.gather(coordinator.submit(0, png_image), coordinator.submit(1, png_image))

    asyncio.run(scenario())

    assert runner.max_active == 2
    assert notices == []
    assert sorted(applied) == [(1, "result-1"), (2, "result-2")]


def test_newer_submit_supersedes_queued_and_in_flight_jobs(test_settings, png_image):
    runner = ScriptedRunner(latencies={1: 0.03})
    coordinator, applied, _, _ = _build(runner, test_settings)

    async def scenario():
        first = asyncio.ensure_future(coordinator.submit(0, png_image))
        await asyncio.sleep(0.005)
        second = await coordinator.submit(0, png_image)
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.discarded is True
    assert first.cancel_event.is_set()
    assert second.discarded is False
    assert applied == [(2, "result-2")]
    assert coordinator.current_job_id(0) == 2


def test_concurrent_mode_drops_slow_superseded_results(test_settings, png_image):
    runner = ScriptedRunner(latencies={1: 0.05, 2: 0.0})
    coordinator, applied, _, _ = _build(runner, test_settings, mode=CoordinatorMode.CONCURRENT)

    async def scenario():
        await asyncio.gather(coordinator.submit(0, png_image), coordinator.submit(0, png_image))

    asyncio.run(scenario())

    assert runner.max_active == 2
    assert applied == [(2, "result-2")]


@pytest.mark.parametrize("seed", range(8))
@pytest.mark.parametrize("mode", [CoordinatorMode.CONCURRENT, CoordinatorMode.INDEPENDENT])
def test_only_the_latest_job_for_a_slot_is_observable(test_settings, png_image, seed, mode):
    rng = random.Random(seed)
    count = rng.randint(2, 7)
    latencies = {job_id: rng.uniform(0, 0.02) for job_id in range(1, count + 1)}
    failures = {job_id for job_id in latencies if job_id != count and rng.random() < 0.3}
    runner = ScriptedRunner(latencies=latencies, failures=failures)
    applied: list[int] = []
    coordinator = JobCoordinator(
        runner,
        mode=mode,
        settings=test_settings,
        on_result=lambda job, result: applied.append(job.id),
    )

    async def scenario():
        tasks = []
        for _ in range(count):
            tasks.append(asyncio.ensure_future(coordinator.submit(0, png_image)))
            await asyncio.sleep(rng.uniform(0, 0.01))
        return await asyncio.gather(*tasks)

    jobs = asyncio.run(scenario())

    assert applied[-1] == count
    assert applied == sorted(set(applied))
    assert coordinator.current_job_id(0) == count
    assert jobs[-1].discarded is False


def test_fallback_marks_backup_status_and_notifies(test_settings, png_image):
    runner = ScriptedRunner(fallback={1})
    statuses = []
    coordinator, _, _, notices = _build(runner, test_settings)

    async def scenario():
        task = asyncio.ensure_future(coordinator.submit(0, png_image))
        await asyncio.sleep(0)
        statuses.append(coordinator.current_job(0).status)
        statuses.append(coordinator.is_busy(0))
        await task

    asyncio.run(scenario())

    assert statuses == [JobStatus.BACKUP, True]
    assert [(notice.kind, notice.message) for notice in notices] == [("fallback", "Tentando alternativa...")]
    assert coordinator.is_busy(0) is False
    assert coordinator.is_processing_any() is False


def test_invalidate_drops_the_in_flight_result(test_settings, png_image):
    runner = ScriptedRunner(latencies={1: 0.02})
    coordinator, applied, errors, _ = _build(runner, test_settings)

    async def scenario():
        task = asyncio.ensure_future(coordinator.submit(0, png_image))
        await asyncio.sleep(0.005)
        assert coordinator.is_processing_any() is True
        coordinator.invalidate(0)
        return await task

    job = asyncio.run(scenario())

    assert job.discarded is True
    assert job.cancel_event.is_set()
    assert applied == [] and errors == []
    assert coordinator.current_job_id(0) is None


def test_skipped_queued_job_ends_in_a_terminal_state(test_settings, png_image):
    runner = ScriptedRunner(latencies={1: 0.02})
    coordinator, applied, errors, notices = _build(runner, test_settings, mode=CoordinatorMode.EXCLUSIVE)

    async def scenario():
        return await asyncio.gather(*(coordinator.submit(0, png_image) for _ in range(3)))

    first, skipped, latest = asyncio.run(scenario())

    assert (first.status, first.discarded) == (JobStatus.DONE, True)
    assert (skipped.status, skipped.discarded) == (JobStatus.ERROR, True)
    assert skipped.error == SUPERSEDED_REASON
    assert skipped.is_active is False
    assert (latest.status, latest.discarded) == (JobStatus.DONE, False)
    assert runner.events == [("start", 1), ("end", 1), ("start", 3), ("end", 3)]
    assert applied == [(3, "result-3")] and errors == []
    assert [notice.kind for notice in notices] == ["queued", "queued"]
    assert coordinator.is_processing_any() is False
