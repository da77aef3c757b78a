"""Single-flight scheduling of slip extraction jobs with per-slot supersession."""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Generic, TypeVar

from loguru import logger

from app.core.config import Settings, get_settings
from ingestion.errors import ExtractionFailed
from ingestion.images import ImagePayload, validate_image

T = TypeVar("T")

QUEUED_NOTICE = "Na fila. A imagem será lida em seguida."
SUPERSEDED_REASON = "Substituída por uma imagem mais recente."


class CoordinatorMode(str, Enum):
    EXCLUSIVE = "exclusive"
    INDEPENDENT = "independent"
    CONCURRENT = "concurrent"


class JobStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    BACKUP = "backup"
    DONE = "done"
    ERROR = "error"


_ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.ANALYZING, JobStatus.BACKUP)


@dataclass(slots=True, eq=False)
class ProcessingJob:
    """One submitted image; its id is the supersession token for the slot."""

    id: int
    slot_index: int
    image: ImagePayload
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    discarded: bool = False
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_active(self) -> bool:
        return self.status in _ACTIVE_STATUSES


@dataclass(slots=True, frozen=True)
class JobNotice:
    kind: str
    slot_index: int
    message: str


JobRunner = Callable[[ProcessingJob, Callable[[str], None]], Awaitable[T]]


class JobCoordinator(Generic[T]):
    """Dispatches extraction jobs per scope and drops superseded completions.

    ``runner`` performs the extraction for a job and receives a callback to
    announce the backup attempt. ``on_result`` and ``on_error`` are invoked only
    while the job is still the current one for its slot.
    """

    def __init__(
        self,
        runner: JobRunner[T],
        *,
        mode: CoordinatorMode | str = CoordinatorMode.INDEPENDENT,
        settings: Settings | None = None,
        on_result: Callable[[ProcessingJob, T], None] | None = None,
        on_error: Callable[[ProcessingJob, ExtractionFailed], None] | None = None,
        on_notice: Callable[[JobNotice], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.mode = CoordinatorMode(mode)
        self.settings = settings or get_settings()
        self._runner = runner
        self._on_result = on_result
        self._on_error = on_error
        self._on_notice = on_notice
        self._clock = clock
        self._ids = itertools.count(1)
        self._current: Dict[int, ProcessingJob] = {}
        self._last_submit: Dict[int, float] = {}
        self._locks: Dict[int | None, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Slot state
    # ------------------------------------------------------------------
    def current_job_id(self, slot_index: int) -> int | None:
        job = self._current.get(slot_index)
        return job.id if job is not None else None

    def current_job(self, slot_index: int) -> ProcessingJob | None:
        return self._current.get(slot_index)

    def is_current(self, job: ProcessingJob) -> bool:
        return self.current_job_id(job.slot_index) == job.id

    def is_busy(self, slot_index: int) -> bool:
        job = self._current.get(slot_index)
        return job is not None and job.is_active

    def is_processing_any(self) -> bool:
        return any(job.is_active for job in self._current.values())

    def invalidate(self, slot_index: int) -> None:
        """Supersede whatever job the slot currently owns."""

        job = self._current.pop(slot_index, None)
        if job is not None:
            self._supersede(job)
        self._last_submit.pop(slot_index, None)

    def _supersede(self, job: ProcessingJob) -> None:
        if job.is_active:
            job.discarded = True
        job.cancel_event.set()
        logger.debug("Job {} for slot {} superseded", job.id, job.slot_index)

    def _notify(self, kind: str, job: ProcessingJob, message: str) -> None:
        if self._on_notice is not None:
            self._on_notice(JobNotice(kind=kind, slot_index=job.slot_index, message=message))

    def _scope_lock(self, slot_index: int) -> asyncio.Lock | None:
        if self.mode is CoordinatorMode.CONCURRENT:
            return None
        key = None if self.mode is CoordinatorMode.EXCLUSIVE else slot_index
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    async def submit(self, slot_index: int, image: ImagePayload) -> ProcessingJob | None:
        """Validate, debounce and run an extraction for ``slot_index``.

        Returns ``None`` when the submit fell inside the slot's debounce window,
        otherwise the job once it has been processed or skipped.
        """

        validate_image(image, settings=self.settings)

        now = self._clock()
        last = self._last_submit.get(slot_index)
        if last is not None and now - last < self.settings.submit_debounce_seconds:
            logger.debug("Dropping duplicate submit for slot {} inside debounce window", slot_index)
            return None
        self._last_submit[slot_index] = now

        job = ProcessingJob(id=next(self._ids), slot_index=slot_index, image=image)
        previous = self._current.get(slot_index)
        if previous is not None:
            self._supersede(previous)
        self._current[slot_index] = job
        logger.info("Job {} accepted for slot {} ({} bytes)", job.id, slot_index, image.size)

        lock = self._scope_lock(slot_index)
        if lock is None:
            await self._run(job)
            return job

        if lock.locked():
            self._notify("queued", job, QUEUED_NOTICE)
        async with lock:
            await self._run(job)
        return job

    async def _run(self, job: ProcessingJob) -> None:
        if not self.is_current(job):
            job.discarded = True
            job.status = JobStatus.ERROR
            job.error = SUPERSEDED_REASON
            logger.debug("Skipping superseded job {} for slot {}", job.id, job.slot_index)
            return

        job.status = JobStatus.ANALYZING

        def _on_fallback(message: str) -> None:
            if self.is_current(job):
                job.status = JobStatus.BACKUP
                self._notify("fallback", job, message)

        try:
            result = await self._runner(job, _on_fallback)
        except ExtractionFailed as exc:
            self._fail(job, exc)
            return
        except Exception:  # noqa: BLE001 - a crashed job must not block the queue
            logger.exception("Job {} for slot {} crashed", job.id, job.slot_index)
            self._fail(job, ExtractionFailed())
            return

        job.status = JobStatus.DONE
        if not self.is_current(job):
            job.discarded = True
            logger.debug("Dropping result of superseded job {}", job.id)
            return
        if self._on_result is not None:
            self._on_result(job, result)

    def _fail(self, job: ProcessingJob, exc: ExtractionFailed) -> None:
        job.status = JobStatus.ERROR
        job.error = exc.reason
        if not self.is_current(job):
            job.discarded = True
            return
        logger.warning("Job {} for slot {} failed: {}", job.id, job.slot_index, exc.reason)
        self._notify("error", job, exc.reason)
        if self._on_error is not None:
            self._on_error(job, exc)


__all__ = [
    "CoordinatorMode",
    "JobCoordinator",
    "JobNotice",
    "JobStatus",
    "ProcessingJob",
    "QUEUED_NOTICE",
    "SUPERSEDED_REASON",
]
