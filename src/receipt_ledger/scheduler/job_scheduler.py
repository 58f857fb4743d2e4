"""
In-memory job scheduler.

A single cooperative loop picks the pending job with the earliest
``next_run_at`` that is due, runs its handler, and either discards it
(success), reschedules it with exponential backoff, or, once
``max_attempts`` is reached, discards it and reports it to ``on_exhausted``.

At most one handler runs at a time. There is no handler timeout: a handler
that hangs stalls every other job.
"""

import itertools
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..config import SchedulerConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_MS = 2000
DEFAULT_POLL_INTERVAL_SECONDS = 1.0


class JobKind(str, Enum):
    """Kinds of work the pipeline schedules."""

    RECEIPT = "receipt"
    IMPORT = "import"


class JobStatus(str, Enum):
    """Lifecycle of a submitted job as seen through its handle."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class JobExhausted(Exception):
    """A job failed on every allowed attempt."""

    def __init__(self, job: "Job", last_error: BaseException):
        self.job = job
        self.last_error = last_error
        super().__init__(
            f"Job {job.id} ({job.kind.value}) failed after {job.attempts} attempt(s): {last_error}"
        )


@dataclass
class Job:
    """A unit of scheduled work. Owned by the scheduler."""

    id: str
    kind: JobKind
    payload: dict[str, Any]
    max_attempts: int
    backoff_base_ms: int
    next_run_at: float
    attempts: int = 0

    def backoff_seconds(self) -> float:
        """Delay before the next attempt, given the attempts made so far."""
        return self.backoff_base_ms * (2 ** (self.attempts - 1)) / 1000.0


@dataclass
class JobHandle:
    """Read-only view of a job returned to the submitter."""

    id: str
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    error: BaseException | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status is not JobStatus.PENDING


Handler = Callable[[dict[str, Any]], Any]
ExhaustedCallback = Callable[[Job, BaseException], None]


class JobScheduler:
    """
    Retrying single-process task queue.

    Usage:
        scheduler = JobScheduler(on_exhausted=mark_failed)
        scheduler.register(JobKind.RECEIPT, receipt_worker.handle)
        scheduler.submit("receipt", {"record_id": 1, ...})
        scheduler.start()       # background loop
        scheduler.run_until_idle()  # or drain in the calling thread
    """

    def __init__(
        self,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS,
        on_exhausted: ExhaustedCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] | None = None,
    ):
        """
        Args:
            poll_interval_seconds: Wait between scans when no job is due
            max_attempts: Default attempts per job
            backoff_base_ms: Default first retry delay
            on_exhausted: Called with (job, last_error) when a job gives up
            clock: Monotonic time source in seconds
            sleep: Wait function; defaults to time.sleep when draining and to a
                wait that stop() interrupts in the background loop
        """
        self.poll_interval_seconds = poll_interval_seconds
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.on_exhausted = on_exhausted
        self._clock = clock
        self._stop_event = threading.Event()
        self._sleep = sleep

        self._handlers: dict[JobKind, Handler] = {}
        self._jobs: list[Job] = []
        self._handles: dict[str, JobHandle] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_config(
        cls, config: SchedulerConfig, on_exhausted: ExhaustedCallback | None = None
    ) -> "JobScheduler":
        return cls(
            poll_interval_seconds=config.poll_interval_seconds,
            max_attempts=config.max_attempts,
            backoff_base_ms=config.backoff_base_ms,
            on_exhausted=on_exhausted,
        )

    def register(self, kind: JobKind | str, handler: Handler) -> None:
        """Register the handler for a job kind (replaces any previous one)."""
        self._handlers[JobKind(kind)] = handler

    def submit(
        self,
        kind: JobKind | str,
        payload: dict[str, Any],
        max_attempts: int | None = None,
        backoff_base_ms: int | None = None,
    ) -> JobHandle:
        """
        Queue a job to run as soon as the loop reaches it.

        Raises:
            ValueError: If kind is not a known JobKind or max_attempts < 1
        """
        kind = JobKind(kind)
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        job = Job(
            id=f"job-{next(self._ids)}",
            kind=kind,
            payload=payload,
            max_attempts=attempts,
            backoff_base_ms=self.backoff_base_ms if backoff_base_ms is None else backoff_base_ms,
            next_run_at=self._clock(),
        )
        handle = JobHandle(id=job.id, kind=kind)

        with self._lock:
            self._jobs.append(job)
            self._handles[job.id] = handle

        logger.info(f"Job queued: {job.id} kind={kind.value}")
        return handle

    def pending_count(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _take_next_due(self, now: float) -> Job | None:
        """Remove and return the due job with the earliest next_run_at."""
        with self._lock:
            due = [job for job in self._jobs if job.next_run_at <= now]
            if not due:
                return None
            job = min(due, key=lambda j: j.next_run_at)
            self._jobs.remove(job)
            return job

    def seconds_until_next(self) -> float | None:
        """Time until the earliest pending job is due; None if nothing is pending."""
        with self._lock:
            if not self._jobs:
                return None
            earliest = min(job.next_run_at for job in self._jobs)
        return max(0.0, earliest - self._clock())

    def run_once(self) -> bool:
        """Run at most one due job. Returns True if a job was dispatched."""
        job = self._take_next_due(self._clock())
        if job is None:
            return False
        self._dispatch(job)
        return True

    def _dispatch(self, job: Job) -> None:
        handle = self._handles[job.id]
        job.attempts += 1
        handle.attempts = job.attempts
        logger.info(f"Processing job {job.id} (attempt {job.attempts}/{job.max_attempts})")

        try:
            handler = self._handlers.get(job.kind)
            if handler is None:
                raise LookupError(f"No handler registered for job kind {job.kind.value}")
            handler(job.payload)
        except Exception as e:
            handle.last_error = str(e)
            self._handle_failure(job, handle, e)
            return

        handle.status = JobStatus.SUCCEEDED
        handle.last_error = None
        with self._lock:
            self._handles.pop(job.id, None)
        logger.info(f"Job {job.id} completed")

    def _handle_failure(self, job: Job, handle: JobHandle, error: Exception) -> None:
        if job.attempts < job.max_attempts:
            delay = job.backoff_seconds()
            job.next_run_at = self._clock() + delay
            with self._lock:
                self._jobs.append(job)
            logger.warning(f"Job {job.id} failed: {error}; retrying in {delay:.1f}s")
            return

        logger.error(f"Job {job.id} reached max attempts ({job.max_attempts}): {error}")
        handle.status = JobStatus.EXHAUSTED
        handle.error = JobExhausted(job, error)
        with self._lock:
            self._handles.pop(job.id, None)

        if self.on_exhausted is not None:
            try:
                self.on_exhausted(job, error)
            except Exception:
                logger.exception(f"on_exhausted callback failed for job {job.id}")

    def _wait(self, seconds: float, interruptible: bool = False) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
        elif interruptible:
            self._stop_event.wait(seconds)
        else:
            time.sleep(seconds)

    def run_until_idle(self, timeout: float | None = None) -> bool:
        """
        Process jobs in the calling thread until none are pending.

        Waits out backoff delays. Returns False if the timeout elapsed first.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            if self.run_once():
                continue
            wait = self.seconds_until_next()
            if wait is None:
                return True
            if deadline is not None and self._clock() + wait > deadline:
                return False
            self._wait(min(wait, self.poll_interval_seconds) or self.poll_interval_seconds)

    def run_forever(self) -> None:
        """Loop until stop() is called, polling when nothing is due."""
        logger.info("Job scheduler loop started")
        while not self._stop_event.is_set():
            if not self.run_once():
                self._wait(self.poll_interval_seconds, interruptible=True)
        logger.info("Job scheduler loop stopped")

    def start(self) -> None:
        """Run the loop on one background thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="job-scheduler", daemon=True)
        self._thread.start()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the background loop to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background loop; a running handler is allowed to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
