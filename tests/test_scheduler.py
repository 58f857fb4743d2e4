"""Tests for the background job scheduler."""

import threading

import pytest

from receipt_ledger.config import SchedulerConfig
from receipt_ledger.scheduler import JobExhausted, JobKind, JobScheduler, JobStatus


@pytest.fixture
def scheduler(clock):
    """Scheduler on a fake clock; waiting advances the clock."""
    return JobScheduler(clock=clock, sleep=clock.advance)


class TestSubmit:
    """Tests for job submission."""

    def test_submit_returns_pending_handle(self, scheduler):
        handle = scheduler.submit("receipt", {"record_id": 1})

        assert handle.kind == JobKind.RECEIPT
        assert handle.status == JobStatus.PENDING
        assert handle.attempts == 0
        assert not handle.done
        assert scheduler.pending_count() == 1

    def test_unknown_kind_rejected(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.submit("email", {})
        assert scheduler.pending_count() == 0

    def test_invalid_max_attempts(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.submit(JobKind.IMPORT, {}, max_attempts=0)

    def test_job_ids_are_unique(self, scheduler):
        first = scheduler.submit(JobKind.RECEIPT, {})
        second = scheduler.submit(JobKind.RECEIPT, {})
        assert first.id != second.id

    def test_from_config(self):
        config = SchedulerConfig(poll_interval_seconds=0.5, max_attempts=5, backoff_base_ms=100)
        scheduler = JobScheduler.from_config(config)

        assert scheduler.poll_interval_seconds == 0.5
        assert scheduler.max_attempts == 5
        assert scheduler.backoff_base_ms == 100


class TestRunOnce:
    """Tests for single dispatches."""

    def test_nothing_to_run(self, scheduler):
        assert scheduler.run_once() is False

    def test_success_discards_job(self, scheduler):
        seen = []
        scheduler.register(JobKind.RECEIPT, seen.append)
        handle = scheduler.submit(JobKind.RECEIPT, {"record_id": 7})

        assert scheduler.run_once() is True
        assert seen == [{"record_id": 7}]
        assert handle.status == JobStatus.SUCCEEDED
        assert handle.attempts == 1
        assert scheduler.pending_count() == 0

    def test_failure_reschedules_with_backoff(self, scheduler, clock):
        def fail(payload):
            raise RuntimeError("boom")

        scheduler.register(JobKind.RECEIPT, fail)
        handle = scheduler.submit(JobKind.RECEIPT, {})

        scheduler.run_once()

        assert handle.status == JobStatus.PENDING
        assert handle.last_error == "boom"
        assert scheduler.pending_count() == 1
        assert scheduler.seconds_until_next() == pytest.approx(2.0)
        assert scheduler.run_once() is False

    def test_earliest_eligible_first(self, scheduler, clock):
        order = []

        def flaky(payload):
            order.append(payload["name"])
            if payload["name"] == "a" and order.count("a") == 1:
                raise RuntimeError("first try fails")

        scheduler.register(JobKind.RECEIPT, flaky)
        scheduler.submit(JobKind.RECEIPT, {"name": "a"})
        clock.advance(0.5)
        scheduler.submit(JobKind.RECEIPT, {"name": "b"})

        scheduler.run_until_idle()

        assert order == ["a", "b", "a"]

    def test_missing_handler_counts_as_failure(self, scheduler):
        exhausted = []
        scheduler.on_exhausted = lambda job, error: exhausted.append(error)
        scheduler.submit(JobKind.IMPORT, {}, max_attempts=1)

        scheduler.run_once()

        assert len(exhausted) == 1
        assert isinstance(exhausted[0], LookupError)


class TestRetryAndExhaustion:
    """Tests for exponential backoff and on_exhausted."""

    def test_backoff_timeline(self, clock):
        attempts_at = []
        exhausted = []

        def always_fail(payload):
            attempts_at.append(clock())
            raise RuntimeError("still broken")

        scheduler = JobScheduler(
            max_attempts=3,
            backoff_base_ms=2000,
            on_exhausted=lambda job, error: exhausted.append((job, error)),
            clock=clock,
            sleep=clock.advance,
        )
        scheduler.register(JobKind.RECEIPT, always_fail)
        handle = scheduler.submit(JobKind.RECEIPT, {"record_id": 1})

        assert scheduler.run_until_idle() is True

        assert attempts_at == [0.0, 2.0, 6.0]
        assert len(exhausted) == 1
        job, error = exhausted[0]
        assert job.attempts == 3
        assert str(error) == "still broken"
        assert handle.status == JobStatus.EXHAUSTED
        assert isinstance(handle.error, JobExhausted)
        assert scheduler.pending_count() == 0

    def test_success_after_retry(self, scheduler):
        calls = []

        def flaky(payload):
            calls.append(payload)
            if len(calls) < 2:
                raise RuntimeError("transient")

        scheduler.register(JobKind.RECEIPT, flaky)
        handle = scheduler.submit(JobKind.RECEIPT, {})

        scheduler.run_until_idle()

        assert handle.status == JobStatus.SUCCEEDED
        assert handle.attempts == 2
        assert handle.last_error is None

    def test_per_job_overrides(self, scheduler, clock):
        attempts_at = []

        def always_fail(payload):
            attempts_at.append(clock())
            raise RuntimeError("nope")

        scheduler.register(JobKind.RECEIPT, always_fail)
        scheduler.submit(JobKind.RECEIPT, {}, max_attempts=2, backoff_base_ms=500)

        scheduler.run_until_idle()

        assert attempts_at == [0.0, 0.5]

    def test_callback_error_does_not_stop_loop(self, scheduler):
        def explode(job, error):
            raise RuntimeError("callback broke")

        done = []
        scheduler.on_exhausted = explode
        scheduler.register(JobKind.RECEIPT, lambda p: done.append(p) if p.get("ok") else 1 / 0)
        scheduler.submit(JobKind.RECEIPT, {}, max_attempts=1)
        scheduler.submit(JobKind.RECEIPT, {"ok": True})

        scheduler.run_until_idle()

        assert done == [{"ok": True}]

    def test_run_until_idle_timeout(self, scheduler):
        def fail(payload):
            raise RuntimeError("x")

        scheduler.register(JobKind.RECEIPT, fail)
        scheduler.submit(JobKind.RECEIPT, {}, max_attempts=5)

        assert scheduler.run_until_idle(timeout=1.0) is False
        assert scheduler.pending_count() == 1


class TestBackgroundLoop:
    """Tests for start/stop on a real thread."""

    def test_start_processes_jobs(self):
        ran = threading.Event()
        scheduler = JobScheduler(poll_interval_seconds=0.01)
        scheduler.register(JobKind.RECEIPT, lambda payload: ran.set())

        scheduler.start()
        try:
            scheduler.submit(JobKind.RECEIPT, {})
            assert ran.wait(timeout=5)
            assert scheduler.is_running()
        finally:
            scheduler.stop()

        assert not scheduler.is_running()

    def test_stop_without_start(self):
        JobScheduler().stop()

    def test_drain_after_stop_waits_out_backoff(self, monkeypatch):
        """A stopped loop does not turn later drains into a busy wait."""
        scheduler = JobScheduler(poll_interval_seconds=1.0, backoff_base_ms=50)
        calls = []

        def flaky(payload):
            calls.append(payload)
            if len(calls) == 1:
                raise RuntimeError("transient")

        scheduler.register(JobKind.RECEIPT, flaky)
        scheduler.start()
        scheduler.stop()

        scans = []
        original = scheduler.seconds_until_next

        def counting():
            scans.append(1)
            return original()

        monkeypatch.setattr(scheduler, "seconds_until_next", counting)
        handle = scheduler.submit(JobKind.RECEIPT, {"record_id": 1})

        assert scheduler.run_until_idle(timeout=5) is True
        assert handle.status == JobStatus.SUCCEEDED
        assert len(calls) == 2
        assert len(scans) < 10
