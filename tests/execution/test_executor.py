"""Tests for Executor and ExecutorWorker.

Covers:
- bounded retries and attempt counting
- circuit tripping per worker, never recovering
- fixed backoff between retries
- minimum-interval throttling
- exclusive worker ownership
"""

import threading
import time
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from reconverge.core.errors import WorkerOwnershipError
from reconverge.core.result import Err, Ok
from reconverge.execution import Executor, ExecutionInfo, ExecutionResult


def make_executor(**settings):
    builder = Executor.build().name("test")
    if "attempt" in settings:
        builder = builder.attempt(settings["attempt"])
    if "backoff" in settings:
        builder = builder.backoff(settings["backoff"])
    if "break_after" in settings:
        builder = builder.break_after(settings["break_after"])
    if "rate" in settings:
        builder = builder.limit_rate(settings["rate"])
    return builder.get_or_create()


class TestRetries:
    """Tests for bounded retries."""

    def test_first_try_success(self, counting_operation):
        op = counting_operation(failures=0, value=42)
        result = make_executor(attempt=3).run(op)
        assert result == ExecutionResult.success(42)
        assert op.total_calls == 1

    @pytest.mark.parametrize("attempt", [1, 2, 5])
    def test_always_failing_uses_every_attempt(self, counting_operation, attempt):
        op = counting_operation(failures=None)
        result = make_executor(attempt=attempt).run(op)
        assert result.is_success is False
        assert result.info.nb_attempt == attempt
        assert result.info.skipped is False
        assert op.total_calls == attempt

    def test_last_error_message_kept(self, counting_operation):
        op = counting_operation(failures=None)
        result = make_executor(attempt=3).run(op)
        assert result.info.last_error == "failure 3 for None"

    @pytest.mark.parametrize("k", [1, 2, 4])
    def test_succeeds_on_try_k(self, counting_operation, k):
        op = counting_operation(failures=k - 1, value="done")
        result = make_executor(attempt=5).run(op)
        assert result.value == "done"
        assert op.total_calls == k

    def test_raised_exception_counts_as_failure(self, counting_operation):
        op = counting_operation(failures=None, raises=True)
        result = make_executor(attempt=2).run(op)
        assert result.info == ExecutionInfo(nb_attempt=2, skipped=False, last_error="failure 2 for None")
        assert op.total_calls == 2

    def test_plain_return_value_counts_as_success(self):
        result = make_executor().run(lambda: {"id": 1})
        assert result.value == {"id": 1}

    def test_empty_error_message_falls_back_to_type(self):
        result = make_executor().run(lambda: Err(TimeoutError()))
        assert result.info.last_error == "TimeoutError"

    def test_failed_attempts_logged(self, counting_operation):
        op = counting_operation(failures=None)
        with capture_logs() as logs:
            make_executor(attempt=3).run(op)
        events = [entry["event"] for entry in logs]
        assert events.count("executor.attempt_failed") == 2
        assert events.count("executor.call_exhausted") == 1


class TestBackoff:
    """Tests for fixed delay between retries."""

    def test_sleeps_before_each_retry(self, counting_operation):
        op = counting_operation(failures=None)
        with patch("reconverge.execution.executor.time.sleep") as mock_sleep:
            make_executor(attempt=4, backoff=0.5).run(op)
        assert mock_sleep.call_count == 3
        mock_sleep.assert_called_with(0.5)

    def test_no_sleep_without_backoff(self, counting_operation):
        op = counting_operation(failures=None)
        with patch("reconverge.execution.executor.time.sleep") as mock_sleep:
            make_executor(attempt=4).run(op)
        mock_sleep.assert_not_called()

    def test_no_sleep_after_success(self, counting_operation):
        op = counting_operation(failures=1)
        with patch("reconverge.execution.executor.time.sleep") as mock_sleep:
            result = make_executor(attempt=4, backoff=0.5).run(op)
        assert result.is_success
        assert mock_sleep.call_count == 1


class TestCircuitBreaker:
    """Tests for per-worker circuit tripping."""

    @pytest.mark.parametrize("m", [1, 3])
    def test_call_after_threshold_is_skipped(self, counting_operation, m):
        op = counting_operation(failures=None)
        executor = make_executor(attempt=2, break_after=m)
        worker = executor.worker()

        for _ in range(m):
            result = worker.run(op)
            assert result.is_skipped is False
        assert worker.circuit_open is True
        calls_before = op.total_calls

        skipped = worker.run(op)
        assert skipped.is_skipped is True
        assert skipped.info == ExecutionInfo(nb_attempt=0, skipped=True, last_error=None)
        assert op.total_calls == calls_before

    def test_circuit_never_recovers(self, counting_operation):
        executor = make_executor(break_after=1)
        worker = executor.worker()
        worker.run(counting_operation(failures=None))

        healthy = counting_operation(failures=0)
        for _ in range(5):
            assert worker.run(healthy).is_skipped
        assert healthy.total_calls == 0

    def test_transient_failures_do_not_count(self, counting_operation):
        """Failures followed by a success within one call never trip."""
        executor = make_executor(attempt=3, break_after=1)
        worker = executor.worker()
        for key in range(5):
            op = counting_operation(failures=2)
            assert worker.run(lambda: op(key)).is_success
        assert worker.circuit_open is False
        assert worker.state.consecutive_exhausted_failures == 0

    def test_no_threshold_never_trips(self, counting_operation):
        worker = make_executor().worker()
        op = counting_operation(failures=None)
        for _ in range(50):
            assert worker.run(op).is_skipped is False
        assert worker.state.consecutive_exhausted_failures == 50

    def test_trip_logged_once(self, counting_operation):
        worker = make_executor(break_after=2).worker()
        op = counting_operation(failures=None)
        with capture_logs() as logs:
            for _ in range(4):
                worker.run(op)
        opened = [entry for entry in logs if entry["event"] == "executor.circuit_opened"]
        assert len(opened) == 1
        assert opened[0]["log_level"] == "warning"

    def test_workers_trip_independently(self, counting_operation):
        executor = make_executor(break_after=1)
        first, second = executor.worker(), executor.worker()
        assert first.worker_id != second.worker_id

        first.run(counting_operation(failures=None))
        assert first.circuit_open is True
        assert second.circuit_open is False
        assert second.run(counting_operation(failures=0)).is_success

    def test_workers_in_threads_trip_independently(self, counting_operation):
        """Each thread's worker counts only its own exhausted calls."""
        executor = make_executor(break_after=3)
        op = counting_operation(failures=None)
        workers = [executor.worker() for _ in range(4)]

        def drive(worker):
            for _ in range(2):
                worker.run(op)

        threads = [threading.Thread(target=drive, args=(w,)) for w in workers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(not w.circuit_open for w in workers)
        assert all(w.state.consecutive_exhausted_failures == 2 for w in workers)

    def test_run_keeps_one_worker_per_thread(self, counting_operation):
        """Repeated run calls on one thread share that thread's circuit."""
        executor = make_executor(break_after=1)
        executor.run(counting_operation(failures=None))
        assert executor.thread_worker.circuit_open is True
        assert executor.run(lambda: Ok(1)).is_skipped
        assert executor.worker().circuit_open is False


class TestThreadWorkers:
    """Executor.run gives every calling thread its own worker."""

    def test_trip_in_other_thread_does_not_skip_here(self, counting_operation):
        executor = make_executor(break_after=1)
        tripped = []

        def trip():
            executor.run(counting_operation(failures=None))
            tripped.append(executor.thread_worker.circuit_open)

        t = threading.Thread(target=trip)
        t.start()
        t.join()

        assert tripped == [True]
        result = executor.run(lambda: Ok(1))
        assert result.is_success
        assert executor.thread_worker.circuit_open is False

    def test_concurrent_run_calls_never_raise(self):
        executor = make_executor()
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow():
            started.set()
            release.wait(5)
            return Ok("slow")

        t = threading.Thread(target=lambda: results.append(executor.run(slow)))
        t.start()
        assert started.wait(5)
        try:
            fast = executor.run(lambda: Ok(2))
        finally:
            release.set()
            t.join()

        assert fast == ExecutionResult.success(2)
        assert results == [ExecutionResult.success("slow")]

    def test_thread_worker_stable_within_thread(self):
        executor = make_executor()
        assert executor.thread_worker is executor.thread_worker

        seen = []
        t = threading.Thread(target=lambda: seen.append(executor.thread_worker))
        t.start()
        t.join()
        assert seen[0] is not executor.thread_worker


class TestRateLimit:
    """Tests for minimum-interval throttling."""

    @pytest.mark.slow
    def test_calls_spaced_by_min_interval(self):
        rate = 20.0
        calls = 4
        worker = make_executor(rate=rate).worker()

        start = time.monotonic()
        for _ in range(calls):
            worker.run(lambda: Ok(1))
        elapsed = time.monotonic() - start

        assert elapsed >= (calls - 1) / rate - 0.01

    def test_retries_are_throttled_too(self, counting_operation):
        op = counting_operation(failures=None)
        with patch("reconverge.execution.executor.time.sleep") as mock_sleep:
            make_executor(attempt=3, rate=10).run(op)
        assert mock_sleep.call_count == 3
        for call in mock_sleep.call_args_list:
            assert 0 < call.args[0] <= 0.1

    def test_no_sleep_without_rate_limit(self):
        with patch("reconverge.execution.executor.time.sleep") as mock_sleep:
            make_executor().run(lambda: Ok(1))
        mock_sleep.assert_not_called()

    def test_records_call_start(self):
        worker = make_executor(rate=1000).worker()
        assert worker.state.last_call_started_at is None
        worker.run(lambda: Ok(1))
        assert worker.state.last_call_started_at is not None

    def test_sleep_measured_from_recorded_start(self):
        worker = make_executor(rate=10).worker()
        with patch("reconverge.execution.executor.time.monotonic", side_effect=[100.0, 100.02]), patch(
            "reconverge.execution.executor.time.sleep"
        ) as mock_sleep:
            worker.run(lambda: Ok(1))
        assert worker.state.last_call_started_at == 100.0
        assert mock_sleep.call_args.args[0] == pytest.approx(0.08)


class TestWorkerOwnership:
    """A worker refuses concurrent use."""

    def test_concurrent_use_raises(self):
        worker = make_executor().worker()
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow():
            started.set()
            release.wait(5)
            return Ok("slow")

        t = threading.Thread(target=lambda: results.append(worker.run(slow)))
        t.start()
        assert started.wait(5)
        try:
            with pytest.raises(WorkerOwnershipError):
                worker.run(lambda: Ok("fast"))
        finally:
            release.set()
            t.join()

        assert results == [ExecutionResult.success("slow")]

    def test_sequential_use_from_other_threads_allowed(self):
        worker = make_executor().worker()
        results = []
        for value in range(3):
            t = threading.Thread(target=lambda v=value: results.append(worker.run(lambda: Ok(v))))
            t.start()
            t.join()
        assert [r.value for r in results] == [0, 1, 2]
