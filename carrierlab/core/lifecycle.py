"""Test lifecycle engine.

Owns the running table, the admission queue and concurrency cap, one
sampling loop per resident test, the statistics accumulator, the
performance monitor loop, recurring test jobs and ordered shutdown.

Every test runs as its own asyncio task, so a slow probe, store write or
broadcast only delays the test that issued it. Within one test, samples
are persisted and published in tick order because the loop awaits each
step before scheduling the next tick.
"""

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .errors import AdmissionError, DuplicateTestError, LifecycleError, QueueFullError
from .models import (
    EngineStats,
    MonitorWarning,
    RunningTest,
    Sample,
    TestConfig,
    TestEvent,
    TestStatus,
)
from .monitor import PerformanceMonitor
from .ports import BroadcasterPort, ResultStorePort, SampleSourcePort
from .sampling import SamplingPlan, error_fields_for, plan_for
from .stats import StatsAccumulator
from .tasks import CancellableTask

logger = logging.getLogger(__name__)

RecurringSubmit = Callable[[], Awaitable[Any]]


@dataclass
class _RecurringJob:
    schedule_id: str
    interval_seconds: float
    submit: RecurringSubmit
    task: CancellableTask
    runs_submitted: int = 0


class LifecycleEngine:
    """Admits, runs, stops and tears down diagnostic tests.

    The running table and statistics are mutated only by this instance.
    Admission checks and table mutations happen before any await, so they
    are atomic with respect to other coroutines on the event loop.
    """

    def __init__(
        self,
        sample_source: SampleSourcePort,
        store: ResultStorePort,
        broadcaster: BroadcasterPort,
        max_concurrent_tests: int = 10,
        max_queue_size: int = 100,
        dispatch_interval_seconds: float = 1.0,
        monitor: PerformanceMonitor | None = None,
        monitor_interval_seconds: float = 30.0,
        shutdown_timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the engine.

        Args:
            sample_source: Probe invoked once per tick.
            store: Durable storage for statuses and samples.
            broadcaster: Fan-out to live subscribers.
            max_concurrent_tests: Admission cap on resident tests.
            max_queue_size: Maximum number of admitted-but-waiting tests.
            dispatch_interval_seconds: Period of the queue dispatcher.
            monitor: Threshold evaluator for the monitor loop (optional).
            monitor_interval_seconds: Period of the monitor loop.
            shutdown_timeout_seconds: How long shutdown waits for cancelled
                loops to unwind.
            clock: Monotonic clock used for runtime accounting.
        """
        if max_concurrent_tests < 1:
            raise ValueError("max_concurrent_tests must be at least 1")
        if max_queue_size < 0:
            raise ValueError("max_queue_size must be non-negative")
        if dispatch_interval_seconds <= 0:
            raise ValueError("dispatch_interval_seconds must be positive")
        if monitor_interval_seconds <= 0:
            raise ValueError("monitor_interval_seconds must be positive")

        self.sample_source = sample_source
        self.store = store
        self.broadcaster = broadcaster
        self.monitor = monitor
        self._max_concurrent_tests = max_concurrent_tests
        self._max_queue_size = max_queue_size
        self._dispatch_interval = dispatch_interval_seconds
        self._monitor_interval = monitor_interval_seconds
        self._shutdown_timeout = shutdown_timeout_seconds
        self._clock = clock

        self._running: dict[str, RunningTest] = {}
        self._queue: deque[TestConfig] = deque()
        self._recurring: dict[str, _RecurringJob] = {}
        self._stats = StatsAccumulator()
        self._loop_tasks: set[CancellableTask] = set()
        self._dispatcher: CancellableTask | None = None
        self._monitor_task: CancellableTask | None = None

        self._initialized = False
        self._shutting_down = False
        self._shutdown_done = asyncio.Event()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def max_concurrent_tests(self) -> int:
        return self._max_concurrent_tests

    @max_concurrent_tests.setter
    def max_concurrent_tests(self, value: int) -> None:
        """Change the cap. Affects future dispatch only; never preempts."""
        if value < 1:
            raise ValueError("max_concurrent_tests must be at least 1")
        logger.info(f"Concurrency cap changed: {self._max_concurrent_tests} -> {value}")
        self._max_concurrent_tests = value

    @property
    def max_queue_size(self) -> int:
        return self._max_queue_size

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Start the dispatcher and monitor loops. Idempotent."""
        if self._initialized:
            return
        if self._shutting_down:
            raise LifecycleError("Cannot initialize an engine that has been shut down")

        logger.info("Initializing lifecycle engine...")
        self._dispatcher = CancellableTask(self._dispatch_loop(), name="engine-dispatcher")
        self._monitor_task = CancellableTask(self._monitor_loop(), name="engine-monitor")
        self._initialized = True
        logger.info(
            f"Lifecycle engine initialized (cap={self._max_concurrent_tests}, "
            f"queue={self._max_queue_size}, dispatch every {self._dispatch_interval}s)"
        )
        await self._publish(
            TestEvent(
                type="engine_started",
                test_id=None,
                data={"max_concurrent_tests": self._max_concurrent_tests},
            )
        )

    # ------------------------------------------------------------------
    # Admission & running table
    # ------------------------------------------------------------------

    async def start(self, test_id: str, config: TestConfig) -> None:
        """Admit a test: run it now if below the cap, otherwise queue it.

        Raises:
            DuplicateTestError: If the ID is already resident or queued.
            QueueFullError: If the test would have to wait and the queue is full.
            AdmissionError: If the engine is shutting down.
            ValueError: If ``test_id`` does not match ``config.test_id``.
        """
        if test_id != config.test_id:
            raise ValueError(f"test_id {test_id} does not match config {config.test_id}")
        self.check_admission(test_id)

        if self._can_run_now():
            self._promote(config)
            return

        self._queue.append(config)
        position = len(self._queue)
        logger.info(
            f"Test {test_id} queued at position {position} "
            f"({len(self._running)}/{self._max_concurrent_tests} running)"
        )
        await self._publish(
            TestEvent(
                type="test_queued",
                test_id=test_id,
                data={"kind": config.kind.value, "position": position},
            )
        )

    def check_admission(self, test_id: str) -> None:
        """Raise the AdmissionError ``start`` would raise for this ID right now.

        Changes no state.
        """
        if self._shutting_down:
            raise AdmissionError(test_id, "Engine is shutting down")
        if test_id in self._running or self.is_queued(test_id):
            raise DuplicateTestError(test_id)
        if not self._can_run_now() and len(self._queue) >= self._max_queue_size:
            raise QueueFullError(test_id, self._max_queue_size)

    def _can_run_now(self) -> bool:
        return len(self._running) < self._max_concurrent_tests and not self._queue

    def is_queued(self, test_id: str) -> bool:
        return any(c.test_id == test_id for c in self._queue)

    def _promote(self, config: TestConfig) -> RunningTest:
        """Register a RunningTest and spawn its sampling loop."""
        now = datetime.now(UTC)
        task = CancellableTask(self._run_test(config), name=f"test-{config.test_id}")
        entry = RunningTest(
            test_id=config.test_id,
            kind=config.kind,
            config=config,
            task=task,
            started_at=now,
            started_monotonic=self._clock(),
            last_update=now,
        )
        self._running[config.test_id] = entry
        self._loop_tasks.add(task)
        task.add_done_callback(self._loop_tasks.discard)
        self._stats.record_started()

        logger.info(
            f"Test {config.test_id} added to active tests "
            f"({len(self._running)}/{self._max_concurrent_tests})"
        )
        return entry

    def _release(self, test_id: str) -> tuple[RunningTest, float] | None:
        """Remove a test from the table, cancel its loop, account runtime.

        The caller's own task is never cancelled, so a loop may release
        itself on completion.
        """
        entry = self._running.pop(test_id, None)
        if entry is None:
            return None
        if not entry.task.is_current():
            entry.task.cancel()
        runtime = entry.runtime_seconds(self._clock())
        self._stats.add_runtime(runtime)
        return entry, runtime

    async def stop(self, test_id: str) -> bool:
        """Stop a resident test.

        Returns:
            True if the test was resident and is now stopped; False for an
            unknown ID (no state is changed).
        """
        released = self._release(test_id)
        if released is None:
            logger.warning(f"Test {test_id} not found in active tests")
            return False

        entry, runtime = released
        logger.info(f"Test {test_id} stopped (runtime: {runtime:.1f}s)")
        await self._set_status(test_id, TestStatus.STOPPED)
        await self._publish(
            TestEvent(
                type="test_stopped",
                test_id=test_id,
                data={
                    "kind": entry.kind.value,
                    "runtime_seconds": round(runtime, 3),
                    "samples_recorded": entry.samples_recorded,
                    "stopped_at": datetime.now(UTC).isoformat(),
                },
            )
        )
        return True

    async def stop_all(self) -> int:
        """Stop every resident test, isolating per-test failures.

        Returns:
            Number of tests stopped.
        """
        test_ids = list(self._running)
        if not test_ids:
            return 0

        logger.info(f"Stopping all {len(test_ids)} active tests...")
        stopped = 0
        for test_id in test_ids:
            try:
                if await self.stop(test_id):
                    stopped += 1
            except Exception as e:
                logger.error(f"Error stopping test {test_id}: {e}", exc_info=True)
                entry = self._running.pop(test_id, None)
                if entry is not None:
                    entry.task.cancel()

        logger.info(f"Stopped {stopped}/{len(test_ids)} tests")
        return stopped

    async def cancel_queued(self, test_id: str) -> bool:
        """Drop a test that is waiting in the queue.

        Returns:
            True if the test was queued.
        """
        for config in self._queue:
            if config.test_id == test_id:
                self._queue.remove(config)
                break
        else:
            return False

        logger.info(f"Queued test {test_id} cancelled")
        await self._set_status(test_id, TestStatus.STOPPED)
        await self._publish(
            TestEvent(
                type="test_stopped",
                test_id=test_id,
                data={"kind": config.kind.value, "queued": True},
            )
        )
        return True

    def get_active_count(self) -> int:
        return len(self._running)

    def get_active_tests(self) -> list[RunningTest]:
        return list(self._running.values())

    def get_running_test(self, test_id: str) -> RunningTest | None:
        return self._running.get(test_id)

    def get_queued_test_ids(self) -> list[str]:
        return [c.test_id for c in self._queue]

    def get_stats(self) -> EngineStats:
        return self._stats.snapshot(
            running_count=len(self._running),
            queue_depth=len(self._queue),
            scheduled_count=len(self._recurring),
            max_concurrent_tests=self._max_concurrent_tests,
        )

    # ------------------------------------------------------------------
    # Queue dispatch
    # ------------------------------------------------------------------

    def dispatch_pending(self) -> int:
        """Promote queued tests (oldest first) while below the cap.

        Returns:
            Number of tests promoted.
        """
        promoted = 0
        while (
            self._queue
            and len(self._running) < self._max_concurrent_tests
            and not self._shutting_down
        ):
            config = self._queue.popleft()
            self._promote(config)
            promoted += 1
        return promoted

    async def _dispatch_loop(self) -> None:
        logger.debug("Queue dispatcher started")
        while True:
            await asyncio.sleep(self._dispatch_interval)
            try:
                promoted = self.dispatch_pending()
                if promoted:
                    logger.debug(f"Dispatcher promoted {promoted} queued tests")
            except Exception as e:
                logger.error(f"Queue dispatch error: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Per-test sampling loop
    # ------------------------------------------------------------------

    async def _run_test(self, config: TestConfig) -> None:
        """Task body for a resident test. The slot is always released on exit."""
        test_id = config.test_id
        try:
            await self._drive_test(config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(config, e, stage="sampling loop")
        finally:
            if self._release(test_id) is not None:
                logger.warning(f"Test {test_id} loop exited without releasing its slot")

    async def _drive_test(self, config: TestConfig) -> None:
        test_id = config.test_id
        try:
            plan = plan_for(config)
            await self._set_status(test_id, TestStatus.RUNNING)
            await self.sample_source.prepare(config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(config, e)
            return

        await self._publish(
            TestEvent(
                type="test_started",
                test_id=test_id,
                data={
                    "kind": config.kind.value,
                    "interval_seconds": plan.interval_seconds,
                    "duration_seconds": plan.duration_seconds,
                    "max_iterations": plan.max_iterations,
                },
            )
        )

        if plan.is_empty:
            logger.info(f"Test {test_id} has nothing to sample, completing immediately")
            await self._complete(config, samples_taken=0)
            return

        samples_taken = await self._sampling_loop(config, plan)
        await self._complete(config, samples_taken)

    async def _sampling_loop(self, config: TestConfig, plan: SamplingPlan) -> int:
        """Tick until the plan is exhausted. Returns the number of ticks taken.

        Duration is checked at tick boundaries, so a test may overshoot
        its duration by up to one interval. Ticks missed while a slow
        sample was in flight are skipped rather than queued.
        """
        loop = asyncio.get_running_loop()
        interval = plan.interval_seconds
        started = loop.time()
        next_tick = started + interval
        sequence = 0

        while True:
            delay = next_tick - loop.time()
            await asyncio.sleep(max(0.0, delay))

            sample = await self._take_sample(config, sequence)
            await self._record(config, sample)
            sequence += 1

            elapsed = max(loop.time(), next_tick) - started
            if plan.is_exhausted(elapsed, sequence):
                return sequence

            next_tick += interval
            now = loop.time()
            if next_tick < now:
                if interval > 0:
                    missed = math.ceil((now - next_tick) / interval)
                    next_tick += missed * interval
                    logger.debug(
                        f"Test {config.test_id} skipped {missed} ticks after a slow sample"
                    )
                else:
                    next_tick = now

    async def _take_sample(self, config: TestConfig, sequence: int) -> Sample:
        """Invoke the sample source; convert failures into error samples."""
        timestamp = datetime.now(UTC)
        try:
            data = await self.sample_source.sample(config, sequence)
            return Sample(
                test_id=config.test_id,
                sequence=sequence,
                timestamp=timestamp,
                data=dict(data),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(
                f"{config.kind.value} test {config.test_id} sample #{sequence} failed: {message}"
            )
            fields = error_fields_for(config.kind)
            fields["error"] = message
            return Sample(
                test_id=config.test_id,
                sequence=sequence,
                timestamp=timestamp,
                data=fields,
                error=message,
            )

    async def _record(self, config: TestConfig, sample: Sample) -> None:
        """Persist a sample, then publish it. A failed write drops the sample."""
        test_id = config.test_id
        try:
            await self.store.save_result(test_id, sample)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to persist sample #{sample.sequence} for test {test_id}: {e}",
                exc_info=True,
            )
            return

        entry = self._running.get(test_id)
        if entry is not None:
            entry.samples_recorded += 1
            entry.last_update = sample.timestamp

        suffix = "error" if sample.is_error else "update"
        await self._publish(
            TestEvent(
                type=config.kind.event_type(suffix),
                test_id=test_id,
                data={"sequence": sample.sequence, **sample.data},
                timestamp=sample.timestamp,
            )
        )

    async def _complete(self, config: TestConfig, samples_taken: int) -> None:
        """Self-termination: release, summarize, mark completed, announce once."""
        test_id = config.test_id
        released = self._release(test_id)
        if released is None:
            # Stopped concurrently; stop() already persisted the final status.
            return
        _, runtime = released
        self._stats.record_succeeded()

        summary = await self._summarize(config, samples_taken) if samples_taken else None
        await self._set_status(test_id, TestStatus.COMPLETED)

        data: dict[str, Any] = {
            "samples": samples_taken,
            "runtime_seconds": round(runtime, 3),
        }
        if summary is not None:
            data["summary"] = dict(summary)
        await self._publish(
            TestEvent(type=config.kind.event_type("complete"), test_id=test_id, data=data)
        )
        logger.info(
            f"{config.kind.value} test {test_id} completed "
            f"({samples_taken} samples, {runtime:.1f}s)"
        )

    async def _summarize(
        self, config: TestConfig, samples_taken: int
    ) -> Mapping[str, Any] | None:
        test_id = config.test_id
        try:
            samples = await self.store.get_results(test_id)
            summary = await self.sample_source.summarize(
                config, [s for s in samples if not s.final]
            )
            if summary is None:
                return None
            await self.store.save_result(
                test_id,
                Sample(
                    test_id=test_id,
                    sequence=samples_taken,
                    timestamp=datetime.now(UTC),
                    data=dict(summary),
                    final=True,
                ),
            )
            return summary
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to summarize test {test_id}: {e}", exc_info=True)
            return None

    async def _fail(self, config: TestConfig, error: Exception, stage: str = "setup") -> None:
        """Release a test that cannot go on and record it as failed.

        ``stage`` is "setup" for failures before the first tick; any other
        value marks an unexpected exit from the running loop.
        """
        test_id = config.test_id
        if self._release(test_id) is None:
            return
        self._stats.record_failed()
        logger.error(
            f"{config.kind.value} test {test_id} {stage} error: {error}", exc_info=error
        )
        await self._set_status(test_id, TestStatus.FAILED)
        await self._publish(
            TestEvent(
                type="test_failed",
                test_id=test_id,
                data={"kind": config.kind.value, "error": str(error)},
            )
        )

    # ------------------------------------------------------------------
    # Collaborator calls (failures never escape into engine bookkeeping)
    # ------------------------------------------------------------------

    async def _set_status(self, test_id: str, status: TestStatus) -> None:
        try:
            await self.store.update_status(test_id, status)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to persist status {status.value} for test {test_id}: {e}",
                exc_info=True,
            )

    async def _publish(self, event: TestEvent) -> None:
        try:
            await self.broadcaster.publish(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Broadcast of {event.type} failed: {e}")

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def check_health(self) -> list[MonitorWarning]:
        """Evaluate thresholds once; log and publish any breach.

        Advisory only: never changes engine state.
        """
        if self._recurring:
            logger.info(f"Active scheduled tests: {len(self._recurring)}")
        if self.monitor is None:
            return []

        try:
            warnings = self.monitor.evaluate(self.get_stats())
        except Exception as e:
            logger.error(f"Performance monitor error: {e}", exc_info=True)
            return []

        for warning in warnings:
            logger.warning(warning.message)
            await self._publish(
                TestEvent(type="engine_warning", test_id=None, data=warning.to_dict())
            )
        return warnings

    async def _monitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self._monitor_interval)
            await self.check_health()

    # ------------------------------------------------------------------
    # Recurring jobs
    # ------------------------------------------------------------------

    def add_recurring_job(
        self, schedule_id: str, interval_seconds: float, submit: RecurringSubmit
    ) -> None:
        """Run ``submit()`` every ``interval_seconds`` until removed or shutdown.

        Raises:
            ValueError: If the ID is taken or the interval is not positive.
            LifecycleError: If the engine is shutting down.
        """
        if self._shutting_down:
            raise LifecycleError("Engine is shutting down")
        if schedule_id in self._recurring:
            raise ValueError(f"Recurring job {schedule_id} already exists")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        task = CancellableTask(
            self._recurring_loop(schedule_id), name=f"schedule-{schedule_id}"
        )
        self._recurring[schedule_id] = _RecurringJob(
            schedule_id=schedule_id,
            interval_seconds=interval_seconds,
            submit=submit,
            task=task,
        )
        logger.info(f"Added recurring test {schedule_id} every {interval_seconds}s")

    def remove_recurring_job(self, schedule_id: str) -> bool:
        job = self._recurring.pop(schedule_id, None)
        if job is None:
            return False
        job.task.cancel()
        logger.info(f"Removed scheduled test: {schedule_id}")
        return True

    def get_recurring_jobs(self) -> dict[str, int]:
        """Map of schedule ID to number of submissions made so far."""
        return {sid: job.runs_submitted for sid, job in self._recurring.items()}

    async def _recurring_loop(self, schedule_id: str) -> None:
        while True:
            job = self._recurring.get(schedule_id)
            if job is None:
                return
            await asyncio.sleep(job.interval_seconds)
            try:
                await job.submit()
                job.runs_submitted += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Recurring test {schedule_id} submission failed: {e}", exc_info=True
                )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Ordered, idempotent teardown.

        1. Stop the dispatcher (no new promotions)
        2. Stop the monitor
        3. Stop every resident test and persist its final status
        4. Mark still-queued tests stopped
        5. Cancel recurring jobs
        6. Wait (bounded) for cancelled loops to unwind
        """
        if self._shutting_down:
            await self._shutdown_done.wait()
            return
        self._shutting_down = True
        logger.info("Shutting down lifecycle engine...")

        for background in (self._dispatcher, self._monitor_task):
            if background is None:
                continue
            background.cancel()
            try:
                await background.wait(timeout=self._shutdown_timeout)
            except Exception as e:
                logger.error(f"Error stopping {background.name}: {e}", exc_info=True)

        try:
            await self.stop_all()
        except Exception as e:
            logger.error(f"Error stopping active tests: {e}", exc_info=True)

        while self._queue:
            config = self._queue.popleft()
            try:
                await self._set_status(config.test_id, TestStatus.STOPPED)
                await self._publish(
                    TestEvent(
                        type="test_stopped",
                        test_id=config.test_id,
                        data={"kind": config.kind.value, "queued": True},
                    )
                )
            except Exception as e:
                logger.error(f"Error releasing queued test {config.test_id}: {e}")

        pending = [job.task for job in self._recurring.values()]
        for schedule_id in list(self._recurring):
            try:
                self.remove_recurring_job(schedule_id)
            except Exception as e:
                logger.error(f"Error removing scheduled test {schedule_id}: {e}")

        pending.extend(t for t in self._loop_tasks if not t.done)
        if pending:
            results = await asyncio.gather(
                *(t.wait(timeout=self._shutdown_timeout) for t in pending),
                return_exceptions=True,
            )
            lingering = sum(1 for r in results if r is not True)
            if lingering:
                logger.warning(f"{lingering} test loops did not finish within shutdown timeout")

        self._shutdown_done.set()
        logger.info("Lifecycle engine shutdown complete")
