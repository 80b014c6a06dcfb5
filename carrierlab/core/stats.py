"""Process-lifetime counters for the lifecycle engine."""

from .models import EngineStats


class StatsAccumulator:
    """Monotonic counters written only by the engine at transition points.

    - started: a test was promoted from admission to setup
    - succeeded: a sampling loop completed
    - failed: setup failed before the first tick
    - runtime: elapsed runtime added on stop and on completion
    """

    def __init__(self) -> None:
        self._started = 0
        self._succeeded = 0
        self._failed = 0
        self._total_runtime = 0.0

    def record_started(self) -> None:
        self._started += 1

    def record_succeeded(self) -> None:
        self._succeeded += 1

    def record_failed(self) -> None:
        self._failed += 1

    def add_runtime(self, seconds: float) -> None:
        if seconds > 0:
            self._total_runtime += seconds

    def snapshot(
        self,
        running_count: int,
        queue_depth: int,
        scheduled_count: int,
        max_concurrent_tests: int,
    ) -> EngineStats:
        return EngineStats(
            tests_started=self._started,
            tests_succeeded=self._succeeded,
            tests_failed=self._failed,
            total_runtime_seconds=self._total_runtime,
            running_count=running_count,
            queue_depth=queue_depth,
            scheduled_count=scheduled_count,
            max_concurrent_tests=max_concurrent_tests,
        )
