"""Advisory threshold checks over engine statistics.

The monitor only reads. Breaches are reported to the caller (the engine's
monitor loop), which logs them and publishes them to subscribers.
"""

import logging
from collections.abc import Callable

from .models import EngineStats, MonitorWarning

logger = logging.getLogger(__name__)

MemoryReader = Callable[[], float]


class PerformanceMonitor:
    """Evaluates load, queue depth and process memory against thresholds."""

    def __init__(
        self,
        memory_reader: MemoryReader | None = None,
        load_warning_ratio: float = 0.9,
        queue_warning_threshold: int = 50,
        memory_warning_mb: float = 500.0,
    ):
        """Initialize the monitor.

        Args:
            memory_reader: Returns current process memory in MB. When None,
                the memory check is skipped.
            load_warning_ratio: Fraction of the concurrency cap above which
                the running count is reported.
            queue_warning_threshold: Queue depth above which the queue is reported.
            memory_warning_mb: Process memory above which memory is reported.
        """
        if not 0 < load_warning_ratio <= 1:
            raise ValueError("load_warning_ratio must be in (0, 1]")
        self.memory_reader = memory_reader
        self.load_warning_ratio = load_warning_ratio
        self.queue_warning_threshold = queue_warning_threshold
        self.memory_warning_mb = memory_warning_mb

    def evaluate(self, stats: EngineStats) -> list[MonitorWarning]:
        """Return every threshold currently breached."""
        warnings: list[MonitorWarning] = []

        load_threshold = stats.max_concurrent_tests * self.load_warning_ratio
        if stats.running_count > load_threshold:
            warnings.append(
                MonitorWarning(
                    code="high_load",
                    message=(
                        f"High concurrent test load: "
                        f"{stats.running_count}/{stats.max_concurrent_tests}"
                    ),
                    value=float(stats.running_count),
                    threshold=load_threshold,
                )
            )

        if stats.queue_depth > self.queue_warning_threshold:
            warnings.append(
                MonitorWarning(
                    code="large_queue",
                    message=f"Large test queue: {stats.queue_depth} tests queued",
                    value=float(stats.queue_depth),
                    threshold=float(self.queue_warning_threshold),
                )
            )

        memory_mb = self._read_memory()
        if memory_mb is not None and memory_mb > self.memory_warning_mb:
            warnings.append(
                MonitorWarning(
                    code="high_memory",
                    message=f"High memory usage: {memory_mb:.0f}MB",
                    value=memory_mb,
                    threshold=self.memory_warning_mb,
                )
            )

        return warnings

    def _read_memory(self) -> float | None:
        if self.memory_reader is None:
            return None
        try:
            return float(self.memory_reader())
        except Exception as e:
            logger.debug(f"Memory reading unavailable: {e}")
            return None
