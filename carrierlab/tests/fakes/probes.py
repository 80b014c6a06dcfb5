"""Fake SampleSourcePort implementation for testing."""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

from carrierlab.core.models import Sample, TestConfig
from carrierlab.core.ports import SampleSourcePort


class FakeSampleSource(SampleSourcePort):
    """Scriptable probe for engine tests.

    Returns ``{"value": sequence}`` by default. Individual ticks can be
    made to fail, every tick can be delayed, and setup can be made to fail.
    """

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds
        self.sample_calls: list[tuple[str, int]] = []
        self.prepare_calls: list[str] = []
        self.summarize_calls: list[tuple[str, int]] = []
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0

        self.fail_sequences: set[int] = set()
        self.fail_all: bool = False
        self.fail_message: str = "Probe failed"
        self.should_fail_prepare: bool = False
        self.summary: dict[str, Any] | None = None

    async def prepare(self, config: TestConfig) -> None:
        self.prepare_calls.append(config.test_id)
        if self.should_fail_prepare:
            raise RuntimeError("Probe setup failed")

    async def sample(self, config: TestConfig, sequence: int) -> Mapping[str, Any]:
        self.sample_calls.append((config.test_id, sequence))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            if self.fail_all or sequence in self.fail_sequences:
                raise RuntimeError(self.fail_message)
            return {"value": sequence}
        finally:
            self.in_flight -= 1

    async def summarize(
        self, config: TestConfig, samples: Sequence[Sample]
    ) -> Mapping[str, Any] | None:
        self.summarize_calls.append((config.test_id, len(samples)))
        return self.summary

    async def close(self) -> None:
        self.closed = True

    def calls_for(self, test_id: str) -> list[int]:
        """Sequence numbers sampled for a test, in call order."""
        return [seq for tid, seq in self.sample_calls if tid == test_id]
