"""Simulated radio probes.

Implements SampleSourcePort for the radio-facing kinds (speed, signal,
quality, coverage, roaming) with a seeded random generator, so a lab
without modem hardware can still exercise the engine end to end.
"""

import logging
import random
from collections.abc import Mapping, Sequence
from typing import Any

from carrierlab.core.models import Sample, TestConfig, TestKind
from carrierlab.core.ports import SampleSourcePort

from .summaries import summarize_coverage, summarize_roaming

logger = logging.getLogger(__name__)

NETWORK_TYPES = ("5G", "LTE", "3G")
DEFAULT_QUALITY_TARGETS = ("8.8.8.8", "1.1.1.1")
DEFAULT_ROAMING_ENDPOINTS = ("8.8.8.8", "1.1.1.1")

SIMULATED_KINDS = frozenset(
    {TestKind.SPEED, TestKind.SIGNAL, TestKind.QUALITY, TestKind.COVERAGE, TestKind.ROAMING}
)


def classify_quality(average_ping: float, packet_loss: float) -> str:
    """Bucket ping/loss into excellent, good, fair or poor."""
    if average_ping < 50 and packet_loss < 1:
        return "excellent"
    if average_ping < 100 and packet_loss < 5:
        return "good"
    if average_ping < 200 and packet_loss < 10:
        return "fair"
    return "poor"


def signal_from_ping(ping_ms: float | None) -> float:
    """Estimate signal strength in dBm from round-trip time."""
    if ping_ms is None:
        return -100.0
    if ping_ms < 20:
        return -40.0
    if ping_ms < 50:
        return -60.0
    if ping_ms < 100:
        return -80.0
    return -90.0


class SimulatedSampleSource(SampleSourcePort):
    """Seeded random measurements for radio probes."""

    def __init__(self, seed: int | None = None, loss_probability: float = 0.05):
        self._random = random.Random(seed)
        self.loss_probability = loss_probability

    async def prepare(self, config: TestConfig) -> None:
        if config.kind not in SIMULATED_KINDS:
            raise ValueError(f"Simulated probe cannot run {config.kind.value} tests")

    async def sample(self, config: TestConfig, sequence: int) -> Mapping[str, Any]:
        kind = config.kind
        if kind is TestKind.SPEED:
            return self._speed()
        if kind is TestKind.SIGNAL:
            return self._signal(config.params)
        if kind is TestKind.QUALITY:
            return self._quality(config.params)
        if kind is TestKind.COVERAGE:
            return self._coverage_point(config.params, sequence)
        if kind is TestKind.ROAMING:
            return self._roaming_region(config.params, sequence)
        raise ValueError(f"Simulated probe cannot run {kind.value} tests")

    async def summarize(
        self, config: TestConfig, samples: Sequence[Sample]
    ) -> Mapping[str, Any] | None:
        if config.kind is TestKind.COVERAGE:
            return summarize_coverage(samples, config.params.get("density", "medium")) or None
        if config.kind is TestKind.ROAMING:
            return summarize_roaming(samples, config.params["source_network"]) or None
        return None

    def _ping(self) -> float | None:
        """Round-trip time in ms, or None for a lost probe."""
        if self._random.random() < self.loss_probability:
            return None
        return round(self._random.lognormvariate(3.4, 0.5), 2)

    def _speed(self) -> dict[str, Any]:
        latency = self._ping()
        return {
            "download_speed": round(self._random.uniform(5.0, 300.0), 2),
            "upload_speed": round(self._random.uniform(1.0, 80.0), 2),
            "latency": latency if latency is not None else 0.0,
            "jitter": round(self._random.uniform(0.0, 15.0), 2),
            "packet_loss": 0.0 if latency is not None else 100.0,
        }

    def _signal(self, params: Mapping[str, Any]) -> dict[str, Any]:
        threshold = float(params.get("threshold", -85))
        strength = round(self._random.uniform(-110.0, -40.0), 1)
        return {
            "signal_strength": strength,
            "network_type": self._random.choice(NETWORK_TYPES),
            "below_threshold": strength < threshold,
            "threshold": threshold,
        }

    def _quality(self, params: Mapping[str, Any]) -> dict[str, Any]:
        targets = list(params.get("targets") or DEFAULT_QUALITY_TARGETS)
        results = []
        for target in targets:
            ping_ms = self._ping()
            results.append(
                {"target": target, "alive": ping_ms is not None, "time": ping_ms or 0.0}
            )
        alive = [r["time"] for r in results if r["alive"]]
        average_ping = sum(alive) / len(alive) if alive else 0.0
        packet_loss = (len(targets) - len(alive)) / len(targets) * 100
        return {
            "average_ping": round(average_ping, 2),
            "packet_loss": packet_loss,
            "quality": classify_quality(average_ping, packet_loss) if alive else "poor",
            "targets": results,
        }

    def _coverage_point(self, params: Mapping[str, Any], sequence: int) -> dict[str, Any]:
        bounds = params["bounds"]
        south, north = float(bounds["south"]), float(bounds["north"])
        west, east = float(bounds["west"]), float(bounds["east"])
        ping_ms = self._ping()
        return {
            "point": sequence,
            "latitude": round(self._random.uniform(south, north), 6),
            "longitude": round(self._random.uniform(west, east), 6),
            "signal_strength": signal_from_ping(ping_ms),
            "has_signal": ping_ms is not None,
            "ping_ms": ping_ms,
        }

    def _roaming_region(self, params: Mapping[str, Any], sequence: int) -> dict[str, Any]:
        regions = params["target_regions"]
        if isinstance(regions, str):
            regions = [r.strip() for r in regions.split(",") if r.strip()]
        region = regions[sequence % len(regions)]
        endpoints = list(params.get("test_endpoints") or DEFAULT_ROAMING_ENDPOINTS)

        results = []
        for endpoint in endpoints:
            latency = self._ping()
            results.append(
                {"endpoint": endpoint, "success": latency is not None, "latency": latency}
            )
        latencies = [r["latency"] for r in results if r["success"]]
        logger.debug(f"Simulated roaming probe in region {region}")
        return {
            "region": region,
            "success_rate": len(latencies) / len(results) * 100,
            "average_latency": round(sum(latencies) / len(latencies), 2) if latencies else 0.0,
            "endpoint_results": results,
        }
