"""Kind-specific sampling cadence.

Translates a TestConfig into a SamplingPlan: how often the engine ticks,
and when the loop terminates (elapsed duration or iteration count).
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import InvalidTestConfigError
from .models import TestConfig, TestKind

MIN_FREQUENCY_HZ = 0.1
MAX_FREQUENCY_HZ = 10.0
MAX_DURATION_SECONDS = 24 * 3600

COVERAGE_DENSITY_POINTS = {"low": 50, "medium": 200, "high": 500}

# Interval used by kinds whose cadence is not user-configurable.
_FIXED_INTERVALS: dict[TestKind, float] = {
    TestKind.QUALITY: 5.0,
    TestKind.LOAD_TEST: 5.0,
    TestKind.COVERAGE: 0.1,
    TestKind.ROAMING: 2.0,
    TestKind.API_TEST: 1.0,
    TestKind.CARRIER_API: 0.0,
}

_DEFAULT_DURATIONS: dict[TestKind, float] = {
    TestKind.SPEED: 30.0,
    TestKind.SIGNAL: 300.0,
    TestKind.QUALITY: 60.0,
    TestKind.API_HEALTH: 300.0,
    TestKind.LOAD_TEST: 60.0,
}

# Zero/sentinel fields recorded when a tick's sample fails.
_ERROR_FIELDS: dict[TestKind, dict[str, Any]] = {
    TestKind.SPEED: {"download_speed": 0.0, "upload_speed": 0.0, "latency": 0.0},
    TestKind.SIGNAL: {"signal_strength": -100.0, "network_type": "unknown", "below_threshold": True},
    TestKind.COVERAGE: {"signal_strength": -100.0, "has_signal": False},
    TestKind.QUALITY: {"average_ping": 0.0, "packet_loss": 100.0, "quality": "poor"},
    TestKind.ROAMING: {"success_rate": 0.0, "average_latency": 0.0},
    TestKind.API_TEST: {"status_code": 0, "response_time": 0.0, "success": False},
    TestKind.LOAD_TEST: {
        "total_requests": 0,
        "successful_requests": 0,
        "failed_requests": 0,
        "current_rps": 0.0,
    },
    TestKind.API_HEALTH: {"healthy_endpoints": 0, "total_endpoints": 0, "success": False},
    TestKind.CARRIER_API: {"passed": 0, "failed": 0, "success": False},
}


@dataclass(frozen=True)
class SamplingPlan:
    """How a single test's sampling loop is driven.

    Exactly one of ``duration_seconds`` and ``max_iterations`` is set.
    """

    interval_seconds: float
    duration_seconds: float | None = None
    max_iterations: int | None = None

    @property
    def is_empty(self) -> bool:
        """True when the loop must complete without taking any sample."""
        if self.duration_seconds is not None:
            return self.duration_seconds <= 0
        return (self.max_iterations or 0) <= 0

    def is_exhausted(self, elapsed_seconds: float, iterations: int) -> bool:
        """Check termination at a tick boundary."""
        if self.duration_seconds is not None:
            return elapsed_seconds >= self.duration_seconds
        return iterations >= (self.max_iterations or 0)

    @property
    def expected_ticks(self) -> int | None:
        if self.max_iterations is not None:
            return self.max_iterations
        if self.duration_seconds is None or self.interval_seconds <= 0:
            return None
        return max(0, math.ceil(self.duration_seconds / self.interval_seconds))


def _number(params: Mapping[str, Any], key: str, default: float) -> float:
    value = params.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float):
        try:
            value = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidTestConfigError(f"{key} must be a number, got {value!r}") from e
    if math.isnan(value) or math.isinf(value):
        raise InvalidTestConfigError(f"{key} must be finite")
    return float(value)


def _duration(kind: TestKind, params: Mapping[str, Any]) -> float:
    duration = _number(params, "duration", _DEFAULT_DURATIONS[kind])
    if duration > MAX_DURATION_SECONDS:
        raise InvalidTestConfigError(
            f"duration must be at most {MAX_DURATION_SECONDS} seconds"
        )
    return duration


def _positive_interval(params: Mapping[str, Any], key: str, default: float) -> float:
    interval = _number(params, key, default)
    if interval <= 0:
        raise InvalidTestConfigError(f"{key} must be positive")
    return interval


def _iterations(params: Mapping[str, Any], default: int) -> int:
    raw = params.get("iterations", default)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise InvalidTestConfigError(f"iterations must be an integer, got {raw!r}")
    if raw < 0:
        raise InvalidTestConfigError("iterations must be non-negative")
    return raw


def _regions(params: Mapping[str, Any]) -> list[str]:
    regions = params.get("target_regions")
    if isinstance(regions, str):
        regions = [r.strip() for r in regions.split(",") if r.strip()]
    if not regions or not isinstance(regions, list | tuple):
        raise InvalidTestConfigError("target_regions is required for roaming tests")
    return list(regions)


def plan_for(config: TestConfig) -> SamplingPlan:
    """Build the sampling plan for a test.

    Raises:
        InvalidTestConfigError: If kind-specific parameters are invalid.
    """
    kind = config.kind
    params = config.params

    if kind is TestKind.SPEED:
        frequency = _number(params, "frequency", 1.0)
        if not MIN_FREQUENCY_HZ <= frequency <= MAX_FREQUENCY_HZ:
            raise InvalidTestConfigError(
                f"frequency must be between {MIN_FREQUENCY_HZ} and {MAX_FREQUENCY_HZ} Hz"
            )
        interval = _positive_interval(params, "interval_seconds", 1.0 / frequency)
        return SamplingPlan(interval, duration_seconds=_duration(kind, params))

    if kind in (TestKind.SIGNAL, TestKind.API_HEALTH):
        default_interval = 5.0 if kind is TestKind.SIGNAL else 30.0
        interval = _positive_interval(params, "interval", default_interval)
        interval = _positive_interval(params, "interval_seconds", interval)
        if kind is TestKind.API_HEALTH and not params.get("endpoints"):
            raise InvalidTestConfigError("endpoints are required for API health checks")
        return SamplingPlan(interval, duration_seconds=_duration(kind, params))

    if kind in (TestKind.QUALITY, TestKind.LOAD_TEST):
        interval = _positive_interval(params, "interval_seconds", _FIXED_INTERVALS[kind])
        if kind is TestKind.LOAD_TEST and not params.get("endpoint"):
            raise InvalidTestConfigError("endpoint is required for load tests")
        return SamplingPlan(interval, duration_seconds=_duration(kind, params))

    if kind is TestKind.COVERAGE:
        bounds = params.get("bounds")
        if not isinstance(bounds, Mapping) or not all(
            bounds.get(side) is not None for side in ("north", "south", "east", "west")
        ):
            raise InvalidTestConfigError(
                "Complete geographic bounds (north, south, east, west) are required"
            )
        density = params.get("density", "medium")
        if density not in COVERAGE_DENSITY_POINTS:
            raise InvalidTestConfigError(
                f"density must be one of {sorted(COVERAGE_DENSITY_POINTS)}"
            )
        interval = _positive_interval(params, "interval_seconds", _FIXED_INTERVALS[kind])
        points = _iterations(params, COVERAGE_DENSITY_POINTS[density])
        return SamplingPlan(interval, max_iterations=points)

    if kind is TestKind.ROAMING:
        if not params.get("source_network"):
            raise InvalidTestConfigError("source_network is required for roaming tests")
        regions = _regions(params)
        interval = _positive_interval(params, "interval_seconds", _FIXED_INTERVALS[kind])
        return SamplingPlan(interval, max_iterations=_iterations(params, len(regions)))

    if kind is TestKind.API_TEST:
        if not params.get("endpoint"):
            raise InvalidTestConfigError("endpoint is required for API tests")
        interval = _positive_interval(params, "interval_seconds", _FIXED_INTERVALS[kind])
        return SamplingPlan(interval, max_iterations=_iterations(params, 1))

    # CARRIER_API is a one-shot terminal computation.
    return SamplingPlan(_FIXED_INTERVALS[TestKind.CARRIER_API], max_iterations=1)


def error_fields_for(kind: TestKind) -> dict[str, Any]:
    """Zero/sentinel payload recorded in place of a failed sample."""
    return dict(_ERROR_FIELDS.get(kind, {}))
