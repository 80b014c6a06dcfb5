"""Terminal summaries computed from a finished test's samples.

Pure functions over Sample sequences; probes call these from
``summarize()`` so the engine can persist the result as a final sample.
"""

from collections import Counter
from collections.abc import Sequence
from typing import Any

from carrierlab.core.models import Sample


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def summarize_api_requests(samples: Sequence[Sample]) -> dict[str, Any]:
    """Request statistics over api_test samples (one request per sample)."""
    if not samples:
        return {}

    successful = [s for s in samples if s.data.get("success")]
    failed = [s for s in samples if not s.data.get("success")]
    response_times = [float(s.data.get("response_time", 0.0)) for s in samples]

    status_codes = Counter(str(s.data.get("status_code", 0)) for s in samples)
    error_types = Counter(
        s.error or str(s.data.get("error") or "Unknown error") for s in failed
    )

    return {
        "total_requests": len(samples),
        "successful_requests": len(successful),
        "failed_requests": len(failed),
        "success_rate": len(successful) / len(samples) * 100,
        "average_response_time": _mean(response_times),
        "min_response_time": min(response_times),
        "max_response_time": max(response_times),
        "status_code_distribution": dict(status_codes),
        "error_types": dict(error_types),
    }


def summarize_load_test(samples: Sequence[Sample], duration_seconds: float) -> dict[str, Any]:
    """Aggregate per-report bursts into whole-test load statistics."""
    total = sum(int(s.data.get("total_requests", 0)) for s in samples)
    successful = sum(int(s.data.get("successful_requests", 0)) for s in samples)

    weighted_time = sum(
        float(s.data.get("average_response_time", 0.0)) * int(s.data.get("total_requests", 0))
        for s in samples
    )
    mins = [float(s.data["min_response_time"]) for s in samples if "min_response_time" in s.data]
    maxes = [float(s.data["max_response_time"]) for s in samples if "max_response_time" in s.data]

    status_codes: Counter[str] = Counter()
    for s in samples:
        status_codes.update(s.data.get("status_codes", {}))

    return {
        "total_requests": total,
        "successful_requests": successful,
        "failed_requests": total - successful,
        "success_rate": successful / total * 100 if total else 0.0,
        "average_response_time": weighted_time / total if total else 0.0,
        "min_response_time": min(mins) if mins else 0.0,
        "max_response_time": max(maxes) if maxes else 0.0,
        "requests_per_second": total / duration_seconds if duration_seconds > 0 else 0.0,
        "status_code_distribution": dict(status_codes),
        "duration": duration_seconds,
    }


def summarize_coverage(samples: Sequence[Sample], density: str) -> dict[str, Any]:
    """Share of sampled points that had signal, and the mean signal level."""
    if not samples:
        return {}
    covered = sum(1 for s in samples if s.data.get("has_signal"))
    return {
        "density": density,
        "sample_points": len(samples),
        "covered_points": covered,
        "coverage": covered / len(samples) * 100,
        "average_signal": _mean([float(s.data.get("signal_strength", -100.0)) for s in samples]),
    }


def summarize_roaming(samples: Sequence[Sample], source_network: str) -> dict[str, Any]:
    """Per-region success aggregated across the regions visited."""
    if not samples:
        return {}
    rates = [float(s.data.get("success_rate", 0.0)) for s in samples]
    return {
        "source_network": source_network,
        "regions_total": len(samples),
        "regions_successful": sum(1 for rate in rates if rate > 50),
        "overall_success_rate": _mean(rates),
        "average_latency": _mean([float(s.data.get("average_latency", 0.0)) for s in samples]),
    }
