"""Tests for kind-specific sampling plans."""

import pytest

from carrierlab.core.errors import InvalidTestConfigError
from carrierlab.core.models import TestConfig, TestKind
from carrierlab.core.sampling import SamplingPlan, error_fields_for, plan_for

BOUNDS = {"north": 40.8, "south": 40.7, "east": -73.9, "west": -74.0}


def config(kind: TestKind, **params) -> TestConfig:
    return TestConfig(test_id="t-1", kind=kind, params=params)


class TestDurationBoundPlans:
    """Speed, signal, quality, load and health tests stop on elapsed time."""

    def test_speed_interval_is_inverse_frequency(self) -> None:
        plan = plan_for(config(TestKind.SPEED, frequency=2, duration=3))
        assert plan.interval_seconds == 0.5
        assert plan.duration_seconds == 3
        assert plan.max_iterations is None
        assert plan.expected_ticks == 6

    def test_speed_defaults(self) -> None:
        plan = plan_for(config(TestKind.SPEED))
        assert plan.interval_seconds == 1.0
        assert plan.duration_seconds == 30.0

    @pytest.mark.parametrize("frequency", [0.05, 10.5, 0])
    def test_speed_frequency_out_of_range(self, frequency) -> None:
        with pytest.raises(InvalidTestConfigError, match="frequency"):
            plan_for(config(TestKind.SPEED, frequency=frequency))

    def test_non_numeric_frequency_rejected(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="must be a number"):
            plan_for(config(TestKind.SPEED, frequency="fast"))

    def test_numeric_strings_accepted(self) -> None:
        plan = plan_for(config(TestKind.SPEED, frequency="5", duration="2"))
        assert plan.interval_seconds == 0.2
        assert plan.duration_seconds == 2.0

    def test_signal_uses_interval_param(self) -> None:
        plan = plan_for(config(TestKind.SIGNAL, interval=2, duration=10))
        assert plan.interval_seconds == 2
        assert plan.duration_seconds == 10

    def test_signal_defaults(self) -> None:
        plan = plan_for(config(TestKind.SIGNAL))
        assert plan.interval_seconds == 5.0
        assert plan.duration_seconds == 300.0

    def test_quality_fixed_interval(self) -> None:
        plan = plan_for(config(TestKind.QUALITY, duration=60))
        assert plan.interval_seconds == 5.0
        assert plan.expected_ticks == 12

    def test_load_test_requires_endpoint(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="endpoint"):
            plan_for(config(TestKind.LOAD_TEST, duration=10))

    def test_api_health_requires_endpoints(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="endpoints"):
            plan_for(config(TestKind.API_HEALTH))

    def test_api_health_interval(self) -> None:
        plan = plan_for(
            config(TestKind.API_HEALTH, endpoints=["https://a.example"], interval=10)
        )
        assert plan.interval_seconds == 10
        assert plan.duration_seconds == 300.0

    def test_negative_interval_rejected(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="positive"):
            plan_for(config(TestKind.SIGNAL, interval=-1))

    def test_duration_ceiling(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="duration"):
            plan_for(config(TestKind.SPEED, duration=10 * 24 * 3600))

    def test_zero_duration_is_empty(self) -> None:
        plan = plan_for(config(TestKind.SPEED, duration=0))
        assert plan.is_empty is True
        assert plan.expected_ticks == 0


class TestIterationBoundPlans:
    """Coverage, roaming, api_test and carrier_api stop on a count."""

    @pytest.mark.parametrize(
        ("density", "points"), [("low", 50), ("medium", 200), ("high", 500)]
    )
    def test_coverage_density_sets_points(self, density, points) -> None:
        plan = plan_for(config(TestKind.COVERAGE, bounds=BOUNDS, density=density))
        assert plan.max_iterations == points
        assert plan.interval_seconds == 0.1

    def test_coverage_requires_complete_bounds(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="bounds"):
            plan_for(config(TestKind.COVERAGE, bounds={"north": 1, "south": 0}))

    def test_coverage_rejects_unknown_density(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="density"):
            plan_for(config(TestKind.COVERAGE, bounds=BOUNDS, density="extreme"))

    def test_coverage_iterations_override(self) -> None:
        plan = plan_for(config(TestKind.COVERAGE, bounds=BOUNDS, iterations=7))
        assert plan.max_iterations == 7

    def test_roaming_one_tick_per_region(self) -> None:
        plan = plan_for(
            config(
                TestKind.ROAMING,
                source_network="310-260",
                target_regions=["EU", "APAC", "LATAM"],
            )
        )
        assert plan.max_iterations == 3
        assert plan.interval_seconds == 2.0

    def test_roaming_accepts_comma_separated_regions(self) -> None:
        plan = plan_for(
            config(TestKind.ROAMING, source_network="310-260", target_regions="EU, APAC")
        )
        assert plan.max_iterations == 2

    def test_roaming_requires_source_and_regions(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="source_network"):
            plan_for(config(TestKind.ROAMING, target_regions=["EU"]))
        with pytest.raises(InvalidTestConfigError, match="target_regions"):
            plan_for(config(TestKind.ROAMING, source_network="310-260"))

    def test_api_test_defaults_to_single_request(self) -> None:
        plan = plan_for(config(TestKind.API_TEST, endpoint="https://api.example"))
        assert plan.max_iterations == 1

    def test_api_test_iterations_must_be_integer(self) -> None:
        with pytest.raises(InvalidTestConfigError, match="iterations"):
            plan_for(config(TestKind.API_TEST, endpoint="https://x", iterations=2.5))
        with pytest.raises(InvalidTestConfigError, match="iterations"):
            plan_for(config(TestKind.API_TEST, endpoint="https://x", iterations=-1))

    def test_carrier_api_is_one_shot(self) -> None:
        plan = plan_for(config(TestKind.CARRIER_API, carrier="verizon"))
        assert plan.max_iterations == 1
        assert plan.interval_seconds == 0.0

    def test_zero_iterations_is_empty(self) -> None:
        plan = plan_for(config(TestKind.COVERAGE, bounds=BOUNDS, iterations=0))
        assert plan.is_empty is True


class TestSamplingPlan:
    def test_duration_exhaustion_at_boundary(self) -> None:
        plan = SamplingPlan(1.0, duration_seconds=3.0)
        assert plan.is_exhausted(2.9, 2) is False
        assert plan.is_exhausted(3.0, 3) is True

    def test_iteration_exhaustion(self) -> None:
        plan = SamplingPlan(0.1, max_iterations=2)
        assert plan.is_exhausted(100.0, 1) is False
        assert plan.is_exhausted(0.0, 2) is True


class TestErrorFields:
    def test_speed_error_fields_are_zeroed(self) -> None:
        assert error_fields_for(TestKind.SPEED) == {
            "download_speed": 0.0,
            "upload_speed": 0.0,
            "latency": 0.0,
        }

    def test_quality_error_reports_total_loss(self) -> None:
        fields = error_fields_for(TestKind.QUALITY)
        assert fields["packet_loss"] == 100.0
        assert fields["quality"] == "poor"

    def test_error_fields_are_copies(self) -> None:
        fields = error_fields_for(TestKind.SIGNAL)
        fields["signal_strength"] = 0
        assert error_fields_for(TestKind.SIGNAL)["signal_strength"] == -100.0

    def test_every_kind_has_error_fields(self) -> None:
        for kind in TestKind:
            assert error_fields_for(kind)
