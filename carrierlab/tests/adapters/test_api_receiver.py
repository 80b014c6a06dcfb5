"""Tests for ApiReceiver request handling."""

import pytest

from carrierlab.adapters.api.receiver import ApiReceiver, TestNotFoundError
from carrierlab.core.errors import InvalidTestConfigError, QueueFullError, TestActiveError
from carrierlab.core.models import TestKind, TestStatus
from carrierlab.tests.fakes import FakeTestManagementPort


@pytest.fixture
def management() -> FakeTestManagementPort:
    return FakeTestManagementPort()


@pytest.fixture
def receiver(management: FakeTestManagementPort) -> ApiReceiver:
    return ApiReceiver(management)


class TestStartAndStop:
    @pytest.mark.asyncio
    async def test_start_returns_test_id(self, receiver, management) -> None:
        response = await receiver.handle_start_request("speed", {"frequency": 2})

        assert response["status"] == "success"
        assert response["operation"] == "start"
        assert response["test_id"] in management.configs
        assert response["test"]["kind"] == "speed"
        assert management.submitted == [("speed", {"frequency": 2})]

    @pytest.mark.asyncio
    async def test_start_without_kind(self, receiver) -> None:
        with pytest.raises(InvalidTestConfigError, match="Missing kind"):
            await receiver.handle_start_request(None, {})

    @pytest.mark.asyncio
    async def test_start_defaults_params(self, receiver, management) -> None:
        await receiver.handle_start_request("signal", None)
        assert management.submitted == [("signal", {})]

    @pytest.mark.asyncio
    async def test_admission_rejection_propagates(self, receiver, management) -> None:
        management.reject_with_queue_full = True
        with pytest.raises(QueueFullError):
            await receiver.handle_start_request("speed", {})

    @pytest.mark.asyncio
    async def test_stop_running_test(self, receiver, management) -> None:
        config = management.add_config(TestKind.SPEED, TestStatus.RUNNING)

        response = await receiver.handle_stop_request(config.test_id)

        assert response == {"status": "success", "operation": "stop", "test_id": config.test_id}
        assert management.stopped == [config.test_id]

    @pytest.mark.asyncio
    async def test_stop_unknown_test(self, receiver) -> None:
        with pytest.raises(TestNotFoundError):
            await receiver.handle_stop_request("missing")


class TestQueries:
    @pytest.mark.asyncio
    async def test_status(self, receiver, management) -> None:
        config = management.add_config(TestKind.COVERAGE, TestStatus.COMPLETED)

        response = await receiver.handle_status_request(config.test_id)

        assert response["data"]["test_id"] == config.test_id
        assert response["data"]["status"] == "completed"
        assert response["data"]["recent_results"] == []
        assert response["data"]["live"] is None

    @pytest.mark.asyncio
    async def test_status_unknown(self, receiver) -> None:
        with pytest.raises(TestNotFoundError):
            await receiver.handle_status_request("missing")

    @pytest.mark.asyncio
    async def test_list_normalizes_status_case(self, receiver, management) -> None:
        management.add_config(TestKind.SPEED, TestStatus.FAILED)
        management.add_config(TestKind.SPEED, TestStatus.COMPLETED)

        response = await receiver.handle_list_request(status="FAILED")

        assert [t["status"] for t in response["tests"]] == ["failed"]

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_status(self, receiver) -> None:
        with pytest.raises(InvalidTestConfigError):
            await receiver.handle_list_request(status="asleep")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [5, ["failed"], {"is": "failed"}])
    async def test_list_rejects_non_string_status(self, receiver, status) -> None:
        with pytest.raises(InvalidTestConfigError, match="status must be a string"):
            await receiver.handle_list_request(status=status)

    @pytest.mark.asyncio
    async def test_delete_finished_test(self, receiver, management) -> None:
        config = management.add_config(TestKind.SIGNAL, TestStatus.COMPLETED)

        response = await receiver.handle_delete_request(config.test_id)

        assert response == {"status": "success", "operation": "delete", "test_id": config.test_id}
        assert management.deleted == [config.test_id]
        with pytest.raises(TestNotFoundError):
            await receiver.handle_delete_request(config.test_id)

    @pytest.mark.asyncio
    async def test_delete_running_test_refused(self, receiver, management) -> None:
        config = management.add_config(TestKind.SPEED, TestStatus.RUNNING)

        with pytest.raises(TestActiveError):
            await receiver.handle_delete_request(config.test_id)
        assert config.test_id in management.configs

    @pytest.mark.asyncio
    async def test_summary(self, receiver, management) -> None:
        management.add_config(TestKind.SPEED, TestStatus.COMPLETED)
        management.add_config(TestKind.SPEED, TestStatus.FAILED)

        response = await receiver.handle_summary_request()

        assert response["operation"] == "summary"
        assert response["data"]["total_tests"] == 2
        assert response["data"]["by_kind"] == {"speed": 2}
        assert response["data"]["by_status"] == {"completed": 1, "failed": 1}

    @pytest.mark.asyncio
    async def test_stats(self, receiver, management) -> None:
        management.add_config(TestKind.SPEED, TestStatus.RUNNING)

        response = await receiver.handle_stats_request()

        assert response["data"]["running_count"] == 1
        assert response["data"]["success_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_active(self, receiver) -> None:
        response = await receiver.handle_active_request()
        assert response == {"status": "success", "operation": "active", "tests": []}


class TestSchedules:
    @pytest.mark.asyncio
    async def test_create_list_cancel(self, receiver) -> None:
        created = await receiver.handle_schedule_create_request("speed", {}, "300")
        schedule_id = created["schedule"]["schedule_id"]

        listed = await receiver.handle_schedule_list_request()
        assert [s["schedule_id"] for s in listed["schedules"]] == [schedule_id]
        assert listed["schedules"][0]["interval_seconds"] == 300.0

        cancelled = await receiver.handle_schedule_cancel_request(schedule_id)
        assert cancelled["operation"] == "unschedule"
        with pytest.raises(TestNotFoundError):
            await receiver.handle_schedule_cancel_request(schedule_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval", [None, 0, -5, "soon"])
    async def test_invalid_interval(self, receiver, interval) -> None:
        with pytest.raises(InvalidTestConfigError, match="interval_seconds"):
            await receiver.handle_schedule_create_request("speed", {}, interval)
