"""CLI command implementations for carrierlab.

Provides human-initiated actions through command-line interface.

This adapter maps CLI commands (start, stop, status, list, active, delete,
summary, stats, schedule, unschedule, schedules) to TestManagementPort operations. It
handles CLI-specific formatting and error reporting.
"""

import logging
from typing import Any

from carrierlab.core.errors import AdmissionError, InvalidTestConfigError, TestActiveError
from carrierlab.core.models import EngineStats, TestReport
from carrierlab.core.ports import TestManagementPort

logger = logging.getLogger(__name__)


class CLICommandHandler:
    """Handles CLI commands by delegating to TestManagementPort.

    Domain errors (bad parameters, admission rejections) are reported as
    ``{"status": "error"}`` results; anything else propagates.
    """

    def __init__(self, management: TestManagementPort):
        """Initialize the CLI command handler.

        Args:
            management: TestManagementPort implementation to execute commands.
        """
        self.management = management

    async def start_test(
        self, kind: str, params: dict[str, Any] | None = None, verbose: bool = False
    ) -> dict[str, Any]:
        """Submit a test via CLI.

        Args:
            kind: Test kind (speed, signal, coverage, ...).
            params: Kind-specific parameters.
            verbose: If True, log the submitted parameters.

        Returns:
            Dictionary with status, test ID and message.
        """
        try:
            config = await self.management.submit_test(kind, params or {})
        except (InvalidTestConfigError, AdmissionError) as e:
            logger.error(f"Failed to start {kind} test: {e}")
            return {"status": "error", "operation": "start", "kind": kind, "message": str(e)}

        if verbose:
            logger.info(
                f"Started {kind} test {config.test_id}",
                extra={"params": params, "verbose": True},
            )
        return {
            "status": "success",
            "operation": "start",
            "test_id": config.test_id,
            "test_status": config.status.value,
            "message": f"{config.kind.value} test {config.test_id} {config.status.value}",
        }

    async def stop_test(self, test_id: str) -> dict[str, Any]:
        if await self.management.stop_test(test_id):
            return {
                "status": "success",
                "operation": "stop",
                "test_id": test_id,
                "message": f"Test {test_id} stopped",
            }
        return {
            "status": "error",
            "operation": "stop",
            "test_id": test_id,
            "message": f"Test {test_id} not found in active tests",
        }

    async def get_test_status(
        self, test_id: str, output_format: str = "json", recent: int = 10
    ) -> dict[str, Any]:
        """Retrieve a test's stored config and recent samples.

        Args:
            test_id: ID of the test.
            output_format: Output format ('json', 'text'). Default 'json'.
            recent: Number of most recent samples to include.
        """
        report = await self.management.get_test_report(test_id, recent=recent)
        if report is None:
            return {
                "status": "error",
                "operation": "status",
                "test_id": test_id,
                "message": f"Test {test_id} not found",
            }

        if output_format == "json":
            data: Any = report.to_dict()
        elif output_format == "text":
            data = self._format_report_as_text(report)
        else:
            return {
                "status": "error",
                "operation": "status",
                "message": f"Unsupported format: {output_format}",
            }
        return {"status": "success", "operation": "status", "data": data}

    async def list_tests(
        self, status: str | None = None, limit: int = 100, output_format: str = "json"
    ) -> dict[str, Any]:
        try:
            configs = await self.management.list_tests(status, limit)
        except InvalidTestConfigError as e:
            return {"status": "error", "operation": "list", "message": str(e)}

        if output_format == "text":
            lines = [
                f"{c.test_id}  {c.kind.value:<12} {c.status.value:<10} {c.created_at.isoformat()}"
                for c in configs
            ]
            return {"status": "success", "operation": "list", "data": "\n".join(lines)}
        return {
            "status": "success",
            "operation": "list",
            "count": len(configs),
            "data": [c.to_dict() for c in configs],
        }

    async def list_active_tests(self) -> dict[str, Any]:
        active = await self.management.list_active_tests()
        return {
            "status": "success",
            "operation": "active",
            "count": len(active),
            "data": [t.to_dict() for t in active],
        }

    async def delete_test(self, test_id: str) -> dict[str, Any]:
        try:
            deleted = await self.management.delete_test(test_id)
        except TestActiveError as e:
            return {"status": "error", "operation": "delete", "test_id": test_id, "message": str(e)}
        if not deleted:
            return {
                "status": "error",
                "operation": "delete",
                "test_id": test_id,
                "message": f"Test {test_id} not found",
            }
        return {
            "status": "success",
            "operation": "delete",
            "test_id": test_id,
            "message": f"Test {test_id} deleted",
        }

    async def get_results_summary(self, output_format: str = "json") -> dict[str, Any]:
        summary = await self.management.get_results_summary()
        if output_format == "text":
            lines = [f"Tests: {summary.total_tests}", f"Samples: {summary.total_samples}", "By kind:"]
            lines.extend(f"  {kind}: {count}" for kind, count in summary.by_kind.items())
            lines.append("By status:")
            lines.extend(f"  {status}: {count}" for status, count in summary.by_status.items())
            return {"status": "success", "operation": "summary", "data": "\n".join(lines)}
        return {"status": "success", "operation": "summary", "data": summary.to_dict()}

    async def get_stats(self, output_format: str = "json") -> dict[str, Any]:
        stats = await self.management.get_stats()
        if output_format == "text":
            return {
                "status": "success",
                "operation": "stats",
                "data": self._format_stats_as_text(stats),
            }
        return {"status": "success", "operation": "stats", "data": stats.to_dict()}

    async def schedule_test(
        self, kind: str, params: dict[str, Any] | None, interval_seconds: float
    ) -> dict[str, Any]:
        try:
            info = await self.management.schedule_recurring_test(
                kind, params or {}, float(interval_seconds)
            )
        except (InvalidTestConfigError, ValueError) as e:
            logger.error(f"Failed to schedule {kind} test: {e}")
            return {"status": "error", "operation": "schedule", "message": str(e)}
        return {
            "status": "success",
            "operation": "schedule",
            "schedule_id": info.schedule_id,
            "message": f"{kind} test scheduled every {interval_seconds}s",
        }

    async def unschedule_test(self, schedule_id: str) -> dict[str, Any]:
        if await self.management.cancel_recurring_test(schedule_id):
            return {"status": "success", "operation": "unschedule", "schedule_id": schedule_id}
        return {
            "status": "error",
            "operation": "unschedule",
            "schedule_id": schedule_id,
            "message": f"Scheduled test {schedule_id} not found",
        }

    async def list_schedules(self) -> dict[str, Any]:
        schedules = await self.management.list_recurring_tests()
        return {
            "status": "success",
            "operation": "schedules",
            "data": [s.to_dict() for s in schedules],
        }

    def _format_report_as_text(self, report: TestReport) -> str:
        """Format a test report as human-readable text."""
        config = report.config
        lines = [
            f"Test ID: {config.test_id}",
            f"Kind: {config.kind.value}",
            f"Status: {config.status.value}",
            f"Created: {config.created_at.isoformat()}",
        ]
        if config.params:
            lines.append("Parameters:")
            for key, value in config.params.items():
                lines.append(f"  {key}: {value}")
        lines.append("")

        if report.running is not None:
            lines.append(f"Live: {report.running.samples_recorded} samples recorded")
            lines.append(f"Last Update: {report.running.last_update.isoformat()}")
            lines.append("")

        if report.recent_samples:
            lines.append("Recent Results:")
            for sample in report.recent_samples:
                marker = "summary" if sample.final else f"#{sample.sequence}"
                status = f" ERROR: {sample.error}" if sample.is_error else ""
                lines.append(f"  {marker} {sample.timestamp.isoformat()}{status}")
        return "\n".join(lines)

    def _format_stats_as_text(self, stats: EngineStats) -> str:
        return "\n".join(
            [
                f"Running: {stats.running_count}/{stats.max_concurrent_tests}",
                f"Queued: {stats.queue_depth}",
                f"Scheduled: {stats.scheduled_count}",
                f"Tests Started: {stats.tests_started}",
                f"Succeeded: {stats.tests_succeeded}",
                f"Failed: {stats.tests_failed}",
                f"Success Rate: {stats.success_rate * 100:.1f}%",
                f"Average Runtime: {stats.average_runtime_seconds:.1f}s",
            ]
        )


def _required(args: dict[str, Any], key: str) -> Any:
    if key not in args:
        raise ValueError(f"Missing required parameter: {key}")
    return args[key]


async def run_command(
    handler: CLICommandHandler,
    command: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """Run a CLI command.

    Entry point for executing CLI commands. Maps command names to handler methods.

    Raises:
        ValueError: If command is not recognized or a required argument is missing.
    """
    if command == "start":
        return await handler.start_test(
            _required(args, "kind"), args.get("params"), args.get("verbose", False)
        )
    elif command == "stop":
        return await handler.stop_test(_required(args, "test_id"))
    elif command == "status":
        return await handler.get_test_status(
            _required(args, "test_id"),
            output_format=args.get("format", "json"),
            recent=int(args.get("recent", 10)),
        )
    elif command == "list":
        return await handler.list_tests(
            status=args.get("status"),
            limit=int(args.get("limit", 100)),
            output_format=args.get("format", "json"),
        )
    elif command == "active":
        return await handler.list_active_tests()
    elif command == "delete":
        return await handler.delete_test(_required(args, "test_id"))
    elif command == "summary":
        return await handler.get_results_summary(output_format=args.get("format", "json"))
    elif command == "stats":
        return await handler.get_stats(output_format=args.get("format", "json"))
    elif command == "schedule":
        return await handler.schedule_test(
            _required(args, "kind"),
            args.get("params"),
            _required(args, "interval_seconds"),
        )
    elif command == "unschedule":
        return await handler.unschedule_test(_required(args, "schedule_id"))
    elif command == "schedules":
        return await handler.list_schedules()
    else:
        raise ValueError(f"Unknown command: {command}. Use 'help' for available commands.")
