"""Composition root for the carrierlab testing engine.

This module is the ONLY location that imports both core domain logic
and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Configuration loading via config module
- Adapter instantiation
- Core service initialization
- Dependency injection
- Entry point selection (server or CLI)
"""

import asyncio
import json
import logging
import sys
from dataclasses import dataclass

from carrierlab.adapters.api.http_server import ApiHTTPServer
from carrierlab.adapters.api.receiver import ApiReceiver
from carrierlab.adapters.broadcast.memory import InMemoryBroadcaster
from carrierlab.adapters.cli.commands import CLICommandHandler, run_command
from carrierlab.adapters.probes.http import HTTP_KINDS, HttpSampleSource
from carrierlab.adapters.probes.router import KindRoutingSampleSource
from carrierlab.adapters.probes.simulated import SIMULATED_KINDS, SimulatedSampleSource
from carrierlab.adapters.scheduler.daemon import EngineDaemon
from carrierlab.adapters.store.sqlite import SQLiteResultStore
from carrierlab.adapters.system.memory import process_memory_mb
from carrierlab.config import Settings, load_settings
from carrierlab.core.lifecycle import LifecycleEngine
from carrierlab.core.monitor import PerformanceMonitor
from carrierlab.core.test_service import TestService


@dataclass
class Application:
    """Wired components, ready to run in either mode."""

    settings: Settings
    store: SQLiteResultStore
    probes: KindRoutingSampleSource
    broadcaster: InMemoryBroadcaster
    engine: LifecycleEngine
    service: TestService

    async def close(self) -> None:
        await self.probes.close()
        await self.store.close()


def build_application(settings: Settings) -> Application:
    """Instantiate adapters and core services from settings.

    Must be called with a running event loop (the engine owns asyncio
    primitives).
    """
    logger = logging.getLogger(__name__)

    store = SQLiteResultStore(db_path=settings.store_sqlite_path)
    logger.info(f"Result store initialized: {settings.store_sqlite_path}")

    http_probe = HttpSampleSource(timeout=settings.probe_timeout_seconds)
    simulated_probe = SimulatedSampleSource(seed=settings.simulated_probe_seed)
    routes = {kind: http_probe for kind in HTTP_KINDS}
    routes.update({kind: simulated_probe for kind in SIMULATED_KINDS})
    probes = KindRoutingSampleSource(routes)

    broadcaster = InMemoryBroadcaster(queue_size=settings.broadcast_queue_size)

    monitor = PerformanceMonitor(
        memory_reader=process_memory_mb,
        load_warning_ratio=settings.load_warning_ratio,
        queue_warning_threshold=settings.queue_warning_threshold,
        memory_warning_mb=settings.memory_warning_mb,
    )
    engine = LifecycleEngine(
        sample_source=probes,
        store=store,
        broadcaster=broadcaster,
        max_concurrent_tests=settings.max_concurrent_tests,
        max_queue_size=settings.max_queue_size,
        dispatch_interval_seconds=settings.dispatch_interval_seconds,
        monitor=monitor,
        monitor_interval_seconds=settings.monitor_interval_seconds,
        shutdown_timeout_seconds=settings.shutdown_timeout_seconds,
    )
    service = TestService(engine=engine, store=store)

    return Application(
        settings=settings,
        store=store,
        probes=probes,
        broadcaster=broadcaster,
        engine=engine,
        service=service,
    )


async def _run_cli_interactive(cli_handler: CLICommandHandler) -> None:
    """Run interactive CLI loop.

    Provides a REPL-like interface for test commands.
    """
    logger = logging.getLogger(__name__)
    logger.info("Starting interactive CLI. Type 'help' for available commands or 'exit' to quit.")

    loop = asyncio.get_running_loop()

    while True:
        try:
            command_line = await loop.run_in_executor(None, input, "carrierlab> ")
            command_line = command_line.strip()

            if not command_line:
                continue
            if command_line.lower() == "exit":
                logger.info("Exiting CLI")
                break
            if command_line.lower() == "help":
                _print_cli_help()
                continue

            parts = command_line.split(maxsplit=1)
            command = parts[0].lower()
            args_str = parts[1] if len(parts) > 1 else ""

            try:
                args = json.loads(args_str) if args_str else {}
            except json.JSONDecodeError:
                logger.error("Invalid JSON arguments. Use 'help' for command syntax.")
                continue
            if not isinstance(args, dict):
                logger.error("Arguments must be a JSON object. Use 'help' for command syntax.")
                continue

            try:
                result = await run_command(cli_handler, command, args)
                print(json.dumps(result, indent=2, default=str))
            except Exception as e:
                logger.error(f"Command execution error: {e}", exc_info=True)
                print(json.dumps({"status": "error", "message": str(e)}, indent=2))

        except EOFError:
            logger.info("EOF received, exiting CLI")
            break
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            continue


def _print_cli_help() -> None:
    """Print CLI help message."""
    help_text = """
Available Commands (JSON format):

  start
    Start a test. Kinds: speed, signal, coverage, quality, roaming,
    api_test, load_test, api_health, carrier_api
    Required: kind
    Optional: params

    Example: start {"kind": "speed", "params": {"frequency": 2, "duration": 10}}

  stop
    Stop a running or queued test.
    Required: test_id

  status
    Show a test with its most recent results.
    Required: test_id
    Optional: recent, format (json, text)

  list
    List stored tests, optionally filtered by status.
    Status options: pending, running, completed, failed, stopped

    Example: list {"status": "running", "format": "text"}

  active
    List tests currently running.

  delete
    Delete a finished test and its results.
    Required: test_id

  summary
    Count stored tests by kind and status.
    Optional: format (json, text)

  stats
    Show engine statistics.

  schedule
    Submit a test every interval_seconds.
    Required: kind, interval_seconds
    Optional: params

  unschedule
    Cancel a recurring test.
    Required: schedule_id

  schedules
    List recurring tests.

  help
    Show this help message.

  exit
    Exit the CLI.

Note: All commands accept arguments as a single JSON object.
Provide the JSON after the command name on the same line.
    """
    print(help_text)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = (
            '{"time": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


async def _run_server(app: Application) -> None:
    """Serve the HTTP API until the daemon is signalled to stop."""
    settings = app.settings
    daemon = EngineDaemon(
        engine=app.engine,
        store=app.store,
        maintenance_interval_seconds=settings.maintenance_interval_seconds,
        retention_days=settings.result_retention_days,
    )
    http_server = ApiHTTPServer(
        receiver=ApiReceiver(app.service),
        host=settings.http_host,
        port=settings.http_port,
        api_key=settings.http_api_key or None,
        require_auth=settings.http_require_auth,
        broadcaster=app.broadcaster,
    )
    await http_server.start()
    try:
        await daemon.start()
    finally:
        await http_server.stop()


async def _run_cli(app: Application) -> None:
    await app.engine.initialize()
    try:
        await _run_cli_interactive(CLICommandHandler(app.service))
    finally:
        await app.engine.shutdown()


async def bootstrap(env_file: str | None = None) -> None:
    """Load configuration, wire adapters, and start the application.

    Steps:
    1. Load configuration from environment
    2. Configure logging
    3. Instantiate adapters and core services
    4. Select and start run mode

    Raises:
        SystemExit: On an unknown run mode.
    """
    settings = load_settings(env_file)

    configure_logging("DEBUG" if settings.debug else settings.log_level, settings.log_format)
    logger = logging.getLogger(__name__)
    logger.info("Loading carrierlab testing engine...")

    app = build_application(settings)

    logger.info(f"Starting in {settings.run_mode} mode...")
    try:
        if settings.run_mode == "server":
            await _run_server(app)
        elif settings.run_mode == "cli":
            await _run_cli(app)
        else:
            logger.error(f"Unknown run mode: {settings.run_mode}")
            sys.exit(1)
    finally:
        await app.close()


def main() -> None:
    """Application entry point.

    Exit codes:
        0: Successful shutdown
        1: Fatal bootstrap or runtime error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        asyncio.run(bootstrap())
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except asyncio.CancelledError:
        logger.info("Graceful shutdown completed")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
