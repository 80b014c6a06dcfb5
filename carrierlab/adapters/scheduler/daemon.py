"""Daemon adapter.

Owns the process lifetime of the lifecycle engine: starts it, installs
SIGTERM/SIGINT handlers, runs a periodic maintenance loop (result
retention cleanup) and performs the ordered engine shutdown on exit.
"""

import asyncio
import logging
import signal

from carrierlab.core.lifecycle import LifecycleEngine
from carrierlab.core.ports import ResultStorePort

logger = logging.getLogger(__name__)


class EngineDaemon:
    """Asyncio-based daemon that keeps the engine running until signalled."""

    def __init__(
        self,
        engine: LifecycleEngine,
        store: ResultStorePort,
        maintenance_interval_seconds: float = 3600,
        retention_days: int = 30,
    ):
        """Initialize the daemon.

        Args:
            engine: Engine to initialize and later shut down.
            store: Store whose old results are cleaned up periodically.
            maintenance_interval_seconds: Interval between cleanup runs.
            retention_days: Age after which results are deleted.
        """
        if maintenance_interval_seconds <= 0:
            raise ValueError("maintenance_interval_seconds must be positive")
        self.engine = engine
        self.store = store
        self.maintenance_interval_seconds = maintenance_interval_seconds
        self.retention_days = retention_days
        self.running = False
        self._stop_requested = asyncio.Event()
        self._maintenance_failure_count = 0

    async def start(self) -> None:
        """Run the engine until stop() is called or a signal arrives.

        Blocks for the daemon's lifetime; the engine is always shut down
        before this returns.
        """
        if self.running:
            logger.warning("Engine daemon already running")
            return

        self.running = True
        self._stop_requested.clear()
        logger.info(
            f"Starting engine daemon (maintenance every {self.maintenance_interval_seconds}s, "
            f"retention {self.retention_days} days)"
        )
        self._setup_signal_handlers()

        try:
            await self.engine.initialize()
            await self._run_loop()
        except asyncio.CancelledError:
            logger.info("Engine daemon cancelled")
        except Exception as e:
            logger.error(f"Engine daemon error: {e}", exc_info=True)
        finally:
            try:
                await self.engine.shutdown()
            except Exception as e:
                logger.error(f"Error during engine shutdown: {e}", exc_info=True)
            self.running = False
            logger.info("Engine daemon stopped")

    async def stop(self) -> None:
        """Request shutdown. The engine is torn down by start()'s exit path."""
        if not self.running:
            return
        logger.info("Stopping engine daemon...")
        self._stop_requested.set()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        try:
            loop = asyncio.get_running_loop()

            def _handle_signal(sig: int) -> None:
                logger.info(f"Received signal {sig}, initiating graceful shutdown...")
                self._stop_requested.set()

            loop.add_signal_handler(signal.SIGTERM, _handle_signal, signal.SIGTERM)
            loop.add_signal_handler(signal.SIGINT, _handle_signal, signal.SIGINT)
        except NotImplementedError:
            logger.debug("Signal handlers not available on this platform")
        except Exception as e:
            logger.warning(f"Failed to set up signal handlers: {e}")

    async def _run_loop(self) -> None:
        """Wait for a stop request, running maintenance on every interval."""
        cycle_number = 0
        while not self._stop_requested.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_requested.wait(),
                    timeout=self.maintenance_interval_seconds,
                )
            except asyncio.TimeoutError:
                cycle_number += 1
                await self.run_maintenance(cycle_number)

    async def run_maintenance(self, cycle_number: int = 0) -> int:
        """Run one retention cleanup. Failures are logged, never raised.

        Returns:
            Number of tests removed.
        """
        try:
            removed = await self.store.cleanup_old_data(self.retention_days)
            self._maintenance_failure_count = 0
            logger.info(f"Maintenance cycle #{cycle_number} completed: {removed} old tests removed")
            return removed
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._maintenance_failure_count += 1
            logger.error(
                f"Error in maintenance cycle #{cycle_number}: {e} "
                f"(consecutive failures: {self._maintenance_failure_count})",
                exc_info=True,
            )
            if self._maintenance_failure_count >= 5:
                logger.critical(
                    f"Result cleanup has failed {self._maintenance_failure_count} "
                    f"consecutive times. Storage may be growing without bound."
                )
            return 0
