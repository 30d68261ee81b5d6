"""
Process wiring for one coaster fleet node
"""
import asyncio
import logging
import signal
from typing import Callable, Optional

from .api.server import ApiServer
from .cluster.broker import Broker, RedisBroker
from .cluster.coordinator import Coordinator
from .core.config import Config
from .monitoring.reporter import StatusReporter, SystemStatus, format_report
from .storage.store import RecordStore
from .sync.propagator import ChangePropagator


def print_report(status: SystemStatus):
    print(format_report(status), flush=True)


class CoasterFleetService:
    """
    One node: record store, coordinator, propagator, reporter and HTTP API

    ``run`` blocks until SIGINT/SIGTERM and returns the process exit code.
    """

    def __init__(self, config: Config, broker: Broker = None,
                 report_sink: Callable[[SystemStatus], None] = print_report):
        self.config = config
        self.logger = logging.getLogger("CoasterFleetService")
        self.store = RecordStore(config.data_directory)
        self.broker = broker or RedisBroker(config.broker.url, config.broker.connect_timeout)
        self.coordinator = Coordinator(self.broker, config.broker)
        self.propagator = ChangePropagator(self.store, self.coordinator)
        self.reporter = StatusReporter(self.store, self.coordinator)
        self.api = ApiServer(self.store, self.propagator, self.reporter, self.coordinator)
        self.report_sink = report_sink
        self._monitor_task: Optional[asyncio.Task] = None

    async def start(self):
        await self.coordinator.start()
        if self.coordinator.standalone:
            self.logger.warning("The system will operate in standalone mode")
        await self.propagator.attach()

        await self.api.start(self.config.server.host, self.config.http_port)
        self.logger.info(f"Server running in {self.config.environment} mode on port {self.config.http_port}")

        if self.config.monitor.enabled:
            self._monitor_task = asyncio.create_task(
                self.reporter.run(self.config.monitor.interval, self.report_sink)
            )
        self.logger.info("All services initialized successfully")

    async def stop(self):
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        try:
            await self.api.stop()
        except Exception:
            self.logger.exception("Error stopping HTTP server")

        await self.coordinator.stop()

    async def shutdown(self) -> int:
        """
        Stop everything within the configured shutdown timeout

        Returns:
            0 on a clean stop, 1 when cleanup failed or timed out
        """
        self.logger.info("Shutdown signal received: closing HTTP server and services")
        try:
            await asyncio.wait_for(self.stop(), timeout=self.config.shutdown.timeout)
        except asyncio.TimeoutError:
            self.logger.error("Forced shutdown after timeout")
            return 1
        except Exception:
            self.logger.exception("Error during shutdown")
            return 1
        return 0

    async def run(self) -> int:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

        try:
            await self.start()
            await stop_event.wait()
        finally:
            exit_code = await self.shutdown()
        return exit_code
