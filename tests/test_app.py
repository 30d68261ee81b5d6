"""
Tests for node wiring and shutdown
"""
import asyncio

import pytest

from conftest import FakeBroker
from coaster_fleet.app import CoasterFleetService
from coaster_fleet.core.config import Config, MonitorConfig, ShutdownConfig, StorageConfig


@pytest.fixture
def config(tmp_path):
    return Config(
        storage=StorageConfig(data_dir=str(tmp_path)),
        monitor=MonitorConfig(interval=0.01),
        shutdown=ShutdownConfig(timeout=0.1),
    )


class TestShutdown:

    @pytest.mark.asyncio
    async def test_clean_shutdown(self, config, broker_server):
        service = CoasterFleetService(config, broker=FakeBroker(broker_server))
        await service.coordinator.start()

        assert await service.shutdown() == 0
        assert service.broker.closed
        assert service.coordinator.node_id not in broker_server.sets["connected_nodes"]

    @pytest.mark.asyncio
    async def test_forced_shutdown_after_timeout(self, config, broker_server, monkeypatch):
        service = CoasterFleetService(config, broker=FakeBroker(broker_server))

        async def hang():
            await asyncio.sleep(10)

        monkeypatch.setattr(service, "stop", hang)

        assert await service.shutdown() == 1

    @pytest.mark.asyncio
    async def test_monitor_prints_reports(self, config, broker_server):
        reports = []
        service = CoasterFleetService(config, broker=FakeBroker(broker_server), report_sink=reports.append)
        service._monitor_task = asyncio.create_task(
            service.reporter.run(config.monitor.interval, service.report_sink)
        )
        await asyncio.sleep(0.05)

        assert await service.shutdown() == 0
        assert reports
        assert service._monitor_task is None

    def test_uses_environment_directory(self, config):
        service = CoasterFleetService(config, broker=FakeBroker(None))

        assert service.store.data_dir == config.data_directory
        assert service.store.coasters_file.exists()
