"""
Tests for the command line interface
"""
import json

import pytest
from click.testing import CliRunner

from coaster_fleet.cli import cli
from coaster_fleet.core.config import Config
from coaster_fleet.core.models import create_coaster, create_wagon
from coaster_fleet.storage.store import RecordStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("APP_ENV", "NODE_ENV", "DATA_DIR", "HTTP_PORT"):
        monkeypatch.delenv(name, raising=False)


class TestStatusCommand:

    def test_json_report(self, tmp_path):
        store = RecordStore(tmp_path / "dev")
        coaster = store.put_coaster(create_coaster(16, 60000, 1800, "8:00", "16:00"))
        store.put_wagon(create_wagon(coaster.id, 32, 1.2))

        result = CliRunner().invoke(cli, ["status", "--data-dir", str(tmp_path), "--json"])

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["system"]["coasterCount"] == 1
        assert report["coasters"][0]["wagonCount"]["required"] == 125

    def test_text_report(self, tmp_path):
        result = CliRunner().invoke(cli, ["status", "--data-dir", str(tmp_path)])

        assert result.exit_code == 0
        assert "No coasters registered in the system" in result.output


class TestInitConfig:

    def test_writes_loadable_file(self, tmp_path):
        output = tmp_path / "fleet.json"

        result = CliRunner().invoke(cli, ["init-config", "-o", str(output)])

        assert result.exit_code == 0
        config = Config.load_from_file(str(output))
        assert config.http_port == 3050

    def test_invalid_config_file(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"broker": {"port": 0}}))

        result = CliRunner().invoke(cli, ["--config", str(bad), "status"])

        assert result.exit_code == 2
