"""
Test logging setup
"""
import logging

import pytest

from coaster_fleet.utils.logger import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSetupLogging:

    def test_development_writes_three_files(self, tmp_path):
        setup_logging('INFO', str(tmp_path), is_dev=True)
        logging.getLogger("Test").warning("careful")

        assert sorted(p.name for p in tmp_path.iterdir()) == ['error.log', 'info.log', 'warn.log']
        assert "careful" in (tmp_path / 'warn.log').read_text()
        assert "careful" not in (tmp_path / 'error.log').read_text()

    def test_production_skips_info_file(self, tmp_path):
        setup_logging('INFO', str(tmp_path), is_dev=False)
        logging.getLogger("Test").error("broken")

        assert sorted(p.name for p in tmp_path.iterdir()) == ['error.log', 'warn.log']
        assert "broken" in (tmp_path / 'error.log').read_text()

    def test_production_console_shows_warnings_only(self):
        setup_logging('DEBUG', is_dev=False)

        [console] = logging.getLogger().handlers
        assert console.level == logging.WARNING
