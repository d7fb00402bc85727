import sys
from copy import deepcopy
from pathlib import Path

# Ensure package import for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from Logic_Web.config import Config
from Logic_Web.engine import driver


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path, monkeypatch):
    """Send logs to a temp directory and restore mutable config after each test."""

    monkeypatch.setattr(Config, "output_dir", str(tmp_path / "output"))
    saved = {
        "timing": deepcopy(Config.timing),
        "layout": deepcopy(Config.layout),
        "log_files": deepcopy(Config.log_files),
        "logging_mode": list(Config.logging_mode),
        "clock_frequency": Config.clock_frequency,
        "netlist_file": Config.netlist_file,
        "config_file": Config.config_file,
        "is_running": Config.is_running,
    }
    monkeypatch.setattr(driver, "_ENGINE", None)
    yield
    for key, value in saved.items():
        setattr(Config, key, value)


