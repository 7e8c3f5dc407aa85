"""
Pytest configuration and shared fixtures for backend tests.
"""
import os
import sys
from pathlib import Path

import pytest

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Set test config directory before importing modules
os.environ["CONFIG_DIR"] = "/tmp/streamkeeper_test_config"

# Ensure test config directory exists
Path("/tmp/streamkeeper_test_config").mkdir(parents=True, exist_ok=True)

import config


@pytest.fixture(autouse=True)
def fresh_settings_cache():
    """Every test starts without cached settings."""
    config.clear_settings_cache()
    yield
    config.clear_settings_cache()


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Point the settings loader at a temporary settings.json and return its path."""
    path = tmp_path / "settings.json"
    monkeypatch.setattr(config, "CONFIG_FILE", path)
    return path
