"""Tests for reloader settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from vmreload.config import (
    DEFAULT_DEBOUNCE_INTERVAL,
    ENV_DEBOUNCE_INTERVAL,
    ENV_VM_SERVICE_URL,
    ReloaderSettings,
)
from vmreload.vmservice import DEFAULT_VM_SERVICE_URL


def test_defaults():
    """Default endpoint and debounce interval."""
    settings = ReloaderSettings()

    assert settings.vm_service_url == DEFAULT_VM_SERVICE_URL
    assert settings.debounce_interval == DEFAULT_DEBOUNCE_INTERVAL == 5.0


def test_rejects_negative_debounce():
    with pytest.raises(ValidationError):
        ReloaderSettings(debounce_interval=-1)


def test_rejects_non_websocket_url():
    with pytest.raises(ValidationError):
        ReloaderSettings(vm_service_url="http://localhost:8181/ws")


def test_from_env():
    """Environment variables override defaults, overrides win over both."""
    environ = {ENV_VM_SERVICE_URL: "ws://127.0.0.1:9999/ws", ENV_DEBOUNCE_INTERVAL: "0.25"}

    settings = ReloaderSettings.from_env(environ)
    overridden = ReloaderSettings.from_env(environ, debounce_interval=1)

    assert settings.vm_service_url == "ws://127.0.0.1:9999/ws"
    assert settings.debounce_interval == 0.25
    assert overridden.debounce_interval == 1


def test_from_env_empty():
    assert ReloaderSettings.from_env({}) == ReloaderSettings()


def test_from_pyproject(tmp_path: Path):
    """Settings are read from [tool.vmreload]."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(
        """[project]
name = "demo"

[tool.vmreload]
vm-service-url = "ws://localhost:8282/ws"
debounce_interval = 2
"""
    )

    settings = ReloaderSettings.from_pyproject(pyproject, environ={})

    assert settings.vm_service_url == "ws://localhost:8282/ws"
    assert settings.debounce_interval == 2.0


def test_from_missing_pyproject(tmp_path: Path):
    assert ReloaderSettings.from_pyproject(tmp_path / "pyproject.toml", environ={}) == ReloaderSettings()


def test_from_pyproject_environment_wins_over_file(tmp_path: Path):
    """Environment variables override [tool.vmreload], overrides win over both."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(
        """[tool.vmreload]
vm-service-url = "ws://localhost:8282/ws"
debounce_interval = 2
"""
    )
    environ = {ENV_DEBOUNCE_INTERVAL: "7"}

    settings = ReloaderSettings.from_pyproject(pyproject, environ=environ)
    overridden = ReloaderSettings.from_pyproject(pyproject, environ=environ, debounce_interval=0.5)

    assert settings.debounce_interval == 7.0
    assert settings.vm_service_url == "ws://localhost:8282/ws"
    assert overridden.debounce_interval == 0.5
