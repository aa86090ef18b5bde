"""Reloader configuration.

ReloaderSettings.from_pyproject() combines, in order of precedence:
- Explicit overrides
- Environment variables (VMRELOAD_VM_SERVICE_URL, VMRELOAD_DEBOUNCE_INTERVAL)
- The [tool.vmreload] table of a pyproject.toml

ReloaderSettings.from_env() skips the file. HotReloader() without
settings uses the defaults.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import tomli
from pydantic import BaseModel, Field, field_validator

from vmreload.vmservice.client import DEFAULT_VM_SERVICE_URL

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_INTERVAL = 5.0

ENV_VM_SERVICE_URL = "VMRELOAD_VM_SERVICE_URL"
ENV_DEBOUNCE_INTERVAL = "VMRELOAD_DEBOUNCE_INTERVAL"


class ReloaderSettings(BaseModel):
    """Configuration for a HotReloader."""

    # VM service WebSocket endpoint of the process to reload
    vm_service_url: str = DEFAULT_VM_SERVICE_URL

    # Seconds between debounced batches of file changes
    debounce_interval: float = Field(default=DEFAULT_DEBOUNCE_INTERVAL, ge=0)

    @field_validator("vm_service_url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith(("ws://", "wss://")):
            raise ValueError(f"VM service URL must use ws:// or wss://, got {value!r}")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "ReloaderSettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ.
            **overrides: Values that take precedence over the environment.
        """
        values = _env_values(environ)
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_pyproject(
        cls,
        path: str | Path,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "ReloaderSettings":
        """Build settings from the [tool.vmreload] table of a pyproject.toml.

        Environment variables are applied on top of the table, and
        overrides on top of both. A missing file or table yields the
        defaults.

        Args:
            path: Location of the pyproject.toml.
            environ: Mapping to read instead of os.environ.
            **overrides: Values that take precedence over everything else.
        """
        pyproject = Path(path)
        values: dict[str, Any] = {}
        if pyproject.exists():
            data = tomli.loads(pyproject.read_text())
            values = dict(data.get("tool", {}).get("vmreload", {}))
            logger.debug(f"Loaded reloader settings from {pyproject}: {values}")
        values = {k.replace("-", "_"): v for k, v in values.items()}
        values.update(_env_values(environ))
        values.update(overrides)
        return cls(**values)


def _env_values(environ: Mapping[str, str] | None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    if env.get(ENV_VM_SERVICE_URL):
        values["vm_service_url"] = env[ENV_VM_SERVICE_URL]
    if env.get(ENV_DEBOUNCE_INTERVAL):
        values["debounce_interval"] = env[ENV_DEBOUNCE_INTERVAL]
    return values
