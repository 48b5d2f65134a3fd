"""Loading a gateway YAML file into a :class:`GatewaySpec`."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mcpgate.protocols.errors import ConfigurationError
from mcpgate.sdk.models import GatewaySpec


class GatewayLoader:
    """Load and validate a gateway YAML file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> GatewaySpec:
        """Read YAML, interpolate env vars, and validate.

        ``${VAR}`` and ``$VAR`` are expanded with :func:`os.path.expandvars`
        before parsing, so secrets such as the access key or the model API
        key can stay out of the file.

        Raises:
            ConfigurationError: On read, YAML or schema errors.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read {self._path}: {exc}") from exc
        return load_spec(raw)


def load_spec(text: str) -> GatewaySpec:
    """Validate a YAML document already in memory."""
    expanded = os.path.expandvars(text)
    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"YAML parse error: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Gateway YAML must be a mapping")

    try:
        return GatewaySpec.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
