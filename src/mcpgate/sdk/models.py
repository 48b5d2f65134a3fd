"""Pydantic models for the gateway YAML consumed by ``mcpgate serve`` and ``mcpgate run``."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from mcpgate.core.interface.config import ModelConfig
from mcpgate.protocols.server.router import DEFAULT_LOCK_TIMEOUT
from mcpgate.utils.diagnostics import DEFAULT_MAX_PAYLOAD


class LogSettings(BaseModel):
    """Diagnostic log: off by default, JSON lines file when ``path`` is set."""

    enabled: bool = False
    path: str | None = None
    max_payload: int = DEFAULT_MAX_PAYLOAD


class TelemetrySettings(BaseModel):
    enabled: bool = False
    otlp_endpoint: str | None = None


class ServerSettings(BaseModel):
    access_key: str | None = None
    use_lock: bool = True
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    log: LogSettings = Field(default_factory=LogSettings)


class ClientSettings(BaseModel):
    """Client session and planner settings.

    ``model`` holds :class:`ModelConfig` fields; ``endpoints`` are full URLs
    including any ``accessKey`` query parameter.
    """

    model: dict[str, Any]
    endpoints: list[str] = []
    batch_process: bool = False
    http_timeout: float = 60.0
    headers: dict[str, str] = {}
    summarize: bool = True
    log: LogSettings = Field(default_factory=LogSettings)

    @model_validator(mode="after")
    def _validate_model(self) -> ClientSettings:
        if not self.model.get("model"):
            msg = "client.model requires 'model'"
            raise ValueError(msg)
        return self

    def to_model_config(self) -> ModelConfig:
        return ModelConfig.model_validate(self.model)


class GatewaySpec(BaseModel):
    """Top-level gateway specification parsed from YAML."""

    version: str = "1"
    name: str = ""
    server: ServerSettings = Field(default_factory=ServerSettings)
    client: ClientSettings | None = None
    telemetry: TelemetrySettings | None = None
