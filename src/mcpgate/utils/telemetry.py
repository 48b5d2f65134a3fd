"""OpenTelemetry tracing helpers for mcpgate.

The rest of the codebase calls :func:`get_tracer` and opens spans without
caring whether the SDK is installed.  Without a configured SDK the API
hands out no-op tracers.

Usage::

    from mcpgate.utils.telemetry import get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("router.handle") as span:
        span.set_attribute(ATTR_METHOD, "tools/call")

Call :func:`configure_telemetry` once at startup to export spans
(requires the ``otel`` extra: ``pip install mcpgate[otel]``).
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Semantic attribute keys
# ---------------------------------------------------------------------------

ATTR_METHOD = "mcpgate.rpc.method"
ATTR_BATCH_SIZE = "mcpgate.rpc.batch_size"
ATTR_LOCKED = "mcpgate.rpc.locked"
ATTR_ENDPOINT_COUNT = "mcpgate.session.endpoints"
ATTR_ENDPOINTS_READY = "mcpgate.session.endpoints_ready"
ATTR_DISCOVERY_MODE = "mcpgate.session.discovery_mode"
ATTR_FUNCTION_COUNT = "mcpgate.session.functions"
ATTR_PLAN_LENGTH = "mcpgate.plan.length"
ATTR_STEP_INDEX = "mcpgate.plan.step"
ATTR_FUNCTION_NAME = "mcpgate.function.name"
ATTR_STOPPED = "mcpgate.plan.stopped"
ATTR_MODEL = "mcpgate.model"
ATTR_PROVIDER = "mcpgate.provider"
ATTR_TOKENS_PROMPT = "mcpgate.tokens.prompt"
ATTR_TOKENS_COMPLETION = "mcpgate.tokens.completion"
ATTR_TOKENS_TOTAL = "mcpgate.tokens.total"
ATTR_FINISH_REASON = "mcpgate.finish_reason"

_INSTRUMENTATION_NAME = "mcpgate"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name*."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "mcpgate",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``mcpgate[otel]``).

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install mcpgate[otel]"
        )
        raise ImportError(msg) from exc

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if export_to_console:
        _add_console_exporter(provider, SimpleSpanProcessor)

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    trace.set_tracer_provider(provider)


def _add_console_exporter(provider: Any, processor_cls: Any) -> None:
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # pyright: ignore[reportMissingImports]

    provider.add_span_processor(processor_cls(ConsoleSpanExporter()))


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
            OTLPSpanExporter,
        )
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install mcpgate[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
