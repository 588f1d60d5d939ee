"""OpenTelemetry tracing for chat turns and compactions.

Tracing is a no-op until :meth:`MemoryTracer.init` is called with a
``stdout`` or ``otlp`` exporter.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Generator
from dataclasses import dataclass

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import NoOpTracer, Span, Tracer

AttributeValue = str | int | bool

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class TelemetryConfig:
    """Configuration for the tracing subsystem."""

    service_name: str = "compacting-memory"
    enabled: bool = True
    exporter: str = "none"  # "stdout" | "otlp" | "none"
    otlp_endpoint: str = "http://localhost:4317"

    @classmethod
    def from_env(cls) -> TelemetryConfig:
        """Read ``CMEM_OTEL_EXPORTER`` and ``CMEM_OTEL_ENDPOINT``.

        Unset variables keep the defaults, so tracing stays off.
        """
        defaults = cls()
        return cls(
            exporter=os.environ.get("CMEM_OTEL_EXPORTER", defaults.exporter).strip().lower(),
            otlp_endpoint=os.environ.get("CMEM_OTEL_ENDPOINT", defaults.otlp_endpoint),
        )


# ---------------------------------------------------------------------------
# MemoryTracer
# ---------------------------------------------------------------------------


class MemoryTracer:
    """Wraps ``TracerProvider`` setup and span creation."""

    def __init__(self, config: TelemetryConfig | None = None) -> None:
        self._config = config or TelemetryConfig()
        self._provider: TracerProvider | None = None
        self._tracer: Tracer = NoOpTracer()

    @property
    def config(self) -> TelemetryConfig:
        return self._config

    def init(self) -> None:
        """Set up the OTel TracerProvider based on config."""
        cfg = self._config
        if not cfg.enabled or cfg.exporter == "none":
            return

        resource = Resource.create({"service.name": cfg.service_name})
        provider = TracerProvider(resource=resource)

        if cfg.exporter == "stdout":
            from opentelemetry.sdk.trace.export import (
                ConsoleSpanExporter,
                SimpleSpanProcessor,
            )

            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        elif cfg.exporter == "otlp":
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )
            from opentelemetry.sdk.trace.export import BatchSpanProcessor

            exporter = OTLPSpanExporter(endpoint=cfg.otlp_endpoint, insecure=True)
            provider.add_span_processor(BatchSpanProcessor(exporter))
        else:
            msg = f"Unknown exporter '{cfg.exporter}' (expected stdout, otlp or none)"
            raise ValueError(msg)

        self._provider = provider
        self._tracer = provider.get_tracer(cfg.service_name)

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, AttributeValue] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a span as a context manager.

        Usage::

            with tracer.span("memory/compact", {"conversation.id": cid}) as s:
                ...
        """
        with self._tracer.start_as_current_span(name) as s:
            if attributes:
                for k, v in attributes.items():
                    s.set_attribute(k, v)
            yield s

    def record_event(
        self,
        name: str,
        attributes: dict[str, AttributeValue] | None = None,
    ) -> None:
        """Record a named event on the current active span (if any)."""
        current_span = trace.get_current_span()
        if current_span.is_recording():
            current_span.add_event(name, dict(attributes) if attributes else {})

    def shutdown(self) -> None:
        """Flush pending spans. Safe to call multiple times."""
        if self._provider is not None:
            self._provider.shutdown()
            self._provider = None


# ---------------------------------------------------------------------------
# Process-wide tracer
# ---------------------------------------------------------------------------

_DEFAULT_TRACER: MemoryTracer | None = None


def get_tracer() -> MemoryTracer:
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is None:
        _DEFAULT_TRACER = MemoryTracer()
    return _DEFAULT_TRACER


def configure_tracing(config: TelemetryConfig) -> MemoryTracer:
    """Replace the process-wide tracer and initialise it."""
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is not None:
        _DEFAULT_TRACER.shutdown()
    _DEFAULT_TRACER = MemoryTracer(config)
    _DEFAULT_TRACER.init()
    return _DEFAULT_TRACER


# ---------------------------------------------------------------------------
# Convenience context managers
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def trace_chat_turn(conversation_id: str) -> Generator[Span, None, None]:
    """Trace one intercepted chat exchange."""
    with get_tracer().span("memory/chat", {"conversation.id": conversation_id}) as s:
        yield s


@contextlib.contextmanager
def trace_compaction(conversation_id: str, message_count: int) -> Generator[Span, None, None]:
    """Trace a compaction of one conversation."""
    attrs: dict[str, AttributeValue] = {
        "conversation.id": conversation_id,
        "memory.messages_before": message_count,
    }
    with get_tracer().span("memory/compact", attrs) as s:
        yield s


@contextlib.contextmanager
def trace_summarize(turn_count: int) -> Generator[Span, None, None]:
    """Trace a summarizer call."""
    with get_tracer().span("memory/summarize", {"memory.turns": turn_count}) as s:
        yield s
