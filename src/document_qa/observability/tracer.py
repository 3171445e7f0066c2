"""
Tracer factory for the pipeline stages.

get_tracer() hands out an OpenTelemetry-backed tracer when Phoenix is
enabled and the SDK provider is installed, and a NoOpTracer otherwise.
Pipeline code always writes `with tracer.start_span(...)` and never
checks which one it got.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Protocol


class SpanProtocol(Protocol):
    """What pipeline code may do with a span."""

    def set_attribute(self, key: str, value: Any) -> None:
        ...

    def set_status(self, status: str, description: str | None = None) -> None:
        """status is "ok" or "error"."""
        ...

    def record_exception(self, exception: Exception) -> None:
        ...


class TracerProtocol(Protocol):
    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[SpanProtocol]:
        ...


# ---------------------------------------------------------------------------
# NOOP (tracing disabled or OTel missing)
# ---------------------------------------------------------------------------


class NoOpSpan:
    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: str, description: str | None = None) -> None:
        pass

    def record_exception(self, exception: Exception) -> None:
        pass


class NoOpTracer:
    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[NoOpSpan]:
        yield NoOpSpan()


# ---------------------------------------------------------------------------
# OTEL
# ---------------------------------------------------------------------------


class OTelSpan:
    """Adapts an OTel span to SpanProtocol."""

    def __init__(self, span: Any):
        self._span = span

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def set_status(self, status: str, description: str | None = None) -> None:
        from opentelemetry.trace import StatusCode
        code = StatusCode.OK if status == "ok" else StatusCode.ERROR
        self._span.set_status(code, description)

    def record_exception(self, exception: Exception) -> None:
        self._span.record_exception(exception)


class OTelTracer:
    """Adapts an OTel tracer to TracerProtocol."""

    def __init__(self, tracer: Any):
        self._tracer = tracer

    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[OTelSpan]:
        with self._tracer.start_as_current_span(name, attributes=attributes) as span:
            yield OTelSpan(span)


def mark_degraded(span: SpanProtocol, reason: str, error: Exception | None = None) -> None:
    """Flag a span whose stage fell back to a degraded path."""
    span.set_attribute("rag.degraded", True)
    span.set_attribute("rag.degraded_reason", reason)
    if error is not None:
        span.record_exception(error)
    span.set_status("error", reason)


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


_tracer: TracerProtocol | None = None


def get_tracer(service_name: str = "document-qa") -> TracerProtocol:
    """
    Get the global tracer instance.

    Args:
        service_name: Instrumentation scope name (used on first call only)
    """
    global _tracer
    if _tracer is not None:
        return _tracer

    from document_qa.observability.config import get_config

    if not get_config().enabled:
        _tracer = NoOpTracer()
        return _tracer

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
    except ImportError:
        _tracer = NoOpTracer()
        return _tracer

    # init_phoenix() installs the SDK provider; without it spans go nowhere
    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        _tracer = NoOpTracer()
        return _tracer

    _tracer = OTelTracer(trace.get_tracer(service_name))
    return _tracer


def reset_tracer() -> None:
    """Reset tracer (useful for testing)."""
    global _tracer
    _tracer = None
