"""
Observability Module - Phoenix + OpenTelemetry Integration

Traces ingest and question-answering runs with Arize Phoenix and
OpenInference auto-instrumentation of the OpenAI client.

USAGE:
------
# At application startup:
from document_qa.observability import init_phoenix

init_phoenix()  # Starts local Phoenix UI if PHOENIX_ENABLED=true

# In pipeline code:
from document_qa.observability import get_tracer

with get_tracer().start_span("rag.retrieve", attributes={"rag.retrieval.k": 5}) as span:
    ...
"""

from __future__ import annotations

import logging

from document_qa.observability.config import (
    PhoenixConfig,
    get_config,
    reset_config,
)
from document_qa.observability.tracer import (
    TracerProtocol,
    SpanProtocol,
    NoOpTracer,
    NoOpSpan,
    get_tracer,
    mark_degraded,
    reset_tracer,
)

logger = logging.getLogger(__name__)

PROJECT_NAME_RESOURCE = "openinference.project.name"

_phoenix_initialized = False


def init_phoenix(config: PhoenixConfig | None = None) -> bool:
    """
    Initialize Phoenix observability.

    Sets up the OpenTelemetry tracer provider and registers the OpenAI
    auto-instrumentor. Call once at application startup.

    Returns:
        True if Phoenix was initialized, False if disabled or failed
    """
    global _phoenix_initialized
    if _phoenix_initialized:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Phoenix observability disabled")
        return False

    try:
        import phoenix as px
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    except ImportError as e:
        logger.warning(f"Phoenix not installed, observability disabled: {e}")
        return False

    try:
        if not config.uses_local_app:
            endpoint = config.collector_endpoint
            logger.info(f"Phoenix connecting to remote: {endpoint}")
        else:
            session = px.launch_app()
            endpoint = f"{session.url.rstrip('/')}/v1/traces"
            logger.info(f"Phoenix UI available at: {session.url}")

        # Phoenix files spans under the project named in this resource attribute
        provider = TracerProvider(
            resource=Resource.create({PROJECT_NAME_RESOURCE: config.project_name})
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)

        from document_qa.observability.instrumentation import register_instrumentors
        register_instrumentors()
    except Exception as e:
        logger.error(f"Failed to initialize Phoenix: {e}")
        return False

    reset_tracer()
    _phoenix_initialized = True
    return True


def shutdown_phoenix() -> None:
    """Flush spans and reset the tracer."""
    global _phoenix_initialized

    if not _phoenix_initialized:
        return

    from opentelemetry import trace
    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()

    reset_tracer()
    reset_config()
    _phoenix_initialized = False


__all__ = [
    "init_phoenix",
    "shutdown_phoenix",
    "PhoenixConfig",
    "get_config",
    "reset_config",
    "TracerProtocol",
    "SpanProtocol",
    "NoOpTracer",
    "NoOpSpan",
    "get_tracer",
    "mark_degraded",
    "reset_tracer",
]
