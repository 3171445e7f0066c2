"""
Semantic Conventions for Span Attributes

Defines attribute keys following OpenTelemetry GenAI conventions
plus a custom rag.* namespace for pipeline stages.

Reference: https://opentelemetry.io/docs/specs/semconv/gen-ai/
"""

# ---------------------------------------------------------------------------
# GENAI NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

# System
GEN_AI_SYSTEM = "gen_ai.system"  # "openai"
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"  # "gpt-4o-mini"
GEN_AI_REQUEST_TEMPERATURE = "gen_ai.request.temperature"
GEN_AI_REQUEST_MAX_TOKENS = "gen_ai.request.max_tokens"
GEN_AI_RESPONSE_MODEL = "gen_ai.response.model"

# Request/Response (optional, controlled by PHOENIX_CAPTURE_LLM_CONTENT)
GEN_AI_PROMPT = "gen_ai.prompt"
GEN_AI_COMPLETION = "gen_ai.completion"


# ---------------------------------------------------------------------------
# RAG NAMESPACE (custom)
# ---------------------------------------------------------------------------

# Ingest
RAG_DOCUMENT_ID = "rag.document_id"
RAG_CHUNKS_CREATED = "rag.ingest.chunks_created"
RAG_CHUNKS_EMBEDDED = "rag.ingest.chunks_embedded"
RAG_CHUNKS_FAILED = "rag.ingest.chunks_failed"

# Embedding
RAG_EMBEDDING_MODE = "rag.embedding.mode"  # "document", "query"
RAG_EMBEDDING_BATCH_SIZE = "rag.embedding.batch_size"

# Retrieval
RAG_K = "rag.retrieval.k"
RAG_THRESHOLD = "rag.retrieval.threshold"
RAG_VECTOR_RESULT_COUNT = "rag.retrieval.vector_result_count"
RAG_KEYWORD_RESULT_COUNT = "rag.retrieval.keyword_result_count"
RAG_FALLBACK_USED = "rag.retrieval.fallback_used"  # bool

# Generation
RAG_GENERATION_ATTEMPTS = "rag.generation.attempts"
RAG_GENERATION_EXHAUSTED = "rag.generation.exhausted"  # bool

# Answer
RAG_RETRIEVED_COUNT = "rag.answer.retrieved_count"
RAG_CITATION_PAGES = "rag.answer.citation_pages"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def ingest_attributes(
    document_id: str,
    chunks_created: int,
    chunks_embedded: int,
) -> dict:
    """Create attributes dict for an ingest span."""
    return {
        RAG_DOCUMENT_ID: document_id,
        RAG_CHUNKS_CREATED: chunks_created,
        RAG_CHUNKS_EMBEDDED: chunks_embedded,
        RAG_CHUNKS_FAILED: chunks_created - chunks_embedded,
    }


def generation_attributes(
    model: str | None,
    attempts: int,
    exhausted: bool,
) -> dict:
    """Create attributes dict for a generation span."""
    attrs = {
        GEN_AI_SYSTEM: "openai",
        RAG_GENERATION_ATTEMPTS: attempts,
        RAG_GENERATION_EXHAUSTED: exhausted,
    }
    if model:
        attrs[GEN_AI_RESPONSE_MODEL] = model
    return attrs
