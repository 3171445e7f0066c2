"""
Core protocols defining contracts for the document QA pipeline.

All infrastructure components implement these protocols, so the
retriever, synthesizer and pipeline can be wired with production
clients or with in-memory doubles.

PATTERN:
- Protocol defines the contract
- Multiple implementations possible
- Factory functions for instantiation
- Test doubles for fast unit tests
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

from document_qa.core.errors import ValidationError

if TYPE_CHECKING:
    from document_qa.core.deadlines import Deadline
    from document_qa.retrieval.document import Chunk, ChunkWithDocument, Document


# ---------------------------------------------------------------------------
# EMBEDDING PROVIDER PROTOCOL
# ---------------------------------------------------------------------------


class EmbeddingMode(str, Enum):
    """
    Which side of the retrieval comparison a vector is for.

    Chunks are stored with DOCUMENT vectors; questions are embedded with
    QUERY vectors. A QUERY vector is only ever compared against DOCUMENT
    vectors.
    """

    DOCUMENT = "document"
    QUERY = "query"


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Contract for embedding generation.

    Implementations:
    - OpenAIEmbeddings (production)
    - MockEmbeddings (testing)
    """

    def embed_one(
        self, text: str, mode: EmbeddingMode, deadline: Deadline | None = None
    ) -> np.ndarray:
        """Embed a single text. Raises UpstreamEmbeddingError on failure or timeout."""
        ...

    def embed_batch(
        self,
        texts: list[str],
        mode: EmbeddingMode,
        deadline: Deadline | None = None,
    ) -> list[np.ndarray | None]:
        """Embed many texts. A failed or skipped item is None at its position."""
        ...


# ---------------------------------------------------------------------------
# RETRIEVAL TYPES
# ---------------------------------------------------------------------------

# Similarity assigned to keyword matches, which carry no real score
KEYWORD_MATCH_SIMILARITY = 0.5


@dataclass
class SearchResult:
    """A chunk matched by similarity or keyword search. Never persisted."""
    chunk_id: str
    content: str
    page_number: int
    document_id: str
    similarity: float
    document_title: str | None = None


@dataclass
class RetrievalQuery:
    """A validated retrieval request."""
    text: str
    document_id: str | None = None
    k: int = 5
    threshold: float = 0.3

    def validate(self) -> "RetrievalQuery":
        if not self.text or not self.text.strip():
            raise ValidationError("Query is required")
        if isinstance(self.k, bool) or not isinstance(self.k, int) or self.k < 0:
            raise ValidationError(f"k must be a non-negative integer, got {self.k!r}")
        if not -1.0 <= self.threshold <= 1.0:
            raise ValidationError(
                f"threshold must be within [-1, 1], got {self.threshold!r}"
            )
        return self


# ---------------------------------------------------------------------------
# CHUNK STORE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class ChunkStore(Protocol):
    """
    Contract for chunk persistence and search.

    Implementations:
    - PgVectorChunkStore (production with PostgreSQL)
    - InMemoryChunkStore (testing/development)
    """

    def insert_document(self, document: Document) -> None:
        ...

    def get_document(self, document_id: str) -> Document | None:
        ...

    def insert(self, chunk: Chunk, embedding: np.ndarray | None) -> None:
        """Persist a chunk, with or without its embedding."""
        ...

    def set_embedding(self, chunk_id: str, embedding: np.ndarray) -> None:
        """Attach an embedding to an existing chunk."""
        ...

    def get_chunks(self, chunk_ids: list[str]) -> list[ChunkWithDocument]:
        """Fetch chunks together with their owning document."""
        ...

    def chunks_without_embeddings(self, document_id: str) -> list[Chunk]:
        ...

    def count_chunks(self, document_id: str) -> tuple[int, int]:
        """Return (total, embedded) chunk counts for a document."""
        ...

    def similarity_search(
        self,
        query_vector: np.ndarray,
        document_id: str | None,
        k: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Cosine search, above threshold, best first, at most k."""
        ...

    def keyword_search(
        self,
        text: str,
        document_id: str | None,
        exclude_ids: list[str],
        k: int,
    ) -> list[SearchResult]:
        """Case-insensitive substring match ordered by page number."""
        ...


# ---------------------------------------------------------------------------
# GENERATION PROTOCOLS
# ---------------------------------------------------------------------------


@dataclass
class GenerationConfig:
    """Sampling settings for one generation call."""
    temperature: float = 0.1
    top_p: float = 0.8
    max_output_tokens: int = 2048
    system_prompt: str | None = None


@dataclass
class GenerationResult:
    """Successful generation."""
    text: str
    model: str
    attempts: int
    latency_ms: float


@dataclass
class GenerationFailure:
    """Returned instead of raising when every model in the chain failed."""
    attempted_models: list[str]
    last_error: str | None = None

    @property
    def error_message(self) -> str:
        return f"All models failed ({', '.join(self.attempted_models)}): {self.last_error}"


@runtime_checkable
class ModelBackend(Protocol):
    """Calls one named model. Raises on any provider error."""

    def complete(
        self,
        model: str,
        prompt: str,
        config: GenerationConfig,
        timeout: float | None = None,
    ) -> str:
        """timeout caps the request in seconds; None uses the client default."""
        ...


@runtime_checkable
class GenerationClient(Protocol):
    """
    Contract for text generation.

    Implementations:
    - FallbackGenerationClient (ordered model chain over a ModelBackend)
    """

    def generate(
        self,
        prompt: str,
        config: GenerationConfig | None = None,
        deadline: Deadline | None = None,
    ) -> GenerationResult | GenerationFailure:
        ...


# ---------------------------------------------------------------------------
# PIPELINE RESULTS
# ---------------------------------------------------------------------------


@dataclass
class Citation:
    """Traces part of an answer back to a source chunk."""
    chunk_id: str
    page_number: int
    document_title: str
    snippet: str
    similarity: float | None = None

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "page_number": self.page_number,
            "document_title": self.document_title,
            "snippet": self.snippet,
            "similarity": self.similarity,
        }


@dataclass
class AnswerResult:
    """Structured answer returned by ask()."""
    answer_text: str
    citations: list[Citation] = field(default_factory=list)
    retrieved_count: int = 0
    model: str | None = None
    degraded: bool = False

    def to_dict(self) -> dict:
        return {
            "answer_text": self.answer_text,
            "citations": [c.to_dict() for c in self.citations],
            "retrieved_count": self.retrieved_count,
            "model": self.model,
            "degraded": self.degraded,
        }


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""
    document_id: str
    chunks_created: int
    chunks_embedded: int
    failed_chunk_ids: list[str] = field(default_factory=list)
    page_count: int = 0

    @property
    def complete(self) -> bool:
        return self.chunks_embedded == self.chunks_created


@dataclass
class EmbeddingStatus:
    """Embedding coverage for a document's chunks."""
    document_id: str
    total_chunks: int
    embedded_chunks: int

    @property
    def pending_chunks(self) -> int:
        return self.total_chunks - self.embedded_chunks

    @property
    def is_complete(self) -> bool:
        return self.pending_chunks == 0

    @property
    def completion_percentage(self) -> int:
        if self.total_chunks == 0:
            return 0
        return round(self.embedded_chunks / self.total_chunks * 100)
