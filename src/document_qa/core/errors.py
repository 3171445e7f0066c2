"""
Error kinds for the document QA core.

Every exception raised by the pipeline derives from DocumentQAError so
transport layers can catch one base class. Only ValidationError and
NotFoundError are expected to reach a caller of ask(); the upstream
errors are caught inside the pipeline and turned into degraded results.
"""

from __future__ import annotations


class DocumentQAError(Exception):
    """Base class for all document QA errors."""


class ValidationError(DocumentQAError):
    """Invalid caller input: empty query, negative k, bad threshold, etc."""


class NotFoundError(DocumentQAError):
    """Unknown document, or a document with no chunks."""

    def __init__(self, message: str, document_id: str | None = None):
        super().__init__(message)
        self.document_id = document_id


class UpstreamEmbeddingError(DocumentQAError):
    """The embedding provider failed for a single item."""

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class UpstreamGenerationExhausted(DocumentQAError):
    """Every model in the fallback chain failed."""

    def __init__(self, attempted_models: list[str], last_error: str | None = None):
        super().__init__(
            f"All generation models failed ({', '.join(attempted_models)}): {last_error}"
        )
        self.attempted_models = attempted_models
        self.last_error = last_error


class PartialIngestFailure(DocumentQAError):
    """Chunks were stored but some or all embeddings are missing."""

    def __init__(self, document_id: str, chunks_created: int, failed_chunk_ids: list[str]):
        super().__init__(
            f"Document {document_id}: {len(failed_chunk_ids)}/{chunks_created} "
            "chunks stored without embeddings"
        )
        self.document_id = document_id
        self.chunks_created = chunks_created
        self.failed_chunk_ids = failed_chunk_ids


class ChunkStoreError(DocumentQAError):
    """A lower-level failure inside the chunk store."""


class ParseError(DocumentQAError):
    """Generated text did not contain parseable structured data."""

    def __init__(self, message: str, raw_text: str | None = None):
        super().__init__(message)
        self.raw_text = raw_text
