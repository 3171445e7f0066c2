"""
Core module - shared protocols, types, errors and configuration.

USAGE:
------
from document_qa.core import ChunkStore, EmbeddingProvider, EmbeddingMode

class MyChunkStore:
    '''Implements ChunkStore protocol.'''
    ...
"""

from document_qa.core.config import (
    PipelineConfig,
    StageBudgets,
    get_config,
    reset_config,
)
from document_qa.core.deadlines import Deadline
from document_qa.core.errors import (
    DocumentQAError,
    ValidationError,
    NotFoundError,
    UpstreamEmbeddingError,
    UpstreamGenerationExhausted,
    PartialIngestFailure,
    ChunkStoreError,
    ParseError,
)
from document_qa.core.protocols import (
    # Protocols
    EmbeddingProvider,
    ChunkStore,
    ModelBackend,
    GenerationClient,
    # Types
    EmbeddingMode,
    KEYWORD_MATCH_SIMILARITY,
    SearchResult,
    RetrievalQuery,
    GenerationConfig,
    GenerationResult,
    GenerationFailure,
    Citation,
    AnswerResult,
    IngestResult,
    EmbeddingStatus,
)

__all__ = [
    # Config
    "PipelineConfig",
    "StageBudgets",
    "get_config",
    "reset_config",
    "Deadline",
    # Errors
    "DocumentQAError",
    "ValidationError",
    "NotFoundError",
    "UpstreamEmbeddingError",
    "UpstreamGenerationExhausted",
    "PartialIngestFailure",
    "ChunkStoreError",
    "ParseError",
    # Protocols
    "EmbeddingProvider",
    "ChunkStore",
    "ModelBackend",
    "GenerationClient",
    # Types
    "EmbeddingMode",
    "KEYWORD_MATCH_SIMILARITY",
    "SearchResult",
    "RetrievalQuery",
    "GenerationConfig",
    "GenerationResult",
    "GenerationFailure",
    "Citation",
    "AnswerResult",
    "IngestResult",
    "EmbeddingStatus",
]
