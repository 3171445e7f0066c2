"""
Retrieval module - chunk persistence and hybrid search for RAG.

This module provides:
- Document, Chunk: the persisted models
- ChunkStoreConfig: Configuration for stores
- PgVectorChunkStore: PostgreSQL production store
- InMemoryChunkStore: Testing/development store
- get_chunk_store(): Factory function
- Retriever: vector search with keyword fallback
"""

from document_qa.retrieval.document import (
    Document,
    Chunk,
    ChunkWithDocument,
    new_id,
)
from document_qa.retrieval.store import (
    ChunkStoreConfig,
    PgVectorChunkStore,
    InMemoryChunkStore,
    get_chunk_store,
)
from document_qa.retrieval.retriever import Retriever

__all__ = [
    # Models
    "Document",
    "Chunk",
    "ChunkWithDocument",
    "new_id",
    # Config
    "ChunkStoreConfig",
    # Implementations
    "PgVectorChunkStore",
    "InMemoryChunkStore",
    # Factory
    "get_chunk_store",
    # Orchestration
    "Retriever",
]
