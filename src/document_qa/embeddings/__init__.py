"""
Embeddings module - text embedding generation.

1. Protocol (EmbeddingProvider) defines the interface
2. Production implementation (OpenAIEmbeddings)
3. Test double (MockEmbeddings) for fast testing
4. Factory function (get_embedding_provider)
"""

from document_qa.embeddings.openai_embeddings import (
    EmbeddingProvider,
    OpenAIEmbeddings,
    MockEmbeddings,
    apply_mode,
    embed_in_batches,
    get_embedding_provider,
)

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddings",
    "MockEmbeddings",
    "apply_mode",
    "embed_in_batches",
    "get_embedding_provider",
]
