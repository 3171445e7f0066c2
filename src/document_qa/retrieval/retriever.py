"""
Retriever - hybrid vector/keyword search over the chunk store.

Flow for one query:
1. Embed the query text in QUERY mode
2. Vector search, scoped to one document or global
3. If the vector search found nothing or the store failed, keyword search
   over the same scope fills up to k, skipping ids already matched
4. Vector results first, then keyword results, capped at k

If the query cannot be embedded (provider error or expired budget) the
retriever goes straight to keyword search. Retrieval never fails only
because the embedding provider is down.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from document_qa.core.deadlines import Deadline
from document_qa.core.errors import ChunkStoreError, UpstreamEmbeddingError
from document_qa.core.protocols import EmbeddingMode, RetrievalQuery, SearchResult
from document_qa.observability import get_tracer
from document_qa.observability.attributes import (
    RAG_DOCUMENT_ID,
    RAG_FALLBACK_USED,
    RAG_K,
    RAG_KEYWORD_RESULT_COUNT,
    RAG_THRESHOLD,
    RAG_VECTOR_RESULT_COUNT,
)

if TYPE_CHECKING:
    from document_qa.core.protocols import ChunkStore, EmbeddingProvider

logger = logging.getLogger(__name__)


class Retriever:
    """
    Orchestrates vector search with keyword fallback.

    Args:
        store: ChunkStore implementation (PgVectorChunkStore, InMemoryChunkStore, ...)
        embeddings: Embedding provider used in QUERY mode
    """

    def __init__(self, store: ChunkStore, embeddings: EmbeddingProvider):
        self._store = store
        self._embeddings = embeddings

    def retrieve(
        self,
        query_text: str,
        document_id: str | None = None,
        k: int = 5,
        threshold: float = 0.3,
        deadline: Deadline | None = None,
    ) -> list[SearchResult]:
        """Return up to k results, vector matches first."""
        query = RetrievalQuery(
            text=query_text, document_id=document_id, k=k, threshold=threshold
        ).validate()

        if query.k == 0:
            return []

        tracer = get_tracer()
        with tracer.start_span(
            "rag.retrieve",
            attributes={
                RAG_DOCUMENT_ID: query.document_id or "",
                RAG_K: query.k,
                RAG_THRESHOLD: query.threshold,
            },
        ) as span:
            vector_results = self._vector_search(query, deadline)

            keyword_results: list[SearchResult] = []
            if not vector_results:
                keyword_results = self._keyword_search(
                    query, exclude_ids=[r.chunk_id for r in vector_results]
                )

            results = (vector_results + keyword_results)[: query.k]

            if query.document_id is None:
                self._enrich_titles(results)

            span.set_attribute(RAG_VECTOR_RESULT_COUNT, len(vector_results))
            span.set_attribute(RAG_KEYWORD_RESULT_COUNT, len(keyword_results))
            span.set_attribute(RAG_FALLBACK_USED, not vector_results)
            return results

    def _vector_search(
        self, query: RetrievalQuery, deadline: Deadline | None
    ) -> list[SearchResult]:
        if deadline is not None and deadline.expired():
            logger.warning("Search budget exhausted before embedding, using keyword search")
            return []

        try:
            query_vector = self._embeddings.embed_one(
                query.text, EmbeddingMode.QUERY, deadline=deadline
            )
        except UpstreamEmbeddingError as e:
            logger.warning("Query embedding failed, using keyword search: %s", e)
            return []

        if deadline is not None and deadline.expired():
            logger.warning("Search budget exhausted after embedding, using keyword search")
            return []

        try:
            return self._store.similarity_search(
                query_vector, query.document_id, query.k, query.threshold
            )
        except ChunkStoreError as e:
            logger.warning("Vector search failed, falling back to keyword search: %s", e)
            return []

    def _keyword_search(
        self, query: RetrievalQuery, exclude_ids: list[str]
    ) -> list[SearchResult]:
        remaining = query.k - len(exclude_ids)
        if remaining <= 0:
            return []
        try:
            return self._store.keyword_search(
                query.text.strip(), query.document_id, exclude_ids, remaining
            )
        except ChunkStoreError as e:
            logger.error("Keyword search failed: %s", e)
            return []

    def _enrich_titles(self, results: list[SearchResult]) -> None:
        """Attach the owning document's title to global search results."""
        titles: dict[str, str | None] = {}
        for result in results:
            if result.document_id not in titles:
                document = self._store.get_document(result.document_id)
                titles[result.document_id] = document.title if document else None
            result.document_title = titles[result.document_id]
