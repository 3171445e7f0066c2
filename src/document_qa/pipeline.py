"""
Document QA pipeline - the two operations the outside world calls.

ingest(): Chunker → Embedding Client (DOCUMENT mode) → Chunk Store
ask():    Retriever (QUERY mode) → Answer Synthesizer → Generation Client

Plus the maintenance operations around them:
- search(): retrieval only, no generation
- backfill_embeddings(): embed chunks stored without a vector
- embedding_status(): how many of a document's chunks have vectors

Each call is independent: no caching, no deduplication, identical
questions are re-embedded and re-answered.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from document_qa.chunking import Chunker
from document_qa.core.config import PipelineConfig, get_config
from document_qa.core.deadlines import Deadline
from document_qa.core.errors import NotFoundError, PartialIngestFailure, ValidationError
from document_qa.core.protocols import (
    AnswerResult,
    ChunkStore,
    EmbeddingMode,
    EmbeddingProvider,
    EmbeddingStatus,
    GenerationClient,
    GenerationConfig,
    IngestResult,
    RetrievalQuery,
    SearchResult,
)
from document_qa.observability import get_tracer, mark_degraded
from document_qa.observability.attributes import (
    RAG_DOCUMENT_ID,
    RAG_EMBEDDING_BATCH_SIZE,
    RAG_EMBEDDING_MODE,
    ingest_attributes,
)
from document_qa.retrieval import Chunk, Document, Retriever, get_chunk_store, new_id
from document_qa.synthesis import AnswerSynthesizer

logger = logging.getLogger(__name__)


class DocumentQAPipeline:
    """
    Wires chunker, embeddings, store, retriever and synthesizer together.

    All collaborators are injected; build_pipeline() picks production or
    in-memory ones from configuration.
    """

    def __init__(
        self,
        store: ChunkStore,
        embeddings: EmbeddingProvider,
        generator: GenerationClient,
        config: PipelineConfig | None = None,
    ):
        self.config = config or PipelineConfig()
        self.store = store
        self.embeddings = embeddings
        self.chunker = Chunker(self.config.chunk_size, self.config.chunk_overlap)
        self.retriever = Retriever(store, embeddings)
        self.synthesizer = AnswerSynthesizer(
            retriever=self.retriever,
            store=store,
            generator=generator,
            generation_config=GenerationConfig(
                temperature=self.config.temperature,
                top_p=self.config.top_p,
                max_output_tokens=self.config.max_output_tokens,
            ),
            snippet_length=self.config.snippet_length,
        )

    # ------------------------------------------------------------------
    # INGEST
    # ------------------------------------------------------------------

    def ingest(
        self,
        document_id: str,
        extracted_text: str,
        title: str | None = None,
        strict: bool = False,
    ) -> IngestResult:
        """
        Chunk, embed and store a document's extracted text.

        Embedding failures never abort the ingest: affected chunks are
        stored without a vector and stay reachable by keyword search
        until backfill_embeddings() fills them in.

        Args:
            document_id: Id of the document (created if unknown)
            extracted_text: Full text as produced by the text extractor
            title: Document title, defaults to the id
            strict: Raise PartialIngestFailure if any embedding is missing

        Raises:
            ValidationError: The text is empty, or the document was already ingested
            PartialIngestFailure: strict=True and some chunks lack embeddings
        """
        if not document_id:
            raise ValidationError("Document id is required")
        if not extracted_text or not extracted_text.strip():
            raise ValidationError("No text found in document")

        document = self.store.get_document(document_id)
        if document is None:
            document = Document(id=document_id, title=title or document_id)
            self.store.insert_document(document)
        elif self.store.count_chunks(document_id)[0] > 0:
            raise ValidationError(f"Document {document_id} already has chunks")

        tracer = get_tracer()
        with tracer.start_span("rag.ingest", attributes={RAG_DOCUMENT_ID: document_id}) as span:
            chunk_start = time.monotonic()
            drafts = self.chunker.chunk(extracted_text)
            chunk_elapsed = time.monotonic() - chunk_start
            if self.config.budgets.chunk is not None and chunk_elapsed > self.config.budgets.chunk:
                logger.warning(
                    "Chunking %s took %.2fs, over its %.2fs budget",
                    document_id, chunk_elapsed, self.config.budgets.chunk,
                )

            chunks = [
                Chunk(
                    id=new_id(),
                    document_id=document_id,
                    content=draft.content,
                    page_number=draft.page_number,
                    sequence=sequence,
                )
                for sequence, draft in enumerate(drafts)
            ]

            span.set_attribute(RAG_EMBEDDING_MODE, EmbeddingMode.DOCUMENT.value)
            span.set_attribute(RAG_EMBEDDING_BATCH_SIZE, self.config.embedding_batch_size)
            vectors = self.embeddings.embed_batch(
                [c.content for c in chunks],
                EmbeddingMode.DOCUMENT,
                deadline=Deadline(self.config.budgets.embed),
            )

            failed: list[str] = []
            for chunk, vector in zip(chunks, vectors):
                self.store.insert(chunk, vector)
                if vector is None:
                    failed.append(chunk.id)

            result = IngestResult(
                document_id=document_id,
                chunks_created=len(chunks),
                chunks_embedded=len(chunks) - len(failed),
                failed_chunk_ids=failed,
                page_count=max((c.page_number for c in chunks), default=0),
            )
            for key, value in ingest_attributes(
                document_id, result.chunks_created, result.chunks_embedded
            ).items():
                span.set_attribute(key, value)

            if failed:
                mark_degraded(span, "chunks stored without embeddings")
                logger.warning(
                    "Document %s: %d/%d chunks stored without embeddings",
                    document_id, len(failed), len(chunks),
                )
            logger.info(
                "Ingested %s: %d chunks (%d with embeddings) over %d pages",
                document_id, result.chunks_created, result.chunks_embedded, result.page_count,
            )

        if strict and failed:
            raise PartialIngestFailure(document_id, result.chunks_created, failed)
        return result

    def ingest_bytes(
        self,
        document_id: str,
        raw_bytes: bytes,
        extract_text: Callable[[bytes], str],
        title: str | None = None,
    ) -> IngestResult:
        """Run an externally supplied text extractor, then ingest()."""
        return self.ingest(document_id, extract_text(raw_bytes), title=title)

    # ------------------------------------------------------------------
    # QUERY
    # ------------------------------------------------------------------

    def ask(
        self,
        query_text: str,
        document_id: str | None = None,
        k: int | None = None,
        threshold: float | None = None,
    ) -> AnswerResult:
        """
        Answer a question from the document(s) with page citations.

        Always returns an AnswerResult; only invalid input or an unknown
        document raise.

        Raises:
            ValidationError: Empty query, negative k, threshold out of range
            NotFoundError: document_id given but unknown
        """
        query = self._query(query_text, document_id, k, self.config.default_k,
                            threshold, self.config.default_threshold)

        return self.synthesizer.answer(
            query.text,
            query.document_id,
            query.k,
            query.threshold,
            search_deadline=Deadline(self.config.budgets.search),
            generate_deadline_budget_s=self.config.budgets.generate,
        )

    def search(
        self,
        query_text: str,
        document_id: str | None = None,
        k: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Retrieval only, using the stricter raw-search threshold by default."""
        query = self._query(query_text, document_id, k, self.config.default_k,
                            threshold, self.config.search_threshold)
        return self.retriever.retrieve(
            query.text,
            query.document_id,
            query.k,
            query.threshold,
            deadline=Deadline(self.config.budgets.search),
        )

    def _query(
        self,
        text: str,
        document_id: str | None,
        k: int | None,
        default_k: int,
        threshold: float | None,
        default_threshold: float,
    ) -> RetrievalQuery:
        query = RetrievalQuery(
            text=text,
            document_id=document_id,
            k=default_k if k is None else k,
            threshold=default_threshold if threshold is None else threshold,
        ).validate()
        if document_id is not None:
            self._require_document(document_id)
        return query

    # ------------------------------------------------------------------
    # EMBEDDING MAINTENANCE
    # ------------------------------------------------------------------

    def backfill_embeddings(
        self, document_id: str, chunk_ids: list[str] | None = None
    ) -> int:
        """
        Embed chunks of a document that are still missing a vector.

        Args:
            document_id: Document whose chunks to backfill
            chunk_ids: Restrict to these chunk ids (default: all pending)

        Returns:
            Number of chunks that received an embedding
        """
        self._require_document(document_id)

        pending = self.store.chunks_without_embeddings(document_id)
        if chunk_ids:
            wanted = set(chunk_ids)
            pending = [c for c in pending if c.id in wanted]
        if not pending:
            logger.info("No chunks of %s need embeddings", document_id)
            return 0

        vectors = self.embeddings.embed_batch(
            [c.content for c in pending],
            EmbeddingMode.DOCUMENT,
            deadline=Deadline(self.config.budgets.embed),
        )

        processed = 0
        for chunk, vector in zip(pending, vectors):
            if vector is not None:
                self.store.set_embedding(chunk.id, vector)
                processed += 1

        logger.info(
            "Backfilled %d/%d embeddings for %s", processed, len(pending), document_id
        )
        return processed

    def embedding_status(self, document_id: str) -> EmbeddingStatus:
        self._require_document(document_id)
        total, embedded = self.store.count_chunks(document_id)
        return EmbeddingStatus(
            document_id=document_id, total_chunks=total, embedded_chunks=embedded
        )

    def _require_document(self, document_id: str) -> Document:
        document = self.store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found", document_id=document_id)
        return document


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


def build_pipeline(
    config: PipelineConfig | None = None,
    store: ChunkStore | None = None,
    embeddings: EmbeddingProvider | None = None,
    generator: GenerationClient | None = None,
) -> DocumentQAPipeline:
    """
    Build a pipeline, creating any collaborator that is not passed in.

    Args:
        config: Pipeline configuration (default: loaded from env)
        store: Chunk store (default: get_chunk_store per config)
        embeddings: Embedding provider (default: get_embedding_provider per config)
        generator: Generation client (default: OpenAI fallback chain)
    """
    config = config or get_config()

    if store is None:
        from document_qa.retrieval.store import ChunkStoreConfig

        store = get_chunk_store(
            use_postgres=config.use_postgres,
            config=ChunkStoreConfig(connection_string=config.database_url),
        )

    if embeddings is None:
        from document_qa.embeddings import get_embedding_provider

        embeddings = get_embedding_provider(
            use_mock=config.use_mock_embeddings,
            model=config.embedding_model,
            batch_size=config.embedding_batch_size,
            batch_delay_s=config.embedding_batch_delay_s,
        )

    if generator is None:
        from document_qa.generation import get_generation_client

        generator = get_generation_client(config.generation_models)

    return DocumentQAPipeline(store, embeddings, generator, config)
