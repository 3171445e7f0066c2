"""
End-to-End Tests for DocumentQAPipeline

Runs ingest → ask with the real chunker, InMemoryChunkStore and
MockEmbeddings. Only the generation client is mocked, so every test
here is offline and deterministic.

STAFF ENGINEER PATTERNS:
------------------------
1. Real collaborators wherever they are cheap
2. Partial-failure paths driven by a scripted OpenAI client mock
3. Assertions on observable results, not on internals
"""

from unittest.mock import MagicMock

import pytest

from document_qa import (
    DocumentQAPipeline,
    NotFoundError,
    PipelineConfig,
    ValidationError,
    build_pipeline,
)
from document_qa.core.config import StageBudgets
from document_qa.core.errors import PartialIngestFailure
from document_qa.core.protocols import (
    KEYWORD_MATCH_SIMILARITY,
    GenerationFailure,
    GenerationResult,
)
from document_qa.embeddings import MockEmbeddings, OpenAIEmbeddings
from document_qa.retrieval import Document, InMemoryChunkStore
from document_qa.synthesis import GENERATION_FAILED_ANSWER, NO_CONTEXT_ANSWER

FIVE_PAGES = "\n".join(f"Page {i}\nSection {i} content" for i in range(1, 6))


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def config():
    return PipelineConfig(chunk_overlap=0, use_mock_embeddings=True)


@pytest.fixture
def generator():
    generator = MagicMock()
    generator.generate.return_value = GenerationResult(
        text="According to p. 2: 'Section 2 content'",
        model="gpt-4o-mini",
        attempts=1,
        latency_ms=8.0,
    )
    return generator


@pytest.fixture
def pipeline(config, generator):
    return DocumentQAPipeline(InMemoryChunkStore(), MockEmbeddings(), generator, config)


def _failing_client(failing_text: str):
    """OpenAI client mock that fails for any input containing failing_text."""
    client = MagicMock()

    def create(input, model, **kwargs):
        if failing_text in input:
            raise RuntimeError("provider error")
        response = MagicMock()
        response.data = [MagicMock(embedding=[1.0, 0.0, 0.0])]
        return response

    client.embeddings.create.side_effect = create
    return client


# ---------------------------------------------------------------------------
# INGEST
# ---------------------------------------------------------------------------


class TestIngest:
    """Chunk → embed → store."""

    def test_ingest_counts(self, pipeline):
        result = pipeline.ingest("doc-1", FIVE_PAGES, title="Lecture")

        assert result.chunks_created == 5
        assert result.chunks_embedded == 5
        assert result.failed_chunk_ids == []
        assert result.page_count == 5
        assert result.complete

    def test_ingest_creates_document_with_title(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES, title="Lecture")

        assert pipeline.store.get_document("doc-1").title == "Lecture"

    def test_title_defaults_to_id(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES)

        assert pipeline.store.get_document("doc-1").title == "doc-1"

    @pytest.mark.parametrize("text", ["", "   \n  "])
    def test_empty_text_rejected(self, pipeline, text):
        with pytest.raises(ValidationError, match="No text found"):
            pipeline.ingest("doc-1", text)

    def test_embedding_failure_isolated_to_one_chunk(self, config, generator):
        store = InMemoryChunkStore()
        embeddings = OpenAIEmbeddings(client=_failing_client("Section 3"), batch_delay_s=0.0)
        pipeline = DocumentQAPipeline(store, embeddings, generator, config)

        result = pipeline.ingest("doc-1", FIVE_PAGES)

        assert result.chunks_created == 5
        assert result.chunks_embedded == 4
        assert len(result.failed_chunk_ids) == 1
        assert not result.complete
        pending = store.chunks_without_embeddings("doc-1")
        assert [c.page_number for c in pending] == [3]
        assert store.count_chunks("doc-1") == (5, 4)

    def test_strict_ingest_raises_after_storing(self, config, generator):
        store = InMemoryChunkStore()
        embeddings = OpenAIEmbeddings(client=_failing_client("Section 3"), batch_delay_s=0.0)
        pipeline = DocumentQAPipeline(store, embeddings, generator, config)

        with pytest.raises(PartialIngestFailure) as exc_info:
            pipeline.ingest("doc-1", FIVE_PAGES, strict=True)

        assert exc_info.value.chunks_created == 5
        assert len(exc_info.value.failed_chunk_ids) == 1
        assert store.count_chunks("doc-1") == (5, 4)

    def test_exhausted_embed_budget_stores_chunks_unembedded(self, generator):
        config = PipelineConfig(chunk_overlap=0, budgets=StageBudgets(embed=0.0))
        pipeline = DocumentQAPipeline(InMemoryChunkStore(), MockEmbeddings(), generator, config)

        result = pipeline.ingest("doc-1", FIVE_PAGES)

        assert result.chunks_created == 5
        assert result.chunks_embedded == 0

    def test_second_ingest_of_same_document_rejected(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES)

        with pytest.raises(ValidationError, match="already has chunks"):
            pipeline.ingest("doc-1", FIVE_PAGES)

        assert pipeline.store.count_chunks("doc-1") == (5, 5)

    def test_known_document_without_chunks_can_be_ingested(self, pipeline):
        pipeline.store.insert_document(Document(id="doc-1", title="Uploaded"))

        result = pipeline.ingest("doc-1", FIVE_PAGES)

        assert result.chunks_created == 5
        assert pipeline.store.get_document("doc-1").title == "Uploaded"

    def test_ingest_bytes_runs_extractor(self, pipeline):
        extractor = MagicMock(return_value=FIVE_PAGES)

        result = pipeline.ingest_bytes("doc-1", b"%PDF-1.7", extractor, title="Scan")

        extractor.assert_called_once_with(b"%PDF-1.7")
        assert result.chunks_created == 5


# ---------------------------------------------------------------------------
# ASK
# ---------------------------------------------------------------------------


class TestAsk:
    """Retrieve → synthesize → cite."""

    def test_answer_with_citations(self, pipeline, generator):
        pipeline.ingest("doc-1", FIVE_PAGES, title="Lecture")

        result = pipeline.ask("Section 2 content", "doc-1")

        assert result.answer_text == "According to p. 2: 'Section 2 content'"
        assert result.retrieved_count >= 1
        assert 2 in [c.page_number for c in result.citations]
        pages = [c.page_number for c in result.citations]
        assert pages == sorted(pages)
        generator.generate.assert_called_once()

    def test_unrelated_question_gets_fixed_answer(self, pipeline, generator):
        pipeline.ingest("doc-1", FIVE_PAGES)

        result = pipeline.ask("quantum chromodynamics", "doc-1")

        assert result.answer_text == NO_CONTEXT_ANSWER
        assert result.retrieved_count == 0
        assert result.citations == []
        generator.generate.assert_not_called()

    def test_threshold_one_answers_from_keyword_match(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES)

        result = pipeline.ask("Section 2 content", "doc-1", threshold=1.0)

        assert result.retrieved_count == 1
        assert result.citations[0].page_number == 2
        assert result.citations[0].similarity == KEYWORD_MATCH_SIMILARITY

    def test_zero_k(self, pipeline, generator):
        pipeline.ingest("doc-1", FIVE_PAGES)

        result = pipeline.ask("Section 2 content", "doc-1", k=0)

        assert result.retrieved_count == 0
        generator.generate.assert_not_called()

    def test_unembedded_chunk_reachable_by_keyword(self, config, generator):
        store = InMemoryChunkStore()
        embeddings = OpenAIEmbeddings(client=_failing_client("Section 3"), batch_delay_s=0.0)
        pipeline = DocumentQAPipeline(store, embeddings, generator, config)
        pipeline.ingest("doc-1", FIVE_PAGES)

        # the question itself contains the failing text, so embedding it fails too
        result = pipeline.ask("Section 3", "doc-1")

        assert [c.page_number for c in result.citations] == [3]

    def test_generation_exhausted_degrades(self, pipeline, generator):
        generator.generate.return_value = GenerationFailure(["a", "b", "c"], "RuntimeError: down")
        pipeline.ingest("doc-1", FIVE_PAGES)

        result = pipeline.ask("Section 2 content", "doc-1")

        assert result.degraded is True
        assert result.answer_text == GENERATION_FAILED_ANSWER
        assert result.citations

    def test_global_question_carries_titles(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES, title="Lecture")

        result = pipeline.ask("Section 2 content")

        assert all(c.document_title == "Lecture" for c in result.citations)

    def test_unknown_document(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.ask("anything", "missing-doc")

    @pytest.mark.parametrize("kwargs", [{"query_text": ""}, {"query_text": "q", "k": -1},
                                        {"query_text": "q", "threshold": 2.0}])
    def test_invalid_queries(self, pipeline, kwargs):
        with pytest.raises(ValidationError):
            pipeline.ask(**kwargs)


# ---------------------------------------------------------------------------
# SEARCH + MAINTENANCE
# ---------------------------------------------------------------------------


class TestSearch:
    """Retrieval without generation."""

    def test_search_uses_raw_search_threshold(self, pipeline, generator):
        pipeline.ingest("doc-1", FIVE_PAGES)
        pipeline.retriever = MagicMock(wraps=pipeline.retriever)

        pipeline.search("Section 2 content", "doc-1")

        assert pipeline.retriever.retrieve.call_args.args[3] == 0.7
        generator.generate.assert_not_called()

    def test_search_returns_results(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES)

        results = pipeline.search("Section 4 content", "doc-1", threshold=1.0)

        assert [r.page_number for r in results] == [4]


class TestEmbeddingMaintenance:
    """Backfill and status."""

    def test_backfill_fills_missing_embeddings(self, config, generator):
        store = InMemoryChunkStore()
        client = _failing_client("Section 3")
        embeddings = OpenAIEmbeddings(client=client, batch_delay_s=0.0)
        pipeline = DocumentQAPipeline(store, embeddings, generator, config)
        pipeline.ingest("doc-1", FIVE_PAGES)
        assert pipeline.embedding_status("doc-1").pending_chunks == 1

        client.embeddings.create.side_effect = None
        client.embeddings.create.return_value.data = [MagicMock(embedding=[0.0, 1.0, 0.0])]
        processed = pipeline.backfill_embeddings("doc-1")

        assert processed == 1
        status = pipeline.embedding_status("doc-1")
        assert status.is_complete
        assert status.completion_percentage == 100

    def test_backfill_nothing_pending(self, pipeline):
        pipeline.ingest("doc-1", FIVE_PAGES)

        assert pipeline.backfill_embeddings("doc-1") == 0

    def test_backfill_restricted_to_chunk_ids(self, generator):
        config = PipelineConfig(chunk_overlap=0, budgets=StageBudgets(embed=0.0))
        pipeline = DocumentQAPipeline(InMemoryChunkStore(), MockEmbeddings(), generator, config)
        result = pipeline.ingest("doc-1", FIVE_PAGES)
        pipeline.config.budgets = StageBudgets()

        processed = pipeline.backfill_embeddings("doc-1", chunk_ids=result.failed_chunk_ids[:2])

        assert processed == 2
        assert pipeline.embedding_status("doc-1").embedded_chunks == 2

    def test_status_percentage(self, generator):
        config = PipelineConfig(chunk_overlap=0, budgets=StageBudgets(embed=0.0))
        pipeline = DocumentQAPipeline(InMemoryChunkStore(), MockEmbeddings(), generator, config)
        pipeline.ingest("doc-1", FIVE_PAGES)

        status = pipeline.embedding_status("doc-1")

        assert status.total_chunks == 5
        assert status.embedded_chunks == 0
        assert status.completion_percentage == 0
        assert not status.is_complete

    def test_unknown_document(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.embedding_status("missing")
        with pytest.raises(NotFoundError):
            pipeline.backfill_embeddings("missing")


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


class TestBuildPipeline:
    """build_pipeline picks collaborators from configuration."""

    def test_offline_defaults(self, generator):
        pipeline = build_pipeline(
            config=PipelineConfig(use_mock_embeddings=True), generator=generator
        )

        assert isinstance(pipeline.store, InMemoryChunkStore)
        assert isinstance(pipeline.embeddings, MockEmbeddings)

    def test_injected_collaborators_win(self, generator):
        store = InMemoryChunkStore()
        embeddings = MockEmbeddings(dimensions=8)

        pipeline = build_pipeline(
            config=PipelineConfig(), store=store, embeddings=embeddings, generator=generator
        )

        assert pipeline.store is store
        assert pipeline.embeddings is embeddings

    def test_chunker_follows_config(self, generator):
        pipeline = build_pipeline(
            config=PipelineConfig(chunk_size=400, chunk_overlap=50, use_mock_embeddings=True),
            generator=generator,
        )

        assert pipeline.chunker.chunk_size == 400
        assert pipeline.chunker.overlap == 50
