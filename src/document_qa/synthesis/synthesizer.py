"""
Answer synthesis - retrieval results in, grounded cited answer out.

1. Retrieve. Nothing found → fixed answer, no model call.
2. Load the matched chunks with their documents, in page order.
3. Build the prompt and call the generation client at low temperature.
4. Attach one citation per chunk.

When every generation model fails the caller still gets the citations,
with a fixed apology as the answer text and degraded=True.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from document_qa.core.deadlines import Deadline
from document_qa.core.protocols import (
    AnswerResult,
    Citation,
    GenerationConfig,
    GenerationFailure,
    SearchResult,
)
from document_qa.observability import get_tracer, mark_degraded
from document_qa.observability.attributes import (
    RAG_CITATION_PAGES,
    RAG_DOCUMENT_ID,
    RAG_RETRIEVED_COUNT,
)
from document_qa.synthesis.prompts import (
    GENERATION_FAILED_ANSWER,
    NO_CONTEXT_ANSWER,
    SYSTEM_PROMPT,
    build_answer_prompt,
)

if TYPE_CHECKING:
    from document_qa.core.protocols import ChunkStore, GenerationClient
    from document_qa.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."


def truncate_snippet(content: str, max_length: int = 200) -> str:
    """Bounded-length prefix of content, marked when cut."""
    if len(content) <= max_length:
        return content
    return content[:max_length] + TRUNCATION_MARKER


class AnswerSynthesizer:
    """
    Builds grounded answers with page citations.

    Args:
        retriever: Retriever used to find context
        store: ChunkStore used to load full chunk + document metadata
        generator: GenerationClient (usually a FallbackGenerationClient)
        generation_config: Sampling settings for the answer call
        snippet_length: Max characters per citation snippet
    """

    def __init__(
        self,
        retriever: Retriever,
        store: ChunkStore,
        generator: GenerationClient,
        generation_config: GenerationConfig | None = None,
        snippet_length: int = 200,
    ):
        self._retriever = retriever
        self._store = store
        self._generator = generator
        config = generation_config or GenerationConfig(
            temperature=0.1, top_p=0.8, max_output_tokens=2048
        )
        if config.system_prompt is None:
            config = replace(config, system_prompt=SYSTEM_PROMPT)
        self.generation_config = config
        self.snippet_length = snippet_length

    def answer(
        self,
        query_text: str,
        document_id: str | None = None,
        k: int = 5,
        threshold: float = 0.3,
        search_deadline: Deadline | None = None,
        generate_deadline_budget_s: float | None = None,
    ) -> AnswerResult:
        tracer = get_tracer()
        with tracer.start_span(
            "rag.answer", attributes={RAG_DOCUMENT_ID: document_id or ""}
        ) as span:
            results = self._retriever.retrieve(
                query_text, document_id, k, threshold, deadline=search_deadline
            )
            span.set_attribute(RAG_RETRIEVED_COUNT, len(results))

            if not results:
                logger.info("No relevant content for query; skipping generation")
                return AnswerResult(answer_text=NO_CONTEXT_ANSWER, retrieved_count=0)

            similarity_by_id = {r.chunk_id: r.similarity for r in results}
            context = self._store.get_chunks(list(similarity_by_id))
            context.sort(key=lambda item: (item.chunk.page_number, item.chunk.sequence))

            citations = [
                Citation(
                    chunk_id=item.chunk.id,
                    page_number=item.chunk.page_number,
                    document_title=item.document_title,
                    snippet=truncate_snippet(item.chunk.content, self.snippet_length),
                    similarity=similarity_by_id.get(item.chunk.id),
                )
                for item in context
            ]
            span.set_attribute(RAG_CITATION_PAGES, [c.page_number for c in citations])

            prompt = build_answer_prompt(query_text, context)
            outcome = self._generator.generate(
                prompt,
                self.generation_config,
                deadline=Deadline(generate_deadline_budget_s),
            )

            if isinstance(outcome, GenerationFailure):
                mark_degraded(span, "generation exhausted")
                logger.warning("Answer degraded: %s", outcome.error_message)
                return AnswerResult(
                    answer_text=GENERATION_FAILED_ANSWER,
                    citations=citations,
                    retrieved_count=len(results),
                    degraded=True,
                )

            return AnswerResult(
                answer_text=outcome.text,
                citations=citations,
                retrieved_count=len(results),
                model=outcome.model,
            )


def citations_from_results(
    results: list[SearchResult], snippet_length: int = 200
) -> list[Citation]:
    """Citations straight from search results, for callers that skip generation."""
    return [
        Citation(
            chunk_id=r.chunk_id,
            page_number=r.page_number,
            document_title=r.document_title or "",
            snippet=truncate_snippet(r.content, snippet_length),
            similarity=r.similarity,
        )
        for r in results
    ]
