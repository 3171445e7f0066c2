"""
document_qa - question answering over uploaded documents with page citations.

USAGE:
------
from document_qa import build_pipeline

pipeline = build_pipeline()
pipeline.ingest("doc-1", extracted_text, title="Lecture Notes")
result = pipeline.ask("What is gradient descent?", document_id="doc-1")
print(result.answer_text)
for citation in result.citations:
    print(citation.page_number, citation.snippet)
"""

from document_qa.core import (
    AnswerResult,
    Citation,
    EmbeddingMode,
    EmbeddingStatus,
    IngestResult,
    PipelineConfig,
    SearchResult,
)
from document_qa.core.errors import (
    DocumentQAError,
    NotFoundError,
    ValidationError,
)
from document_qa.pipeline import DocumentQAPipeline, build_pipeline

__all__ = [
    "DocumentQAPipeline",
    "build_pipeline",
    "PipelineConfig",
    "AnswerResult",
    "Citation",
    "EmbeddingMode",
    "EmbeddingStatus",
    "IngestResult",
    "SearchResult",
    "DocumentQAError",
    "NotFoundError",
    "ValidationError",
]
