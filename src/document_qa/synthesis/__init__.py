"""
Synthesis module - grounded answers with page citations.
"""

from document_qa.synthesis.prompts import (
    SYSTEM_PROMPT,
    NO_CONTEXT_ANSWER,
    GENERATION_FAILED_ANSWER,
    build_answer_prompt,
)
from document_qa.synthesis.synthesizer import (
    TRUNCATION_MARKER,
    AnswerSynthesizer,
    citations_from_results,
    truncate_snippet,
)

__all__ = [
    "SYSTEM_PROMPT",
    "NO_CONTEXT_ANSWER",
    "GENERATION_FAILED_ANSWER",
    "build_answer_prompt",
    "TRUNCATION_MARKER",
    "AnswerSynthesizer",
    "citations_from_results",
    "truncate_snippet",
]
