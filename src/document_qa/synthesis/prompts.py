"""
Prompt templates for grounded, cited answers.

The system prompt pins the model to the supplied context and fixes the
citation format; the user prompt carries the labelled chunks and the
question.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from document_qa.retrieval.document import ChunkWithDocument


SYSTEM_PROMPT = """You are an intelligent document assistant. Answer questions based only on the provided context from the document(s).

CITATION REQUIREMENTS:
- Always include page references when citing information
- Use the format: "According to p. X: 'direct quote'"
- Include relevant snippets when making claims
- If information spans multiple pages, reference all relevant pages

RESPONSE GUIDELINES:
- Answer only based on the provided context
- If the context doesn't contain enough information, state this clearly
- Be comprehensive but concise
- Structure your answer logically"""


NO_CONTEXT_ANSWER = (
    "No relevant content found in the document for this question. "
    "Try rephrasing the question or check that the document has been processed."
)

GENERATION_FAILED_ANSWER = (
    "Sorry, an answer could not be generated right now. "
    "The relevant passages are listed in the citations below."
)


def format_source(index: int, item: ChunkWithDocument) -> str:
    """Label one chunk with its document title and page."""
    return (
        f'[Source {index} from "{item.document_title}" - Page {item.chunk.page_number}]:\n'
        f'"{item.chunk.content}"'
    )


def build_answer_prompt(question: str, context: list[ChunkWithDocument]) -> str:
    """Build the user prompt: labelled context followed by the question."""
    sources = "\n\n".join(
        format_source(i, item) for i, item in enumerate(context, start=1)
    )
    return f"""DOCUMENT CONTEXT:
{sources}

USER QUESTION: {question}

ANSWER:"""
