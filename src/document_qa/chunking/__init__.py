"""
Chunking module - turns extracted document text into retrievable units.
"""

from document_qa.chunking.chunker import (
    PAGE_MARKER,
    ChunkDraft,
    Chunker,
    chunk_text,
)

__all__ = [
    "PAGE_MARKER",
    "ChunkDraft",
    "Chunker",
    "chunk_text",
]
