"""
Document and chunk models for the retrieval system.

Single responsibility: Define the structure of what chunk stores persist.
For query results we use SearchResult (defined in core.protocols).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Document:
    """An uploaded document. Immutable once created."""
    id: str
    title: str
    created_at: datetime = field(default_factory=_now)


@dataclass
class Chunk:
    """
    A page-tagged slice of a document's text.

    Chunks are created once, in a batch, when a document is processed.
    The embedding is the only field set after creation.
    """
    id: str
    document_id: str
    content: str
    page_number: int
    sequence: int
    embedding: np.ndarray | None = None
    created_at: datetime = field(default_factory=_now)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "document_id": self.document_id,
            "content": self.content,
            "page_number": self.page_number,
            "sequence": self.sequence,
            "has_embedding": self.has_embedding,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ChunkWithDocument:
    """A chunk joined with its owning document's metadata."""
    chunk: Chunk
    document: Document

    @property
    def document_title(self) -> str:
        return self.document.title
