"""
Line-based text chunker with page tagging and word overlap.

Extracted PDF text arrives as one long string with page breaks rendered
as lines like "Page 3". The chunker walks the text line by line and
cuts a chunk when either:

1. the buffer reaches chunk_size characters (checked after a line is added)
2. a page boundary is detected (checked before a line is added):
   - the line contains an explicit page marker, or
   - the line is blank and the buffer is already past chunk_size

Each emitted chunk seeds the next buffer with its trailing words, so a
sentence cut at a boundary is still visible from both sides. The seed is
overlap // 5 words: an approximation of `overlap` characters that assumes
roughly five characters per word.

The page counter only advances on explicit page markers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from document_qa.core.errors import ValidationError

logger = logging.getLogger(__name__)

PAGE_MARKER = "Page "

# Approximate characters per word when turning the overlap budget into words
CHARS_PER_WORD = 5


@dataclass(frozen=True)
class ChunkDraft:
    """A chunk before it has an id or owning document."""
    content: str
    page_number: int


class Chunker:
    """
    Splits extracted document text into overlapping, page-tagged chunks.

    Args:
        chunk_size: Target chunk length in characters
        overlap: Overlap budget in characters (converted to overlap // 5 words)
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200):
        if chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValidationError(
                f"overlap ({overlap}) must be >= 0 and less than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.overlap = overlap

    @property
    def overlap_words(self) -> int:
        return self.overlap // CHARS_PER_WORD

    def chunk(self, text: str) -> list[ChunkDraft]:
        """Split text into ordered (content, page_number) drafts."""
        if not text or not text.strip():
            return []

        drafts: list[ChunkDraft] = []
        page = 1
        page_has_content = False

        buffer = ""
        seed_len = 0  # leading part of buffer that repeats the previous chunk

        def has_new_text() -> bool:
            return bool(buffer[seed_len:].strip())

        def emit() -> None:
            nonlocal buffer, seed_len
            drafts.append(ChunkDraft(content=buffer.strip(), page_number=page))
            seed = self._overlap_seed(buffer)
            buffer = seed
            seed_len = len(seed)

        for line in text.split("\n"):
            is_page_marker = PAGE_MARKER in line
            is_soft_break = line.strip() == "" and len(buffer) > self.chunk_size

            if is_page_marker or is_soft_break:
                if has_new_text():
                    emit()
                elif not buffer.strip():
                    buffer, seed_len = "", 0

                if is_page_marker and page_has_content:
                    page += 1
                    page_has_content = False

            buffer += line + "\n"
            if line.strip():
                page_has_content = True

            if len(buffer) >= self.chunk_size and has_new_text():
                emit()

        if has_new_text():
            drafts.append(ChunkDraft(content=buffer.strip(), page_number=page))

        logger.debug(
            "Chunked %d chars into %d chunks across %d pages",
            len(text),
            len(drafts),
            page,
        )
        return drafts

    def _overlap_seed(self, buffer: str) -> str:
        """Trailing words of buffer to prepend to the next chunk."""
        if self.overlap_words == 0:
            return ""

        words = buffer.split()[-self.overlap_words:]
        # A seed as long as a chunk would re-trigger the size boundary on every line
        while words and len(" ".join(words)) >= self.chunk_size // 2:
            words = words[1:]

        return " ".join(words) + " " if words else ""


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[ChunkDraft]:
    """Convenience wrapper: Chunker(chunk_size, overlap).chunk(text)."""
    return Chunker(chunk_size=chunk_size, overlap=overlap).chunk(text)
