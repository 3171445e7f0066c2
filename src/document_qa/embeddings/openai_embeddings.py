"""
Embeddings Module - Single Responsibility: Generate text embeddings.

It has ONE job: convert text to vector embeddings, in one of two modes.

MODES:
------
DOCUMENT vectors are stored with chunks at ingest time. QUERY vectors are
computed for a question at search time. Both come from the same model; the
query side is prefixed with a retrieval instruction. Comparing a QUERY
vector against anything but DOCUMENT vectors silently degrades ranking,
so every call site states its mode explicitly.

BATCHING:
---------
embed_batch() splits its input into batches of at most batch_size items.
Inside a batch the requests run concurrently; batches run one after the
other with a fixed pause in between. A failing item becomes None in the
output and does not affect its siblings. A stage deadline caps each
request through the client timeout and stops waiting on a running batch.
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Protocol

import numpy as np
from openai import OpenAI

from document_qa.core.deadlines import Deadline
from document_qa.core.errors import UpstreamEmbeddingError
from document_qa.core.protocols import EmbeddingMode

logger = logging.getLogger(__name__)

QUERY_INSTRUCTION = "Represent this question for retrieving supporting document passages: "


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers - enables easy swapping."""

    def embed_one(
        self, text: str, mode: EmbeddingMode, deadline: Deadline | None = None
    ) -> np.ndarray:
        """Embed a single text."""
        ...

    def embed_batch(
        self,
        texts: list[str],
        mode: EmbeddingMode,
        deadline: Deadline | None = None,
    ) -> list[np.ndarray | None]:
        """Embed multiple texts, None for each item that failed."""
        ...


def apply_mode(text: str, mode: EmbeddingMode) -> str:
    """Return the text actually sent to the model for the given mode."""
    if mode == EmbeddingMode.QUERY:
        return QUERY_INSTRUCTION + text
    return text


def embed_in_batches(
    embed_one: Callable[[str, EmbeddingMode], np.ndarray],
    texts: list[str],
    mode: EmbeddingMode,
    batch_size: int = 10,
    batch_delay_s: float = 0.1,
    deadline: Deadline | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[np.ndarray | None]:
    """
    Run embed_one over texts in concurrent, sequentially-spaced batches.

    Args:
        embed_one: Single-item embedding call; may raise
        texts: Texts to embed
        mode: Embedding mode applied to every item
        batch_size: Max concurrent requests per batch
        batch_delay_s: Fixed pause between batches
        deadline: Stop starting new batches once expired, and stop waiting
            on a running batch; its unfinished items stay None
        sleep: Injected for tests

    Returns:
        One vector per input text, None where the item failed or was skipped
    """
    results: list[np.ndarray | None] = [None] * len(texts)
    if not texts:
        return results

    batch_size = max(1, batch_size)
    pool = ThreadPoolExecutor(max_workers=batch_size)
    try:
        for start in range(0, len(texts), batch_size):
            if deadline is not None and deadline.expired():
                logger.warning(
                    "Embedding budget exhausted, skipping %d of %d items",
                    len(texts) - start,
                    len(texts),
                )
                break

            indices = range(start, min(start + batch_size, len(texts)))
            futures = {pool.submit(embed_one, texts[i], mode): i for i in indices}
            timeout = deadline.remaining() if deadline is not None else None
            done, not_done = wait(futures, timeout=timeout)

            for future in done:
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.warning(
                        "Embedding failed for item %d (%s mode): %s", index, mode.value, e
                    )
            if not_done:
                logger.warning(
                    "Embedding budget exhausted mid-batch, %d items left unembedded",
                    len(not_done),
                )
                break
            logger.debug(
                "Embedded batch %d-%d of %d", start, indices[-1], len(texts)
            )

            if start + batch_size < len(texts) and batch_delay_s > 0:
                sleep(batch_delay_s)
    finally:
        # Calls still running past the deadline finish in the background
        pool.shutdown(wait=False, cancel_futures=True)

    return results


class OpenAIEmbeddings:
    """
    OpenAI-based embedding provider.

    Uses text-embedding-3-small by default (1536 dimensions).
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        batch_size: int = 10,
        batch_delay_s: float = 0.1,
        client: OpenAI | None = None,
    ):
        self.model = model
        self.batch_size = batch_size
        self.batch_delay_s = batch_delay_s
        self._client = client or OpenAI(api_key=api_key or os.environ.get("OPENAI_API_KEY"))

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions for the model."""
        model_dims = {
            "text-embedding-3-small": 1536,
            "text-embedding-3-large": 3072,
            "text-embedding-ada-002": 1536,
        }
        return model_dims.get(self.model, 1536)

    def embed_one(
        self, text: str, mode: EmbeddingMode, deadline: Deadline | None = None
    ) -> np.ndarray:
        """Generate embedding for a single text, capped by the deadline if given."""
        request: dict = {"input": apply_mode(text, mode), "model": self.model}
        remaining = deadline.remaining() if deadline is not None else None
        if remaining is not None:
            if remaining <= 0:
                raise UpstreamEmbeddingError("Embedding budget exhausted before request")
            request["timeout"] = remaining
        try:
            response = self._client.embeddings.create(**request)
            return np.array(response.data[0].embedding, dtype=np.float32)
        except Exception as e:
            raise UpstreamEmbeddingError(f"{type(e).__name__}: {e}") from e

    def embed_batch(
        self,
        texts: list[str],
        mode: EmbeddingMode,
        deadline: Deadline | None = None,
    ) -> list[np.ndarray | None]:
        """Generate embeddings for multiple texts, isolating failures per item."""
        return embed_in_batches(
            partial(self.embed_one, deadline=deadline),
            texts,
            mode,
            batch_size=self.batch_size,
            batch_delay_s=self.batch_delay_s,
            deadline=deadline,
        )


class MockEmbeddings:
    """
    Mock embedding provider for testing without API calls.

    Builds deterministic bag-of-words vectors by hashing each lowercase
    token into a bucket, so texts sharing words are similar. QUERY mode
    adds a fixed instruction component, making the two modes differ for
    identical text the way the real provider does.
    NOT for production use - only for testing/development.
    """

    def __init__(self, dimensions: int = 1536, batch_size: int = 10):
        self._dimensions = dimensions
        self.batch_size = batch_size

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _bucket(self, token: str) -> tuple[int, float]:
        h = hashlib.sha256(token.encode()).digest()
        index = int.from_bytes(h[:4], "big") % self._dimensions
        sign = 1.0 if h[4] % 2 == 0 else -1.0
        return index, sign

    def embed_one(
        self, text: str, mode: EmbeddingMode, deadline: Deadline | None = None
    ) -> np.ndarray:
        """Generate deterministic pseudo-embedding from token hashes."""
        vector = np.zeros(self._dimensions, dtype=np.float32)
        for token in text.lower().split():
            token = token.strip(".,;:!?\"'()[]")
            if token:
                index, sign = self._bucket(token)
                vector[index] += sign

        if mode == EmbeddingMode.QUERY:
            index, sign = self._bucket("__query_instruction__")
            vector[index] += 0.5 * sign

        norm = np.linalg.norm(vector)
        return vector / norm if norm > 0 else vector

    def embed_batch(
        self,
        texts: list[str],
        mode: EmbeddingMode,
        deadline: Deadline | None = None,
    ) -> list[np.ndarray | None]:
        """Generate embeddings for multiple texts."""
        return embed_in_batches(
            self.embed_one,
            texts,
            mode,
            batch_size=self.batch_size,
            batch_delay_s=0.0,
            deadline=deadline,
        )


def get_embedding_provider(
    use_mock: bool = False,
    model: str = "text-embedding-3-small",
    batch_size: int = 10,
    batch_delay_s: float = 0.1,
) -> EmbeddingProvider:
    """
    Factory function to get the appropriate embedding provider.

    Args:
        use_mock: If True, return MockEmbeddings (for testing)
    """
    if use_mock:
        return MockEmbeddings(batch_size=batch_size)
    return OpenAIEmbeddings(model=model, batch_size=batch_size, batch_delay_s=batch_delay_s)
