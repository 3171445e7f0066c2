"""
Chunk store implementations.

Pattern: Protocol → Production impl → Test double → Factory

This module contains:
1. ChunkStoreConfig - Configuration dataclass
2. PgVectorChunkStore - PostgreSQL with pgvector (production)
3. InMemoryChunkStore - In-memory brute-force store (testing/development)
4. get_chunk_store() - Factory function

Both stores answer the same two query shapes the retriever needs:
- similarity_search: cosine similarity, strictly above threshold,
  best first, at most k, chunks without embeddings skipped
- keyword_search: case-insensitive substring match, page order,
  fixed KEYWORD_MATCH_SIMILARITY score

Writes are per chunk and rely on the database's row-level atomicity.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import numpy as np

from document_qa.core.errors import ChunkStoreError
from document_qa.core.protocols import KEYWORD_MATCH_SIMILARITY, SearchResult
from document_qa.retrieval.document import Chunk, ChunkWithDocument, Document

logger = logging.getLogger(__name__)

# Optional: Only import psycopg if available (for local dev without postgres)
try:
    import psycopg
    from pgvector.psycopg import register_vector

    PGVECTOR_AVAILABLE = True
except ImportError:
    PGVECTOR_AVAILABLE = False


# ---------------------------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------------------------


@dataclass
class ChunkStoreConfig:
    """Configuration for the chunk store."""

    connection_string: str = "postgresql://localhost/document_qa"
    embedding_dim: int = 1536
    documents_table: str = "documents"
    chunks_table: str = "chunks"
    index_type: str = "hnsw"  # or "ivfflat"


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so the query text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# PGVECTOR STORE (Production)
# ---------------------------------------------------------------------------


class PgVectorChunkStore:
    """
    PostgreSQL chunk store using pgvector.

    Similarity uses the cosine distance operator (<=>) backed by an HNSW
    index; similarity = 1 - distance. Keyword search uses ILIKE.
    """

    def __init__(self, config: ChunkStoreConfig):
        self.config = config
        self._conn = None

    def connect(self) -> None:
        """Establish database connection."""
        if not PGVECTOR_AVAILABLE:
            raise ImportError(
                "pgvector not available. Install with: pip install pgvector psycopg[binary]"
            )

        self._conn = psycopg.connect(self.config.connection_string, autocommit=True)
        self._conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        register_vector(self._conn)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _execute(self, query: str, params: tuple = ()):
        try:
            if not self._conn:
                self.connect()
            return self._conn.execute(query, params)
        except ImportError:
            # postgres extra not installed; psycopg is unbound
            raise
        except psycopg.OperationalError as e:
            # Dropped or refused connection; reconnect on the next call
            self._conn = None
            raise ChunkStoreError(f"{type(e).__name__}: {e}") from e
        except psycopg.Error as e:
            raise ChunkStoreError(f"{type(e).__name__}: {e}") from e

    def create_schema(self) -> None:
        """Create the documents and chunks tables and their indexes."""
        docs = self.config.documents_table
        chunks = self.config.chunks_table

        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {docs} (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """
        )

        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {chunks} (
                id TEXT PRIMARY KEY,
                document_id TEXT NOT NULL REFERENCES {docs}(id) ON DELETE CASCADE,
                content TEXT NOT NULL,
                page_number INTEGER NOT NULL,
                sequence INTEGER NOT NULL,
                embedding vector({self.config.embedding_dim}),
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """
        )

        # HNSW index for fast cosine similarity search
        self._execute(
            f"""
            CREATE INDEX IF NOT EXISTS {chunks}_embedding_idx
            ON {chunks}
            USING hnsw (embedding vector_cosine_ops)
            WITH (m = 16, ef_construction = 64)
        """
        )

        self._execute(
            f"""
            CREATE INDEX IF NOT EXISTS {chunks}_document_idx
            ON {chunks} (document_id, page_number, sequence)
        """
        )

    # -- documents ----------------------------------------------------------

    def insert_document(self, document: Document) -> None:
        self._execute(
            f"""
            INSERT INTO {self.config.documents_table} (id, title, created_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (id) DO NOTHING
            """,
            (document.id, document.title, document.created_at),
        )

    def get_document(self, document_id: str) -> Document | None:
        row = self._execute(
            f"SELECT id, title, created_at FROM {self.config.documents_table} WHERE id = %s",
            (document_id,),
        ).fetchone()
        if row is None:
            return None
        return Document(id=row[0], title=row[1], created_at=row[2])

    # -- chunks -------------------------------------------------------------

    def insert(self, chunk: Chunk, embedding: np.ndarray | None) -> None:
        """Insert a chunk; embedding may be None until generated."""
        self._execute(
            f"""
            INSERT INTO {self.config.chunks_table}
                (id, document_id, content, page_number, sequence, embedding, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                chunk.id,
                chunk.document_id,
                chunk.content,
                chunk.page_number,
                chunk.sequence,
                embedding,
                chunk.created_at,
            ),
        )
        chunk.embedding = embedding

    def set_embedding(self, chunk_id: str, embedding: np.ndarray) -> None:
        self._execute(
            f"UPDATE {self.config.chunks_table} SET embedding = %s WHERE id = %s",
            (embedding, chunk_id),
        )

    def _chunk_from_row(self, row) -> Chunk:
        return Chunk(
            id=row[0],
            document_id=row[1],
            content=row[2],
            page_number=row[3],
            sequence=row[4],
            embedding=row[5],
            created_at=row[6],
        )

    def get_chunks(self, chunk_ids: list[str]) -> list[ChunkWithDocument]:
        if not chunk_ids:
            return []
        rows = self._execute(
            f"""
            SELECT c.id, c.document_id, c.content, c.page_number, c.sequence,
                   c.embedding, c.created_at, d.title, d.created_at
            FROM {self.config.chunks_table} c
            JOIN {self.config.documents_table} d ON d.id = c.document_id
            WHERE c.id = ANY(%s)
            ORDER BY c.page_number, c.sequence
            """,
            (list(chunk_ids),),
        ).fetchall()
        return [
            ChunkWithDocument(
                chunk=self._chunk_from_row(row),
                document=Document(id=row[1], title=row[7], created_at=row[8]),
            )
            for row in rows
        ]

    def chunks_without_embeddings(self, document_id: str) -> list[Chunk]:
        rows = self._execute(
            f"""
            SELECT id, document_id, content, page_number, sequence, embedding, created_at
            FROM {self.config.chunks_table}
            WHERE document_id = %s AND embedding IS NULL
            ORDER BY sequence
            """,
            (document_id,),
        ).fetchall()
        return [self._chunk_from_row(row) for row in rows]

    def count_chunks(self, document_id: str) -> tuple[int, int]:
        row = self._execute(
            f"""
            SELECT COUNT(*), COUNT(embedding)
            FROM {self.config.chunks_table}
            WHERE document_id = %s
            """,
            (document_id,),
        ).fetchone()
        return int(row[0]), int(row[1])

    # -- search -------------------------------------------------------------

    def similarity_search(
        self,
        query_vector: np.ndarray,
        document_id: str | None,
        k: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Cosine search over embedded chunks, optionally scoped to a document."""
        if k <= 0:
            return []

        scope_sql = "AND document_id = %s" if document_id else ""
        scope_params: tuple = (document_id,) if document_id else ()

        rows = self._execute(
            f"""
            SELECT id, content, page_number, document_id,
                   1 - (embedding <=> %s) AS similarity
            FROM {self.config.chunks_table}
            WHERE embedding IS NOT NULL
              {scope_sql}
              AND 1 - (embedding <=> %s) > %s
            ORDER BY embedding <=> %s
            LIMIT %s
            """,
            (query_vector, *scope_params, query_vector, threshold, query_vector, k),
        ).fetchall()

        return [
            SearchResult(
                chunk_id=row[0],
                content=row[1],
                page_number=row[2],
                document_id=row[3],
                similarity=float(row[4]),
            )
            for row in rows
        ]

    def keyword_search(
        self,
        text: str,
        document_id: str | None,
        exclude_ids: list[str],
        k: int,
    ) -> list[SearchResult]:
        """ILIKE substring search in page order."""
        if k <= 0:
            return []

        clauses = ["content ILIKE %s"]
        params: list = [f"%{_escape_like(text)}%"]
        if document_id:
            clauses.append("document_id = %s")
            params.append(document_id)
        if exclude_ids:
            clauses.append("NOT (id = ANY(%s))")
            params.append(list(exclude_ids))
        params.append(k)

        rows = self._execute(
            f"""
            SELECT id, content, page_number, document_id
            FROM {self.config.chunks_table}
            WHERE {' AND '.join(clauses)}
            ORDER BY page_number, sequence
            LIMIT %s
            """,
            tuple(params),
        ).fetchall()

        return [
            SearchResult(
                chunk_id=row[0],
                content=row[1],
                page_number=row[2],
                document_id=row[3],
                similarity=KEYWORD_MATCH_SIMILARITY,
            )
            for row in rows
        ]


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryChunkStore:
    """
    In-memory chunk store for development/testing.

    Implements the same interface as PgVectorChunkStore but doesn't
    require Postgres. Similarity is brute-force cosine over numpy arrays.
    """

    def __init__(self):
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, Chunk] = {}

    def connect(self) -> None:
        """No-op for in-memory store."""
        pass

    def close(self) -> None:
        """No-op for in-memory store."""
        pass

    def create_schema(self) -> None:
        """No-op for in-memory store."""
        pass

    def insert_document(self, document: Document) -> None:
        self._documents.setdefault(document.id, document)

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def insert(self, chunk: Chunk, embedding: np.ndarray | None) -> None:
        if chunk.id in self._chunks:
            raise ChunkStoreError(f"Chunk {chunk.id} already exists")
        chunk.embedding = embedding
        self._chunks[chunk.id] = chunk

    def set_embedding(self, chunk_id: str, embedding: np.ndarray) -> None:
        chunk = self._chunks.get(chunk_id)
        if chunk is None:
            raise ChunkStoreError(f"Unknown chunk {chunk_id}")
        chunk.embedding = embedding

    def _ordered(self, document_id: str | None = None) -> list[Chunk]:
        chunks = [
            c for c in self._chunks.values()
            if document_id is None or c.document_id == document_id
        ]
        return sorted(chunks, key=lambda c: (c.page_number, c.sequence))

    def get_chunks(self, chunk_ids: list[str]) -> list[ChunkWithDocument]:
        wanted = set(chunk_ids)
        return [
            ChunkWithDocument(chunk=c, document=self._documents[c.document_id])
            for c in self._ordered()
            if c.id in wanted
        ]

    def chunks_without_embeddings(self, document_id: str) -> list[Chunk]:
        return sorted(
            (c for c in self._chunks.values()
             if c.document_id == document_id and c.embedding is None),
            key=lambda c: c.sequence,
        )

    def count_chunks(self, document_id: str) -> tuple[int, int]:
        chunks = [c for c in self._chunks.values() if c.document_id == document_id]
        return len(chunks), sum(1 for c in chunks if c.embedding is not None)

    def _cosine_similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        """Calculate cosine similarity between two vectors."""
        if a.shape != b.shape:
            raise ChunkStoreError(
                f"Embedding dimension mismatch: query {a.shape} vs stored {b.shape}"
            )
        norm = np.linalg.norm(a) * np.linalg.norm(b)
        if norm == 0:
            return 0.0
        return float(np.dot(a, b) / norm)

    def similarity_search(
        self,
        query_vector: np.ndarray,
        document_id: str | None,
        k: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Search using cosine similarity."""
        if k <= 0:
            return []

        scored = []
        for chunk in self._chunks.values():
            if document_id is not None and chunk.document_id != document_id:
                continue
            if chunk.embedding is None:
                continue
            score = self._cosine_similarity(query_vector, chunk.embedding)
            if score > threshold:
                scored.append((chunk, score))

        # Sort by score descending
        scored.sort(key=lambda x: x[1], reverse=True)

        return [
            SearchResult(
                chunk_id=chunk.id,
                content=chunk.content,
                page_number=chunk.page_number,
                document_id=chunk.document_id,
                similarity=score,
            )
            for chunk, score in scored[:k]
        ]

    def keyword_search(
        self,
        text: str,
        document_id: str | None,
        exclude_ids: list[str],
        k: int,
    ) -> list[SearchResult]:
        """Case-insensitive substring search in page order."""
        if k <= 0:
            return []

        needle = text.lower()
        excluded = set(exclude_ids)
        matches = [
            c for c in self._ordered(document_id)
            if c.id not in excluded and needle in c.content.lower()
        ]

        return [
            SearchResult(
                chunk_id=c.id,
                content=c.content,
                page_number=c.page_number,
                document_id=c.document_id,
                similarity=KEYWORD_MATCH_SIMILARITY,
            )
            for c in matches[:k]
        ]


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_chunk_store(
    use_postgres: bool = False,
    config: ChunkStoreConfig | None = None,
) -> PgVectorChunkStore | InMemoryChunkStore:
    """
    Factory function to get the appropriate chunk store.

    Args:
        use_postgres: Use PostgreSQL store (default: False for dev)
        config: Store configuration (uses defaults if not provided)

    Returns:
        ChunkStore implementation
    """
    if use_postgres and PGVECTOR_AVAILABLE:
        config = config or ChunkStoreConfig(
            connection_string=os.environ.get(
                "DATABASE_URL", "postgresql://localhost/document_qa"
            )
        )
        return PgVectorChunkStore(config)

    if use_postgres:
        logger.warning("pgvector not installed, using in-memory chunk store")
    return InMemoryChunkStore()
