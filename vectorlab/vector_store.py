"""
Vector stores: cosine similarity search over stored embeddings.

Two implementations of BaseVectorStore:
- InMemoryVectorStore: numpy brute-force search, for local dev and tests
- PgVectorStore: PostgreSQL + pgvector, multi-cloud portable

Records live in namespaces (logical partitions, one per tenant or dataset).
Each record carries an id, a vector and a metadata dict; the document text
used for lexical scoring is stored under metadata["text"].
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import asyncpg
import numpy as np
from pgvector.asyncpg import register_vector

from .config import Settings
from .ranking.fusion import SemanticMatch

logger = logging.getLogger(__name__)


@dataclass
class StoredRecord:
    """A record exactly as stored: id, vector and metadata"""
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseVectorStore(ABC):
    """
    Abstract base class for vector stores.

    All stores must implement this interface to be swappable.
    """

    # Vector length every record must have; None until known
    dimension: Optional[int] = None

    async def connect(self):
        """Open connections / create schema (no-op by default)"""
        pass

    async def disconnect(self):
        """Release connections (no-op by default)"""
        pass

    @abstractmethod
    async def search(
        self,
        query_vector: List[float],
        top_k: int,
        namespace: str = "",
    ) -> List[SemanticMatch]:
        """
        Find records most similar to the query vector.

        Returns:
            SemanticMatch list sorted by cosine similarity (descending),
            length <= top_k
        """
        pass

    @abstractmethod
    async def list_documents(self, namespace: str = "", limit: int = 1000) -> List[SemanticMatch]:
        """
        Sample up to `limit` records of a namespace (score 0.0).

        Used to assemble the corpus for lexical-only search.
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        record_id: str,
        vector: List[float],
        metadata: Optional[Dict[str, Any]] = None,
        namespace: str = "",
    ):
        """Insert or replace a record"""
        pass

    @abstractmethod
    async def get(self, record_id: str, namespace: str = "") -> Optional[StoredRecord]:
        """Fetch one record by id, None when it does not exist"""
        pass

    @abstractmethod
    async def count(self, namespace: str = "") -> int:
        """Number of records in a namespace"""
        pass


class InMemoryVectorStore(BaseVectorStore):
    """Exact cosine search over vectors held in process memory"""

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        # namespace -> record_id -> (vector, metadata); dicts keep insertion order
        self._namespaces: Dict[str, Dict[str, tuple]] = {}

    def _check_dimension(self, vector: List[float]):
        if self.dimension is None:
            self.dimension = len(vector)
        elif len(vector) != self.dimension:
            raise ValueError(
                f"Vector dimension mismatch: expected {self.dimension}, got {len(vector)}"
            )

    async def upsert(self, record_id, vector, metadata=None, namespace=""):
        self._check_dimension(vector)
        records = self._namespaces.setdefault(namespace, {})
        records[record_id] = (np.asarray(vector, dtype=np.float32), dict(metadata or {}))
        logger.debug(f"Upserted '{record_id}' into namespace '{namespace}' ({len(records)} records)")

    async def search(self, query_vector, top_k, namespace=""):
        records = self._namespaces.get(namespace, {})
        if not records or top_k <= 0:
            return []

        self._check_dimension(query_vector)

        ids = list(records.keys())
        matrix = np.stack([records[record_id][0] for record_id in ids])
        query = np.asarray(query_vector, dtype=np.float32)

        # Cosine similarity; zero vectors get similarity 0 instead of NaN
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        # Stable sort keeps insertion order among equal similarities
        top_indices = np.argsort(-similarities, kind="stable")[:top_k]

        return [
            SemanticMatch(
                id=ids[idx],
                score=float(similarities[idx]),
                metadata=dict(records[ids[idx]][1]),
            )
            for idx in top_indices
        ]

    async def list_documents(self, namespace="", limit=1000):
        records = self._namespaces.get(namespace, {})
        return [
            SemanticMatch(id=record_id, score=0.0, metadata=dict(metadata))
            for record_id, (_, metadata) in list(records.items())[:limit]
        ]

    async def get(self, record_id, namespace=""):
        record = self._namespaces.get(namespace, {}).get(record_id)
        if record is None:
            return None
        vector, metadata = record
        return StoredRecord(id=record_id, vector=[float(x) for x in vector], metadata=dict(metadata))

    async def count(self, namespace=""):
        return len(self._namespaces.get(namespace, {}))


class PgVectorStore(BaseVectorStore):
    """PostgreSQL + pgvector vector store"""

    def __init__(self, connection_string: str, dimension: int = 384, table: str = "vectors"):
        # asyncpg doesn't understand 'postgresql+asyncpg://', only 'postgresql://'
        self.connection_string = connection_string.replace("postgresql+asyncpg://", "postgresql://")
        self.dimension = dimension
        self.table = table
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialize connection pool and schema"""
        async def init_connection(conn):
            """Register vector type for each new connection in the pool"""
            await register_vector(conn)

        # Extension must exist before register_vector can find the type
        conn = await asyncpg.connect(self.connection_string)
        try:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        finally:
            await conn.close()

        self.pool = await asyncpg.create_pool(
            self.connection_string,
            min_size=1,
            max_size=10,
            init=init_connection,
        )
        await self.init_schema()

        logger.info(f"Connected to PostgreSQL: {self.connection_string.split('@')[-1]}")

    async def disconnect(self):
        """Close connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Disconnected from PostgreSQL")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise RuntimeError("PgVectorStore is not connected")
        return self.pool

    async def init_schema(self):
        """Create table and HNSW index"""
        async with self._require_pool().acquire() as conn:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    namespace TEXT NOT NULL DEFAULT '',
                    id TEXT NOT NULL,
                    embedding VECTOR({self.dimension}) NOT NULL,
                    metadata JSONB DEFAULT '{{}}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (namespace, id)
                )
            """)

            # HNSW index for fast vector search
            await conn.execute(f"""
                CREATE INDEX IF NOT EXISTS {self.table}_embedding_idx
                ON {self.table}
                USING hnsw (embedding vector_cosine_ops)
            """)

            logger.info(f"Vector store schema initialized (table={self.table}, dim={self.dimension})")

    @staticmethod
    def _metadata(value) -> Dict[str, Any]:
        if value is None:
            return {}
        return json.loads(value) if isinstance(value, str) else dict(value)

    async def upsert(self, record_id, vector, metadata=None, namespace=""):
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                f"""
                INSERT INTO {self.table} (namespace, id, embedding, metadata)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (namespace, id)
                DO UPDATE SET embedding = EXCLUDED.embedding, metadata = EXCLUDED.metadata
                """,
                namespace,
                record_id,
                np.asarray(vector, dtype=np.float32),
                json.dumps(metadata or {}),
            )

    async def search(self, query_vector, top_k, namespace=""):
        if top_k <= 0:
            return []

        query = f"""
            SELECT id, metadata, 1 - (embedding <=> $1::vector) AS similarity
            FROM {self.table}
            WHERE namespace = $2
            ORDER BY embedding <=> $1::vector
            LIMIT $3
        """

        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(query, np.asarray(query_vector, dtype=np.float32), namespace, top_k)
            return [
                SemanticMatch(
                    id=row["id"],
                    score=float(row["similarity"]),
                    metadata=self._metadata(row["metadata"]),
                )
                for row in rows
            ]

    async def list_documents(self, namespace="", limit=1000):
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(
                f"SELECT id, metadata FROM {self.table} WHERE namespace = $1 ORDER BY created_at, id LIMIT $2",
                namespace,
                limit,
            )
            return [
                SemanticMatch(id=row["id"], score=0.0, metadata=self._metadata(row["metadata"]))
                for row in rows
            ]

    async def get(self, record_id, namespace=""):
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT id, embedding, metadata FROM {self.table} WHERE namespace = $1 AND id = $2",
                namespace,
                record_id,
            )
        if row is None:
            return None
        return StoredRecord(
            id=row["id"],
            vector=[float(x) for x in row["embedding"]],
            metadata=self._metadata(row["metadata"]),
        )

    async def count(self, namespace=""):
        async with self._require_pool().acquire() as conn:
            return await conn.fetchval(
                f"SELECT COUNT(*) FROM {self.table} WHERE namespace = $1",
                namespace,
            )


def create_vector_store(settings: Settings, dimension: int) -> BaseVectorStore:
    """
    Create vector store from settings.

    Config (env vars):
        VECTOR_STORE: "memory" | "pgvector"
        DATABASE_URL: PostgreSQL connection string (pgvector only)
    """
    if settings.vector_store == "memory":
        logger.info("Creating in-memory vector store")
        return InMemoryVectorStore(dimension=dimension)

    if settings.vector_store == "pgvector":
        logger.info("Creating PostgreSQL + pgvector store")
        return PgVectorStore(settings.database_url, dimension=dimension)

    raise ValueError(
        f"Unknown vector store: {settings.vector_store}. Valid options: memory, pgvector"
    )
