"""
Search orchestration: semantic, lexical and hybrid retrieval.

Per query:
- semantic: embed query → vector search → top_k hits
- lexical: sample namespace documents → BM25 over their text → normalize
- hybrid: embed query → vector search for a candidate window → BM25 over
  the window's text → alpha-weighted fusion → top_k hits

The BM25 corpus is rebuilt for every request from whatever documents the
request fetched. In hybrid mode that is the semantic candidate window only,
so lexical recall is bounded by semantic recall.

Embedder and vector store are injected; the service never creates them.
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from .config import Settings
from .embeddings import BaseEmbedder
from .errors import (
    DocumentNotFoundError,
    InvalidInputError,
    SearchError,
    UpstreamUnavailableError,
)
from .ranking import (
    BM25Scorer,
    Document,
    SemanticMatch,
    build_corpus_index,
    fuse,
    normalize_scores,
    validate_alpha,
)
from .vector_store import BaseVectorStore, StoredRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SearchMode(str, Enum):
    """Retrieval strategy for a query"""
    SEMANTIC = "semantic"
    LEXICAL = "lexical"
    HYBRID = "hybrid"


@dataclass
class SearchHit:
    """Single ranked result as returned to API callers"""
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, float]] = None


@dataclass
class SearchResponse:
    mode: SearchMode
    results: List[SearchHit] = field(default_factory=list)
    time_ms: float = 0.0


def corpus_from_matches(matches: List[SemanticMatch]) -> List[Document]:
    """Documents for BM25 from records that carry non-empty metadata["text"]"""
    documents = []
    for match in matches:
        text = (match.metadata or {}).get("text")
        if isinstance(text, str) and text:
            documents.append(Document(id=match.id, text=text))
    return documents


class SearchService:
    """Runs searches against an embedder and a vector store"""

    def __init__(
        self,
        embedder: Optional[BaseEmbedder],
        vector_store: Optional[BaseVectorStore],
        settings: Optional[Settings] = None,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.settings = settings or Settings()
        self.scorer = BM25Scorer(k1=self.settings.bm25_k1, b=self.settings.bm25_b)

    # Validation

    def _validate_query(self, query: Optional[str]) -> str:
        if query is None or not isinstance(query, str) or not query.strip():
            raise InvalidInputError("Query is required")
        return query

    def _validate_mode(self, mode) -> SearchMode:
        try:
            return SearchMode(mode)
        except ValueError:
            valid = ", ".join(m.value for m in SearchMode)
            raise InvalidInputError(f"Unsupported search mode: {mode!r}. Valid options: {valid}")

    def _validate_top_k(self, top_k: Optional[int]) -> int:
        if top_k is None:
            return self.settings.default_top_k
        if isinstance(top_k, bool) or not isinstance(top_k, int):
            raise InvalidInputError(f"top_k must be an integer, got {top_k!r}")
        if not 1 <= top_k <= self.settings.max_top_k:
            raise InvalidInputError(f"top_k must be in [1, {self.settings.max_top_k}], got {top_k}")
        return top_k

    def _resolve_namespace(self, namespace: Optional[str]) -> str:
        return self.settings.default_namespace if namespace is None else namespace

    # Upstream calls

    async def _upstream(self, what: str, call: Awaitable[T]) -> T:
        """Await an upstream call, surfacing any failure as UpstreamUnavailableError"""
        try:
            return await call
        except SearchError:
            raise
        except Exception as e:
            logger.error(f"{what} failed: {e}")
            raise UpstreamUnavailableError(f"{what} unavailable: {e}") from e

    def _require_embedder(self) -> BaseEmbedder:
        if self.embedder is None:
            raise UpstreamUnavailableError("Embedding model not initialized")
        return self.embedder

    def _require_store(self) -> BaseVectorStore:
        if self.vector_store is None:
            raise UpstreamUnavailableError("Vector store is not configured")
        return self.vector_store

    async def _embed_query(self, query: str) -> List[float]:
        embedder = self._require_embedder()
        return await self._upstream("Embedding model", embedder.embed(query))

    # Public API

    async def embed(self, text: str) -> List[float]:
        """Embed arbitrary text with the configured model"""
        if not text or not text.strip():
            raise InvalidInputError("Text is required")
        return await self._embed_query(text)

    async def upsert_document(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        namespace: Optional[str] = None,
        record_id: Optional[str] = None,
        vector: Optional[List[float]] = None,
    ) -> str:
        """
        Store a document; the text itself goes into metadata["text"].

        Args:
            text: Document text
            metadata: Extra metadata stored with the vector
            namespace: Vector store namespace (default from settings)
            record_id: Record id (generated when not given)
            vector: Precomputed embedding; the text is embedded when omitted

        Returns:
            Record id
        """
        if not text or not text.strip():
            raise InvalidInputError("Text is required")

        store = self._require_store()
        namespace = self._resolve_namespace(namespace)
        record_id = record_id or uuid.uuid4().hex

        if vector is None:
            vector = await self._embed_query(text)
        else:
            self._validate_vector(vector, store)

        await self._upstream(
            "Vector store",
            store.upsert(record_id, vector, {**(metadata or {}), "text": text}, namespace),
        )

        logger.info(f"Stored document '{record_id}' in namespace '{namespace}' ({len(text)} chars)")
        return record_id

    def _validate_vector(self, vector: List[float], store: BaseVectorStore):
        expected = store.dimension or (self.embedder.dimension if self.embedder else None)
        if not vector:
            raise InvalidInputError("Embedding must not be empty")
        if expected is not None and len(vector) != expected:
            raise InvalidInputError(
                f"Embedding dimension mismatch: expected {expected}, got {len(vector)}"
            )
        if not all(math.isfinite(x) for x in vector):
            raise InvalidInputError("Embedding values must be finite numbers")

    async def get_document(self, record_id: str, namespace: Optional[str] = None) -> StoredRecord:
        """
        Fetch a stored record by id.

        Raises:
            DocumentNotFoundError: No such id in the namespace
        """
        store = self._require_store()
        namespace = self._resolve_namespace(namespace)
        record = await self._upstream("Vector store", store.get(record_id, namespace))
        if record is None:
            raise DocumentNotFoundError(f"Document '{record_id}' not found in namespace '{namespace}'")
        return record

    async def list_documents(self, namespace: Optional[str] = None, limit: int = 10) -> List[SemanticMatch]:
        """Sample up to `limit` stored records of a namespace, oldest first"""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInputError(f"limit must be a positive integer, got {limit!r}")
        store = self._require_store()
        return await self._upstream(
            "Vector store",
            store.list_documents(self._resolve_namespace(namespace), limit),
        )

    async def document_count(self, namespace: Optional[str] = None) -> int:
        store = self._require_store()
        return await self._upstream("Vector store", store.count(self._resolve_namespace(namespace)))

    async def search(
        self,
        query: str,
        mode=SearchMode.HYBRID,
        top_k: Optional[int] = None,
        alpha: Optional[float] = None,
        namespace: Optional[str] = None,
    ) -> SearchResponse:
        """
        Run a search in the given mode.

        Args:
            query: Natural language query
            mode: "semantic" | "lexical" | "hybrid"
            top_k: Maximum number of results (default from settings)
            alpha: Semantic weight for hybrid mode (default from settings)
            namespace: Vector store namespace (default from settings)

        Raises:
            InvalidInputError: Bad query, mode, top_k or alpha
            UpstreamUnavailableError: Embedding model or vector store failed
        """
        query = self._validate_query(query)
        mode = self._validate_mode(mode)
        top_k = self._validate_top_k(top_k)
        alpha = validate_alpha(self.settings.default_alpha if alpha is None else alpha)
        namespace = self._resolve_namespace(namespace)

        start = time.perf_counter()

        if mode == SearchMode.SEMANTIC:
            results = await self._semantic_search(query, top_k, namespace)
        elif mode == SearchMode.LEXICAL:
            results = await self._lexical_search(query, top_k, namespace)
        else:
            results = await self._hybrid_search(query, top_k, alpha, namespace)

        time_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{mode.value} search in namespace '{namespace}' for {query[:50]!r}: "
            f"{len(results)} results in {time_ms:.1f}ms"
        )

        return SearchResponse(mode=mode, results=results, time_ms=time_ms)

    async def _semantic_search(self, query: str, top_k: int, namespace: str) -> List[SearchHit]:
        store = self._require_store()
        vector = await self._embed_query(query)
        matches = await self._upstream("Vector store", store.search(vector, top_k, namespace))

        return [SearchHit(id=m.id, score=m.score, metadata=m.metadata) for m in matches]

    async def _lexical_search(self, query: str, top_k: int, namespace: str) -> List[SearchHit]:
        store = self._require_store()
        records = await self._upstream(
            "Vector store",
            store.list_documents(namespace, self.settings.lexical_corpus_limit),
        )

        corpus = corpus_from_matches(records)
        if not corpus:
            logger.debug(f"No documents with text in namespace '{namespace}', lexical search is empty")
            return []

        index = build_corpus_index(corpus)
        raw = self.scorer.score(index, query, top_k)
        normalized = normalize_scores(raw)

        metadata = {r.id: r.metadata for r in records}
        return [
            SearchHit(
                id=n.id,
                score=n.score,
                metadata=metadata.get(n.id),
                details={"lexical": n.score, "bm25": r.score},
            )
            for n, r in zip(normalized, raw)
        ]

    async def _hybrid_search(
        self,
        query: str,
        top_k: int,
        alpha: float,
        namespace: str,
    ) -> List[SearchHit]:
        store = self._require_store()
        window = max(top_k, self.settings.hybrid_candidates)

        vector = await self._embed_query(query)
        semantic = await self._upstream("Vector store", store.search(vector, window, namespace))

        corpus = corpus_from_matches(semantic)
        lexical = self.scorer.score(build_corpus_index(corpus), query, window)

        fused = fuse(semantic, lexical, alpha=alpha, top_k=top_k)

        return [
            SearchHit(
                id=r.id,
                score=r.combined_score,
                metadata=r.metadata,
                details={"semantic": r.semantic_score, "lexical": r.lexical_score},
            )
            for r in fused
        ]
