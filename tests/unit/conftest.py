"""Unit test configuration - fake collaborators for isolated testing"""

from typing import List

import pytest
import pytest_asyncio

from vectorlab.config import Settings
from vectorlab.embeddings import BaseEmbedder
from vectorlab.ranking import tokenize
from vectorlab.search_service import SearchService
from vectorlab.vector_store import InMemoryVectorStore


class KeywordEmbedder(BaseEmbedder):
    """
    Deterministic bag-of-words embedder.

    One dimension per vocabulary word plus a constant bias dimension, so no
    text ever maps to the zero vector. Similarity is driven purely by shared
    vocabulary words, which keeps expected rankings easy to derive by hand.
    """

    VOCABULARY = ["cat", "dog", "bird", "mat", "log", "tree", "sat"]

    def __init__(self):
        self.dimension = len(self.VOCABULARY) + 1
        self.calls: List[str] = []

    def embed_sync(self, text: str) -> List[float]:
        self.calls.append(text)
        tokens = tokenize(text)
        return [float(tokens.count(word)) for word in self.VOCABULARY] + [1.0]

    def get_model_info(self) -> dict:
        return {"name": "keyword-test", "provider": "test", "dimension": self.dimension}


# id -> text; semantic ranking for "cat" is a > c > b (cosine 0.71, 0.41, 0.35)
CORPUS = {
    "a": "the cat sat on the mat",
    "b": "the dog sat on the log",
    "c": "a bird sang in the tree",
}


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def settings():
    return Settings(default_top_k=10, max_top_k=50, hybrid_candidates=20, lexical_corpus_limit=100)


@pytest.fixture
def store(embedder):
    return InMemoryVectorStore(dimension=embedder.dimension)


@pytest_asyncio.fixture
async def service(embedder, store, settings):
    """SearchService over the three-document CORPUS in the default namespace"""
    service = SearchService(embedder, store, settings)
    for doc_id, text in CORPUS.items():
        await service.upsert_document(text, metadata={"title": doc_id.upper()}, record_id=doc_id)
    embedder.calls.clear()
    return service
