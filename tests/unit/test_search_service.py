"""
Unit tests for SearchService (semantic, lexical and hybrid modes)

Uses the keyword embedder and in-memory store from conftest, so every
expected ranking can be derived by hand.
"""

import math
from unittest.mock import AsyncMock, Mock

import pytest

from vectorlab.errors import (
    DocumentNotFoundError,
    InvalidInputError,
    UpstreamUnavailableError,
)
from vectorlab.ranking.fusion import SemanticMatch
from vectorlab.search_service import (
    SearchMode,
    SearchService,
    corpus_from_matches,
)
from vectorlab.vector_store import InMemoryVectorStore

pytestmark = pytest.mark.asyncio


class TestSemanticSearch:

    async def test_ranked_by_similarity(self, service):
        response = await service.search("cat", mode="semantic")

        assert response.mode == SearchMode.SEMANTIC
        assert [hit.id for hit in response.results] == ["a", "c", "b"]
        assert response.results[0].score == pytest.approx(1 / math.sqrt(2), rel=1e-5)
        assert response.results[0].metadata["title"] == "A"
        assert response.results[0].details is None
        assert response.time_ms >= 0

    async def test_top_k(self, service):
        response = await service.search("cat", mode=SearchMode.SEMANTIC, top_k=1)
        assert [hit.id for hit in response.results] == ["a"]

    async def test_single_embedding_call(self, service, embedder):
        await service.search("cat", mode="semantic")
        assert embedder.calls == ["cat"]


class TestLexicalSearch:

    async def test_only_matching_documents(self, service):
        """Only 'a' contains 'cat'"""
        response = await service.search("cat", mode="lexical")

        assert [hit.id for hit in response.results] == ["a"]
        hit = response.results[0]
        # N=3, df=1: idf = ln(8/3) < 1, so normalization leaves it unchanged
        assert hit.details["bm25"] == pytest.approx(math.log(8 / 3), rel=1e-6)
        assert hit.score == pytest.approx(math.log(8 / 3), rel=1e-6)
        assert hit.metadata["text"] == "the cat sat on the mat"

    async def test_scores_normalized(self, service):
        response = await service.search("sat on the mat cat cat", mode="lexical")
        scores = [hit.score for hit in response.results]

        # "the" also matches c
        assert [hit.id for hit in response.results] == ["a", "b", "c"]
        assert scores[0] == 1.0
        assert all(0.0 < s < 1.0 for s in scores[1:])

    async def test_does_not_need_embedder(self, store, settings):
        await store.upsert("a", [1.0] * 8, {"text": "the cat sat"})
        service = SearchService(embedder=None, vector_store=store, settings=settings)

        response = await service.search("cat", mode="lexical")
        assert [hit.id for hit in response.results] == ["a"]

    async def test_empty_namespace(self, service):
        response = await service.search("cat", mode="lexical", namespace="empty")
        assert response.results == []

    async def test_records_without_text_are_ignored(self, settings):
        store = InMemoryVectorStore()
        await store.upsert("no-text", [1.0], {"title": "cat"})
        await store.upsert("blank", [1.0], {"text": ""})
        service = SearchService(None, store, settings)

        assert (await service.search("cat", mode="lexical")).results == []

    async def test_corpus_limit(self, embedder, settings):
        settings.lexical_corpus_limit = 2
        store = AsyncMock(spec=InMemoryVectorStore)
        store.list_documents.return_value = []
        service = SearchService(embedder, store, settings)

        await service.search("cat", mode="lexical", namespace="ns")

        store.list_documents.assert_awaited_once_with("ns", 2)

    async def test_query_without_terms(self, service):
        """Punctuation-only query is valid input but matches nothing"""
        response = await service.search("?!", mode="lexical")
        assert response.results == []


class TestHybridSearch:

    async def test_fusion(self, service):
        response = await service.search("cat", mode="hybrid", alpha=0.7)
        by_id = {hit.id: hit for hit in response.results}

        assert [hit.id for hit in response.results] == ["a", "c", "b"]
        assert by_id["a"].details["semantic"] == pytest.approx(1 / math.sqrt(2), rel=1e-5)
        assert by_id["a"].details["lexical"] == pytest.approx(math.log(8 / 3), rel=1e-6)
        assert by_id["a"].score == pytest.approx(
            0.7 * by_id["a"].details["semantic"] + 0.3 * by_id["a"].details["lexical"]
        )
        # Union: documents without lexical match keep their semantic score
        assert by_id["b"].details["lexical"] == 0.0
        assert by_id["b"].score == pytest.approx(0.7 * by_id["b"].details["semantic"])

    async def test_alpha_one_matches_semantic(self, service):
        hybrid = await service.search("dog", mode="hybrid", alpha=1.0)
        semantic = await service.search("dog", mode="semantic")

        assert [hit.id for hit in hybrid.results] == [hit.id for hit in semantic.results]
        assert [hit.score for hit in hybrid.results] == pytest.approx(
            [hit.score for hit in semantic.results]
        )

    async def test_alpha_zero_matches_lexical(self, service):
        response = await service.search("dog log", mode="hybrid", alpha=0.0)
        assert response.results[0].id == "b"
        assert response.results[0].score == pytest.approx(response.results[0].details["lexical"])
        assert all(hit.score == 0.0 for hit in response.results[1:])

    async def test_default_alpha(self, service, settings):
        response = await service.search("cat", mode="hybrid")
        hit = response.results[0]
        alpha = settings.default_alpha
        assert hit.score == pytest.approx(
            alpha * hit.details["semantic"] + (1 - alpha) * hit.details["lexical"]
        )

    async def test_semantic_window(self, embedder, settings):
        """Semantic window is max(top_k, hybrid_candidates) and BM25 scores it"""
        store = AsyncMock(spec=InMemoryVectorStore)
        store.search.return_value = [
            SemanticMatch("w1", 0.2, {"text": "nothing relevant"}),
            SemanticMatch("w2", 0.1, {"text": "cat cat cat"}),
        ]
        service = SearchService(embedder, store, settings)

        response = await service.search("cat", mode="hybrid", top_k=5, alpha=0.5, namespace="ns")

        store.search.assert_awaited_once()
        _, window, namespace = store.search.await_args.args
        assert window == settings.hybrid_candidates
        assert namespace == "ns"
        assert [hit.id for hit in response.results] == ["w2", "w1"]
        store.list_documents.assert_not_awaited()

    async def test_default_mode_is_hybrid(self, service):
        response = await service.search("cat")
        assert response.mode == SearchMode.HYBRID


class TestValidation:
    """Invalid input is rejected before any upstream call"""

    @pytest.mark.parametrize("kwargs", [
        {"query": ""},
        {"query": "   "},
        {"query": None},
        {"query": "cat", "mode": "fuzzy"},
        {"query": "cat", "alpha": 1.5},
        {"query": "cat", "alpha": -0.1},
        {"query": "cat", "top_k": 0},
        {"query": "cat", "top_k": 51},
        {"query": "cat", "top_k": "5"},
    ])
    async def test_invalid_input(self, service, embedder, kwargs):
        with pytest.raises(InvalidInputError):
            await service.search(**kwargs)
        assert embedder.calls == []

    async def test_invalid_input_is_value_error(self, service):
        with pytest.raises(ValueError):
            await service.search("cat", mode="vector")


class TestUpstreamFailures:

    async def test_embedder_missing(self, store, settings):
        service = SearchService(None, store, settings)
        with pytest.raises(UpstreamUnavailableError, match="Embedding model"):
            await service.search("cat", mode="semantic")

    async def test_store_missing(self, embedder, settings):
        service = SearchService(embedder, None, settings)
        for mode in SearchMode:
            with pytest.raises(UpstreamUnavailableError, match="Vector store"):
                await service.search("cat", mode=mode)

    async def test_embedder_failure_wrapped(self, store, settings):
        embedder = Mock()
        embedder.embed = AsyncMock(side_effect=RuntimeError("model crashed"))
        service = SearchService(embedder, store, settings)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await service.search("cat", mode="hybrid")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.status_code == 503

    async def test_store_failure_wrapped(self, embedder, settings):
        store = AsyncMock(spec=InMemoryVectorStore)
        store.search.side_effect = ConnectionError("connection refused")
        service = SearchService(embedder, store, settings)

        with pytest.raises(UpstreamUnavailableError, match="connection refused"):
            await service.search("cat", mode="semantic")


class TestDocuments:

    async def test_upsert_document(self, service, store):
        record_id = await service.upsert_document("a dog and a cat", metadata={"lang": "en"}, namespace="pets")

        assert len(record_id) == 32
        (match,) = await store.list_documents("pets")
        assert match.id == record_id
        assert match.metadata == {"lang": "en", "text": "a dog and a cat"}

    async def test_upsert_then_lexical_search(self, service):
        await service.upsert_document("unicorn sighting", record_id="u")
        response = await service.search("unicorn", mode="lexical")
        assert [hit.id for hit in response.results] == ["u"]

    async def test_upsert_requires_text(self, service):
        with pytest.raises(InvalidInputError):
            await service.upsert_document("  ")

    async def test_upsert_with_precomputed_vector(self, service, embedder, store):
        vector = [0.0] * (embedder.dimension - 1) + [2.0]
        record_id = await service.upsert_document("zebra crossing", record_id="z", vector=vector)

        assert embedder.calls == []
        assert (await store.get(record_id)).vector == vector

    @pytest.mark.parametrize("vector", [[], [1.0, 2.0], [float("nan")] * 8])
    async def test_upsert_rejects_bad_vector(self, service, vector):
        with pytest.raises(InvalidInputError, match="Embedding"):
            await service.upsert_document("zebra", vector=vector)

    async def test_get_document(self, service):
        record = await service.get_document("a")
        assert record.metadata == {"title": "A", "text": "the cat sat on the mat"}
        assert len(record.vector) == 8

    async def test_get_document_not_found(self, service):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            await service.get_document("a", namespace="elsewhere")
        assert exc_info.value.status_code == 404

    async def test_list_documents(self, service):
        records = await service.list_documents(limit=2)
        assert [r.id for r in records] == ["a", "b"]

    @pytest.mark.parametrize("limit", [0, -1, True, "2"])
    async def test_list_documents_rejects_bad_limit(self, service, limit):
        with pytest.raises(InvalidInputError):
            await service.list_documents(limit=limit)

    async def test_document_count(self, service):
        assert await service.document_count() == 3
        assert await service.document_count("empty") == 0

    async def test_embed(self, service, embedder):
        vector = await service.embed("cat cat")
        assert len(vector) == embedder.dimension
        assert vector[0] == 2.0

    async def test_embed_requires_text(self, service):
        with pytest.raises(InvalidInputError):
            await service.embed("")


async def test_corpus_from_matches():
    documents = corpus_from_matches([
        SemanticMatch("a", 0.9, {"text": "hello"}),
        SemanticMatch("b", 0.8, {}),
        SemanticMatch("c", 0.7, {"text": 42}),
        SemanticMatch("d", 0.6, None),
    ])
    assert [(d.id, d.text) for d in documents] == [("a", "hello")]
