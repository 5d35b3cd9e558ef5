"""
Unit tests for the corpus index builder.
"""

import logging

import pytest
from vectorlab.ranking.index_builder import CorpusIndex, Document, build_corpus_index


@pytest.fixture
def cat_dog_index():
    return build_corpus_index([
        Document("a", "the cat sat on the mat"),
        Document("b", "the dog sat on the log"),
    ])


class TestBuildCorpusIndex:
    """Test corpus statistics aggregation"""

    def test_document_statistics(self, cat_dog_index):
        """Document count, lengths and average length"""
        assert cat_dog_index.document_count == 2
        assert cat_dog_index.document_length == {"a": 6, "b": 6}
        assert cat_dog_index.average_document_length == 6.0

    def test_term_frequency(self, cat_dog_index):
        """Per-document occurrence counts"""
        assert cat_dog_index.term_frequency["the"] == {"a": 2, "b": 2}
        assert cat_dog_index.term_frequency["cat"] == {"a": 1}
        assert cat_dog_index.term_frequency["log"] == {"b": 1}

    def test_document_frequency_counts_documents_not_occurrences(self, cat_dog_index):
        """'the' appears 4 times in 2 documents → df = 2"""
        assert cat_dog_index.document_frequency["the"] == 2
        assert cat_dog_index.document_frequency["sat"] == 2
        assert cat_dog_index.document_frequency["cat"] == 1

    def test_document_frequency_invariant(self):
        """df[t] equals the number of documents with tf[t][d] > 0, for every term"""
        index = build_corpus_index([
            Document("1", "alpha beta beta gamma"),
            Document("2", "beta gamma gamma gamma"),
            Document("3", "delta"),
            Document("4", ""),
        ])
        assert set(index.document_frequency) == set(index.term_frequency)
        for term, postings in index.term_frequency.items():
            assert index.document_frequency[term] == sum(1 for tf in postings.values() if tf > 0)

    def test_average_length_invariant(self):
        """avgdl == sum(lengths) / N"""
        index = build_corpus_index([
            Document("1", "one two three"),
            Document("2", "one"),
            Document("3", ""),
        ])
        assert index.document_length == {"1": 3, "2": 1, "3": 0}
        assert index.average_document_length == pytest.approx(4 / 3)

    def test_empty_corpus(self):
        """Zero documents: zero count and a zero (not NaN) average length"""
        index = build_corpus_index([])
        assert index.document_count == 0
        assert index.average_document_length == 0.0
        assert index.is_empty
        assert index.term_frequency == {}
        assert index.document_frequency == {}

    def test_accepts_mappings(self):
        """Dicts with id/text keys are accepted like Documents"""
        index = build_corpus_index([{"id": "x", "text": "Hello World"}, {"id": 7, "text": None}])
        assert index.document_length == {"x": 2, "7": 0}
        assert index.term_frequency["hello"] == {"x": 1}

    def test_duplicate_id_last_wins(self):
        """A repeated id replaces the earlier document and keeps the invariants"""
        index = build_corpus_index([
            Document("a", "apple apple"),
            Document("b", "banana"),
            Document("a", "cherry"),
        ])
        assert index.document_count == 2
        assert index.document_length == {"a": 1, "b": 1}
        assert "apple" not in index.document_frequency
        assert index.term_frequency["cherry"] == {"a": 1}
        # First position is kept: "a" precedes "b" in corpus order
        assert list(index.document_length) == ["a", "b"]

    def test_postings_follow_corpus_order(self):
        """term_frequency[t] lists documents in input order"""
        index = build_corpus_index([
            Document("z", "common"),
            Document("m", "common"),
            Document("a", "common"),
        ])
        assert list(index.term_frequency["common"]) == ["z", "m", "a"]

    def test_index_is_frozen(self, cat_dog_index):
        """Index attributes cannot be reassigned"""
        with pytest.raises(AttributeError):
            cat_dog_index.document_count = 10

    def test_vocabulary_size(self, cat_dog_index):
        """Distinct terms across the corpus"""
        # the, cat, sat, on, mat, dog, log
        assert cat_dog_index.vocabulary_size == 7

    def test_build_logs_vocabulary_size(self, caplog):
        caplog.set_level(logging.DEBUG, logger="vectorlab.ranking.index_builder")
        build_corpus_index([Document("a", "the cat sat on the mat")])
        assert "1 documents, 5 unique terms, avgdl=6.00" in caplog.text

    def test_default_index_is_empty(self):
        assert CorpusIndex().is_empty
