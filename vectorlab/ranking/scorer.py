"""
BM25 scorer over a corpus index.

BM25 (Best Match 25) is a probabilistic ranking function used for information retrieval.

Formula:
    idf(t) = ln((N - df + 0.5) / (df + 0.5) + 1)
    score(t, d) = idf(t) × (tf × (k1 + 1)) / (tf + k1 × (1 - b + b × dl/avgdl))

Where:
    N = number of documents in the corpus
    df = number of documents containing the term
    tf = term frequency in document
    k1 = term frequency saturation parameter (default: 1.5)
    b = length normalization parameter (default: 0.75)
    dl = document length (number of tokens)
    avgdl = average document length over the corpus

The "+ 1" inside the logarithm keeps idf non-negative even for terms that
appear in more than half of the documents.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List

from ..errors import InvalidInputError
from .index_builder import CorpusIndex
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

DEFAULT_K1 = 1.5
DEFAULT_B = 0.75


@dataclass
class ScoredResult:
    """Document id with its lexical relevance score (>= 0)"""
    id: str
    score: float


class BM25Scorer:
    """
    BM25 scoring against a prebuilt CorpusIndex.

    The scorer holds only its two constants, so one instance can score any
    number of indexes, concurrently if needed.
    """

    def __init__(self, k1: float = DEFAULT_K1, b: float = DEFAULT_B):
        """
        Initialize BM25 scorer.

        Args:
            k1: Term frequency saturation parameter
                Higher = more weight to repeated terms
                Default: 1.5

            b: Length normalization parameter
                Higher = more penalty for long documents
                Range: 0.0 - 1.0
                Default: 0.75
        """
        if k1 < 0:
            raise ValueError(f"k1 must be non-negative, got {k1}")
        if not 0.0 <= b <= 1.0:
            raise ValueError(f"b must be in [0, 1], got {b}")
        self.k1 = k1
        self.b = b

    def idf(self, index: CorpusIndex, term: str) -> float:
        """Inverse document frequency of a term (0.0 for unseen terms)"""
        df = index.document_frequency.get(term, 0)
        if df == 0:
            return 0.0
        n = index.document_count
        return math.log((n - df + 0.5) / (df + 0.5) + 1)

    def _length_norm(self, index: CorpusIndex, doc_id: str) -> float:
        """Length normalization factor: 1 - b + b * dl/avgdl"""
        if index.average_document_length <= 0:
            # Only reachable when every document is empty; treat dl == avgdl
            return 1.0
        dl = index.document_length.get(doc_id, 0)
        return 1 - self.b + self.b * (dl / index.average_document_length)

    def _saturate(self, tf: int, norm: float) -> float:
        return (tf * (self.k1 + 1)) / (tf + self.k1 * norm)

    def term_score(self, index: CorpusIndex, term: str, doc_id: str) -> float:
        """
        BM25 contribution of a single term to a single document.

        Returns:
            idf-weighted saturated term frequency, 0.0 if the document
            does not contain the term
        """
        tf = index.term_frequency.get(term, {}).get(doc_id, 0)
        if tf == 0:
            return 0.0
        return self.idf(index, term) * self._saturate(tf, self._length_norm(index, doc_id))

    def score(self, index: CorpusIndex, query: str, top_k: int = 10) -> List[ScoredResult]:
        """
        Rank documents of the index against a query.

        Query tokens are processed as-is, without de-duplication: a term that
        appears twice in the query adds its contribution twice.

        Args:
            index: Corpus index to score
            query: Raw query text
            top_k: Maximum number of results

        Returns:
            ScoredResult list sorted by score (descending), only documents
            containing at least one query term, length <= top_k.
            Ties keep the order in which documents were first scored.

        Example:
            >>> index = build_corpus_index([
            ...     Document("a", "the cat sat on the mat"),
            ...     Document("b", "the dog sat on the log"),
            ... ])
            >>> [r.id for r in BM25Scorer().score(index, "cat")]
            ['a']
        """
        if top_k < 0:
            raise InvalidInputError(f"top_k must be non-negative, got {top_k}")

        if index.is_empty or top_k == 0:
            return []

        query_terms = tokenize(query)
        if not query_terms:
            return []

        scores: Dict[str, float] = {}

        for term in query_terms:
            df = index.document_frequency.get(term, 0)
            if df == 0:
                continue

            idf = self.idf(index, term)

            for doc_id, tf in index.term_frequency[term].items():
                norm = self._length_norm(index, doc_id)
                contribution = idf * self._saturate(tf, norm)
                scores[doc_id] = scores.get(doc_id, 0.0) + contribution

        # sorted() is stable: equal scores keep first-encountered order
        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        ranked = [item for item in ranked if item[1] > 0]

        results = [
            ScoredResult(id=doc_id, score=doc_score)
            for doc_id, doc_score in ranked[:top_k]
        ]

        logger.debug(
            f"BM25 scored {len(scores)} of {index.document_count} documents "
            f"for {len(query_terms)} query terms, returning {len(results)}"
        )

        return results


def score(
    index: CorpusIndex,
    query: str,
    top_k: int = 10,
    k1: float = DEFAULT_K1,
    b: float = DEFAULT_B,
) -> List[ScoredResult]:
    """Shortcut for BM25Scorer(k1, b).score(index, query, top_k)"""
    return BM25Scorer(k1=k1, b=b).score(index, query, top_k)
