"""
Score normalization for BM25 results.

Raw BM25 scores are unbounded; cosine similarities are not. Dividing by the
best score of the result set maps lexical scores into [0, 1] so both signals
can be blended. The denominator never drops below 1, so an all-zero (or
empty) result set stays at zero instead of being amplified.

The scale is relative to one query's result set: normalized scores from
different queries are not comparable.
"""

from typing import List, Sequence

from .scorer import ScoredResult


def normalize_scores(results: Sequence[ScoredResult]) -> List[ScoredResult]:
    """
    Rescale scores by max(max_score, 1).

    Args:
        results: Scored results (order is preserved)

    Returns:
        New ScoredResult list with scores in [0, 1]

    Example:
        >>> normalize_scores([ScoredResult("a", 4.0), ScoredResult("b", 1.0)])
        [ScoredResult(id='a', score=1.0), ScoredResult(id='b', score=0.25)]
        >>> normalize_scores([ScoredResult("a", 0.5)])
        [ScoredResult(id='a', score=0.5)]
    """
    if not results:
        return []

    max_score = max(max(r.score for r in results), 1.0)

    return [ScoredResult(id=r.id, score=r.score / max_score) for r in results]
