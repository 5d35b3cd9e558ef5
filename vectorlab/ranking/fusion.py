"""
Weighted score fusion for combining semantic and lexical rankings.

Both signals are brought to a comparable [0, 1]-ish scale first: semantic
scores are cosine similarities as returned by the vector store, lexical
scores are BM25 scores divided by the best score of the query (see
normalizer). The combined score is a convex blend:

    combined(id) = alpha × semantic(id) + (1 - alpha) × lexical(id)

Where:
    alpha = 1.0 → pure semantic ranking
    alpha = 0.0 → pure lexical ranking

Ids found by only one retriever get 0.0 for the missing component, so the
result is the union of both result sets, never the intersection.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import InvalidInputError
from .normalizer import normalize_scores
from .scorer import ScoredResult

logger = logging.getLogger(__name__)


@dataclass
class SemanticMatch:
    """Single vector search hit: id, similarity and stored metadata"""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HybridResult:
    """Fused result with both component scores kept for inspection"""
    id: str
    semantic_score: float
    lexical_score: float
    combined_score: float
    metadata: Optional[Dict[str, Any]] = None


SemanticLike = Union[SemanticMatch, Mapping[str, Any]]


def _as_match(item: SemanticLike) -> SemanticMatch:
    if isinstance(item, SemanticMatch):
        return item
    return SemanticMatch(
        id=str(item["id"]),
        score=float(item.get("score") or 0.0),
        metadata=item.get("metadata") or {},
    )


def validate_alpha(alpha: float) -> float:
    """Reject alpha outside [0, 1] instead of clamping it"""
    if alpha is None or not 0.0 <= alpha <= 1.0:
        raise InvalidInputError(f"alpha must be in [0, 1], got {alpha}")
    return float(alpha)


def fuse(
    semantic: Sequence[SemanticLike],
    lexical: Sequence[ScoredResult],
    alpha: float,
    top_k: int,
    lexical_metadata: Optional[Mapping[str, Dict[str, Any]]] = None,
) -> List[HybridResult]:
    """
    Merge semantic and lexical results into one ranking.

    Args:
        semantic: Vector search hits (SemanticMatch or dicts with id/score/metadata)
        lexical: Raw BM25 results; normalized here by max(score, 1)
        alpha: Weight of the semantic score, in [0, 1]
        top_k: Maximum number of results

        lexical_metadata: Optional {id: metadata} for ids that only the
            lexical side returned (semantic metadata wins when both exist)

    Returns:
        HybridResult list sorted by combined_score (descending), length <= top_k.
        Ties keep semantic order first, then lexical-only ids in lexical order.
        With alpha = 1 the order is exactly the semantic order, lexical-only
        ids following; with alpha = 0 it is the lexical order, semantic-only
        ids following.

    Example:
        >>> fused = fuse(
        ...     [{"id": "x", "score": 0.9}],
        ...     [ScoredResult("y", 0.8)],
        ...     alpha=0.5,
        ...     top_k=10,
        ... )
        >>> [(r.id, r.semantic_score, r.lexical_score) for r in fused]
        [('x', 0.9, 0.0), ('y', 0.0, 0.8)]
    """
    alpha = validate_alpha(alpha)
    if top_k < 0:
        raise InvalidInputError(f"top_k must be non-negative, got {top_k}")

    semantic_matches = [_as_match(item) for item in semantic]
    lexical_scores = {r.id: r.score for r in normalize_scores(lexical)}
    lexical_metadata = lexical_metadata or {}

    semantic_by_id: Dict[str, SemanticMatch] = {}
    for match in semantic_matches:
        semantic_by_id.setdefault(match.id, match)

    # Union of ids, semantic order first
    all_ids: Dict[str, None] = dict.fromkeys(semantic_by_id)
    for doc_id in lexical_scores:
        all_ids.setdefault(doc_id)

    fused: List[HybridResult] = []
    for doc_id in all_ids:
        match = semantic_by_id.get(doc_id)
        semantic_score = match.score if match else 0.0
        lexical_score = lexical_scores.get(doc_id, 0.0)

        metadata = match.metadata if match and match.metadata else lexical_metadata.get(doc_id)

        fused.append(HybridResult(
            id=doc_id,
            semantic_score=semantic_score,
            lexical_score=lexical_score,
            combined_score=alpha * semantic_score + (1 - alpha) * lexical_score,
            metadata=metadata,
        ))

    # A weight of exactly 1 makes that component the whole ranking: ids the
    # weighted retriever never returned go after every id it did return,
    # even when its own scores are negative (cosine similarity can be).
    if alpha == 1.0:
        ranked_ids = set(semantic_by_id)
    elif alpha == 0.0:
        ranked_ids = set(lexical_scores)
    else:
        ranked_ids = set(all_ids)

    fused.sort(key=lambda r: (r.id in ranked_ids, r.combined_score), reverse=True)

    logger.debug(
        f"Fused {len(semantic_by_id)} semantic + {len(lexical_scores)} lexical results "
        f"into {len(fused)} (alpha={alpha}), returning top {top_k}"
    )

    return fused[:top_k]
