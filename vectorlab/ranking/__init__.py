"""
Retrieval ranking: BM25 lexical scoring and hybrid score fusion.

Components:
- tokenizer: Lowercase word-character tokenization
- index_builder: Per-document and per-term corpus statistics
- scorer: BM25 scoring and top-k ranking over a corpus index
- normalizer: Rescales BM25 scores into [0, 1] by max(score, 1)
- fusion: Alpha-weighted blend of semantic and lexical scores

Everything here is a pure function of its inputs. A corpus index is built
per document collection and discarded after scoring; nothing is cached
between calls, so concurrent queries never share mutable state.
"""

from .tokenizer import tokenize
from .index_builder import CorpusIndex, Document, build_corpus_index
from .scorer import BM25Scorer, ScoredResult, score
from .normalizer import normalize_scores
from .fusion import HybridResult, SemanticMatch, fuse, validate_alpha

__all__ = [
    "tokenize",
    "Document",
    "CorpusIndex",
    "build_corpus_index",
    "BM25Scorer",
    "ScoredResult",
    "score",
    "normalize_scores",
    "SemanticMatch",
    "HybridResult",
    "fuse",
    "validate_alpha",
]
