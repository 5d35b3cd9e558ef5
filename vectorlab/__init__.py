"""Vector Lab: semantic, lexical (BM25) and hybrid search service"""

__version__ = "0.1.0"
