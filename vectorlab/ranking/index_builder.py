"""
Corpus index builder - aggregates per-document and per-term statistics.

The index is a read-only snapshot of one document collection. It is rebuilt
from scratch for every collection it scores; there is no incremental update.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Union

from .tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """Single document admitted to a corpus index"""
    id: str
    text: str


@dataclass(frozen=True)
class CorpusIndex:
    """
    Term statistics for a document collection.

    Attributes:
        document_count: Number of documents in the collection
        document_length: Token count per document id
        average_document_length: Mean token count (0.0 for an empty corpus)
        term_frequency: term -> {doc_id: occurrences}, doc ids in corpus order
        document_frequency: term -> number of documents containing the term
    """
    document_count: int = 0
    document_length: Dict[str, int] = field(default_factory=dict)
    average_document_length: float = 0.0
    term_frequency: Dict[str, Dict[str, int]] = field(default_factory=dict)
    document_frequency: Dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.document_count == 0

    @property
    def vocabulary_size(self) -> int:
        return len(self.document_frequency)


DocumentLike = Union[Document, Mapping[str, Any]]


def _as_document(item: DocumentLike) -> Document:
    if isinstance(item, Document):
        return item
    return Document(id=str(item["id"]), text=str(item.get("text") or ""))


def build_corpus_index(documents: Iterable[DocumentLike]) -> CorpusIndex:
    """
    Build a corpus index from a document collection.

    Each document's text is tokenized once. Term counts are folded into the
    global tables so that document_frequency[term] grows by exactly one per
    document containing the term, however often it repeats there.

    A document whose id was already seen replaces the earlier one (last
    write wins) and keeps the earlier position in corpus order.

    Args:
        documents: Document instances or mappings with "id" and "text" keys

    Returns:
        CorpusIndex over the collection

    Example:
        >>> index = build_corpus_index([
        ...     Document("a", "the cat sat on the mat"),
        ...     Document("b", "the dog sat on the log"),
        ... ])
        >>> index.document_frequency["the"], index.document_frequency["cat"]
        (2, 1)
        >>> index.term_frequency["the"]
        {'a': 2, 'b': 2}
        >>> index.average_document_length
        6.0
    """
    collection: Dict[str, Document] = {}
    for item in documents:
        doc = _as_document(item)
        if doc.id in collection:
            logger.warning(f"Duplicate document id '{doc.id}' in corpus, keeping the last one")
        collection[doc.id] = doc

    document_length: Dict[str, int] = {}
    term_frequency: Dict[str, Dict[str, int]] = defaultdict(dict)
    document_frequency: Dict[str, int] = defaultdict(int)

    for doc_id, doc in collection.items():
        tokens = tokenize(doc.text)
        document_length[doc_id] = len(tokens)

        # Per-document counts first, then fold into the global tables
        counts: Dict[str, int] = defaultdict(int)
        for token in tokens:
            counts[token] += 1

        for term, count in counts.items():
            term_frequency[term][doc_id] = count
            document_frequency[term] += 1

    document_count = len(collection)
    average_document_length = (
        sum(document_length.values()) / document_count if document_count else 0.0
    )

    index = CorpusIndex(
        document_count=document_count,
        document_length=document_length,
        average_document_length=average_document_length,
        term_frequency=dict(term_frequency),
        document_frequency=dict(document_frequency),
    )

    logger.debug(
        f"Built corpus index: {index.document_count} documents, "
        f"{index.vocabulary_size} unique terms, avgdl={index.average_document_length:.2f}"
    )

    return index
