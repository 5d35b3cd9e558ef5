"""
Tokenizer for BM25 text processing.

Tokenization pipeline:
1. Lowercase conversion
2. Extract maximal runs of ASCII word characters ([A-Za-z0-9_])
3. Return tokens in document order

Everything that is not a word character is a delimiter and is dropped.
No stopword removal and no stemming: every word in the text counts toward
document length and term frequency.
"""

import re
from typing import List, Optional

_WORD_PATTERN = re.compile(r"\w+", re.ASCII)


def tokenize(text: Optional[str]) -> List[str]:
    """
    Tokenize text for BM25 scoring.

    Args:
        text: Input text to tokenize (None is treated as empty)

    Returns:
        List of lowercase tokens, duplicates preserved

    Examples:
        >>> tokenize("Apple Banana")
        ['apple', 'banana']

        >>> tokenize("the cat sat on the mat.")
        ['the', 'cat', 'sat', 'on', 'the', 'mat']

        >>> tokenize("snake_case, BM25 & 3.11")
        ['snake_case', 'bm25', '3', '11']

        >>> tokenize("   ")
        []
    """
    if not text:
        return []

    return _WORD_PATTERN.findall(text.lower())
