"""Term-frequency tokenization for lexical similarity."""

import re
from collections import Counter

MIN_TOKEN_LENGTH = 3

# Common English function words that carry no topical signal
STOP_WORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
        "had", "her", "was", "one", "our", "out", "has", "have", "his", "him",
        "how", "its", "may", "new", "now", "see", "who", "did", "get", "let",
        "she", "too", "use", "that", "this", "with", "from", "they", "will",
        "would", "there", "their", "what", "about", "which", "when", "were",
        "been", "into", "than", "then", "them", "these", "those", "some",
        "such", "also", "only", "other", "just", "more", "most", "very",
        "over", "where", "while", "your", "yours", "each", "does", "being",
    }
)

_NON_WORD_PATTERN = re.compile(r"[^\w\s]|_")


def tokenize(text: str) -> Counter[str]:
    """Return a term -> count mapping for ``text``.

    Lowercases, replaces anything that is not a letter, digit or whitespace
    with a space, then drops short tokens and stop words.
    """
    cleaned = _NON_WORD_PATTERN.sub(" ", text.lower())
    return Counter(
        token
        for token in cleaned.split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS
    )
