"""Lexical link suggestions.

Scores every other block by the IDF-weighted overlap of its terms with the
source block's terms, normalised by the source's own weight:

    idf(t)  = ln((N + 1) / (df(t) + 1)) + 1
    norm    = sum(tf_src(t) * idf(t))
    score   = sum(idf(t) * min(tf_src(t), tf_cand(t)) for shared t) / norm

The score is asymmetric (normalised by the source only). A full corpus scan
per query is fine at personal-notes scale.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence

from .config import DEFAULT_SUGGEST_LIMIT, DEFAULT_SUGGEST_MIN_SCORE, MAX_SUGGEST_LIMIT
from .models import Block, LinkSuggestion
from .tokenizer import tokenize


def document_frequencies(term_maps: Sequence[Counter[str]]) -> Counter[str]:
    df: Counter[str] = Counter()
    for terms in term_maps:
        df.update(terms.keys())
    return df


def inverse_document_frequency(df: int, corpus_size: int) -> float:
    return math.log((corpus_size + 1) / (df + 1)) + 1


def rank_similar(
    source: Block,
    corpus: Sequence[Block],
    linked: set[str] | None = None,
    limit: int = DEFAULT_SUGGEST_LIMIT,
    min_score: float = DEFAULT_SUGGEST_MIN_SCORE,
) -> list[LinkSuggestion]:
    """Rank corpus blocks by lexical similarity to ``source``.

    Args:
        source: Block to find link candidates for.
        corpus: Every indexed block (may include the source).
        linked: Target ids the source already references; these are skipped.
        limit: Maximum suggestions, clamped to 1..MAX_SUGGEST_LIMIT.
        min_score: Candidates scoring below this are dropped.

    Returns:
        Suggestions sorted by descending score, then ascending id.
    """
    linked = linked or set()
    limit = max(1, min(limit, MAX_SUGGEST_LIMIT))

    term_maps = [tokenize(block.content) for block in corpus]
    df = document_frequencies(term_maps)
    corpus_size = max(len(corpus), 1)

    source_terms = tokenize(source.content)
    # The source may not be part of the corpus snapshot; idf still needs a value
    idf = {
        term: inverse_document_frequency(df.get(term, 0), corpus_size) for term in source_terms
    }
    source_norm = sum(count * idf[term] for term, count in source_terms.items())
    if source_norm == 0:
        return []

    suggestions: list[LinkSuggestion] = []
    for block, terms in zip(corpus, term_maps):
        if block.id == source.id or block.id in linked:
            continue

        shared = source_terms.keys() & terms.keys()
        if not shared:
            continue

        weights = {term: idf[term] * min(source_terms[term], terms[term]) for term in shared}
        score = sum(weights.values()) / source_norm
        if score < min_score:
            continue

        suggestions.append(
            LinkSuggestion(
                id=block.id,
                file_path=block.file_path,
                line_start=block.line_start,
                content=block.content,
                score=score,
                shared_terms=sorted(shared, key=lambda t: (-weights[t], t)),
            )
        )

    suggestions.sort(key=lambda s: (-s.score, s.id))
    return suggestions[:limit]
