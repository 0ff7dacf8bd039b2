"""Heuristic lexical relevance scoring.

Coarse on purpose: personal corpora are small enough that a linear scan over
every memory beats maintaining a separate inverted index.
"""

from __future__ import annotations

from llmem.memory.models import Memory

TITLE_WEIGHT = 1.0
CONTENT_WEIGHT = 0.8
TAG_WEIGHT = 0.6
COVERAGE_WEIGHT = 0.4
MIN_TOKEN_LENGTH = 3


def score_text(query: str, memory: Memory) -> tuple[float, bool]:
    """Score one memory against a query.

    Returns ``(score, matched)``; ``matched`` is true when at least one signal
    fired. Token coverage divides by every whitespace token in the query,
    including the short ones that are never matched on their own.
    """
    q = query.lower()
    title = memory.metadata.title.lower()
    content = memory.content.lower()
    tags = [t.lower() for t in memory.metadata.tags]

    score = 0.0
    matched = False

    if q in title:
        score += TITLE_WEIGHT
        matched = True
    if q in content:
        score += CONTENT_WEIGHT
        matched = True
    if any(q in tag for tag in tags):
        score += TAG_WEIGHT
        matched = True

    tokens = q.split()
    if tokens:
        haystack = " ".join([title, content, " ".join(tags)])
        found = [t for t in tokens if len(t) >= MIN_TOKEN_LENGTH and t in haystack]
        if found:
            score += len(found) / len(tokens) * COVERAGE_WEIGHT
            matched = True

    return score, matched
