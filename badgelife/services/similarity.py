"""Vector and keyword similarity helpers used to rank catalog candidates."""

from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from badgelife.models import BadgeEmbedding, BadgeRecord, DatabaseMatch

_NON_WORD = re.compile(r"[^a-z0-9\s]")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Normalised dot product; 0.0 when the vectors cannot be compared."""

    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a <= 0.0 or norm_b <= 0.0:
        return 0.0
    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, score))


def _word_set(text: Optional[str]) -> set[str]:
    if not text:
        return set()
    normalised = _NON_WORD.sub("", text.lower()).strip()
    return {word for word in normalised.split() if len(word) > 2}


def calculate_text_similarity(text1: Optional[str], text2: Optional[str]) -> float:
    """Jaccard similarity of the two strings' significant word sets."""

    words1 = _word_set(text1)
    words2 = _word_set(text2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def similarity_to_confidence(
    similarity: float,
    *,
    boost_threshold: float = 0.95,
    boost: int = 5,
) -> int:
    confidence = int(round(similarity * 100))
    if similarity >= boost_threshold:
        confidence += boost
    return max(0, min(100, confidence))


def _finalise(
    scored: List[Tuple[float, BadgeRecord]],
    *,
    floor: float,
    top_k: int,
    boost_threshold: float,
    boost: int,
) -> List[DatabaseMatch]:
    kept = [(score, badge) for score, badge in scored if score >= floor]
    kept.sort(key=lambda item: (-item[0], item[1].id))
    return [
        DatabaseMatch(
            badge=badge,
            similarity=score,
            confidence=similarity_to_confidence(score, boost_threshold=boost_threshold, boost=boost),
        )
        for score, badge in kept[:top_k]
    ]


def rank_matches(
    query: Sequence[float],
    embeddings: Iterable[BadgeEmbedding],
    *,
    floor: float = 0.3,
    top_k: int = 5,
    boost_threshold: float = 0.95,
    boost: int = 5,
) -> List[DatabaseMatch]:
    """
    Score stored embeddings against the query vector.

    Embeddings whose dimensionality differs from the query are skipped rather
    than scored, so a partially migrated collection never yields bogus values.
    """

    dim = len(query)
    scored: List[Tuple[float, BadgeRecord]] = []
    for embedding in embeddings:
        if len(embedding.vector) != dim:
            continue
        scored.append((cosine_similarity(query, embedding.vector), embedding.badge))
    return _finalise(scored, floor=floor, top_k=top_k, boost_threshold=boost_threshold, boost=boost)


def filter_badges_by_text(
    text: Optional[str],
    badges: Iterable[BadgeRecord],
    *,
    threshold: float = 0.1,
    top_k: int = 5,
) -> List[DatabaseMatch]:
    """Last-resort keyword overlap between user supplied text and catalog entries."""

    if not text:
        return []
    scored: List[Tuple[float, BadgeRecord]] = []
    for badge in badges:
        score = calculate_text_similarity(text, badge.search_text())
        if score > threshold:
            scored.append((score, badge))
    # keyword overlap never earns the near-exact boost
    return _finalise(scored, floor=threshold, top_k=top_k, boost_threshold=2.0, boost=0)


__all__ = [
    "calculate_text_similarity",
    "cosine_similarity",
    "filter_badges_by_text",
    "rank_matches",
    "similarity_to_confidence",
]
