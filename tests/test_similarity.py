from __future__ import annotations

import pytest

from badgelife.services.similarity import (
    calculate_text_similarity,
    cosine_similarity,
    filter_badges_by_text,
    rank_matches,
    similarity_to_confidence,
)
from conftest import make_badge, make_embedding


def test_cosine_similarity_of_identical_vectors_is_one() -> None:
    assert cosine_similarity([0.2, 0.4, 0.1], [0.2, 0.4, 0.1]) == pytest.approx(1.0)


def test_cosine_similarity_is_symmetric_and_bounded() -> None:
    a = [1.0, 2.0, -3.0]
    b = [-2.0, 0.5, 4.0]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert -1.0 <= cosine_similarity(a, b) <= 1.0
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


@pytest.mark.parametrize(
    "a,b",
    [
        ([], []),
        ([0.0, 0.0], [1.0, 1.0]),
        ([1.0, 2.0], [1.0, 2.0, 3.0]),
    ],
)
def test_cosine_similarity_returns_zero_when_not_comparable(a, b) -> None:
    assert cosine_similarity(a, b) == 0.0


def test_text_similarity_partial_overlap_is_strictly_between_half_and_one() -> None:
    score = calculate_text_similarity("DEF CON 27 badge", "DEF CON 27 Official Badge")
    assert 0.5 < score < 1.0


def test_text_similarity_ignores_short_words_and_punctuation() -> None:
    assert calculate_text_similarity("a an of", "a an of") == 0.0
    assert calculate_text_similarity("Hackaday, Supercon!", "supercon hackaday") == pytest.approx(1.0)
    assert calculate_text_similarity(None, "badge") == 0.0


def test_confidence_boost_applies_at_threshold() -> None:
    assert similarity_to_confidence(0.95) == 100
    assert similarity_to_confidence(0.9499) == 95
    assert similarity_to_confidence(0.99) == 100
    assert similarity_to_confidence(0.5) == 50
    assert similarity_to_confidence(-0.2) == 0


def test_rank_matches_applies_floor_order_and_top_k() -> None:
    badges = [make_badge(str(i), f"Badge {i}") for i in range(8)]
    vectors = [
        [1.0, 0.0],
        [0.9, 0.1],
        [0.7, 0.7],
        [0.0, 1.0],
        [0.8, 0.2],
        [0.6, 0.4],
        [0.5, 0.5],
        [0.95, 0.05],
    ]
    embeddings = [make_embedding(badge, vector) for badge, vector in zip(badges, vectors)]

    matches = rank_matches([1.0, 0.0], embeddings, floor=0.3, top_k=5)

    assert len(matches) == 5
    sims = [match.similarity for match in matches]
    assert sims == sorted(sims, reverse=True)
    assert all(sim >= 0.3 for sim in sims)
    assert matches[0].badge.id == "0"
    assert matches[0].confidence == 100
    assert "3" not in {match.badge.id for match in matches}


def test_rank_matches_skips_mismatched_dimensions() -> None:
    good = make_embedding(make_badge("1", "Good"), [1.0, 0.0, 0.0])
    stale = make_embedding(make_badge("2", "Stale"), [1.0, 0.0])

    matches = rank_matches([1.0, 0.0, 0.0], [good, stale])

    assert [match.badge.id for match in matches] == ["1"]


def test_rank_matches_breaks_ties_by_badge_id() -> None:
    embeddings = [
        make_embedding(make_badge("b", "B"), [1.0, 0.0]),
        make_embedding(make_badge("a", "A"), [1.0, 0.0]),
    ]
    assert [m.badge.id for m in rank_matches([1.0, 0.0], embeddings)] == ["a", "b"]


def test_filter_badges_by_text_uses_strict_threshold_without_boost() -> None:
    badges = [
        make_badge("1", "DEF CON 27 Badge", description="Official DEF CON badge"),
        make_badge("2", "Supercon 2019", description="Hackaday Supercon badge"),
        make_badge("3", "Totally Unrelated"),
    ]

    matches = filter_badges_by_text("def con badge", badges)

    assert [match.badge.id for match in matches][0] == "1"
    assert all(match.similarity > 0.1 for match in matches)
    assert "3" not in {match.badge.id for match in matches}
    assert all(match.confidence <= 100 for match in matches)
    assert filter_badges_by_text("", badges) == []


@pytest.mark.parametrize("a,b", [("Hackaday Supercon 2019", "supercon badge"), ("BSides PDX", "DEF CON"), ("", "x")])
def test_text_similarity_is_symmetric_and_bounded(a: str, b: str) -> None:
    score = calculate_text_similarity(a, b)
    assert score == calculate_text_similarity(b, a)
    assert 0.0 <= score <= 1.0


def test_text_similarity_identity() -> None:
    assert calculate_text_similarity("Tymkrs Cyphercon badge", "Tymkrs Cyphercon badge") == 1.0
    assert calculate_text_similarity("", "anything at all") == 0.0
