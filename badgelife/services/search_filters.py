"""Keyword gates applied to reverse image search results before they are trusted."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)


class FilterVerdict(str, Enum):
    ACCEPTED = "accepted"
    BLOCKED = "blocked"
    OFF_TOPIC = "off_topic"


def result_text(result: Dict[str, Any]) -> str:
    """Lower-cased title + snippet + link used for term matching."""

    parts = [result.get(key) for key in ("title", "snippet", "link")]
    return " ".join(str(part) for part in parts if part).lower()


def _normalise_terms(values: Iterable[Any]) -> Tuple[str, ...]:
    terms = []
    for value in values or ():
        term = str(value).strip().lower()
        if term and term not in terms:
            terms.append(term)
    return tuple(terms)


@lru_cache(maxsize=None)
def _term_pattern(term: str) -> Optional[Pattern[str]]:
    # domain fragments such as "fandom.com" or "wikia." match anywhere in a URL
    if "." in term or "/" in term:
        return None
    return re.compile(rf"\b{re.escape(term)}\b")


def term_matches(term: str, text: str) -> bool:
    """Whole-word match for plain terms, substring match for domain fragments."""

    pattern = _term_pattern(term)
    if pattern is None:
        return term in text
    return pattern.search(text) is not None


@dataclass(frozen=True)
class SearchFilterTerms:
    blocklist: Tuple[str, ...]
    allowlist: Tuple[str, ...]

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "SearchFilterTerms":
        return cls(
            blocklist=_normalise_terms(data.get("blocklist") or []),
            allowlist=_normalise_terms(data.get("allowlist") or []),
        )

    @classmethod
    def from_file(cls, path: Path) -> "SearchFilterTerms":
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"search filter file {path} must contain a JSON object")
        terms = cls.from_mapping(data)
        logger.info(
            "Loaded search filters from %s (%d blocked, %d allowed terms)",
            path,
            len(terms.blocklist),
            len(terms.allowlist),
        )
        return terms

    def first_blocked(self, text: str) -> Optional[str]:
        return next((term for term in self.blocklist if term_matches(term, text)), None)

    def first_allowed(self, text: str) -> Optional[str]:
        return next((term for term in self.allowlist if term_matches(term, text)), None)

    def classify(self, result: Dict[str, Any]) -> Tuple[FilterVerdict, Optional[str]]:
        """
        Return the verdict for a single search hit and the term that decided it.

        Blocked terms are checked first; a hit that survives must still mention
        at least one badge-domain term to be accepted.
        """

        text = result_text(result)
        blocked = self.first_blocked(text)
        if blocked:
            return FilterVerdict.BLOCKED, blocked
        allowed = self.first_allowed(text)
        if allowed:
            return FilterVerdict.ACCEPTED, allowed
        return FilterVerdict.OFF_TOPIC, None


__all__ = ["FilterVerdict", "SearchFilterTerms", "result_text", "term_matches"]
