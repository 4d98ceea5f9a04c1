from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest

from badgelife.config import DEFAULT_FILTERS_PATH
from badgelife.events.constants import API_CALLS_STREAM
from badgelife.models import AnalysisSource, StageStatus
from badgelife.services.api_logger import ApiCallLogger
from badgelife.services.search_filters import FilterVerdict, SearchFilterTerms
from badgelife.services.web_search import STAGE, ReverseImageSearch
from conftest import FakeStorage, RecordingBus, last_stage_status


def _client(payload: Any, *, status: int = 200, seen: List[httpx.Request] | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if isinstance(payload, Exception):
            raise payload
        return httpx.Response(status, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _search(
    filters: SearchFilterTerms,
    payload: Any,
    *,
    status: int = 200,
    seen: List[httpx.Request] | None = None,
    **kwargs: Any,
) -> ReverseImageSearch:
    kwargs.setdefault("api_key", "serp-secret")
    kwargs.setdefault("storage", FakeStorage())
    return ReverseImageSearch(
        url="https://serpapi.test/search.json",
        filters=filters,
        client=_client(payload, status=status, seen=seen),
        **kwargs,
    )


def test_filter_blocklist_takes_precedence_over_allowlist(filters: SearchFilterTerms) -> None:
    verdict, term = filters.classify(
        {"title": "DEFCON conference badge", "link": "https://starwars.fandom.com/wiki/Badge"}
    )
    assert verdict is FilterVerdict.BLOCKED
    assert term == "fandom.com"


def test_filter_requires_badge_term(filters: SearchFilterTerms) -> None:
    assert filters.classify({"title": "Green circuit board"}) == (FilterVerdict.OFF_TOPIC, None)
    assert filters.classify({"snippet": "Custom badge PCB with LEDs"}) == (FilterVerdict.ACCEPTED, "badge pcb")


def test_default_filter_file_loads() -> None:
    terms = SearchFilterTerms.from_file(DEFAULT_FILTERS_PATH)
    assert "fandom.com" in terms.blocklist
    assert "defcon" in terms.allowlist
    assert all(term == term.lower() for term in terms.blocklist + terms.allowlist)


def test_default_filters_match_whole_words_only() -> None:
    terms = SearchFilterTerms.from_file(DEFAULT_FILTERS_PATH)

    led_badge = {
        "title": "DEF CON 32 LED badge",
        "snippet": "conference badge with scrolling characters and a marvelous PCB",
    }
    assert terms.classify(led_badge) == (FilterVerdict.ACCEPTED, "conference badge")

    character = {"title": "R2-D2 - Star Wars character", "link": "https://en.wikipedia.org/wiki/R2-D2"}
    assert terms.classify(character)[0] is FilterVerdict.BLOCKED


def test_default_filters_reject_generic_hardware_pages() -> None:
    terms = SearchFilterTerms.from_file(DEFAULT_FILTERS_PATH)
    router = {"title": "How to flash router firmware", "snippet": "TP-Link Archer update guide"}
    assert terms.classify(router) == (FilterVerdict.OFF_TOPIC, None)


def test_domain_terms_still_match_inside_urls() -> None:
    terms = SearchFilterTerms.from_mapping({"blocklist": ["fandom.com", "wikia."], "allowlist": ["badge pcb"]})
    assert terms.classify({"title": "badge pcb", "link": "https://starwars.fandom.com/wiki/X"}) == (
        FilterVerdict.BLOCKED,
        "fandom.com",
    )
    assert terms.classify({"link": "https://memory-alpha.wikia.org/badge pcb"})[1] == "wikia."


@pytest.mark.asyncio
async def test_accepted_top_result_returns_fixed_confidence(filters, context) -> None:
    storage = FakeStorage()
    seen: List[httpx.Request] = []
    payload = {
        "image_results": [
            {
                "title": "DEFCON 27 badge",
                "snippet": "The official conference badge",
                "link": "https://example.test/dc27",
                "thumbnail": "https://example.test/dc27.jpg",
            }
        ]
    }
    search = _search(filters, payload, storage=storage, seen=seen)

    outcome = await search.search(context)

    assert outcome.status is StageStatus.SUCCESS
    assert not outcome.should_continue_to_ai
    analysis = outcome.analysis
    assert analysis is not None
    assert analysis.name == "DEFCON 27 badge"
    assert analysis.confidence == 65
    assert analysis.source is AnalysisSource.WEB_SEARCH
    assert analysis.search_source == "Google Image Search"
    assert analysis.external_link == "https://example.test/dc27"
    assert seen[0].url.params["image_url"] == "https://storage.test/search/test-0.jpg"
    assert seen[0].url.params["engine"] == "google_reverse_image"
    assert storage.removed == storage.uploaded


@pytest.mark.asyncio
async def test_blocked_top_result_rejects_everything(filters, context) -> None:
    payload = {
        "image_results": [
            {"title": "Star Wars droid", "link": "https://starwars.fandom.com/wiki/R2"},
            {"title": "DEFCON conference badge", "link": "https://example.test/badge"},
        ]
    }
    storage = FakeStorage()
    outcome = await _search(filters, payload, storage=storage).search(context)

    assert outcome.analysis is None
    assert outcome.status is StageStatus.REJECTED
    assert outcome.should_continue_to_ai
    assert last_stage_status(context, STAGE) is StageStatus.REJECTED
    assert storage.removed == storage.uploaded


@pytest.mark.asyncio
async def test_off_topic_top_result_is_rejected(filters, context) -> None:
    payload = {"image_results": [{"title": "Random circuit board", "snippet": "electronics"}]}
    outcome = await _search(filters, payload).search(context)
    assert outcome.analysis is None
    assert outcome.status is StageStatus.REJECTED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload,status,expected",
    [
        ({"image_results": []}, 200, StageStatus.NO_MATCH),
        ({"error": "Invalid API key"}, 200, StageStatus.FAILED),
        ({"error": "boom"}, 500, StageStatus.FAILED),
        (httpx.ConnectTimeout("timed out"), 200, StageStatus.FAILED),
    ],
)
async def test_unusable_responses_fall_through_and_clean_up(filters, context, payload, status, expected) -> None:
    storage = FakeStorage()
    outcome = await _search(filters, payload, storage=storage, status=status).search(context)

    assert outcome.analysis is None
    assert outcome.status is expected
    assert len(storage.uploaded) == 1
    assert storage.removed == storage.uploaded


@pytest.mark.asyncio
async def test_missing_key_or_storage_is_skipped(filters, context) -> None:
    seen: List[httpx.Request] = []
    no_key = _search(filters, {}, api_key=None, seen=seen)
    assert (await no_key.search(context)).status is StageStatus.SKIPPED

    no_storage = _search(filters, {}, storage=None, seen=seen)
    assert (await no_storage.search(context)).status is StageStatus.SKIPPED
    assert seen == []


@pytest.mark.asyncio
async def test_upload_failure_is_reported_as_failed(filters, context) -> None:
    storage = FakeStorage(fail_upload=True)
    outcome = await _search(filters, {"image_results": []}, storage=storage).search(context)
    assert outcome.status is StageStatus.FAILED
    assert storage.removed == []


@pytest.mark.asyncio
async def test_provider_call_is_logged_without_api_key(filters, context) -> None:
    bus = RecordingBus()
    search = _search(filters, {"image_results": []}, api_logger=ApiCallLogger(bus))

    await search.search(context)

    records: List[Dict[str, Any]] = bus.published[API_CALLS_STREAM]
    assert len(records) == 1
    record = records[0]
    assert record["api_provider"] == "serpapi"
    assert record["method"] == "GET"
    assert record["success"] is True
    assert record["estimated_cost_usd"] == pytest.approx(0.001)
    assert record["request_data"]["api_key"] == "[REDACTED]"
    assert "serp-secret" not in str(record)
