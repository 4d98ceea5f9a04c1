"""
Read access to the hosted badge catalog plus the analytics tables.
All calls go through the synchronous supabase client on a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from supabase import Client, create_client

from badgelife.config import ConfigurationError, Settings
from badgelife.models import BadgeRecord

logger = logging.getLogger(__name__)

BADGE_COLUMNS = "id, name, year, team_name, category, description, external_link, image_url"
# PostgREST caps a single select at its max-rows setting (1000 by default)
DEFAULT_PAGE_SIZE = 1000


def create_supabase_client(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
    return create_client(settings.supabase_url, settings.supabase_key)


def badge_from_row(row: Dict[str, Any]) -> Optional[BadgeRecord]:
    data = dict(row)
    # maker_id is a profile uuid; the display name lives in team_name
    if "maker" not in data:
        data["maker"] = data.get("team_name") or None
    try:
        return BadgeRecord.model_validate(data)
    except ValidationError:
        logger.warning("Skipping malformed badge row id=%s", row.get("id"))
        return None


class BadgeCatalog:
    def __init__(self, client: Client, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._client = client
        self.page_size = page_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "BadgeCatalog":
        return cls(create_supabase_client(settings))

    @staticmethod
    def _to_badges(rows: Iterable[Dict[str, Any]]) -> List[BadgeRecord]:
        return [badge for badge in (badge_from_row(row) for row in rows) if badge is not None]

    async def list_badges(self, *, with_images: bool = False) -> List[BadgeRecord]:
        """Every catalog badge, read in pages until an empty page comes back."""

        def _page(start: int) -> List[Dict[str, Any]]:
            query = self._client.table("badges").select(BADGE_COLUMNS)
            if with_images:
                query = query.not_.is_("image_url", "null")
            return query.order("id").range(start, start + self.page_size - 1).execute().data or []

        rows: List[Dict[str, Any]] = []
        while True:
            page = await asyncio.to_thread(_page, len(rows))
            if not page:
                break
            rows.extend(page)
        return self._to_badges(rows)

    async def get_badge(self, badge_id: str) -> Optional[BadgeRecord]:
        def _query() -> List[Dict[str, Any]]:
            return (
                self._client.table("badges").select(BADGE_COLUMNS).eq("id", badge_id).limit(1).execute().data
                or []
            )

        badges = self._to_badges(await asyncio.to_thread(_query))
        return badges[0] if badges else None

    async def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return

        def _insert() -> None:
            self._client.table(table).insert(rows).execute()

        await asyncio.to_thread(_insert)

    async def health(self) -> bool:
        def _ping() -> None:
            self._client.table("badges").select("id").limit(1).execute()

        try:
            await asyncio.to_thread(_ping)
        except Exception:
            return False
        return True


__all__ = ["BADGE_COLUMNS", "BadgeCatalog", "badge_from_row", "create_supabase_client"]
