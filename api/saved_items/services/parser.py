from __future__ import annotations

from functools import lru_cache
from typing import Any

import httpx

from saved_items.core.config import get_settings
from saved_items.services.entities import ResolvedItem
from saved_items.services.errors import ParserError


class ParserClient:
    """Resolves a URL to the canonical item id owned by the parser service."""

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def get_or_create_item(self, url: str) -> ResolvedItem:
        if not self.base_url:
            raise ParserError("SI_PARSER_BASE_URL is required")

        endpoint = f"{self.base_url}/getItemListApi"
        params = {"url": url, "getItem": "1", "output": "regular"}
        try:
            if self._client is not None:
                response = await self._client.get(endpoint, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(endpoint, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise ParserError(f"parser request failed for url={url}") from exc
        except ValueError as exc:
            raise ParserError(f"parser returned invalid json for url={url}") from exc

        return _resolved_item_from_payload(payload, url)


def _resolved_item_from_payload(payload: Any, url: str) -> ResolvedItem:
    item = payload.get("item") if isinstance(payload, dict) else None
    if not isinstance(item, dict):
        raise ParserError(f"parser returned no item for url={url}")

    item_id = _as_int(item.get("item_id"))
    if not item_id:
        raise ParserError(f"parser returned no item_id for url={url}")

    title = item.get("title")
    return ResolvedItem(
        item_id=item_id,
        resolved_id=_as_int(item.get("resolved_id")) or None,
        title=title if isinstance(title, str) and title else None,
    )


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@lru_cache
def get_parser_client() -> ParserClient:
    settings = get_settings()
    return ParserClient(settings.parser_base_url, timeout_seconds=settings.parser_timeout_seconds)
