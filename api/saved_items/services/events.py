"""Domain events for downstream consumers.

Emission is fire-and-forget: ``EventEmitter.emit`` schedules delivery and
returns, and a failing sink is reported but never fails the mutation that
triggered it. Delivery is a single attempt; consumers must tolerate
duplicates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
import json
import logging
from typing import Any, Protocol

import httpx

from saved_items.core.auth import UserContext
from saved_items.core.config import get_settings
from saved_items.core.telemetry import report_exception
from saved_items.services.entities import SavedItem
from saved_items.services.errors import EmissionError

logger = logging.getLogger(__name__)

# Deliveries still running, across requests; the app lifespan drains them.
_IN_FLIGHT: set[asyncio.Task[None]] = set()


class EventType(str, Enum):
    ADD_ITEM = "ADD_ITEM"
    ARCHIVE_ITEM = "ARCHIVE_ITEM"
    UNARCHIVE_ITEM = "UNARCHIVE_ITEM"
    FAVORITE_ITEM = "FAVORITE_ITEM"
    UNFAVORITE_ITEM = "UNFAVORITE_ITEM"
    DELETE_ITEM = "DELETE_ITEM"
    ADD_TAGS = "ADD_TAGS"
    REPLACE_TAGS = "REPLACE_TAGS"
    REMOVE_TAGS = "REMOVE_TAGS"
    CLEAR_TAGS = "CLEAR_TAGS"


@dataclass(frozen=True, slots=True)
class ItemEvent:
    event_type: EventType
    user: UserContext
    saved_item: dict[str, Any]
    tags: list[str] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        return {
            "eventType": self.event_type.value,
            "timestamp": int(self.timestamp.timestamp()),
            "user": {"id": self.user.user_id, "apiId": self.user.api_id},
            "savedItem": {key: _jsonable(value) for key, value in self.saved_item.items()},
            "tags": self.tags,
        }


class EventSink(Protocol):
    async def send(self, event: ItemEvent) -> None: ...


class LoggingEventSink:
    """Sink used when no event endpoint is configured."""

    async def send(self, event: ItemEvent) -> None:
        logger.info(
            "event %s user_id=%s item_id=%s",
            event.event_type.value,
            event.user.user_id,
            event.saved_item.get("id"),
        )


class HttpEventSink:
    def __init__(
        self,
        endpoint: str,
        *,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def send(self, event: ItemEvent) -> None:
        body = json.dumps(event.to_payload())
        headers = {"Content-Type": "application/json"}
        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, content=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(self.endpoint, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise EmissionError(f"event sink unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise EmissionError(f"event sink rejected {event.event_type.value} with status {response.status_code}")


class EventEmitter:
    """Request-scoped emitter bound to the calling user."""

    def __init__(self, sink: EventSink, user: UserContext) -> None:
        self.sink = sink
        self.user = user
        self._pending: set[asyncio.Task[None]] = set()

    def emit(self, event_type: EventType, saved_item: SavedItem, tags: list[str] | None = None) -> None:
        # Snapshot now; the item may change before the task runs.
        event = ItemEvent(
            event_type=EventType(event_type),
            user=self.user,
            saved_item=saved_item.to_dict(),
            tags=list(tags) if tags is not None else None,
        )
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except RuntimeError as exc:
            logger.error("no running loop; dropped event %s", event.event_type.value)
            report_exception(exc)
            return
        self._pending.add(task)
        _IN_FLIGHT.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(_IN_FLIGHT.discard)

    async def drain(self) -> None:
        """Wait for scheduled deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(self, event: ItemEvent) -> None:
        try:
            await self.sink.send(event)
        except Exception as exc:
            logger.exception(
                "event emission failed type=%s user_id=%s item_id=%s",
                event.event_type.value,
                event.user.user_id,
                event.saved_item.get("id"),
            )
            report_exception(exc)


async def drain_pending_events() -> None:
    """Wait for every delivery scheduled on the running loop."""
    loop = asyncio.get_running_loop()
    while True:
        pending = [task for task in _IN_FLIGHT if task.get_loop() is loop and not task.done()]
        if not pending:
            return
        await asyncio.gather(*pending)


@lru_cache
def get_event_sink() -> EventSink:
    settings = get_settings()
    if not settings.event_sink_url:
        return LoggingEventSink()
    return HttpEventSink(settings.event_sink_url, timeout_seconds=settings.event_sink_timeout_seconds)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return int(value.timestamp())
    return value
