from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from saved_items.core.telemetry import report_exception
from saved_items.services.context import RequestContext
from saved_items.services.entities import SavedItem
from saved_items.services.errors import StorageModeError, UpsertFailure
from saved_items.services.events import EventType
from saved_items.services.models import utc_now
from saved_items.services.rows import as_utc
from saved_items.services.status import SaveStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UpsertOutcome:
    """How an upsert is classified for events.

    ``is_new`` and ``was_unarchived`` are mutually exclusive; ``favorited``
    can accompany either.
    """

    saved_item: SavedItem
    is_new: bool
    was_unarchived: bool
    favorited: bool

    @property
    def event_types(self) -> list[EventType]:
        event_types: list[EventType] = []
        if self.is_new:
            event_types.append(EventType.ADD_ITEM)
        elif self.was_unarchived:
            event_types.append(EventType.UNARCHIVE_ITEM)
        if self.favorited:
            event_types.append(EventType.FAVORITE_ITEM)
        return event_types


def resolve_favorite(existing: SavedItem | None, requested: bool) -> bool:
    # Upsert never unfavorites; that takes the dedicated unfavorite mutation.
    if existing is not None and not requested:
        return existing.is_favorite
    return requested


def classify_upsert(existing: SavedItem | None, upserted: SavedItem, requested_favorite: bool) -> UpsertOutcome:
    return UpsertOutcome(
        saved_item=upserted,
        is_new=existing is None,
        was_unarchived=existing is not None and existing.status is SaveStatus.ARCHIVED,
        favorited=requested_favorite and not (existing is not None and existing.is_favorite),
    )


class UpsertOrchestrator:
    """Create or re-add a save for a URL.

    The URL is resolved to its canonical item first; nothing is written when
    resolution fails.
    """

    def __init__(self, context: RequestContext) -> None:
        self.context = context

    async def upsert(
        self,
        url: str,
        *,
        is_favorite: bool = False,
        title: str | None = None,
        timestamp: datetime | None = None,
    ) -> SavedItem:
        outcome = await self.write(url, is_favorite=is_favorite, title=title, timestamp=timestamp)
        for event_type in outcome.event_types:
            self.context.events.emit(event_type, outcome.saved_item)
        return outcome.saved_item

    async def write(
        self,
        url: str,
        *,
        is_favorite: bool = False,
        title: str | None = None,
        timestamp: datetime | None = None,
    ) -> UpsertOutcome:
        writes = self.context.services.save_writes
        if writes is None:
            raise StorageModeError("upsert requires a writable storage context")

        try:
            item = await self.context.parser.get_or_create_item(url)
            existing = await self.context.services.saves.get_saved_item_by_id(str(item.item_id))
            upserted = await writes.upsert_saved_item(
                item,
                url=url,
                is_favorite=resolve_favorite(existing, is_favorite),
                timestamp=as_utc(timestamp) if timestamp else utc_now(),
                title=title,
            )
        except UpsertFailure as exc:
            logger.error("upsert read-back returned nothing url=%s", url)
            report_exception(exc)
            raise
        except Exception as exc:
            logger.exception("upsert failed url=%s", url)
            report_exception(exc)
            raise UpsertFailure(url) from exc

        return classify_upsert(existing, upserted, is_favorite)
