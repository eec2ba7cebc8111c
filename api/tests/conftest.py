from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import pytest

from saved_items.core.auth import UserContext
from saved_items.core.ids import parse_item_id, unique_ids
from saved_items.services.context import DataServices, RequestContext
from saved_items.services.entities import (
    BulkUpdateResult,
    ResolvedItem,
    SavedItem,
    SavedItemTagAssociation,
    Tag,
)
from saved_items.services.errors import NotFoundError, ParserError
from saved_items.services.events import EventEmitter, ItemEvent
from saved_items.services.mutations import classify_missing, order_like_request
from saved_items.services.rows import ZERO_DATE, as_utc
from saved_items.services.status import SaveAction, SaveStatus, apply_transition
from saved_items.services.storage import StorageContext

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_item(item_id: str, **overrides: Any) -> SavedItem:
    values: dict[str, Any] = {
        "id": item_id,
        "user_id": "1",
        "url": f"https://example.com/{item_id}",
        "resolved_id": item_id,
        "title": f"Item {item_id}",
        "status": SaveStatus.UNREAD,
        "is_favorite": False,
        "created_at": T0,
        "updated_at": T0,
    }
    values.update(overrides)
    return SavedItem(**values)


def list_row(item_id: int, status: int = 1, **extra: Any) -> dict[str, Any]:
    """A ``list`` table row as asyncpg hands it back."""
    return {
        "item_id": item_id,
        "user_id": 1,
        "given_url": f"https://example.com/{item_id}",
        "resolved_id": item_id,
        "title": "",
        "status": status,
        "favorite": 0,
        "time_added": T0,
        "time_favorited": ZERO_DATE,
        "time_read": T0,
        "time_updated": T0,
        **extra,
    }


class FakeConnection:
    """Answers every fetch with the same rows and records each statement."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.rows = rows or []
        self.statements: list[tuple[str, tuple[Any, ...]]] = []
        self.transactions = 0

    @asynccontextmanager
    async def _transaction(self):
        self.transactions += 1
        yield

    def transaction(self):
        return self._transaction()

    async def execute(self, query: str, *args: Any) -> str:
        self.statements.append((" ".join(query.split()), args))
        return "UPDATE 0"

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        self.statements.append((" ".join(query.split()), args))
        return self.rows

    async def fetchrow(self, query: str, *args: Any) -> dict[str, Any] | None:
        self.statements.append((" ".join(query.split()), args))
        return self.rows[0] if self.rows else None


class FakeDatabase:
    """Stands in for ``Database``; both pools hand out the same connection."""

    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    async def connect(self, *, writable: bool) -> None:
        return None

    async def close(self) -> None:
        return None

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[StorageContext]:
        yield StorageContext(conn=self.conn, writable=False)

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[StorageContext]:
        yield StorageContext(conn=self.conn, writable=True)


class FakeStore:
    """In-memory stand-in for the read and mutation services of one user."""

    def __init__(self, items: Iterable[SavedItem] = ()) -> None:
        self.items: dict[str, SavedItem] = {item.id: item for item in items}
        self.associations: list[tuple[str, str]] = []
        self.calls: list[str] = []

    # reads

    async def get_saved_item_by_id(self, item_id: str) -> SavedItem | None:
        self.calls.append("get_saved_item_by_id")
        return self.items.get(item_id)

    async def get_saved_items_by_ids(self, item_ids: Iterable[str]) -> list[SavedItem]:
        self.calls.append("get_saved_items_by_ids")
        return [self.items[item_id] for item_id in sorted(set(item_ids) & self.items.keys(), key=int)]

    async def get_tags_by_user_item(self, item_id: str) -> list[Tag]:
        self.calls.append("get_tags_by_user_item")
        names = sorted({name for saved_item_id, name in self.associations if saved_item_id == item_id})
        return self._tags(names)

    async def get_tag_by_name(self, name: str) -> Tag:
        self.calls.append("get_tag_by_name")
        tags = self._tags([name])
        if not tags:
            raise NotFoundError(f"Tag with name={name} does not exist.", key="name", value=name)
        return tags[0]

    async def get_tags_by_name(self, names: Iterable[str]) -> list[Tag]:
        self.calls.append("get_tags_by_name")
        return self._tags(list(dict.fromkeys(names)))

    # writes

    async def apply_bulk_action(
        self,
        action: SaveAction,
        item_ids: Iterable[str],
        timestamp: datetime,
    ) -> BulkUpdateResult:
        self.calls.append(f"apply_bulk_action:{SaveAction(action).value}")
        requested = unique_ids(item_ids)
        updated: list[SavedItem] = []
        for item_id in requested:
            item = self.items.get(item_id)
            if item is None:
                continue
            self.items[item_id] = apply_transition(item, action, as_utc(timestamp))
            updated.append(self.items[item_id])
        return BulkUpdateResult(
            updated=order_like_request(requested, updated),
            missing=classify_missing(requested, updated),
        )

    async def upsert_saved_item(
        self,
        item: ResolvedItem,
        *,
        url: str,
        is_favorite: bool,
        timestamp: datetime,
        title: str | None = None,
    ) -> SavedItem:
        self.calls.append("upsert_saved_item")
        item_id = str(item.item_id)
        existing = self.items.get(item_id)
        if existing is None:
            saved = make_item(
                item_id,
                url=url,
                resolved_id=str(item.resolved_id) if item.resolved_id else None,
                title=title or item.title,
                is_favorite=is_favorite,
                created_at=timestamp,
                updated_at=timestamp,
                favorited_at=timestamp if is_favorite else None,
            )
        else:
            keep_favorited_at = is_favorite and existing.is_favorite
            saved = replace(
                existing,
                status=SaveStatus.UNREAD,
                is_favorite=is_favorite,
                title=title or existing.title,
                updated_at=max(existing.updated_at, timestamp),
                archived_at=None,
                deleted_at=None,
                favorited_at=existing.favorited_at if keep_favorited_at else (timestamp if is_favorite else None),
            )
        self.items[item_id] = saved
        return saved

    async def insert_tags(self, associations: Sequence[SavedItemTagAssociation], timestamp: datetime) -> None:
        self.calls.append("insert_tags")
        for association in associations:
            pair = (association.saved_item_id, association.tag_name)
            if association.saved_item_id in self.items and pair not in self.associations:
                self.associations.append(pair)
                self._touch(association.saved_item_id, timestamp)

    async def update_saved_item_tags(self, saved_item_id: str, names: Sequence[str], timestamp: datetime) -> None:
        self.calls.append("update_saved_item_tags")
        self._replace(saved_item_id, names, timestamp)

    async def replace_saved_item_tags(
        self,
        replacements: Sequence[tuple[str, Sequence[str]]],
        timestamp: datetime,
    ) -> None:
        self.calls.append("replace_saved_item_tags")
        for saved_item_id, names in replacements:
            self._replace(saved_item_id, names, timestamp)

    async def remove_saved_item_tags(self, saved_item_id: str, timestamp: datetime) -> list[str]:
        self.calls.append("remove_saved_item_tags")
        removed = sorted(name for item_id, name in self.associations if item_id == saved_item_id)
        self.associations = [pair for pair in self.associations if pair[0] != saved_item_id]
        self._touch(saved_item_id, timestamp)
        return removed

    async def delete_saved_item_associations(
        self,
        associations: Sequence[SavedItemTagAssociation],
        timestamp: datetime,
    ) -> list[SavedItemTagAssociation]:
        self.calls.append("delete_saved_item_associations")
        removed: list[SavedItemTagAssociation] = []
        for association in dict.fromkeys(associations):
            pair = (association.saved_item_id, association.tag_name)
            if pair in self.associations:
                self.associations.remove(pair)
                self._touch(association.saved_item_id, timestamp)
                removed.append(association)
        return removed

    async def delete_tag(self, name: str, timestamp: datetime) -> list[str]:
        self.calls.append("delete_tag")
        affected = sorted({item_id for item_id, tag in self.associations if tag == name}, key=int)
        self.associations = [pair for pair in self.associations if pair[1] != name]
        for item_id in affected:
            self._touch(item_id, timestamp)
        return affected

    async def rename_tag(self, old_name: str, new_name: str, timestamp: datetime) -> list[str]:
        self.calls.append("rename_tag")
        affected = sorted({item_id for item_id, tag in self.associations if tag == old_name}, key=int)
        self.associations = [pair for pair in self.associations if pair[1] != old_name]
        for item_id in affected:
            if (item_id, new_name) not in self.associations:
                self.associations.append((item_id, new_name))
            self._touch(item_id, timestamp)
        return affected

    def _replace(self, saved_item_id: str, names: Sequence[str], timestamp: datetime) -> None:
        if parse_item_id(saved_item_id) is None:
            return
        self.associations = [pair for pair in self.associations if pair[0] != saved_item_id]
        for name in dict.fromkeys(names):
            self.associations.append((saved_item_id, name))
        self._touch(saved_item_id, timestamp)

    def _touch(self, item_id: str, timestamp: datetime) -> None:
        item = self.items.get(item_id)
        if item is not None:
            self.items[item_id] = replace(item, updated_at=max(item.updated_at, as_utc(timestamp)))

    def _tags(self, names: Iterable[str]) -> list[Tag]:
        tags: list[Tag] = []
        for name in names:
            item_ids = sorted({item_id for item_id, tag in self.associations if tag == name}, key=int)
            if item_ids:
                tags.append(Tag(name=name, saved_item_ids=item_ids))
        return tags


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[ItemEvent] = []

    async def send(self, event: ItemEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [event.event_type.value for event in self.events]


class FakeParser:
    def __init__(self, items: dict[str, ResolvedItem] | None = None) -> None:
        self.items = items or {}
        self.calls: list[str] = []

    async def get_or_create_item(self, url: str) -> ResolvedItem:
        self.calls.append(url)
        item = self.items.get(url)
        if item is None:
            raise ParserError(f"parser returned no item for url={url}")
        return item


def build_context(
    store: FakeStore,
    sink: RecordingSink,
    parser: FakeParser | None = None,
    *,
    writable: bool = True,
) -> RequestContext:
    user = UserContext(user_id="1", api_id="7")
    return RequestContext(
        user=user,
        services=DataServices(
            saves=store,  # type: ignore[arg-type]
            tags=store,  # type: ignore[arg-type]
            save_writes=store if writable else None,  # type: ignore[arg-type]
            tag_writes=store if writable else None,  # type: ignore[arg-type]
        ),
        events=EventEmitter(sink, user),
        parser=parser or FakeParser(),  # type: ignore[arg-type]
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore([make_item("10"), make_item("11"), make_item("12", status=SaveStatus.ARCHIVED, archived_at=T0)])


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
