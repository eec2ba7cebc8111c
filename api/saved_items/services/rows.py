"""Conversion of raw ``list`` / ``item_tags`` rows into entities."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from saved_items.services.entities import SavedItem, Tag
from saved_items.services.errors import MalformedRowError
from saved_items.services.status import SaveStatus

ZERO_DATE = datetime(1970, 1, 1, tzinfo=timezone.utc)
ZERO_DATE_STRINGS = {"0000-00-00 00:00:00", "0000-00-00"}

LIST_COLUMNS = (
    "item_id",
    "user_id",
    "given_url",
    "resolved_id",
    "title",
    "status",
    "favorite",
    "time_added",
    "time_favorited",
    "time_read",
    "time_updated",
)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def convert_date(value: Any) -> datetime | None:
    """Storage date to an aware datetime, or None for the unset sentinel."""
    if value is None:
        return None
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate or candidate in ZERO_DATE_STRINGS:
            return None
        try:
            value = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
        except ValueError as exc:
            raise MalformedRowError(f"unparseable date value: {candidate!r}") from exc
    if not isinstance(value, datetime):
        raise MalformedRowError(f"unexpected date value: {value!r}")
    converted = as_utc(value)
    if converted <= ZERO_DATE:
        return None
    return converted


def convert_status(value: Any) -> SaveStatus:
    try:
        return SaveStatus.from_code(value)
    except ValueError as exc:
        raise MalformedRowError(f"unknown status code: {value!r}") from exc


def convert_favorite(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value in (0, 1):
        return value == 1
    raise MalformedRowError(f"unknown favorite flag: {value!r}")


def list_row_to_saved_item(row: Mapping[str, Any]) -> SavedItem:
    status = convert_status(row["status"])
    is_favorite = convert_favorite(row["favorite"])
    created_at = convert_date(row["time_added"])
    updated_at = convert_date(row["time_updated"])
    if created_at is None or updated_at is None:
        raise MalformedRowError(f"item {row['item_id']} has no time_added/time_updated")

    resolved_id = row["resolved_id"]
    return SavedItem(
        id=str(row["item_id"]),
        user_id=str(row["user_id"]),
        url=row["given_url"],
        resolved_id=str(resolved_id) if resolved_id else None,
        title=row["title"] or None,
        status=status,
        is_favorite=is_favorite,
        created_at=created_at,
        updated_at=updated_at,
        # Derived from status/favorite; a stale timestamp on a row that
        # contradicts it is ignored.
        archived_at=convert_date(row["time_read"]) if status is SaveStatus.ARCHIVED else None,
        favorited_at=convert_date(row["time_favorited"]) if is_favorite else None,
        deleted_at=updated_at if status is SaveStatus.DELETED else None,
    )


def list_rows_to_saved_items(rows: Iterable[Mapping[str, Any]]) -> list[SavedItem]:
    return [list_row_to_saved_item(row) for row in rows]


def tag_rows_to_tags(rows: Iterable[Mapping[str, Any]]) -> list[Tag]:
    """Group ``(tag, item_id)`` rows into tags, keeping first-seen order."""
    tags: dict[str, Tag] = {}
    for row in rows:
        name = row["tag"]
        tag = tags.get(name)
        if tag is None:
            tag = tags[name] = Tag(name=name)
        item_id = str(row["item_id"])
        if item_id not in tag.saved_item_ids:
            tag.saved_item_ids.append(item_id)
    return list(tags.values())
