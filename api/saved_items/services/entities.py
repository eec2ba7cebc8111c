from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from saved_items.core.ids import encode_tag_id
from saved_items.services.status import SaveStatus


@dataclass(slots=True)
class SavedItem:
    id: str
    user_id: str
    url: str
    resolved_id: str | None
    title: str | None
    status: SaveStatus
    is_favorite: bool
    created_at: datetime
    updated_at: datetime
    archived_at: datetime | None = None
    favorited_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_archived(self) -> bool:
        return self.status is SaveStatus.ARCHIVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "resolved_id": self.resolved_id,
            "title": self.title,
            "status": self.status.label,
            "is_favorite": self.is_favorite,
            "is_archived": self.is_archived,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "archived_at": self.archived_at,
            "favorited_at": self.favorited_at,
            "deleted_at": self.deleted_at,
        }


@dataclass(slots=True)
class Tag:
    name: str
    saved_item_ids: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return encode_tag_id(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "saved_item_ids": list(self.saved_item_ids)}


@dataclass(frozen=True, slots=True)
class SavedItemTagAssociation:
    saved_item_id: str
    tag_name: str

    @property
    def tag_id(self) -> str:
        return encode_tag_id(self.tag_name)

    def to_dict(self) -> dict[str, Any]:
        return {"saved_item_id": self.saved_item_id, "tag_id": self.tag_id}


@dataclass(slots=True)
class BulkUpdateResult:
    updated: list[SavedItem]
    missing: list[str]


@dataclass(frozen=True, slots=True)
class ResolvedItem:
    """Canonical item returned by the URL resolution service."""

    item_id: int
    resolved_id: int | None = None
    title: str | None = None
