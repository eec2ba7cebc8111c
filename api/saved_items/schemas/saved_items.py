from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

SaveStatusName = Literal["UNREAD", "ARCHIVED", "DELETED", "HIDDEN"]


class SavedItemOut(BaseModel):
    id: str
    url: str
    resolved_id: str | None = None
    title: str | None = None
    status: SaveStatusName = "UNREAD"
    is_favorite: bool = False
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime
    archived_at: datetime | None = None
    favorited_at: datetime | None = None
    deleted_at: datetime | None = None


class NotFoundOut(BaseModel):
    kind: Literal["NotFound"] = "NotFound"
    key: str
    value: str
    message: str
    path: list[str | int] = Field(default_factory=list)


class SaveWriteMutationOut(BaseModel):
    save: list[SavedItemOut] = Field(default_factory=list)
    errors: list[NotFoundOut] = Field(default_factory=list)


class BulkSaveRequest(BaseModel):
    ids: list[str] = Field(min_length=1)
    timestamp: datetime


class SavedItemUpsertRequest(BaseModel):
    url: str = Field(min_length=1)
    is_favorite: bool = False
    title: str | None = None
    timestamp: datetime | None = None


class SavedItemTagUpdateRequest(BaseModel):
    tag_ids: list[str]


class SavedItemTagsIn(BaseModel):
    saved_item_id: str
    tags: list[str]


class DeletedOut(BaseModel):
    id: str
