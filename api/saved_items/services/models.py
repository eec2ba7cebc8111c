from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from saved_items.core.ids import canonical_item_id, decode_tag_id
from saved_items.services.context import RequestContext
from saved_items.services.entities import SavedItem, SavedItemTagAssociation, Tag
from saved_items.services.errors import NotFoundError, StorageModeError, ValidationError
from saved_items.services.events import EventType
from saved_items.services.mutations import SavedItemMutationService, TagMutationService
from saved_items.services.rows import as_utc
from saved_items.services.status import SaveAction, in_target_state, rule_for

logger = logging.getLogger(__name__)

ACTION_EVENTS: dict[SaveAction, EventType | None] = {
    SaveAction.ARCHIVE: EventType.ARCHIVE_ITEM,
    SaveAction.UNARCHIVE: EventType.UNARCHIVE_ITEM,
    SaveAction.FAVORITE: EventType.FAVORITE_ITEM,
    SaveAction.UNFAVORITE: EventType.UNFAVORITE_ITEM,
    SaveAction.DELETE: EventType.DELETE_ITEM,
    SaveAction.UNDELETE: None,
}


@dataclass(frozen=True, slots=True)
class NotFoundPayload:
    key: str
    value: str
    path: list[str | int]
    kind: str = "NotFound"

    @property
    def message(self) -> str:
        return f"Entity identified by key={self.key}, value={self.value} was not found."

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "key": self.key,
            "value": self.value,
            "message": self.message,
            "path": list(self.path),
        }


@dataclass(slots=True)
class SaveWriteResult:
    save: list[SavedItem] = field(default_factory=list)
    errors: list[NotFoundPayload] = field(default_factory=list)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clean_tag_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("tag names cannot be empty")
    return cleaned


def _item_key(saved_item_id: str) -> str:
    # Unparseable ids are kept as sent; storage skips them and they never match a row.
    return canonical_item_id(saved_item_id) or saved_item_id


def tag_names_from_ids(tag_ids: Sequence[str]) -> list[str]:
    names: list[str] = []
    for tag_id in tag_ids:
        try:
            names.append(clean_tag_name(decode_tag_id(tag_id)))
        except ValueError as exc:
            raise ValidationError(f"invalid tag id: {tag_id}") from exc
    return list(dict.fromkeys(names))


class SavedItemModel:
    def __init__(self, context: RequestContext) -> None:
        self.context = context
        self.saves = context.services.saves
        self.tags = context.services.tags

    async def get_by_id(self, item_id: str) -> SavedItem:
        item = await self.saves.get_saved_item_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Saved Item with ID={item_id} does not exist.", value=item_id)
        return item

    async def get_tags(self, item_id: str) -> list[Tag]:
        await self.get_by_id(item_id)
        return await self.tags.get_tags_by_user_item(item_id)

    async def save_archive(self, ids: Sequence[str], timestamp: datetime, path: list[str | int]) -> SaveWriteResult:
        """Archive saves in bulk; ids that are not the caller's come back as errors."""
        return await self._bulk(SaveAction.ARCHIVE, ids, timestamp, path)

    async def save_unarchive(self, ids: Sequence[str], timestamp: datetime, path: list[str | int]) -> SaveWriteResult:
        return await self._bulk(SaveAction.UNARCHIVE, ids, timestamp, path)

    async def save_favorite(self, ids: Sequence[str], timestamp: datetime, path: list[str | int]) -> SaveWriteResult:
        return await self._bulk(SaveAction.FAVORITE, ids, timestamp, path)

    async def save_unfavorite(self, ids: Sequence[str], timestamp: datetime, path: list[str | int]) -> SaveWriteResult:
        return await self._bulk(SaveAction.UNFAVORITE, ids, timestamp, path)

    async def update_favorite(self, item_id: str) -> SavedItem:
        return await self._single(SaveAction.FAVORITE, item_id)

    async def update_unfavorite(self, item_id: str) -> SavedItem:
        return await self._single(SaveAction.UNFAVORITE, item_id)

    async def update_archive(self, item_id: str) -> SavedItem:
        return await self._single(SaveAction.ARCHIVE, item_id)

    async def update_unarchive(self, item_id: str) -> SavedItem:
        return await self._single(SaveAction.UNARCHIVE, item_id)

    async def delete(self, item_id: str) -> str:
        """Soft delete; the row stays with status DELETED."""
        await self._single(SaveAction.DELETE, item_id)
        return item_id

    async def undelete(self, item_id: str) -> SavedItem:
        return await self._single(SaveAction.UNDELETE, item_id)

    async def update_tags(self, saved_item_id: str, tag_ids: Sequence[str]) -> SavedItem:
        """Replace the tags of one save with ``tag_ids``."""
        if not tag_ids:
            raise ValidationError(
                "tagIds cannot be empty. use updateSavedItemRemoveTags to remove all tags",
            )
        names = tag_names_from_ids(tag_ids)
        await self.get_by_id(saved_item_id)

        await self._tag_writes().update_saved_item_tags(saved_item_id, names, utc_now())
        saved_item = await self.get_by_id(saved_item_id)
        self.context.events.emit(EventType.REPLACE_TAGS, saved_item, names)
        return saved_item

    async def remove_tags(self, saved_item_id: str) -> SavedItem:
        """Clear every tag of one save; tags left without saves disappear."""
        # Association rows are gone after the delete, so collect names first.
        cleared = await self.tags.get_tags_by_user_item(saved_item_id)

        await self._tag_writes().remove_saved_item_tags(saved_item_id, utc_now())
        saved_item = await self.get_by_id(saved_item_id)
        self.context.events.emit(EventType.CLEAR_TAGS, saved_item, [tag.name for tag in cleared])
        return saved_item

    async def replace_tags(self, replacements: Sequence[tuple[str, Sequence[str]]]) -> list[SavedItem]:
        names_by_item: dict[str, list[str]] = {}
        for saved_item_id, names in replacements:
            if not names:
                raise ValidationError(f"tags for savedItemId={saved_item_id} cannot be empty")
            item_id = canonical_item_id(saved_item_id)
            if item_id is None:
                raise NotFoundError(f"SavedItem Id {saved_item_id} does not exist", value=saved_item_id)
            names_by_item[item_id] = list(dict.fromkeys(clean_tag_name(name) for name in names))

        existing = {item.id for item in await self.saves.get_saved_items_by_ids(names_by_item)}
        for item_id in names_by_item:
            if item_id not in existing:
                raise NotFoundError(f"SavedItem Id {item_id} does not exist", value=item_id)

        await self._tag_writes().replace_saved_item_tags(list(names_by_item.items()), utc_now())
        saved_items = await self.saves.get_saved_items_by_ids(names_by_item)
        for saved_item in saved_items:
            self.context.events.emit(EventType.REPLACE_TAGS, saved_item, names_by_item[saved_item.id])
        return saved_items

    async def _bulk(
        self,
        action: SaveAction,
        ids: Sequence[str],
        timestamp: datetime,
        path: list[str | int],
    ) -> SaveWriteResult:
        if not ids:
            raise ValidationError("ids cannot be empty")
        result = await self._save_writes().apply_bulk_action(action, ids, as_utc(timestamp))
        self._emit_transitions(action, result.updated)
        return SaveWriteResult(
            save=result.updated,
            errors=[NotFoundPayload(key="id", value=missing_id, path=path) for missing_id in result.missing],
        )

    async def _single(self, action: SaveAction, item_id: str) -> SavedItem:
        result = await self._save_writes().apply_bulk_action(action, [item_id], utc_now())
        if not result.updated:
            raise NotFoundError(f"Saved Item with ID={item_id} does not exist.", value=item_id)
        self._emit_transitions(action, result.updated)
        return result.updated[0]

    def _emit_transitions(self, action: SaveAction, items: Sequence[SavedItem]) -> None:
        event_type = ACTION_EVENTS[action]
        if event_type is None:
            return
        rule = rule_for(action)
        for item in items:
            # A concurrent writer may have won; only report what storage holds.
            if not in_target_state(item, rule):
                logger.info("skipping %s for item_id=%s: post-write state differs", event_type.value, item.id)
                continue
            self.context.events.emit(event_type, item)

    def _save_writes(self) -> SavedItemMutationService:
        writes = self.context.services.save_writes
        if writes is None:
            raise StorageModeError("saved item mutations require a writable storage context")
        return writes

    def _tag_writes(self) -> TagMutationService:
        writes = self.context.services.tag_writes
        if writes is None:
            raise StorageModeError("tag mutations require a writable storage context")
        return writes


class TagModel:
    def __init__(self, context: RequestContext) -> None:
        self.context = context
        self.saves = context.services.saves
        self.tags = context.services.tags

    async def get_by_id(self, tag_id: str) -> Tag:
        try:
            name = decode_tag_id(tag_id)
        except ValueError as exc:
            raise NotFoundError(f"Tag Id does not exist {tag_id}", value=tag_id) from exc
        return await self.tags.get_tag_by_name(name)

    async def get_by_names(self, names: Sequence[str]) -> list[Tag]:
        return await self.tags.get_tags_by_name(names)

    async def create_tags(self, inputs: Sequence[tuple[str, str]]) -> list[Tag]:
        """Associate ``(saved_item_id, tag_name)`` pairs, creating tags as needed."""
        associations = list(
            dict.fromkeys(
                SavedItemTagAssociation(saved_item_id=_item_key(saved_item_id), tag_name=clean_tag_name(name))
                for saved_item_id, name in inputs
            )
        )
        if not associations:
            raise ValidationError("at least one tag is required")

        await self._tag_writes().insert_tags(associations, utc_now())
        tags = await self.tags.get_tags_by_name(association.tag_name for association in associations)

        names_by_item: dict[str, list[str]] = {}
        for association in associations:
            names_by_item.setdefault(association.saved_item_id, []).append(association.tag_name)
        for saved_item in await self.saves.get_saved_items_by_ids(names_by_item):
            self.context.events.emit(EventType.ADD_TAGS, saved_item, names_by_item[saved_item.id])
        return tags

    async def delete_saved_item_tags(self, inputs: Sequence[tuple[str, Sequence[str]]]) -> list[SavedItemTagAssociation]:
        """Untag saves; each input is ``(saved_item_id, tag_ids)``."""
        associations = [
            SavedItemTagAssociation(saved_item_id=_item_key(saved_item_id), tag_name=name)
            for saved_item_id, tag_ids in inputs
            for name in tag_names_from_ids(tag_ids)
        ]
        removed = await self._tag_writes().delete_saved_item_associations(associations, utc_now())

        names_by_item: dict[str, list[str]] = {}
        for association in removed:
            names_by_item.setdefault(association.saved_item_id, []).append(association.tag_name)
        for saved_item in await self.saves.get_saved_items_by_ids(names_by_item):
            self.context.events.emit(EventType.REMOVE_TAGS, saved_item, names_by_item[saved_item.id])
        return removed

    async def delete_tag(self, tag_id: str) -> str:
        """Remove a tag and all of its associations."""
        try:
            name = decode_tag_id(tag_id)
        except ValueError as exc:
            raise NotFoundError(f"Tag Id does not exist {tag_id}", value=tag_id) from exc
        await self._tag_writes().delete_tag(name, utc_now())
        return tag_id

    async def update_tag(self, tag_id: str, new_name: str) -> Tag:
        """Rename a tag; merges into an existing tag of the same name."""
        old_tag = await self.get_by_id(tag_id)
        name = clean_tag_name(new_name)
        await self._tag_writes().rename_tag(old_tag.name, name, utc_now())
        return await self.tags.get_tag_by_name(name)

    def _tag_writes(self) -> TagMutationService:
        writes = self.context.services.tag_writes
        if writes is None:
            raise StorageModeError("tag mutations require a writable storage context")
        return writes
