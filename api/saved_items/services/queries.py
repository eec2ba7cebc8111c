from __future__ import annotations

from collections.abc import Iterable

from saved_items.core.auth import UserContext
from saved_items.core.ids import parse_item_id, unique_ids
from saved_items.services.entities import SavedItem, Tag
from saved_items.services.errors import NotFoundError
from saved_items.services.rows import (
    LIST_COLUMNS,
    list_row_to_saved_item,
    list_rows_to_saved_items,
    tag_rows_to_tags,
)
from saved_items.services.storage import StorageContext

SAVED_ITEM_SELECT_SQL = "\n    select " + ", ".join(LIST_COLUMNS) + "\n    from list\n"


class SavedItemDataService:
    """Reads saved items for one user.

    Pass the same writable context the mutation used when reading back
    after a write, otherwise replica lag can hide the change.
    """

    def __init__(self, storage: StorageContext, user: UserContext) -> None:
        self.conn = storage.conn
        self.user_id = user.user_key

    async def get_saved_item_by_id(self, item_id: str) -> SavedItem | None:
        key = parse_item_id(item_id)
        if key is None:
            return None
        row = await self.conn.fetchrow(
            SAVED_ITEM_SELECT_SQL + "where user_id = $1 and item_id = $2",
            self.user_id,
            key,
        )
        if not row:
            return None
        return list_row_to_saved_item(row)

    async def get_saved_items_by_ids(self, item_ids: Iterable[str]) -> list[SavedItem]:
        keys = _item_keys(item_ids)
        if not keys:
            return []
        rows = await self.conn.fetch(
            SAVED_ITEM_SELECT_SQL + "where user_id = $1 and item_id = any($2::bigint[]) order by item_id",
            self.user_id,
            keys,
        )
        return list_rows_to_saved_items(rows)


class TagDataService:
    def __init__(self, storage: StorageContext, user: UserContext) -> None:
        self.conn = storage.conn
        self.user_id = user.user_key

    async def get_tags_by_user_item(self, item_id: str) -> list[Tag]:
        """Tags on one saved item, ordered by name, each with all of its items."""
        key = parse_item_id(item_id)
        if key is None:
            return []
        rows = await self.conn.fetch(
            """
            select t.tag, t.item_id
            from item_tags t
            where t.user_id = $1
              and t.tag in (
                select it.tag
                from item_tags it
                where it.user_id = $1 and it.item_id = $2
              )
            order by t.tag, t.item_id
            """,
            self.user_id,
            key,
        )
        return tag_rows_to_tags(rows)

    async def get_tag_by_name(self, name: str) -> Tag:
        rows = await self.conn.fetch(
            """
            select tag, item_id
            from item_tags
            where user_id = $1 and tag = $2
            order by item_id
            """,
            self.user_id,
            name,
        )
        tags = tag_rows_to_tags(rows)
        if not tags:
            raise NotFoundError(f"Tag with name={name} does not exist.", key="name", value=name)
        return tags[0]

    async def get_tags_by_name(self, names: Iterable[str]) -> list[Tag]:
        unique_names = list(dict.fromkeys(names))
        if not unique_names:
            return []
        rows = await self.conn.fetch(
            """
            select tag, item_id
            from item_tags
            where user_id = $1 and tag = any($2::text[])
            order by tag, item_id
            """,
            self.user_id,
            unique_names,
        )
        return tag_rows_to_tags(rows)


def _item_keys(item_ids: Iterable[str]) -> list[int]:
    keys: list[int] = []
    for item_id in unique_ids(item_ids):
        key = parse_item_id(item_id)
        if key is not None and key not in keys:
            keys.append(key)
    return keys
