from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
import logging
from typing import Any

from saved_items.core.auth import UserContext
from saved_items.core.ids import canonical_item_id, parse_item_id, unique_ids
from saved_items.services.entities import BulkUpdateResult, ResolvedItem, SavedItem, SavedItemTagAssociation
from saved_items.services.errors import UpsertFailure
from saved_items.services.queries import SAVED_ITEM_SELECT_SQL
from saved_items.services.rows import ZERO_DATE, as_utc, list_row_to_saved_item, list_rows_to_saved_items
from saved_items.services.status import TIMESTAMP_COLUMNS, SaveAction, TransitionRule, rule_for
from saved_items.services.storage import StorageContext

logger = logging.getLogger(__name__)


def build_transition_assignments(rule: TransitionRule, bind: Callable[[Any], str], timestamp: datetime) -> list[str]:
    """SQL ``set`` fragments equivalent to ``status.apply_transition``."""
    ts_token = bind(timestamp)
    assignments: list[str] = []

    if rule.stamp is not None:
        column = TIMESTAMP_COLUMNS[rule.stamp]
        if column and rule.stamp_on_change_only:
            assignments.append(f"{column} = case when {_target_condition(rule)} then {column} else {ts_token} end")
        elif column:
            assignments.append(f"{column} = {ts_token}")
    if rule.clear is not None:
        column = TIMESTAMP_COLUMNS[rule.clear]
        if column:
            assignments.append(f"{column} = {bind(ZERO_DATE)}")
    if rule.status is not None:
        assignments.append(f"status = {rule.status.code}")
    if rule.favorite is not None:
        assignments.append(f"favorite = {int(rule.favorite)}")
    assignments.append(f"time_updated = greatest(time_updated, {ts_token})")
    return assignments


def _target_condition(rule: TransitionRule) -> str:
    conditions: list[str] = []
    if rule.status is not None:
        conditions.append(f"status = {rule.status.code}")
    if rule.favorite is not None:
        conditions.append(f"favorite = {int(rule.favorite)}")
    return " and ".join(conditions) if conditions else "true"


def classify_missing(requested_ids: Sequence[str], found: Iterable[SavedItem]) -> list[str]:
    """Requested ids (in request order) that did not come back from storage."""
    found_ids = {item.id for item in found}
    return [item_id for item_id in requested_ids if _canonical_id(item_id) not in found_ids]


def order_like_request(requested_ids: Sequence[str], items: Iterable[SavedItem]) -> list[SavedItem]:
    by_id = {item.id: item for item in items}
    ordered: list[SavedItem] = []
    for item_id in requested_ids:
        item = by_id.pop(_canonical_id(item_id), None)
        if item is not None:
            ordered.append(item)
    return ordered


def _canonical_id(item_id: str) -> str:
    return canonical_item_id(item_id) or item_id


class SavedItemMutationService:
    """Writes to the ``list`` table. Requires a writable storage context."""

    def __init__(self, storage: StorageContext, user: UserContext) -> None:
        storage.require_writable()
        self.conn = storage.conn
        self.user_id = user.user_key
        self.api_id = user.api_key

    async def archive_list_rows(self, item_ids: Iterable[str], timestamp: datetime) -> BulkUpdateResult:
        return await self.apply_bulk_action(SaveAction.ARCHIVE, item_ids, timestamp)

    async def unarchive_list_rows(self, item_ids: Iterable[str], timestamp: datetime) -> BulkUpdateResult:
        return await self.apply_bulk_action(SaveAction.UNARCHIVE, item_ids, timestamp)

    async def favorite_list_rows(self, item_ids: Iterable[str], timestamp: datetime) -> BulkUpdateResult:
        return await self.apply_bulk_action(SaveAction.FAVORITE, item_ids, timestamp)

    async def unfavorite_list_rows(self, item_ids: Iterable[str], timestamp: datetime) -> BulkUpdateResult:
        return await self.apply_bulk_action(SaveAction.UNFAVORITE, item_ids, timestamp)

    async def apply_bulk_action(
        self,
        action: SaveAction,
        item_ids: Iterable[str],
        timestamp: datetime,
    ) -> BulkUpdateResult:
        requested = unique_ids(item_ids)
        keys = sorted({key for key in (parse_item_id(item_id) for item_id in requested) if key is not None})
        rows: list[Any] = []

        if keys:
            params: list[Any] = [self.user_id, keys]

            def bind(value: Any) -> str:
                params.append(value)
                return f"${len(params)}"

            assignments = build_transition_assignments(rule_for(action), bind, as_utc(timestamp))
            assignments.append(f"api_id_updated = {bind(self.api_id)}")
            async with self.conn.transaction():
                await self.conn.execute(
                    f"""
                    update list
                    set {", ".join(assignments)}
                    where user_id = $1 and item_id = any($2::bigint[])
                    """,
                    *params,
                )
                rows = await self.conn.fetch(
                    SAVED_ITEM_SELECT_SQL + "where user_id = $1 and item_id = any($2::bigint[])",
                    self.user_id,
                    keys,
                )

        updated = list_rows_to_saved_items(rows)
        result = BulkUpdateResult(
            updated=order_like_request(requested, updated),
            missing=classify_missing(requested, updated),
        )
        logger.info(
            "bulk %s user_id=%s requested=%s updated=%s missing=%s",
            SaveAction(action).value,
            self.user_id,
            len(requested),
            len(result.updated),
            len(result.missing),
        )
        return result

    async def upsert_saved_item(
        self,
        item: ResolvedItem,
        *,
        url: str,
        is_favorite: bool,
        timestamp: datetime,
        title: str | None = None,
    ) -> SavedItem:
        """Insert a save or re-add an existing one, then read it back.

        Both statements share one transaction, so a missing read-back rolls
        the write back instead of leaving a row nobody saw created.
        """
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            await self.conn.execute(
                """
                insert into list (
                  user_id,
                  item_id,
                  resolved_id,
                  given_url,
                  title,
                  time_added,
                  time_updated,
                  time_read,
                  time_favorited,
                  favorite,
                  status,
                  api_id,
                  api_id_updated
                )
                values ($1, $2, $3, $4, $5, $6, $6, $7, $8, $9, 0, $10, $10)
                on conflict (user_id, item_id) do update
                set
                  status = 0,
                  time_read = excluded.time_read,
                  favorite = excluded.favorite,
                  time_favorited = case
                    when excluded.favorite = 1 and list.favorite = 1 then list.time_favorited
                    else excluded.time_favorited
                  end,
                  resolved_id = case
                    when excluded.resolved_id <> 0 then excluded.resolved_id
                    else list.resolved_id
                  end,
                  title = coalesce(nullif(excluded.title, ''), list.title),
                  time_updated = greatest(list.time_updated, excluded.time_updated),
                  api_id_updated = excluded.api_id_updated
                """,
                self.user_id,
                item.item_id,
                item.resolved_id or 0,
                url,
                title or item.title or "",
                ts,
                ZERO_DATE,
                ts if is_favorite else ZERO_DATE,
                1 if is_favorite else 0,
                self.api_id,
            )
            row = await self.conn.fetchrow(
                SAVED_ITEM_SELECT_SQL + "where user_id = $1 and item_id = $2",
                self.user_id,
                item.item_id,
            )
            if not row:
                raise UpsertFailure(url)
            return list_row_to_saved_item(row)


class TagMutationService:
    """Writes to ``item_tags``.

    Tags only exist as association rows, so removing the last association of
    a tag removes the tag itself.
    """

    def __init__(self, storage: StorageContext, user: UserContext) -> None:
        storage.require_writable()
        self.conn = storage.conn
        self.user_id = user.user_key
        self.api_id = user.api_key

    async def insert_tags(self, associations: Sequence[SavedItemTagAssociation], timestamp: datetime) -> None:
        """Add associations; associations that already exist are left alone."""
        keys, names = self._association_arrays(associations)
        if not keys:
            return
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            await self.conn.execute(
                """
                insert into item_tags (user_id, item_id, tag, time_added, time_updated, api_id, api_id_updated)
                select $1::bigint, x.item_id, x.tag, $4::timestamptz, $4::timestamptz, $5::int, $5::int
                from unnest($2::bigint[], $3::text[]) as x(item_id, tag)
                join list l on l.user_id = $1 and l.item_id = x.item_id
                on conflict (user_id, item_id, tag) do nothing
                """,
                self.user_id,
                keys,
                names,
                ts,
                self.api_id,
            )
            await self._touch_items(keys, ts)

    async def update_saved_item_tags(self, saved_item_id: str, names: Sequence[str], timestamp: datetime) -> None:
        """Replace every tag on one saved item with ``names``."""
        key = parse_item_id(saved_item_id)
        if key is None:
            return
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            await self._replace_tags(key, names, ts)
            await self._touch_items([key], ts)

    async def replace_saved_item_tags(
        self,
        replacements: Sequence[tuple[str, Sequence[str]]],
        timestamp: datetime,
    ) -> None:
        ts = as_utc(timestamp)
        keys: list[int] = []
        async with self.conn.transaction():
            for saved_item_id, names in replacements:
                key = parse_item_id(saved_item_id)
                if key is None:
                    continue
                await self._replace_tags(key, names, ts)
                keys.append(key)
            await self._touch_items(keys, ts)

    async def remove_saved_item_tags(self, saved_item_id: str, timestamp: datetime) -> list[str]:
        """Drop every association of one saved item; returns the removed tag names."""
        key = parse_item_id(saved_item_id)
        if key is None:
            return []
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            rows = await self.conn.fetch(
                """
                delete from item_tags
                where user_id = $1 and item_id = $2
                returning tag
                """,
                self.user_id,
                key,
            )
            await self._touch_items([key], ts)
        return sorted(row["tag"] for row in rows)

    async def delete_saved_item_associations(
        self,
        associations: Sequence[SavedItemTagAssociation],
        timestamp: datetime,
    ) -> list[SavedItemTagAssociation]:
        keys, names = self._association_arrays(associations)
        if not keys:
            return []
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            rows = await self.conn.fetch(
                """
                delete from item_tags t
                using unnest($2::bigint[], $3::text[]) as x(item_id, tag)
                where t.user_id = $1 and t.item_id = x.item_id and t.tag = x.tag
                returning t.item_id, t.tag
                """,
                self.user_id,
                keys,
                names,
            )
            await self._touch_items(sorted({row["item_id"] for row in rows}), ts)
        return [SavedItemTagAssociation(saved_item_id=str(row["item_id"]), tag_name=row["tag"]) for row in rows]

    async def delete_tag(self, name: str, timestamp: datetime) -> list[str]:
        """Remove a tag from every saved item; returns the affected item ids."""
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            rows = await self.conn.fetch(
                """
                delete from item_tags
                where user_id = $1 and tag = $2
                returning item_id
                """,
                self.user_id,
                name,
            )
            keys = sorted({row["item_id"] for row in rows})
            await self._touch_items(keys, ts)
        return [str(key) for key in keys]

    async def rename_tag(self, old_name: str, new_name: str, timestamp: datetime) -> list[str]:
        """Move every association of ``old_name`` to ``new_name``, merging duplicates."""
        if old_name == new_name:
            return []
        ts = as_utc(timestamp)
        async with self.conn.transaction():
            await self.conn.execute(
                """
                insert into item_tags (user_id, item_id, tag, time_added, time_updated, api_id, api_id_updated)
                select user_id, item_id, $3::text, time_added, $4::timestamptz, api_id, $5::int
                from item_tags
                where user_id = $1 and tag = $2
                on conflict (user_id, item_id, tag) do nothing
                """,
                self.user_id,
                old_name,
                new_name,
                ts,
                self.api_id,
            )
            rows = await self.conn.fetch(
                """
                delete from item_tags
                where user_id = $1 and tag = $2
                returning item_id
                """,
                self.user_id,
                old_name,
            )
            keys = sorted({row["item_id"] for row in rows})
            await self._touch_items(keys, ts)
        return [str(key) for key in keys]

    async def _replace_tags(self, key: int, names: Sequence[str], ts: datetime) -> None:
        tag_names = list(dict.fromkeys(names))
        await self.conn.execute(
            """
            delete from item_tags
            where user_id = $1 and item_id = $2 and tag <> all($3::text[])
            """,
            self.user_id,
            key,
            tag_names,
        )
        await self.conn.execute(
            """
            insert into item_tags (user_id, item_id, tag, time_added, time_updated, api_id, api_id_updated)
            select $1::bigint, $2::bigint, x.tag, $4::timestamptz, $4::timestamptz, $5::int, $5::int
            from unnest($3::text[]) as x(tag)
            on conflict (user_id, item_id, tag) do nothing
            """,
            self.user_id,
            key,
            tag_names,
            ts,
            self.api_id,
        )

    async def _touch_items(self, keys: Sequence[int], ts: datetime) -> None:
        if not keys:
            return
        await self.conn.execute(
            """
            update list
            set time_updated = greatest(time_updated, $3), api_id_updated = $4
            where user_id = $1 and item_id = any($2::bigint[])
            """,
            self.user_id,
            list(keys),
            ts,
            self.api_id,
        )

    @staticmethod
    def _association_arrays(associations: Sequence[SavedItemTagAssociation]) -> tuple[list[int], list[str]]:
        keys: list[int] = []
        names: list[str] = []
        for association in dict.fromkeys(associations):
            key = parse_item_id(association.saved_item_id)
            if key is None:
                continue
            keys.append(key)
            names.append(association.tag_name)
        return keys, names
