from __future__ import annotations

import asyncio

from conftest import FakeConnection, list_row
from saved_items.core.auth import UserContext
from saved_items.services.queries import SavedItemDataService
from saved_items.services.rows import LIST_COLUMNS
from saved_items.services.storage import StorageContext

USER = UserContext(user_id="1", api_id="7")


def test_saved_item_reads_select_every_list_column() -> None:
    conn = FakeConnection(rows=[list_row(10)])
    service = SavedItemDataService(StorageContext(conn=conn, writable=False), USER)

    item = asyncio.run(service.get_saved_item_by_id(" 10"))

    assert item is not None and item.id == "10"
    select_sql, args = conn.statements[0]
    assert select_sql == f"select {', '.join(LIST_COLUMNS)} from list where user_id = $1 and item_id = $2"
    assert args == (1, 10)


def test_bulk_read_skips_ids_that_cannot_name_a_row() -> None:
    conn = FakeConnection(rows=[list_row(10)])
    service = SavedItemDataService(StorageContext(conn=conn, writable=False), USER)

    assert asyncio.run(service.get_saved_items_by_ids(["abc", "0"])) == []
    assert conn.statements == []

    asyncio.run(service.get_saved_items_by_ids(["010", "10", "11"]))
    assert conn.statements[0][1] == (1, [10, 11])
