from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import T0, FakeParser, FakeStore, RecordingSink, build_context, make_item
from saved_items.services.entities import ResolvedItem
from saved_items.services.errors import UpsertFailure
from saved_items.services.status import SaveStatus
from saved_items.services.upsert import UpsertOrchestrator, classify_upsert, resolve_favorite

T1 = T0 + timedelta(days=1)
URL = "https://example.com/story"


def _upsert(store: FakeStore, sink: RecordingSink, parser: FakeParser, **kwargs):
    async def scenario():
        context = build_context(store, sink, parser)
        item = await UpsertOrchestrator(context).upsert(URL, timestamp=T1, **kwargs)
        await context.events.drain()
        return item

    return asyncio.run(scenario())


def _parser(item_id: int = 50) -> FakeParser:
    return FakeParser({URL: ResolvedItem(item_id=item_id, resolved_id=item_id + 1, title="Story")})


def test_new_favorite_save_emits_add_and_favorite() -> None:
    store, sink = FakeStore(), RecordingSink()

    item = _upsert(store, sink, _parser(), is_favorite=True)

    assert item.id == "50"
    assert item.resolved_id == "51"
    assert item.title == "Story"
    assert item.favorited_at == T1
    assert sink.kinds == ["ADD_ITEM", "FAVORITE_ITEM"]


def test_readding_archived_item_unarchives() -> None:
    store, sink = FakeStore([make_item("50", status=SaveStatus.ARCHIVED, archived_at=T0)]), RecordingSink()

    item = _upsert(store, sink, _parser())

    assert item.status is SaveStatus.UNREAD
    assert item.archived_at is None
    assert item.updated_at == T1
    assert sink.kinds == ["UNARCHIVE_ITEM"]


def test_upsert_never_unfavorites() -> None:
    store = FakeStore([make_item("50", is_favorite=True, favorited_at=T0)])
    sink = RecordingSink()

    item = _upsert(store, sink, _parser(), is_favorite=False)

    assert item.is_favorite is True
    assert item.favorited_at == T0
    assert sink.kinds == []


def test_readding_deleted_item_emits_nothing() -> None:
    store, sink = FakeStore([make_item("50", status=SaveStatus.DELETED, deleted_at=T0)]), RecordingSink()

    item = _upsert(store, sink, _parser())

    assert item.status is SaveStatus.UNREAD
    assert sink.kinds == []


def test_parser_failure_becomes_upsert_failure_without_writes() -> None:
    store, sink = FakeStore(), RecordingSink()

    with pytest.raises(UpsertFailure) as exc_info:
        _upsert(store, sink, FakeParser())

    assert exc_info.value.url == URL
    assert str(exc_info.value) == f"unable to add item with url: {URL}"
    assert store.calls == []
    assert sink.events == []


def test_resolve_favorite() -> None:
    favorite = make_item("1", is_favorite=True)
    assert resolve_favorite(None, False) is False
    assert resolve_favorite(None, True) is True
    assert resolve_favorite(favorite, False) is True
    assert resolve_favorite(make_item("1"), True) is True


def test_classify_upsert_favorite_only_when_it_changes() -> None:
    favorite = make_item("1", is_favorite=True)
    outcome = classify_upsert(favorite, favorite, requested_favorite=True)

    assert outcome.event_types == []
