from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status

from saved_items.core.auth import UserContext
from saved_items.core.security import get_user_context
from saved_items.services.errors import StorageUnavailableError
from saved_items.services.events import EventEmitter, EventSink, get_event_sink
from saved_items.services.mutations import SavedItemMutationService, TagMutationService
from saved_items.services.parser import ParserClient, get_parser_client
from saved_items.services.queries import SavedItemDataService, TagDataService
from saved_items.services.storage import Database, StorageContext, get_database


@dataclass(slots=True)
class DataServices:
    saves: SavedItemDataService
    tags: TagDataService
    save_writes: SavedItemMutationService | None = None
    tag_writes: TagMutationService | None = None

    @classmethod
    def for_storage(cls, storage: StorageContext, user: UserContext) -> DataServices:
        """Every service shares ``storage``; writers only exist on a writable one."""
        return cls(
            saves=SavedItemDataService(storage, user),
            tags=TagDataService(storage, user),
            save_writes=SavedItemMutationService(storage, user) if storage.writable else None,
            tag_writes=TagMutationService(storage, user) if storage.writable else None,
        )


@dataclass(slots=True)
class RequestContext:
    user: UserContext
    services: DataServices
    events: EventEmitter
    parser: ParserClient


async def get_reader_context(
    user: UserContext = Depends(get_user_context),
    database: Database = Depends(get_database),
    sink: EventSink = Depends(get_event_sink),
    parser: ParserClient = Depends(get_parser_client),
) -> AsyncIterator[RequestContext]:
    async for context in _request_context(user, database, sink, parser, writable=False):
        yield context


async def get_writer_context(
    user: UserContext = Depends(get_user_context),
    database: Database = Depends(get_database),
    sink: EventSink = Depends(get_event_sink),
    parser: ParserClient = Depends(get_parser_client),
) -> AsyncIterator[RequestContext]:
    async for context in _request_context(user, database, sink, parser, writable=True):
        yield context


async def _request_context(
    user: UserContext,
    database: Database,
    sink: EventSink,
    parser: ParserClient,
    *,
    writable: bool,
) -> AsyncIterator[RequestContext]:
    try:
        await database.connect(writable=writable)
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    # One connection for the whole request: reads after a write see the write.
    # Event deliveries are not awaited here; the app lifespan drains them.
    storage_scope = database.writer() if writable else database.reader()
    async with storage_scope as storage:
        yield RequestContext(
            user=user,
            services=DataServices.for_storage(storage, user),
            events=EventEmitter(sink, user),
            parser=parser,
        )
