from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, status

from saved_items.schemas.saved_items import (
    BulkSaveRequest,
    DeletedOut,
    SavedItemOut,
    SavedItemTagsIn,
    SavedItemTagUpdateRequest,
    SavedItemUpsertRequest,
    SaveWriteMutationOut,
)
from saved_items.schemas.tags import TagOut
from saved_items.services.context import RequestContext, get_reader_context, get_writer_context
from saved_items.services.entities import SavedItem
from saved_items.services.errors import NotFoundError, UpsertFailure, ValidationError
from saved_items.services.models import SavedItemModel, SaveWriteResult
from saved_items.services.upsert import UpsertOrchestrator

router = APIRouter()


def _saved_item_out(item: SavedItem) -> SavedItemOut:
    return SavedItemOut(**item.to_dict())


def _save_write_out(result: SaveWriteResult) -> SaveWriteMutationOut:
    return SaveWriteMutationOut(
        save=[_saved_item_out(item) for item in result.save],
        errors=[error.to_dict() for error in result.errors],
    )


@router.post("", response_model=SavedItemOut)
async def upsert_saved_item(
    payload: SavedItemUpsertRequest,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    try:
        item = await UpsertOrchestrator(context).upsert(
            payload.url,
            is_favorite=payload.is_favorite,
            title=payload.title,
            timestamp=payload.timestamp,
        )
    except UpsertFailure as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return _saved_item_out(item)


@router.post("/archive", response_model=SaveWriteMutationOut)
async def save_archive(
    payload: BulkSaveRequest,
    context: RequestContext = Depends(get_writer_context),
) -> SaveWriteMutationOut:
    result = await SavedItemModel(context).save_archive(payload.ids, payload.timestamp, ["saveArchive"])
    return _save_write_out(result)


@router.post("/unarchive", response_model=SaveWriteMutationOut)
async def save_unarchive(
    payload: BulkSaveRequest,
    context: RequestContext = Depends(get_writer_context),
) -> SaveWriteMutationOut:
    result = await SavedItemModel(context).save_unarchive(payload.ids, payload.timestamp, ["saveUnArchive"])
    return _save_write_out(result)


@router.post("/favorite", response_model=SaveWriteMutationOut)
async def save_favorite(
    payload: BulkSaveRequest,
    context: RequestContext = Depends(get_writer_context),
) -> SaveWriteMutationOut:
    result = await SavedItemModel(context).save_favorite(payload.ids, payload.timestamp, ["saveFavorite"])
    return _save_write_out(result)


@router.post("/unfavorite", response_model=SaveWriteMutationOut)
async def save_unfavorite(
    payload: BulkSaveRequest,
    context: RequestContext = Depends(get_writer_context),
) -> SaveWriteMutationOut:
    result = await SavedItemModel(context).save_unfavorite(payload.ids, payload.timestamp, ["saveUnFavorite"])
    return _save_write_out(result)


@router.put("/tags", response_model=list[SavedItemOut])
async def replace_saved_item_tags(
    payload: list[SavedItemTagsIn],
    context: RequestContext = Depends(get_writer_context),
) -> list[SavedItemOut]:
    try:
        items = await SavedItemModel(context).replace_tags([(entry.saved_item_id, entry.tags) for entry in payload])
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [_saved_item_out(item) for item in items]


@router.get("/{item_id}", response_model=SavedItemOut)
async def get_saved_item(item_id: str, context: RequestContext = Depends(get_reader_context)) -> SavedItemOut:
    try:
        item = await SavedItemModel(context).get_by_id(item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _saved_item_out(item)


@router.get("/{item_id}/tags", response_model=list[TagOut])
async def get_saved_item_tags(item_id: str, context: RequestContext = Depends(get_reader_context)) -> list[TagOut]:
    try:
        tags = await SavedItemModel(context).get_tags(item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [TagOut(**tag.to_dict()) for tag in tags]


async def _single_update(operation: Callable[[str], Awaitable[SavedItem]], item_id: str) -> SavedItemOut:
    try:
        item = await operation(item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _saved_item_out(item)


@router.patch("/{item_id}/favorite", response_model=SavedItemOut)
async def update_saved_item_favorite(
    item_id: str,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    return await _single_update(SavedItemModel(context).update_favorite, item_id)


@router.patch("/{item_id}/unfavorite", response_model=SavedItemOut)
async def update_saved_item_unfavorite(
    item_id: str,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    return await _single_update(SavedItemModel(context).update_unfavorite, item_id)


@router.patch("/{item_id}/archive", response_model=SavedItemOut)
async def update_saved_item_archive(
    item_id: str,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    return await _single_update(SavedItemModel(context).update_archive, item_id)


@router.patch("/{item_id}/unarchive", response_model=SavedItemOut)
async def update_saved_item_unarchive(
    item_id: str,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    return await _single_update(SavedItemModel(context).update_unarchive, item_id)


@router.patch("/{item_id}/undelete", response_model=SavedItemOut)
async def update_saved_item_undelete(
    item_id: str,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    return await _single_update(SavedItemModel(context).undelete, item_id)


@router.delete("/{item_id}", response_model=DeletedOut)
async def delete_saved_item(item_id: str, context: RequestContext = Depends(get_writer_context)) -> DeletedOut:
    try:
        deleted_id = await SavedItemModel(context).delete(item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return DeletedOut(id=deleted_id)


@router.put("/{item_id}/tags", response_model=SavedItemOut)
async def update_saved_item_tags(
    item_id: str,
    payload: SavedItemTagUpdateRequest,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    try:
        item = await SavedItemModel(context).update_tags(item_id, payload.tag_ids)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _saved_item_out(item)


@router.delete("/{item_id}/tags", response_model=SavedItemOut)
async def update_saved_item_remove_tags(
    item_id: str,
    context: RequestContext = Depends(get_writer_context),
) -> SavedItemOut:
    try:
        item = await SavedItemModel(context).remove_tags(item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _saved_item_out(item)
