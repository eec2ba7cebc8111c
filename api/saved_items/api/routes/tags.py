from fastapi import APIRouter, Depends, HTTPException, Query, status

from saved_items.schemas.saved_items import DeletedOut
from saved_items.schemas.tags import (
    DeleteSavedItemTagsRequest,
    SavedItemTagAssociationOut,
    TagCreateRequest,
    TagOut,
    TagUpdateRequest,
)
from saved_items.services.context import RequestContext, get_reader_context, get_writer_context
from saved_items.services.errors import NotFoundError, ValidationError
from saved_items.services.models import TagModel

router = APIRouter()


@router.get("", response_model=list[TagOut])
async def get_tags_by_name(
    name: list[str] = Query(default=[]),
    context: RequestContext = Depends(get_reader_context),
) -> list[TagOut]:
    tags = await TagModel(context).get_by_names(name)
    return [TagOut(**tag.to_dict()) for tag in tags]


@router.post("", response_model=list[TagOut])
async def create_tags(
    payload: list[TagCreateRequest],
    context: RequestContext = Depends(get_writer_context),
) -> list[TagOut]:
    try:
        tags = await TagModel(context).create_tags([(entry.saved_item_id, entry.name) for entry in payload])
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return [TagOut(**tag.to_dict()) for tag in tags]


@router.post("/untag", response_model=list[SavedItemTagAssociationOut])
async def delete_saved_item_tags(
    payload: list[DeleteSavedItemTagsRequest],
    context: RequestContext = Depends(get_writer_context),
) -> list[SavedItemTagAssociationOut]:
    try:
        removed = await TagModel(context).delete_saved_item_tags(
            [(entry.saved_item_id, entry.tag_ids) for entry in payload],
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return [SavedItemTagAssociationOut(**association.to_dict()) for association in removed]


@router.get("/{tag_id}", response_model=TagOut)
async def get_tag(tag_id: str, context: RequestContext = Depends(get_reader_context)) -> TagOut:
    try:
        tag = await TagModel(context).get_by_id(tag_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return TagOut(**tag.to_dict())


@router.patch("/{tag_id}", response_model=TagOut)
async def update_tag(
    tag_id: str,
    payload: TagUpdateRequest,
    context: RequestContext = Depends(get_writer_context),
) -> TagOut:
    try:
        tag = await TagModel(context).update_tag(tag_id, payload.name)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return TagOut(**tag.to_dict())


@router.delete("/{tag_id}", response_model=DeletedOut)
async def delete_tag(tag_id: str, context: RequestContext = Depends(get_writer_context)) -> DeletedOut:
    try:
        deleted_id = await TagModel(context).delete_tag(tag_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return DeletedOut(id=deleted_id)
