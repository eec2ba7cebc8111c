from pydantic import BaseModel, Field


class TagOut(BaseModel):
    id: str
    name: str
    saved_item_ids: list[str] = Field(default_factory=list)


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    saved_item_id: str


class TagUpdateRequest(BaseModel):
    name: str = Field(min_length=1)


class DeleteSavedItemTagsRequest(BaseModel):
    saved_item_id: str
    tag_ids: list[str] = Field(min_length=1)


class SavedItemTagAssociationOut(BaseModel):
    saved_item_id: str
    tag_id: str
