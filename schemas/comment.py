# schemas/comment.py
from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional

from utils.time_utils import as_utc


class Comment(BaseModel):
    """Комментарий к объявлению. Ответы хранятся только на одном уровне вложенности."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    id: int
    listing_id: int = Field(..., alias="listingId")
    author_id: str = Field(..., alias="authorId")
    parent_comment_id: Optional[int] = Field(None, alias="parentCommentId")
    content: str
    created_at: datetime = Field(..., alias="createdAt")
    is_edited: bool = Field(False, alias="isEdited")
    replies: List[Comment] = []

    @model_validator(mode="before")
    @classmethod
    def _author_from_user(cls, data):
        # Старые ответы API кладут автора в объект user
        if isinstance(data, dict) and "authorId" not in data and "author_id" not in data:
            user = data.get("user")
            if isinstance(user, dict) and user.get("id") is not None:
                data = dict(data)
                data["authorId"] = user["id"]
        return data

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def is_reply(self) -> bool:
        return self.parent_comment_id is not None


class CommentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    parent_comment_id: Optional[int] = Field(None, alias="parentCommentId")


class CommentUpdate(BaseModel):
    content: str


class CommentsResponse(BaseModel):
    comments: List[Comment]


class CommentResponse(BaseModel):
    comment: Comment
