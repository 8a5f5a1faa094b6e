# schemas/message.py
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional

from utils.time_utils import as_utc


class AttachmentType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class Attachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    url: str
    type: AttachmentType
    file_name: str = Field(..., alias="fileName")
    size_bytes: Optional[int] = Field(None, alias="sizeBytes")


class Message(BaseModel):
    """Сообщение в диалоге. После создания меняется только флаг is_read."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    id: int
    thread_id: int = Field(..., alias="threadId")
    sender_id: str = Field(..., alias="senderId")
    content: str
    offer_price: Optional[float] = Field(None, alias="offerPrice")
    is_offer: bool = Field(False, alias="isOffer")
    attachment: Optional[Attachment] = None
    is_read: bool = Field(False, alias="isRead")
    created_at: datetime = Field(..., alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _fold_attachment_fields(cls, data):
        # Бэкенд присылает вложение плоскими полями attachment*
        if isinstance(data, dict) and "attachment" not in data and data.get("attachmentUrl"):
            data = dict(data)
            data["attachment"] = {
                "url": data["attachmentUrl"],
                "type": (data.get("attachmentType") or AttachmentType.DOCUMENT.value).lower(),
                "fileName": data.get("attachmentFileName") or "",
                "sizeBytes": data.get("attachmentFileSize"),
            }
        return data

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Thread(BaseModel):
    """Диалог по одному объявлению между продавцом и одним покупателем."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    id: int
    listing_id: int = Field(..., alias="listingId")
    seller_id: str = Field(..., alias="sellerId")
    buyer_id: str = Field(..., alias="buyerId")
    last_message_at: Optional[datetime] = Field(None, alias="lastMessageAt")
    listing_title: Optional[str] = Field(None, alias="listingTitle")
    unread_count: Optional[int] = Field(None, alias="unreadCount")
    # Превью: бэкенд может прислать только последние сообщения
    messages: List[Message] = []

    @field_validator("last_message_at")
    @classmethod
    def _last_message_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def participants(self) -> tuple[str, str]:
        return self.buyer_id, self.seller_id


class MessageCreate(BaseModel):
    """Тело запроса POST /listings/{listingId}/messages."""
    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    is_offer: bool = Field(False, alias="isOffer")
    offer_price: Optional[float] = Field(None, alias="offerPrice")
    attachment_url: Optional[str] = Field(None, alias="attachmentUrl")
    attachment_type: Optional[AttachmentType] = Field(None, alias="attachmentType")
    attachment_file_name: Optional[str] = Field(None, alias="attachmentFileName")
    attachment_file_size: Optional[int] = Field(None, alias="attachmentFileSize")

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachment_url)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ThreadsResponse(BaseModel):
    threads: List[Thread]


class MessagesResponse(BaseModel):
    messages: List[Message]


class MessageResponse(BaseModel):
    message: Message


class SendResult(BaseModel):
    """Результат отправки: created_new_thread отличает первый контакт от продолжения диалога."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    created_new_thread: bool = Field(..., alias="createdNewThread")
    thread: Thread
    message: Message
