# schemas/commands.py
"""
Команды, изменяющие хранилище диалогов.

Каждая команда описывает уже подтверждённый бэкендом результат действия
(сообщение отправлено, диалог удалён и т.д.). Хранилище меняется только
через services.reducer.reduce, которая обрабатывает ровно этот набор команд.
"""
from pydantic import BaseModel, ConfigDict
from typing import List, Literal, Optional, Union

from schemas.comment import Comment
from schemas.message import Message, Thread


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True)


class LoadThreads(_Command):
    kind: Literal["load_threads"] = "load_threads"
    threads: List[Thread]


class SelectThread(_Command):
    kind: Literal["select_thread"] = "select_thread"
    thread_id: Optional[int]


class LoadMessages(_Command):
    kind: Literal["load_messages"] = "load_messages"
    thread_id: int
    messages: List[Message]
    generation: int


class SendMessage(_Command):
    kind: Literal["send_message"] = "send_message"
    message: Message
    # Неявно созданный диалог, если это первое сообщение покупателя
    thread: Optional[Thread] = None


class MarkRead(_Command):
    kind: Literal["mark_read"] = "mark_read"
    thread_id: int
    message_ids: List[int]
    # Сколько непрочитанных осталось по полному списку сообщений, если он известен
    unread_count: Optional[int] = None


class DeleteThread(_Command):
    kind: Literal["delete_thread"] = "delete_thread"
    thread_id: int


class SetSending(_Command):
    kind: Literal["set_sending"] = "set_sending"
    is_sending: bool


class SetError(_Command):
    kind: Literal["set_error"] = "set_error"
    message: Optional[str] = None


class LoadComments(_Command):
    kind: Literal["load_comments"] = "load_comments"
    listing_id: int
    comments: List[Comment]


class PostComment(_Command):
    kind: Literal["post_comment"] = "post_comment"
    listing_id: int
    comment: Comment


class EditComment(_Command):
    kind: Literal["edit_comment"] = "edit_comment"
    listing_id: int
    comment: Comment


class DeleteComment(_Command):
    kind: Literal["delete_comment"] = "delete_comment"
    listing_id: int
    comment_id: int


class LoadMyComments(_Command):
    kind: Literal["load_my_comments"] = "load_my_comments"
    comments: List[Comment]


class ResetStore(_Command):
    kind: Literal["reset_store"] = "reset_store"


Command = Union[
    LoadThreads,
    SelectThread,
    LoadMessages,
    SendMessage,
    MarkRead,
    DeleteThread,
    SetSending,
    SetError,
    LoadComments,
    PostComment,
    EditComment,
    DeleteComment,
    LoadMyComments,
    ResetStore,
]
