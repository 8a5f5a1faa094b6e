# services/reducer.py
from typing import TYPE_CHECKING, List

from schemas.comment import Comment
from schemas.commands import (
    Command, DeleteComment, DeleteThread, EditComment, LoadComments, LoadMessages,
    LoadMyComments, LoadThreads, MarkRead, PostComment, ResetStore, SelectThread,
    SendMessage, SetError, SetSending,
)
from schemas.message import Message

if TYPE_CHECKING:
    from services.store import StoreState


def _sort_messages(messages: List[Message]) -> List[Message]:
    return sorted(messages, key=lambda m: m.created_at)


def _append_message(messages: List[Message], message: Message) -> List[Message]:
    """Добавляет сообщение, заменяя уже известное с тем же id."""
    kept = [m for m in messages if m.id != message.id]
    kept.append(message)
    return _sort_messages(kept)


def _sort_comments(comments: List[Comment]) -> List[Comment]:
    return sorted(
        (c.model_copy(update={"replies": sorted(c.replies, key=lambda r: r.created_at)}) for c in comments),
        key=lambda c: c.created_at,
    )


def _mark_read(messages: List[Message], ids: set) -> List[Message]:
    return [m.model_copy(update={"is_read": True}) if m.id in ids else m for m in messages]


def reduce(state: "StoreState", command: Command) -> None:
    """Применяет команду к состоянию хранилища."""
    if isinstance(command, LoadThreads):
        state.threads = {t.id: t for t in command.threads}
        state.messages_by_thread = {
            thread_id: messages
            for thread_id, messages in state.messages_by_thread.items()
            if thread_id in state.threads
        }

    elif isinstance(command, SelectThread):
        state.active_thread_id = command.thread_id
        state.fetch_generation += 1

    elif isinstance(command, LoadMessages):
        if command.thread_id != state.active_thread_id or command.generation != state.fetch_generation:
            return
        messages = _sort_messages(command.messages)
        state.messages_by_thread[command.thread_id] = messages
        thread = state.threads.get(command.thread_id)
        if thread is not None:
            last_message_at = messages[-1].created_at if messages else thread.last_message_at
            state.threads[thread.id] = thread.model_copy(
                update={"messages": messages, "last_message_at": last_message_at}
            )

    elif isinstance(command, SendMessage):
        # Своё сообщение отправитель уже прочитал
        message = command.message.model_copy(update={"is_read": True})
        thread_id = message.thread_id
        thread = state.threads.get(thread_id)
        if thread is None and command.thread is not None:
            thread = command.thread.model_copy(update={"messages": []})
            state.messages_by_thread[thread_id] = []
        if thread_id in state.messages_by_thread:
            state.messages_by_thread[thread_id] = _append_message(state.messages_by_thread[thread_id], message)
        if thread is not None:
            last_message_at = thread.last_message_at
            state.threads[thread_id] = thread.model_copy(update={
                "messages": _append_message(thread.messages, message),
                "last_message_at": max(last_message_at, message.created_at) if last_message_at else message.created_at,
            })

    elif isinstance(command, MarkRead):
        ids = set(command.message_ids)
        if command.thread_id in state.messages_by_thread:
            state.messages_by_thread[command.thread_id] = _mark_read(state.messages_by_thread[command.thread_id], ids)
        thread = state.threads.get(command.thread_id)
        if thread is not None:
            unread_count = thread.unread_count
            if command.unread_count is not None:
                unread_count = command.unread_count
            elif unread_count is not None:
                unread_count = max(0, unread_count - len(ids))
            state.threads[thread.id] = thread.model_copy(
                update={"messages": _mark_read(thread.messages, ids), "unread_count": unread_count}
            )

    elif isinstance(command, DeleteThread):
        state.threads.pop(command.thread_id, None)
        state.messages_by_thread.pop(command.thread_id, None)
        if state.active_thread_id == command.thread_id:
            state.active_thread_id = None

    elif isinstance(command, SetSending):
        state.is_sending = command.is_sending

    elif isinstance(command, SetError):
        state.error = command.message

    elif isinstance(command, LoadComments):
        state.comments_by_listing[command.listing_id] = _sort_comments(command.comments)

    elif isinstance(command, PostComment):
        comments = state.comments_by_listing.get(command.listing_id, [])
        new = command.comment
        if new.parent_comment_id is None:
            comments = [c for c in comments if c.id != new.id] + [new]
        else:
            comments = [
                c.model_copy(update={"replies": [r for r in c.replies if r.id != new.id] + [new]})
                if c.id == new.parent_comment_id else c
                for c in comments
            ]
        state.comments_by_listing[command.listing_id] = _sort_comments(comments)

    elif isinstance(command, EditComment):
        edited = command.comment.model_copy(update={"is_edited": True})
        updated = []
        for c in state.comments_by_listing.get(command.listing_id, []):
            if c.id == edited.id:
                updated.append(edited.model_copy(update={"replies": edited.replies or c.replies}))
            else:
                updated.append(c.model_copy(update={
                    "replies": [edited if r.id == edited.id else r for r in c.replies]
                }))
        state.comments_by_listing[command.listing_id] = updated

    elif isinstance(command, DeleteComment):
        state.comments_by_listing[command.listing_id] = [
            c.model_copy(update={"replies": [r for r in c.replies if r.id != command.comment_id]})
            for c in state.comments_by_listing.get(command.listing_id, [])
            if c.id != command.comment_id
        ]
        state.my_comments = [c for c in state.my_comments if c.id != command.comment_id]

    elif isinstance(command, LoadMyComments):
        state.my_comments = list(command.comments)

    elif isinstance(command, ResetStore):
        state.threads = {}
        state.messages_by_thread = {}
        state.comments_by_listing = {}
        state.my_comments = []
        state.active_thread_id = None
        # Ответы на запросы, отправленные до сброса, будут отброшены
        state.fetch_generation += 1
        state.is_sending = False
        state.error = None

    else:
        raise TypeError(f"Unknown command: {command!r}")
