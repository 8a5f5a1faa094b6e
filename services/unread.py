# services/unread.py
from typing import Iterable, Optional

from schemas.message import Message
from services.store import ConversationStore


def count_unread(messages: Iterable[Message], viewer_id: Optional[str]) -> int:
    return sum(1 for m in messages if not m.is_read and m.sender_id != viewer_id)


def unread(store: ConversationStore, thread_id: int) -> int:
    """
    Непрочитанные сообщения собеседника в диалоге.

    Если диалог ещё не открывали, берём unreadCount от бэкенда, а если его
    нет, то превью сообщений из списка диалогов.
    """
    if store.has_messages(thread_id):
        return count_unread(store.messages(thread_id), store.viewer_id)
    thread = store.get_thread(thread_id)
    if thread is None:
        return 0
    if thread.unread_count is not None:
        return thread.unread_count
    return count_unread(thread.messages, store.viewer_id)


def total_unread(store: ConversationStore) -> int:
    return sum(unread(store, thread.id) for thread in store.threads())
