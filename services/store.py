# services/store.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from schemas.comment import Comment
from schemas.commands import Command
from schemas.message import Message, Thread
from services.reducer import reduce


@dataclass
class StoreState:
    viewer_id: Optional[str] = None
    threads: Dict[int, Thread] = field(default_factory=dict)
    messages_by_thread: Dict[int, List[Message]] = field(default_factory=dict)
    comments_by_listing: Dict[int, List[Comment]] = field(default_factory=dict)
    my_comments: List[Comment] = field(default_factory=list)
    active_thread_id: Optional[int] = None
    fetch_generation: int = 0
    is_sending: bool = False
    error: Optional[str] = None


class ConversationStore:
    """
    Хранилище диалогов, сообщений и комментариев одного пользователя.

    Передаётся сервисам явно. Менять состояние можно только через dispatch,
    читающие методы возвращают копии последнего зафиксированного состояния.
    """

    def __init__(self, viewer_id: Optional[str] = None):
        self._state = StoreState(viewer_id=viewer_id)

    @property
    def viewer_id(self) -> Optional[str]:
        return self._state.viewer_id

    @property
    def is_sending(self) -> bool:
        return self._state.is_sending

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def active_thread_id(self) -> Optional[int]:
        return self._state.active_thread_id

    @property
    def fetch_generation(self) -> int:
        return self._state.fetch_generation

    def dispatch(self, command: Command) -> None:
        reduce(self._state, command)

    def threads(self) -> List[Thread]:
        return list(self._state.threads.values())

    def get_thread(self, thread_id: int) -> Optional[Thread]:
        return self._state.threads.get(thread_id)

    def has_messages(self, thread_id: int) -> bool:
        return thread_id in self._state.messages_by_thread

    def messages(self, thread_id: int) -> List[Message]:
        return list(self._state.messages_by_thread.get(thread_id, []))

    def has_comments(self, listing_id: int) -> bool:
        return listing_id in self._state.comments_by_listing

    def comments(self, listing_id: int) -> List[Comment]:
        return list(self._state.comments_by_listing.get(listing_id, []))

    def find_comment(self, listing_id: int, comment_id: int) -> Optional[Comment]:
        for comment in self._state.comments_by_listing.get(listing_id, []):
            if comment.id == comment_id:
                return comment
            for reply in comment.replies:
                if reply.id == comment_id:
                    return reply
        return None

    def my_comments(self) -> List[Comment]:
        return list(self._state.my_comments)

    def is_current_fetch(self, thread_id: int, generation: int) -> bool:
        return self._state.active_thread_id == thread_id and self._state.fetch_generation == generation
