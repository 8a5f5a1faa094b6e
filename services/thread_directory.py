# services/thread_directory.py
from datetime import datetime, timezone
from typing import List, Optional

from schemas.message import Thread
from services.store import ConversationStore

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def is_current_user_seller(actor_id: Optional[str], thread: Thread) -> bool:
    return actor_id == thread.seller_id


def other_user_id(actor_id: Optional[str], thread: Thread) -> str:
    return thread.buyer_id if is_current_user_seller(actor_id, thread) else thread.seller_id


def last_activity(thread: Thread, messages=None) -> Optional[datetime]:
    messages = messages if messages is not None else thread.messages
    if messages:
        return max(m.created_at for m in messages)
    return thread.last_message_at


class ThreadDirectory:
    """
    Определяет, какой диалог соответствует объявлению для текущего пользователя.

    Клиент сам диалоги не создаёт: диалог появляется после первого успешно
    отправленного покупателем сообщения.
    """

    def __init__(self, store: ConversationStore):
        self.store = store

    def get_or_imply_thread(self, listing_id: int, actor_id: Optional[str],
                            buyer_id: Optional[str] = None) -> Optional[Thread]:
        """
        Для покупателя это его диалог по объявлению. У продавца по одному
        диалогу на каждого покупателя, поэтому ему нужен buyer_id.
        """
        if not actor_id:
            return None
        for thread in self.store.threads():
            if thread.listing_id != listing_id:
                continue
            if buyer_id is not None:
                if thread.buyer_id == buyer_id and actor_id in thread.participants():
                    return thread
            elif thread.buyer_id == actor_id:
                return thread
        return None

    def threads_for_listing(self, listing_id: int) -> List[Thread]:
        return [t for t in self.store.threads() if t.listing_id == listing_id]

    def sorted_threads(self) -> List[Thread]:
        """Сначала самые недавно активные диалоги."""
        def key(thread: Thread) -> datetime:
            messages = self.store.messages(thread.id) if self.store.has_messages(thread.id) else None
            return last_activity(thread, messages) or _EPOCH

        return sorted(self.store.threads(), key=key, reverse=True)
