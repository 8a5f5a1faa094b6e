# services/permissions.py
"""
Проверка прав на действия с диалогами и комментариями.

Все функции чистые: решение принимается только по отношению пользователя
к владельцу объявления и по уже известной истории ответов. Бэкенд остаётся
источником истины, эти проверки лишь не дают отправить заведомо
запрещённый запрос.
"""
from typing import Iterable, Optional

from schemas.actor import Actor, ListingRef
from schemas.comment import Comment
from schemas.message import Thread


def can_start_thread(actor: Actor, listing: ListingRef) -> bool:
    """Владелец не может начать диалог о собственном объявлении."""
    if not actor.is_authenticated:
        return False
    return not listing.is_owned_by(actor)


def can_send_into_thread(actor: Actor, thread: Optional[Thread]) -> bool:
    """Писать в диалог могут только его участники. Продавец только отвечает в существующий диалог."""
    if not actor.is_authenticated or thread is None:
        return False
    return actor.id in thread.participants()


def can_post_top_level_comment(actor: Actor, listing: ListingRef) -> bool:
    if not actor.is_authenticated:
        return False
    return not listing.is_owned_by(actor)


def can_reply_to_comment(actor: Actor, listing: ListingRef, comment: Comment,
                         replies_so_far: Iterable[Comment]) -> bool:
    """
    Владелец объявления может ответить на любой комментарий.
    Автор комментария может продолжить переписку, только если владелец
    уже ответил хотя бы раз. Остальным отвечать нельзя.
    """
    if not actor.is_authenticated or comment.is_reply:
        return False
    if listing.is_owned_by(actor):
        return True
    if actor.id != comment.author_id:
        return False
    return any(reply.author_id == listing.owner_id for reply in replies_so_far)


def can_delete_node(actor: Actor, node: Comment) -> bool:
    return actor.is_authenticated and actor.id == node.author_id


def can_edit_node(actor: Actor, node: Comment) -> bool:
    return can_delete_node(actor, node)


def can_delete_thread(actor: Actor, thread: Thread) -> bool:
    return actor.is_authenticated and actor.id in thread.participants()
