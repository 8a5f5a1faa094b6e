# services/comment_graph.py
from typing import Dict, List, Optional

from config import settings
from schemas.actor import Actor, ListingRef
from schemas.comment import Comment, CommentCreate, CommentResponse, CommentsResponse
from schemas.commands import DeleteComment, EditComment, LoadComments, LoadMyComments, PostComment, SetError
from services.marketplace_client import MarketplaceClient, parse_response
from services.permissions import can_delete_node, can_edit_node, can_post_top_level_comment, can_reply_to_comment
from services.store import ConversationStore
from utils.exceptions import ConversationError, InputValidationError, NotFoundError, PermissionDeniedError
from utils.logger import logger


def validate_comment_content(content: str) -> str:
    content = (content or "").strip()
    if len(content) < settings.COMMENT_MIN_LENGTH:
        raise InputValidationError(f"Comment must be at least {settings.COMMENT_MIN_LENGTH} characters long.")
    if len(content) > settings.COMMENT_MAX_LENGTH:
        raise InputValidationError(f"Comment must be at most {settings.COMMENT_MAX_LENGTH} characters long.")
    return content


def _comment_from(body: dict) -> Comment:
    payload = body.get("comment") if isinstance(body.get("comment"), dict) else body.get("data")
    return parse_response(CommentResponse, {"comment": payload or {}}, "comment").comment


class CommentGraph:
    """
    Комментарии к объявлению с одним уровнем ответов.

    Ответы превращают каждый комментарий верхнего уровня в отдельную
    переписку автора комментария с владельцем объявления.
    """

    def __init__(self, store: ConversationStore, client: MarketplaceClient):
        self.store = store
        self.client = client

    @property
    def actor(self) -> Actor:
        return Actor(id=self.store.viewer_id)

    def _fail(self, error: ConversationError) -> ConversationError:
        self.store.dispatch(SetError(message=error.message))
        return error

    def _find(self, listing_id: int, comment_id: int) -> Comment:
        node = self.store.find_comment(listing_id, comment_id)
        if node is None:
            raise NotFoundError("Comment not found.")
        return node

    async def list_comments(self, listing_id: int) -> List[Comment]:
        try:
            body = await self.client.get_listing_comments(listing_id)
            response = parse_response(CommentsResponse, body, "comments")
        except ConversationError as e:
            raise self._fail(e)
        self.store.dispatch(LoadComments(listing_id=listing_id, comments=response.comments))
        return self.store.comments(listing_id)

    async def post_comment(self, listing: ListingRef, content: str) -> Comment:
        try:
            content = validate_comment_content(content)
            if not can_post_top_level_comment(self.actor, listing):
                raise PermissionDeniedError("You cannot comment on your own listing.")
        except ConversationError as e:
            raise self._fail(e)
        return await self._create(listing.id, CommentCreate(content=content))

    async def post_reply(self, listing: ListingRef, parent_comment_id: int, content: str) -> Comment:
        """
        Ответ на комментарий. Право проверяется по ответам, которые уже есть
        локально: если ответ владельца ещё не загружен, автор комментария
        ответить не сможет.
        """
        try:
            content = validate_comment_content(content)
            parent = self._find(listing.id, parent_comment_id)
            if parent.is_reply:
                raise PermissionDeniedError("Replies cannot be replied to.")
            if not can_reply_to_comment(self.actor, listing, parent, parent.replies):
                raise PermissionDeniedError("You can reply only after the listing owner has replied to this comment.")
        except ConversationError as e:
            raise self._fail(e)
        return await self._create(listing.id, CommentCreate(content=content, parent_comment_id=parent.id),
                                  parent_comment_id=parent.id)

    async def _create(self, listing_id: int, data: CommentCreate, parent_comment_id: Optional[int] = None) -> Comment:
        try:
            body = await self.client.post_listing_comment(
                listing_id, data.model_dump(by_alias=True, exclude_none=True)
            )
            comment = _comment_from(body)
        except ConversationError as e:
            raise self._fail(e)
        if parent_comment_id is not None and comment.parent_comment_id is None:
            comment = comment.model_copy(update={"parent_comment_id": parent_comment_id})
        self.store.dispatch(PostComment(listing_id=listing_id, comment=comment))
        logger.info("Комментарий добавлен", listing_id=listing_id, comment_id=comment.id,
                    parent_comment_id=comment.parent_comment_id)
        return comment

    async def edit_comment(self, listing_id: int, comment_id: int, content: str) -> Comment:
        try:
            content = validate_comment_content(content)
            node = self._find(listing_id, comment_id)
            if not can_edit_node(self.actor, node):
                raise PermissionDeniedError("You can edit only your own comments.")
            body = await self.client.update_listing_comment(listing_id, comment_id, content)
            comment = _comment_from(body)
        except ConversationError as e:
            raise self._fail(e)
        self.store.dispatch(EditComment(listing_id=listing_id, comment=comment))
        return self.store.find_comment(listing_id, comment_id) or comment

    async def delete_node(self, listing_id: int, comment_id: int) -> None:
        """Удаляет комментарий вместе с ответами или один ответ."""
        try:
            node = self._find(listing_id, comment_id)
            if not can_delete_node(self.actor, node):
                raise PermissionDeniedError("You can delete only your own comments.")
            await self.client.delete_listing_comment(listing_id, comment_id)
        except ConversationError as e:
            raise self._fail(e)
        self.store.dispatch(DeleteComment(listing_id=listing_id, comment_id=comment_id))
        logger.info("Комментарий удалён", listing_id=listing_id, comment_id=comment_id)

    async def fetch_my_comments(self) -> List[Comment]:
        try:
            body = await self.client.get_my_comments()
            response = parse_response(CommentsResponse, body, "my comments")
        except ConversationError as e:
            raise self._fail(e)
        self.store.dispatch(LoadMyComments(comments=response.comments))
        return self.store.my_comments()

    def comment_count(self, listing_id: int) -> int:
        return sum(1 + len(c.replies) for c in self.store.comments(listing_id))

    def reply_permissions(self, listing: ListingRef) -> Dict[int, bool]:
        """Для каждого комментария верхнего уровня: может ли текущий пользователь ответить."""
        actor = self.actor
        return {
            c.id: can_reply_to_comment(actor, listing, c, c.replies)
            for c in self.store.comments(listing.id)
        }
