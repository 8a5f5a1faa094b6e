# routers/comments.py
from fastapi import APIRouter, Depends, Request, status

from schemas.actor import Actor, ListingRef
from schemas.api import APIResponse
from schemas.comment import CommentUpdate
from services.permissions import can_post_top_level_comment
from services.session import ViewerSession
from utils.dependencies import get_listing_ref, get_viewer_session
from utils.rate_limiter import limiter

router = APIRouter(prefix="/api", tags=["Listing Comments"])


@router.get("/listings/{listing_id}/comments", response_model=APIResponse[dict], summary="Комментарии к объявлению")
@limiter.limit("100/minute")
async def get_listing_comments(
    request: Request,
    listing: ListingRef = Depends(get_listing_ref),
    session: ViewerSession = Depends(get_viewer_session),
):
    comments = await session.comments.list_comments(listing.id)
    actor = Actor(id=session.store.viewer_id)
    data = {
        "comments": [c.model_dump(mode="json", by_alias=True) for c in comments],
        "totalCount": session.comments.comment_count(listing.id),
        "canComment": can_post_top_level_comment(actor, listing),
        "canReply": {str(k): v for k, v in session.comments.reply_permissions(listing).items()},
    }
    return APIResponse(data=data)


@router.post("/listings/{listing_id}/comments", response_model=APIResponse[dict],
             status_code=status.HTTP_201_CREATED, summary="Добавить комментарий")
@limiter.limit("30/minute")
async def post_listing_comment(
    request: Request,
    payload: CommentUpdate,
    listing: ListingRef = Depends(get_listing_ref),
    session: ViewerSession = Depends(get_viewer_session),
):
    comment = await session.comments.post_comment(listing, payload.content)
    return APIResponse(data=comment.model_dump(mode="json", by_alias=True))


@router.post("/listings/{listing_id}/comments/{comment_id}/replies", response_model=APIResponse[dict],
             status_code=status.HTTP_201_CREATED, summary="Ответить на комментарий")
@limiter.limit("30/minute")
async def post_comment_reply(
    request: Request,
    comment_id: int,
    payload: CommentUpdate,
    listing: ListingRef = Depends(get_listing_ref),
    session: ViewerSession = Depends(get_viewer_session),
):
    if not session.store.has_comments(listing.id):
        await session.comments.list_comments(listing.id)
    reply = await session.comments.post_reply(listing, comment_id, payload.content)
    return APIResponse(data=reply.model_dump(mode="json", by_alias=True))


@router.put("/listings/{listing_id}/comments/{comment_id}", response_model=APIResponse[dict],
            summary="Изменить комментарий")
@limiter.limit("30/minute")
async def update_listing_comment(
    request: Request,
    listing_id: int,
    comment_id: int,
    payload: CommentUpdate,
    session: ViewerSession = Depends(get_viewer_session),
):
    if not session.store.has_comments(listing_id):
        await session.comments.list_comments(listing_id)
    comment = await session.comments.edit_comment(listing_id, comment_id, payload.content)
    return APIResponse(data=comment.model_dump(mode="json", by_alias=True))


@router.delete("/listings/{listing_id}/comments/{comment_id}", response_model=APIResponse[dict],
               summary="Удалить комментарий или ответ")
@limiter.limit("30/minute")
async def delete_listing_comment(
    request: Request,
    listing_id: int,
    comment_id: int,
    session: ViewerSession = Depends(get_viewer_session),
):
    if not session.store.has_comments(listing_id):
        await session.comments.list_comments(listing_id)
    await session.comments.delete_node(listing_id, comment_id)
    return APIResponse(data={"commentId": comment_id, "totalCount": session.comments.comment_count(listing_id)})


@router.get("/my-comments", response_model=APIResponse[dict], summary="Комментарии текущего пользователя")
async def get_my_comments(session: ViewerSession = Depends(get_viewer_session)):
    comments = await session.comments.fetch_my_comments()
    return APIResponse(data={"comments": [c.model_dump(mode="json", by_alias=True) for c in comments]})
