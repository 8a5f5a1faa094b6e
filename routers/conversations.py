# routers/conversations.py
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from typing import Optional

from schemas.actor import ListingRef
from schemas.api import APIResponse
from schemas.message import MessageCreate, Thread
from services.session import ViewerSession
from services.thread_directory import is_current_user_seller, other_user_id
from services.unread import total_unread, unread
from services.upload_client import attachment_type_for
from utils.dependencies import get_listing_ref, get_viewer_session
from utils.rate_limiter import limiter

router = APIRouter(prefix="/api", tags=["Conversations"])


def _thread_out(session: ViewerSession, thread: Thread) -> dict:
    viewer_id = session.store.viewer_id
    data = thread.model_dump(mode="json", by_alias=True)
    data["unreadCount"] = unread(session.store, thread.id)
    data["isCurrentUserSeller"] = is_current_user_seller(viewer_id, thread)
    data["otherUserId"] = other_user_id(viewer_id, thread)
    return data


@router.get("/threads", response_model=APIResponse[dict], summary="Получить диалоги пользователя")
@limiter.limit("100/minute")
async def get_threads(request: Request, session: ViewerSession = Depends(get_viewer_session)):
    threads = await session.messages.fetch_threads()
    data = {
        "threads": [_thread_out(session, t) for t in threads],
        "totalUnread": total_unread(session.store),
    }
    return APIResponse(data=data)


@router.get("/threads/{thread_id}/messages", response_model=APIResponse[dict], summary="Получить сообщения диалога")
@limiter.limit("100/minute")
async def get_thread_messages(request: Request, thread_id: int,
                              session: ViewerSession = Depends(get_viewer_session)):
    messages = await session.messages.fetch_thread(thread_id)
    data = {
        "threadId": thread_id,
        "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
        "unreadCount": unread(session.store, thread_id),
    }
    return APIResponse(data=data)


@router.post("/listings/{listing_id}/messages", response_model=APIResponse[dict],
             status_code=status.HTTP_201_CREATED, summary="Отправить сообщение или предложение цены")
@limiter.limit("60/minute")
async def send_listing_message(
    request: Request,
    message: MessageCreate,
    buyer_id: Optional[str] = Query(None, alias="buyerId"),
    listing: ListingRef = Depends(get_listing_ref),
    session: ViewerSession = Depends(get_viewer_session),
):
    result = await session.messages.send_or_create_thread(listing, message, buyer_id=buyer_id)
    data = result.model_dump(mode="json", by_alias=True)
    data["thread"] = _thread_out(session, result.thread)
    return APIResponse(data=data)


@router.post("/threads/{thread_id}/read", response_model=APIResponse[dict], summary="Пометить диалог прочитанным")
@limiter.limit("60/minute")
async def mark_thread_read(request: Request, thread_id: int,
                           session: ViewerSession = Depends(get_viewer_session)):
    marked = await session.messages.mark_thread_read(thread_id)
    data = {
        "marked": marked,
        "unreadCount": unread(session.store, thread_id),
        "totalUnread": total_unread(session.store),
    }
    return APIResponse(data=data)


@router.delete("/threads/{thread_id}", response_model=APIResponse[dict], summary="Удалить диалог")
@limiter.limit("30/minute")
async def delete_thread(request: Request, thread_id: int,
                        session: ViewerSession = Depends(get_viewer_session)):
    await session.messages.delete_thread(thread_id)
    return APIResponse(data={"threadId": thread_id, "totalUnread": total_unread(session.store)})


@router.get("/unread", response_model=APIResponse[dict], summary="Количество непрочитанных сообщений")
async def get_unread(session: ViewerSession = Depends(get_viewer_session)):
    threads = {str(t.id): unread(session.store, t.id) for t in session.store.threads()}
    return APIResponse(data={"total": total_unread(session.store), "threads": threads})


@router.post("/attachments", response_model=APIResponse[dict], summary="Загрузить вложение для сообщения")
@limiter.limit("30/minute")
async def upload_attachment(request: Request, file: UploadFile = File(...),
                            session: ViewerSession = Depends(get_viewer_session)):
    content = await file.read()
    url = await session.uploads.upload(file.filename or "file", content, file.content_type)
    data = {
        "url": url,
        "type": attachment_type_for(file.content_type).value,
        "fileName": file.filename,
        "sizeBytes": len(content),
    }
    return APIResponse(data=data)


@router.delete("/session", response_model=APIResponse[dict], summary="Сбросить локальное состояние пользователя")
async def reset_session(request: Request, session: ViewerSession = Depends(get_viewer_session)):
    request.app.state.sessions.drop(session.store.viewer_id)
    return APIResponse(data={"detail": "Session state cleared"})
