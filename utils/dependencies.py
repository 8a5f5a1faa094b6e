# utils/dependencies.py
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from schemas.actor import Actor, ListingRef
from services.session import ViewerSession
from .auth import verify_token

# Токен выдаёт бэкенд маркетплейса, здесь мы его только читаем и пересылаем дальше
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    return verify_token(token, credentials_exception)


def get_viewer_session(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    token: str = Depends(oauth2_scheme),
) -> ViewerSession:
    """Хранилище текущего пользователя. Токен пересылается в API маркетплейса."""
    return request.app.state.sessions.get(actor.id, token)


async def get_listing_ref(
    listing_id: int,
    session: ViewerSession = Depends(get_viewer_session),
) -> ListingRef:
    return await session.client.get_listing(listing_id)
