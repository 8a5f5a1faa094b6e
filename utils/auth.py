# utils/auth.py
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from fastapi import HTTPException

from config import settings
from schemas.actor import Actor
from utils.logger import logger


def create_access_token(data: dict, expires_delta: timedelta = timedelta(days=1)) -> str:
    """Создает JWT со сроком жизни (по умолчанию 1 день)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def verify_token(token: str, credentials_exception: HTTPException) -> Actor:
    """Декодирует токен пользователя. Идентификатор пользователя лежит в sub."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Ошибка верификации JWT: {e}")
        raise credentials_exception
    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception
    return Actor(id=str(user_id))
