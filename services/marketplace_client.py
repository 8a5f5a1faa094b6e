# services/marketplace_client.py
import httpx
from async_lru import alru_cache
from pydantic import ValidationError
from contextlib import asynccontextmanager
from typing import Optional

from config import settings
from schemas.actor import ListingRef
from utils.exceptions import BackendRejectedError, NotFoundError, TransportError
from utils.logger import logger


def _error_message(response: httpx.Response) -> str:
    """Достаёт текст ошибки из ответа бэкенда, не переводя его."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "detail", "error", "title"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    return response.text or f"HTTP {response.status_code}"


class MarketplaceClient:
    """Клиент REST API маркетплейса. Один запрос на действие, без повторов."""

    def __init__(self, token: Optional[str] = None, base_url: str = settings.MARKETPLACE_API_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.base_url = base_url
        self.transport = transport

    @asynccontextmanager
    async def _get_http_client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        async with httpx.AsyncClient(base_url=self.base_url, headers=headers, transport=self.transport,
                                     timeout=settings.REQUEST_TIMEOUT) as client:
            yield client

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            async with self._get_http_client() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                body = response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            details = _error_message(e.response)
            logger.warning(
                "Ошибка от API маркетплейса",
                url=str(e.request.url),
                status_code=status_code,
                details=details
            )
            if status_code == 404:
                raise NotFoundError(details)
            if status_code >= 500:
                raise TransportError("Marketplace API is unavailable. Please try again.")
            raise BackendRejectedError(details, status_code=status_code)
        except httpx.RequestError as e:
            logger.error(
                "Сетевая ошибка при запросе к API маркетплейса",
                url=str(e.request.url),
                error=str(e)
            )
            raise TransportError("Could not connect to marketplace API.")

        if isinstance(body, dict) and body.get("success") is False:
            details = body.get("message") if isinstance(body.get("message"), str) else "Request was rejected."
            logger.warning("API маркетплейса отклонило запрос", url=url, details=details)
            raise BackendRejectedError(details)
        return body

    async def get_threads(self) -> dict:
        """Получает список диалогов пользователя."""
        return await self._request("GET", "/threads")

    async def get_thread_messages(self, thread_id: int) -> dict:
        """Получает все сообщения диалога."""
        return await self._request("GET", f"/threads/{thread_id}/messages")

    async def post_listing_message(self, listing_id: int, payload: dict) -> dict:
        """Отправляет сообщение по объявлению. Диалог создаётся бэкендом при первом сообщении."""
        return await self._request("POST", f"/listings/{listing_id}/messages", json=payload)

    async def mark_message_read(self, message_id: int) -> dict:
        return await self._request("PATCH", f"/messages/{message_id}/read")

    async def delete_thread(self, thread_id: int) -> dict:
        return await self._request("DELETE", f"/threads/{thread_id}")

    async def get_listing_comments(self, listing_id: int) -> dict:
        return await self._request("GET", f"/listings/{listing_id}/comments")

    async def post_listing_comment(self, listing_id: int, payload: dict) -> dict:
        return await self._request("POST", f"/listings/{listing_id}/comments", json=payload)

    async def update_listing_comment(self, listing_id: int, comment_id: int, content: str) -> dict:
        return await self._request("PUT", f"/listings/{listing_id}/comments/{comment_id}", json={"content": content})

    async def delete_listing_comment(self, listing_id: int, comment_id: int) -> dict:
        return await self._request("DELETE", f"/listings/{listing_id}/comments/{comment_id}")

    async def get_my_comments(self) -> dict:
        return await self._request("GET", "/my-comments")

    async def get_listing(self, listing_id: int) -> ListingRef:
        """Владелец и цена объявления. Кэш общий для всех пользователей."""
        return await fetch_listing(listing_id, self.base_url, self.transport)

    async def load_listing(self, listing_id: int) -> ListingRef:
        body = await self._request("GET", f"/listings/{listing_id}")
        return parse_response(ListingRef, body.get("listing", body), "listing")


@alru_cache(maxsize=1024, ttl=settings.LISTING_CACHE_TTL)
async def fetch_listing(listing_id: int, base_url: str = settings.MARKETPLACE_API_URL,
                        transport: Optional[httpx.AsyncBaseTransport] = None) -> ListingRef:
    """Объявление доступно без авторизации, поэтому токен пользователя в ключ кэша не входит."""
    return await MarketplaceClient(base_url=base_url, transport=transport).load_listing(listing_id)


def parse_response(model, body: dict, what: str):
    """Валидирует ответ бэкенда pydantic-моделью."""
    try:
        return model.model_validate(body)
    except ValidationError as e:
        logger.error(f"Ошибка валидации ответа API маркетплейса ({what})", details=str(e))
        raise TransportError("Unexpected response from marketplace API.")
