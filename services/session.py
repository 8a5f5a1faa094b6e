import time
from collections import OrderedDict
from typing import Callable, Optional

import httpx

from config import settings
from schemas.commands import ResetStore
from services.comment_graph import CommentGraph
from services.marketplace_client import MarketplaceClient
from services.message_store import MessageStore
from services.store import ConversationStore
from services.thread_directory import ThreadDirectory
from services.upload_client import UploadClient
from utils.logger import logger


class ViewerSession:
    """Хранилище и сервисы одного пользователя."""

    def __init__(self, viewer_id: str, token: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 upload_transport: Optional[httpx.AsyncBaseTransport] = None):
        self.store = ConversationStore(viewer_id=viewer_id)
        self.client = MarketplaceClient(token=token, transport=transport)
        self.uploads = UploadClient(token=token, transport=upload_transport)
        self.messages = MessageStore(self.store, self.client)
        self.comments = CommentGraph(self.store, self.client)
        self.directory = ThreadDirectory(self.store)
        self.last_used = 0.0

    def update_token(self, token: Optional[str]) -> None:
        self.client.token = token
        self.uploads.token = token


class SessionRegistry:
    """
    Сессии пользователей в памяти процесса.

    Хранится не больше max_sessions сессий, при переполнении вытесняется
    та, к которой дольше всего не обращались. Сессии, простаивающие дольше
    idle_ttl секунд, удаляются при следующем обращении к реестру.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None,
                 upload_transport: Optional[httpx.AsyncBaseTransport] = None,
                 max_sessions: int = settings.SESSION_MAX_COUNT,
                 idle_ttl: float = settings.SESSION_IDLE_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.transport = transport
        self.upload_transport = upload_transport
        self.max_sessions = max_sessions
        self.idle_ttl = idle_ttl
        self.clock = clock
        self._sessions: "OrderedDict[str, ViewerSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, viewer_id: str) -> bool:
        return viewer_id in self._sessions

    def _expire(self, now: float) -> None:
        while self._sessions:
            viewer_id, session = next(iter(self._sessions.items()))
            if now - session.last_used <= self.idle_ttl:
                break
            self._sessions.popitem(last=False)
            logger.info("Сессия удалена по простою", viewer_id=viewer_id)

    def get(self, viewer_id: str, token: Optional[str] = None) -> ViewerSession:
        now = self.clock()
        self._expire(now)
        session = self._sessions.get(viewer_id)
        if session is None:
            session = ViewerSession(viewer_id, token, self.transport, self.upload_transport)
            self._sessions[viewer_id] = session
        else:
            session.update_token(token)
            self._sessions.move_to_end(viewer_id)
        session.last_used = now

        while len(self._sessions) > self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Сессия вытеснена из реестра", viewer_id=evicted_id)
        return session

    def drop(self, viewer_id: str) -> None:
        """Сбрасывает состояние пользователя, например при выходе из аккаунта."""
        session = self._sessions.pop(viewer_id, None)
        if session is not None:
            session.store.dispatch(ResetStore())
