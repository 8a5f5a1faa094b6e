import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("MARKETPLACE_API_URL", "http://backend.test")
os.environ.setdefault("UPLOAD_API_URL", "http://uploads.test/files")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import httpx
import pytest

from schemas.actor import ListingRef
from services.comment_graph import CommentGraph
from services.marketplace_client import MarketplaceClient
from services.message_store import MessageStore
from services.store import ConversationStore

OWNER = "owner-1"
BUYER = "buyer-1"
OTHER = "user-3"
LISTING_ID = 10


class FakeBackend:
    """Подменяет API маркетплейса: маршруты задаются в тесте, запросы записываются."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, json=None, status_code=200, handler=None):
        self.routes[(method, path)] = handler or (lambda request: httpx.Response(status_code, json=json))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method, path) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)


def message_json(id, thread_id=1, sender_id=OWNER, created_at="2025-01-01T10:00:00Z", is_read=False, **extra):
    data = {
        "id": id,
        "threadId": thread_id,
        "senderId": sender_id,
        "content": extra.pop("content", f"message {id}"),
        "isOffer": False,
        "isRead": is_read,
        "createdAt": created_at,
    }
    data.update(extra)
    return data


def thread_json(id=1, listing_id=LISTING_ID, seller_id=OWNER, buyer_id=BUYER, messages=None, **extra):
    data = {
        "id": id,
        "listingId": listing_id,
        "sellerId": seller_id,
        "buyerId": buyer_id,
        "lastMessageAt": "2025-01-01T09:00:00Z",
        "messages": messages or [],
    }
    data.update(extra)
    return data


def comment_json(id, author_id=BUYER, created_at="2025-01-01T10:00:00Z", parent_comment_id=None, replies=None,
                 listing_id=LISTING_ID, **extra):
    data = {
        "id": id,
        "listingId": listing_id,
        "authorId": author_id,
        "parentCommentId": parent_comment_id,
        "content": extra.pop("content", f"comment {id}"),
        "createdAt": created_at,
        "isEdited": False,
        "replies": replies or [],
    }
    data.update(extra)
    return data


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def listing():
    return ListingRef(id=LISTING_ID, owner_id=OWNER, price=1000.0)


@pytest.fixture
def client(backend):
    return MarketplaceClient(token="token", transport=backend.transport)


def make_services(backend, viewer_id):
    store = ConversationStore(viewer_id=viewer_id)
    client = MarketplaceClient(token="token", transport=backend.transport)
    return store, MessageStore(store, client), CommentGraph(store, client)


@pytest.fixture
def buyer_services(backend):
    return make_services(backend, BUYER)


@pytest.fixture
def owner_services(backend):
    return make_services(backend, OWNER)
