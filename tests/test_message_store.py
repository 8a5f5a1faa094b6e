import json

import httpx
import pytest

from conftest import BUYER, LISTING_ID, OTHER, OWNER, message_json, thread_json
from schemas.commands import LoadThreads, SelectThread
from schemas.message import AttachmentType, MessageCreate, Thread
from services.unread import unread
from utils.exceptions import BackendRejectedError, InputValidationError, PermissionDeniedError, TransportError

SEND_PATH = f"/listings/{LISTING_ID}/messages"


@pytest.fixture(autouse=True)
def empty_inbox(backend):
    backend.on("GET", "/threads", json={"threads": []})


def _sent_payload(backend):
    request = [r for r in backend.requests if r.method == "POST" and r.url.path == SEND_PATH][-1]
    return json.loads(request.content)


def _reply_with(backend, message_id, thread_id=5, sender_id=BUYER):
    backend.on("POST", SEND_PATH, status_code=201, json={
        "success": True,
        "message": message_json(message_id, thread_id=thread_id, sender_id=sender_id,
                                created_at="2025-01-02T10:00:00Z"),
    })


async def test_first_message_implies_new_thread(backend, buyer_services, listing):
    store, messages, _ = buyer_services
    _reply_with(backend, 7)

    result = await messages.send_or_create_thread(listing, MessageCreate(content="  Is it still available?  "))

    assert result.created_new_thread is True
    assert result.thread.id == 5
    assert result.thread.seller_id == OWNER
    assert result.thread.buyer_id == BUYER
    assert result.message.is_read is True
    assert [m.id for m in store.get_thread(5).messages] == [7]
    assert _sent_payload(backend)["content"] == "Is it still available?"
    assert store.is_sending is False


async def test_second_message_continues_thread(backend, buyer_services, listing):
    store, messages, _ = buyer_services
    _reply_with(backend, 7)
    await messages.send(listing, MessageCreate(content="first"))
    _reply_with(backend, 8)

    result = await messages.send_or_create_thread(listing, MessageCreate(content="second"))

    assert result.created_new_thread is False
    assert [m.id for m in store.get_thread(5).messages] == [7, 8]


async def test_owner_cannot_start_thread_without_network_call(backend, owner_services, listing):
    store, messages, _ = owner_services

    with pytest.raises(PermissionDeniedError) as exc:
        await messages.send(listing, MessageCreate(content="hello buyer"))

    assert "own listing" in exc.value.message
    assert backend.calls("POST", SEND_PATH) == 0
    assert store.error == exc.value.message


async def test_owner_replies_into_existing_thread(backend, owner_services, listing):
    store, messages, _ = owner_services
    store.dispatch(LoadThreads(threads=[Thread.model_validate(thread_json())]))
    _reply_with(backend, 9, thread_id=1, sender_id=OWNER)

    result = await messages.send_or_create_thread(listing, MessageCreate(content="Yes, it is"), buyer_id=BUYER)

    assert result.created_new_thread is False
    assert result.thread.id == 1


async def test_empty_message_is_rejected(backend, buyer_services, listing):
    _, messages, _ = buyer_services
    with pytest.raises(InputValidationError):
        await messages.send(listing, MessageCreate(content="   "))
    assert backend.calls("POST", SEND_PATH) == 0


@pytest.mark.parametrize("offer_price", [None, 0, -10, 400, 2000])
async def test_invalid_offers_are_rejected(backend, buyer_services, listing, offer_price):
    _, messages, _ = buyer_services
    with pytest.raises(InputValidationError):
        await messages.send(listing, MessageCreate(content="my offer", is_offer=True, offer_price=offer_price))
    assert backend.calls("POST", SEND_PATH) == 0


async def test_offer_inside_bounds_is_sent(backend, buyer_services, listing):
    _, messages, _ = buyer_services
    _reply_with(backend, 7)

    await messages.send(listing, MessageCreate(content="my offer", is_offer=True, offer_price=800))

    payload = _sent_payload(backend)
    assert payload["isOffer"] is True
    assert payload["offerPrice"] == 800


async def test_plain_message_drops_offer_price(backend, buyer_services, listing):
    _, messages, _ = buyer_services
    _reply_with(backend, 7)

    await messages.send(listing, MessageCreate(content="hello", offer_price=800))

    assert "offerPrice" not in _sent_payload(backend)


async def test_attachment_only_message_uses_file_name(backend, buyer_services, listing):
    _, messages, _ = buyer_services
    _reply_with(backend, 7)

    await messages.send(listing, MessageCreate(
        attachment_url="http://uploads.test/files/contract.pdf",
        attachment_file_name="contract.pdf",
    ))

    payload = _sent_payload(backend)
    assert payload["content"] == "contract.pdf"
    assert payload["attachmentType"] == AttachmentType.DOCUMENT.value


async def test_rejected_send_appends_nothing(backend, buyer_services, listing):
    store, messages, _ = buyer_services
    backend.on("POST", SEND_PATH, status_code=400, json={"success": False, "message": "Listing is not active"})

    with pytest.raises(BackendRejectedError) as exc:
        await messages.send(listing, MessageCreate(content="hello"))

    assert exc.value.message == "Listing is not active"
    assert store.error == "Listing is not active"
    assert store.threads() == []
    assert store.is_sending is False


async def test_fetch_threads_returns_most_recent_first(backend, buyer_services):
    _, messages, _ = buyer_services
    backend.on("GET", "/threads", json={"threads": [
        thread_json(1, lastMessageAt="2025-01-01T09:00:00Z"),
        thread_json(2, listing_id=11, lastMessageAt="2025-01-03T09:00:00Z"),
    ]})

    threads = await messages.fetch_threads()

    assert [t.id for t in threads] == [2, 1]


async def test_fetch_thread_replaces_message_list(backend, buyer_services):
    store, messages, _ = buyer_services
    backend.on("GET", "/threads/1/messages", json={"messages": [
        message_json(2, created_at="2025-01-01T11:00:00Z"),
        message_json(1, created_at="2025-01-01T10:00:00Z"),
    ]})

    loaded = await messages.fetch_thread(1)

    assert [m.id for m in loaded] == [1, 2]
    assert store.active_thread_id == 1


async def test_stale_thread_response_is_discarded(backend, buyer_services):
    store, messages, _ = buyer_services

    def switch_thread(request):
        # Пользователь открыл другой диалог, пока шёл запрос
        store.dispatch(SelectThread(thread_id=2))
        return httpx.Response(200, json={"messages": [message_json(1)]})

    backend.on("GET", "/threads/1/messages", handler=switch_thread)

    await messages.fetch_thread(1)

    assert store.has_messages(1) is False
    assert store.active_thread_id == 2


async def _load_thread(backend, messages, thread_messages):
    backend.on("GET", "/threads", json={"threads": [thread_json()]})
    backend.on("GET", "/threads/1/messages", json={"messages": thread_messages})
    await messages.fetch_threads()
    await messages.fetch_thread(1)


async def test_mark_thread_read_marks_only_counterparty_messages(backend, buyer_services):
    store, messages, _ = buyer_services
    await _load_thread(backend, messages, [
        message_json(1, sender_id=OWNER),
        message_json(2, sender_id=BUYER, created_at="2025-01-01T11:00:00Z"),
        message_json(3, sender_id=OWNER, created_at="2025-01-01T12:00:00Z", is_read=True),
    ])
    backend.on("PATCH", "/messages/1/read", json={"success": True})

    marked = await messages.mark_thread_read(1)

    assert marked == 1
    assert backend.calls("PATCH", "/messages/2/read") == 0
    assert backend.calls("PATCH", "/messages/3/read") == 0
    assert store.messages(1)[0].is_read is True


async def test_mark_thread_read_keeps_unacknowledged_messages_unread(backend, buyer_services):
    store, messages, _ = buyer_services
    await _load_thread(backend, messages, [
        message_json(1, sender_id=OWNER),
        message_json(2, sender_id=OWNER, created_at="2025-01-01T11:00:00Z"),
    ])
    backend.on("PATCH", "/messages/1/read", json={"success": True})
    backend.on("PATCH", "/messages/2/read", status_code=503, json={"message": "Service unavailable"})

    with pytest.raises(TransportError):
        await messages.mark_thread_read(1)

    assert [m.is_read for m in store.messages(1)] == [True, False]


async def test_delete_thread_removes_thread_and_messages(backend, buyer_services):
    store, messages, _ = buyer_services
    await _load_thread(backend, messages, [message_json(1)])
    backend.on("DELETE", "/threads/1", json={"success": True})

    await messages.delete_thread(1)

    assert store.get_thread(1) is None
    assert store.has_messages(1) is False


async def test_failed_delete_keeps_thread_intact(backend, buyer_services):
    store, messages, _ = buyer_services
    await _load_thread(backend, messages, [message_json(1)])
    backend.on("DELETE", "/threads/1", status_code=500, json={"message": "boom"})

    with pytest.raises(TransportError):
        await messages.delete_thread(1)

    assert store.get_thread(1) is not None
    assert [m.id for m in store.messages(1)] == [1]


async def test_seller_reply_refreshes_stale_inbox(backend, owner_services, listing):
    store, messages, _ = owner_services
    store.dispatch(LoadThreads(threads=[Thread.model_validate(thread_json())]))
    backend.on("GET", "/threads", json={"threads": [thread_json(1), thread_json(2, buyer_id=OTHER)]})
    _reply_with(backend, 9, thread_id=2, sender_id=OWNER)

    result = await messages.send_or_create_thread(listing, MessageCreate(content="Hello, still for sale"),
                                                  buyer_id=OTHER)

    assert result.created_new_thread is False
    assert result.thread.id == 2
    assert backend.calls("GET", "/threads") == 1


async def test_buyer_with_stale_inbox_continues_existing_thread(backend, buyer_services, listing):
    _, messages, _ = buyer_services
    backend.on("GET", "/threads", json={"threads": [thread_json(1)]})
    _reply_with(backend, 9, thread_id=1)

    result = await messages.send_or_create_thread(listing, MessageCreate(content="me again"))

    assert result.created_new_thread is False
    assert result.thread.id == 1


async def test_seller_reply_to_unknown_buyer_is_refused(backend, owner_services, listing):
    _, messages, _ = owner_services

    with pytest.raises(PermissionDeniedError):
        await messages.send(listing, MessageCreate(content="hello"), buyer_id=OTHER)

    assert backend.calls("GET", "/threads") == 1
    assert backend.calls("POST", SEND_PATH) == 0


async def test_mark_read_fetches_full_list_for_preview_only_thread(backend, buyer_services):
    store, messages, _ = buyer_services
    backend.on("GET", "/threads", json={"threads": [thread_json(unreadCount=3, messages=[
        message_json(3, sender_id=OWNER, created_at="2025-01-01T12:00:00Z"),
    ])]})
    backend.on("GET", "/threads/1/messages", json={"messages": [
        message_json(1, sender_id=OWNER),
        message_json(2, sender_id=OWNER, created_at="2025-01-01T11:00:00Z"),
        message_json(3, sender_id=OWNER, created_at="2025-01-01T12:00:00Z"),
    ]})
    for message_id in (1, 2, 3):
        backend.on("PATCH", f"/messages/{message_id}/read", json={"success": True})
    await messages.fetch_threads()
    assert unread(store, 1) == 3

    marked = await messages.mark_thread_read(1)

    assert marked == 3
    assert unread(store, 1) == 0
    assert [backend.calls("PATCH", f"/messages/{i}/read") for i in (1, 2, 3)] == [1, 1, 1]


async def test_unread_converges_after_read_and_own_send(backend, buyer_services, listing):
    store, messages, _ = buyer_services
    await _load_thread(backend, messages, [
        message_json(1, sender_id=OWNER),
        message_json(2, sender_id=OWNER, created_at="2025-01-01T11:00:00Z"),
        message_json(3, sender_id=OWNER, created_at="2025-01-01T12:00:00Z"),
    ])
    for message_id in (1, 2, 3):
        backend.on("PATCH", f"/messages/{message_id}/read", json={"success": True})
    assert unread(store, 1) == 3

    await messages.mark_thread_read(1)
    assert unread(store, 1) == 0

    _reply_with(backend, 4, thread_id=1)
    await messages.send(listing, MessageCreate(content="thanks, I will take it"))
    assert unread(store, 1) == 0
    assert [m.id for m in store.messages(1)] == [1, 2, 3, 4]


async def test_mark_read_clears_stale_backend_count(backend, buyer_services):
    store, messages, _ = buyer_services
    backend.on("GET", "/threads", json={"threads": [thread_json(unreadCount=2)]})
    backend.on("GET", "/threads/1/messages", json={"messages": [message_json(1, sender_id=OWNER, is_read=True)]})
    await messages.fetch_threads()

    assert await messages.mark_thread_read(1) == 0
    assert unread(store, 1) == 0
