# services/message_store.py
from typing import List, Optional

from config import settings
from schemas.actor import Actor, ListingRef
from schemas.commands import DeleteThread, LoadMessages, LoadThreads, MarkRead, SelectThread, SendMessage, SetError, SetSending
from schemas.message import AttachmentType, Message, MessageCreate, MessagesResponse, SendResult, Thread, ThreadsResponse
from services.marketplace_client import MarketplaceClient, parse_response
from services.permissions import can_delete_thread, can_send_into_thread, can_start_thread
from services.store import ConversationStore
from services.thread_directory import ThreadDirectory
from utils.exceptions import ConversationError, InputValidationError, NotFoundError, PermissionDeniedError
from utils.logger import logger


def validate_message(body: MessageCreate, listing: Optional[ListingRef] = None) -> MessageCreate:
    """
    Проверяет сообщение до отправки и возвращает нормализованную копию.

    Без текста можно отправить только файл: тогда текстом становится имя файла.
    Предложение цены требует положительной суммы, а если цена объявления
    известна, сумма должна лежать в допустимых пределах от неё.
    """
    update = {"content": body.content.strip()}

    if body.has_attachment:
        if body.attachment_type is None:
            update["attachment_type"] = AttachmentType.DOCUMENT
        if not update["content"]:
            update["content"] = body.attachment_file_name or "Attachment"
    elif not update["content"]:
        raise InputValidationError("Message content is required.")

    if body.is_offer:
        if body.offer_price is None or body.offer_price <= 0:
            raise InputValidationError("Please enter a valid offer amount.")
        if listing is not None and listing.price:
            min_offer = listing.price * settings.OFFER_MIN_RATIO
            max_offer = listing.price * settings.OFFER_MAX_RATIO
            if body.offer_price < min_offer:
                raise InputValidationError(f"Offer is too low. The minimum offer is {min_offer:.2f}.")
            if body.offer_price > max_offer:
                raise InputValidationError(f"Offer is too high. The maximum offer is {max_offer:.2f}.")
    else:
        update["offer_price"] = None

    return body.model_copy(update=update)


class MessageStore:
    """Сообщения диалогов: загрузка, отправка, прочтение и удаление диалогов."""

    def __init__(self, store: ConversationStore, client: MarketplaceClient):
        self.store = store
        self.client = client
        self.directory = ThreadDirectory(store)

    @property
    def actor(self) -> Actor:
        return Actor(id=self.store.viewer_id)

    def _fail(self, error: ConversationError) -> ConversationError:
        self.store.dispatch(SetError(message=error.message))
        return error

    async def fetch_threads(self) -> List[Thread]:
        try:
            body = await self.client.get_threads()
            response = parse_response(ThreadsResponse, body, "threads")
        except ConversationError as e:
            raise self._fail(e)
        self.store.dispatch(LoadThreads(threads=response.threads))
        logger.info("Загружены диалоги", viewer_id=self.store.viewer_id, count=len(response.threads))
        return self.directory.sorted_threads()

    async def fetch_thread(self, thread_id: int) -> List[Message]:
        """
        Полностью заменяет список сообщений диалога.

        Если пока шёл запрос пользователь открыл другой диалог, ответ
        отбрасывается и в хранилище не попадает.
        """
        self.store.dispatch(SelectThread(thread_id=thread_id))
        generation = self.store.fetch_generation
        try:
            body = await self.client.get_thread_messages(thread_id)
            response = parse_response(MessagesResponse, body, "messages")
        except ConversationError as e:
            if self.store.is_current_fetch(thread_id, generation):
                self._fail(e)
            raise

        if not self.store.is_current_fetch(thread_id, generation):
            logger.info("Устаревший ответ отброшен", thread_id=thread_id, generation=generation,
                        active_thread_id=self.store.active_thread_id)
            return response.messages

        self.store.dispatch(LoadMessages(thread_id=thread_id, messages=response.messages, generation=generation))
        return self.store.messages(thread_id)

    def _check_can_send(self, listing: ListingRef, thread: Optional[Thread]) -> None:
        actor = self.actor
        if thread is not None:
            if not can_send_into_thread(actor, thread):
                raise PermissionDeniedError("You are not a participant of this conversation.")
            return
        if listing.is_owned_by(actor):
            raise PermissionDeniedError(
                "You cannot start a new conversation on your own listing. "
                "You can only reply to existing conversations."
            )
        if not can_start_thread(actor, listing):
            raise PermissionDeniedError("You must be signed in to send a message.")

    async def _resolve_thread(self, listing: ListingRef, buyer_id: Optional[str]) -> Optional[Thread]:
        """
        Список диалогов мог устареть: новый покупатель мог написать продавцу
        уже после загрузки. При промахе список перечитывается один раз.
        """
        viewer_id = self.store.viewer_id
        thread = self.directory.get_or_imply_thread(listing.id, viewer_id, buyer_id)
        if thread is not None or not viewer_id:
            return thread
        if buyer_id is None and listing.is_owned_by(self.actor):
            # Без покупателя продавцу отвечать некому
            return None
        await self.fetch_threads()
        return self.directory.get_or_imply_thread(listing.id, viewer_id, buyer_id)

    async def send_or_create_thread(self, listing: ListingRef, body: MessageCreate,
                                    buyer_id: Optional[str] = None) -> SendResult:
        """
        Отправляет сообщение или предложение цены по объявлению.

        Сообщение попадает в хранилище только после подтверждения бэкендом.
        Если диалога ещё не было, бэкенд создаёт его сам, а мы добавляем его
        в список и возвращаем created_new_thread=True.
        """
        try:
            body = validate_message(body, listing)
            thread = await self._resolve_thread(listing, buyer_id)
            self._check_can_send(listing, thread)
        except ConversationError as e:
            raise self._fail(e)

        self.store.dispatch(SetError(message=None))
        self.store.dispatch(SetSending(is_sending=True))
        try:
            raw = await self.client.post_listing_message(listing.id, body.to_payload())
            payload = raw.get("message") if isinstance(raw.get("message"), dict) else raw.get("data")
            message = parse_response(Message, payload or {}, "message")
        except ConversationError as e:
            raise self._fail(e)
        finally:
            self.store.dispatch(SetSending(is_sending=False))

        created_new_thread = self.store.get_thread(message.thread_id) is None
        implied = None
        if created_new_thread:
            implied = Thread(
                id=message.thread_id,
                listing_id=listing.id,
                seller_id=listing.owner_id,
                buyer_id=self.store.viewer_id,
                last_message_at=message.created_at,
            )
        self.store.dispatch(SendMessage(message=message, thread=implied))
        logger.info("Сообщение отправлено", listing_id=listing.id, thread_id=message.thread_id,
                    is_offer=message.is_offer, created_new_thread=created_new_thread)

        stored = next((m for m in self.store.get_thread(message.thread_id).messages if m.id == message.id), message)
        return SendResult(
            created_new_thread=created_new_thread,
            thread=self.store.get_thread(message.thread_id),
            message=stored,
        )

    async def send(self, listing: ListingRef, body: MessageCreate, buyer_id: Optional[str] = None) -> Message:
        result = await self.send_or_create_thread(listing, body, buyer_id)
        return result.message

    async def mark_thread_read(self, thread_id: int) -> int:
        """
        Помечает прочитанными все сообщения собеседника в диалоге.

        Флаг is_read один на сообщение, отдельных отметок для каждого
        читателя нет. Локально помечаются только сообщения, подтверждённые
        бэкендом.
        """
        thread = self.store.get_thread(thread_id)
        if thread is None and not self.store.has_messages(thread_id):
            raise self._fail(NotFoundError("Conversation not found."))
        if self.store.has_messages(thread_id):
            messages = self.store.messages(thread_id)
        else:
            # В превью только последние сообщения, полный список берём с бэкенда
            try:
                body = await self.client.get_thread_messages(thread_id)
                messages = parse_response(MessagesResponse, body, "messages").messages
            except ConversationError as e:
                raise self._fail(e)
        viewer_id = self.store.viewer_id
        pending = [m.id for m in messages if not m.is_read and m.sender_id != viewer_id]

        marked = []
        try:
            for message_id in pending:
                await self.client.mark_message_read(message_id)
                marked.append(message_id)
        except ConversationError as e:
            raise self._fail(e)
        finally:
            if marked or not pending:
                self.store.dispatch(MarkRead(thread_id=thread_id, message_ids=marked,
                                            unread_count=len(pending) - len(marked)))
        return len(marked)

    async def delete_thread(self, thread_id: int) -> None:
        """Удаляет диалог и все его сообщения, но только после успешного удаления на бэкенде."""
        thread = self.store.get_thread(thread_id)
        if thread is not None and not can_delete_thread(self.actor, thread):
            raise self._fail(PermissionDeniedError("You are not a participant of this conversation."))
        try:
            await self.client.delete_thread(thread_id)
        except ConversationError as e:
            raise self._fail(e)
        self.store.dispatch(DeleteThread(thread_id=thread_id))
        logger.info("Диалог удалён", thread_id=thread_id, viewer_id=self.store.viewer_id)
