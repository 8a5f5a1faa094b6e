# utils/exceptions.py
from typing import Optional


class ConversationError(Exception):
    """Базовая ошибка для всех действий с диалогами и комментариями."""
    error_code = "CONVERSATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(ConversationError):
    """Ввод отклонён на клиенте, до любого сетевого запроса."""
    error_code = "VALIDATION_ERROR"


class PermissionDeniedError(ConversationError):
    """Действие запрещено локальной проверкой прав."""
    error_code = "PERMISSION_DENIED"


class BackendRejectedError(ConversationError):
    """Бэкенд отклонил действие. Сообщение сервера передаётся как есть."""
    error_code = "BACKEND_REJECTED"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ConversationError):
    error_code = "NOT_FOUND"


class TransportError(ConversationError):
    """Сетевая ошибка или 5xx. Повторных попыток не делаем."""
    error_code = "TRANSPORT_ERROR"
