# schemas/api.py
from pydantic import BaseModel
from typing import TypeVar, Generic, Optional

T = TypeVar('T')


class APIResponse(BaseModel, Generic[T]):
    """Единый конверт ответа для UI."""

    success: bool = True
    data: Optional[T] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, error_message: str, error_code: str) -> dict:
        return cls(success=False, error_message=error_message, error_code=error_code).model_dump()
