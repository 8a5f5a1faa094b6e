# schemas/actor.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class Actor(BaseModel):
    """Пользователь, от имени которого выполняется действие."""
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.id)


class ListingRef(BaseModel):
    """Минимум данных об объявлении, нужный для проверки прав."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    id: int
    owner_id: str = Field(..., alias="ownerId")
    price: Optional[float] = None

    def is_owned_by(self, actor: Actor) -> bool:
        return actor.is_authenticated and actor.id == self.owner_id
