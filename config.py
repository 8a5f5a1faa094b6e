import os
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).parent.resolve()


class Settings(BaseSettings):
    """
    Класс для управления настройками приложения.
    """
    model_config = SettingsConfigDict(env_file=os.path.join(ROOT_DIR, '.env'), env_file_encoding='utf-8')
    # --- Настройки режима работы ---
    DEBUG: bool = False
    LOG_LEVEL: str = ""
    # --- Настройки безопасности и JWT ---
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    # --- Настройки API маркетплейса ---
    MARKETPLACE_API_URL: str = "http://localhost:5202/api"
    UPLOAD_API_URL: str = "http://localhost:5202/api/uploads"
    REQUEST_TIMEOUT: float = 30.0
    LISTING_CACHE_TTL: int = 300
    # --- Настройки фронтенда ---
    FRONTEND_URL: str = ""
    RATE_LIMIT_ENABLED: bool = True
    # --- Сессии пользователей в памяти ---
    SESSION_MAX_COUNT: int = 1000
    SESSION_IDLE_TTL: int = 3600
    # --- Правила для комментариев и предложений ---
    COMMENT_MIN_LENGTH: int = 5
    COMMENT_MAX_LENGTH: int = 1000
    OFFER_MIN_RATIO: float = 0.5
    OFFER_MAX_RATIO: float = 1.5


settings = Settings()

# Проверка на наличие критически важных ключей
if not settings.SECRET_KEY:
    raise ValueError(
        "Переменная SECRET_KEY не может быть пустой. "
        "Пожалуйста, задайте её в вашем .env файле."
    )
