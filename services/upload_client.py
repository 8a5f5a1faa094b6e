# services/upload_client.py
import httpx
from typing import Optional

from config import settings
from schemas.message import AttachmentType
from utils.exceptions import BackendRejectedError, TransportError
from utils.logger import logger


def attachment_type_for(content_type: Optional[str]) -> AttachmentType:
    if content_type and content_type.startswith("image/"):
        return AttachmentType.IMAGE
    if content_type and content_type.startswith("video/"):
        return AttachmentType.VIDEO
    return AttachmentType.DOCUMENT


class UploadClient:
    """Внешний сервис загрузки файлов. Возвращает только URL загруженного файла."""

    def __init__(self, token: Optional[str] = None, upload_url: str = settings.UPLOAD_API_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.upload_url = upload_url
        self.transport = transport

    async def upload(self, file_name: str, content: bytes, content_type: Optional[str] = None) -> str:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        files = {"file": (file_name, content, content_type or "application/octet-stream")}
        try:
            async with httpx.AsyncClient(headers=headers, transport=self.transport,
                                         timeout=settings.REQUEST_TIMEOUT) as client:
                response = await client.post(self.upload_url, files=files)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Сервис загрузки отклонил файл", file_name=file_name,
                           status_code=e.response.status_code, details=e.response.text)
            raise BackendRejectedError(f"Upload failed: {e.response.text}", status_code=e.response.status_code)
        except httpx.RequestError as e:
            logger.error("Сетевая ошибка при загрузке файла", file_name=file_name, error=str(e))
            raise TransportError("Could not connect to upload service.")

        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise BackendRejectedError("Upload service did not return a file URL.")
        logger.info("Файл загружен", file_name=file_name, size=len(content))
        return url
