from __future__ import annotations

import logging
from typing import Protocol

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi.concurrency import run_in_threadpool

from relay.core.config import Settings
from relay.core.exceptions import AttachmentError

logger = logging.getLogger(__name__)


class AttachmentResolver(Protocol):
    async def upload(self, blob: str) -> str: ...


class CloudinaryResolver:
    """Uploads data-URI images to Cloudinary and returns the secure URL.

    The SDK is blocking, so each upload runs in the threadpool.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "chat_images",
        timeout: float = 15.0,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.timeout = timeout

    def _upload_sync(self, blob: str) -> dict:
        return cloudinary.uploader.upload(
            blob,
            folder=self.folder,
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            timeout=self.timeout,
        )

    async def upload(self, blob: str) -> str:
        try:
            result = await run_in_threadpool(self._upload_sync, blob)
        except (CloudinaryError, OSError) as exc:
            raise AttachmentError(f"upload failed: {exc}") from exc

        secure_url = result.get("secure_url") if isinstance(result, dict) else None
        if not secure_url:
            raise AttachmentError("upload response did not include secure_url")
        return secure_url


class UnconfiguredResolver:
    async def upload(self, blob: str) -> str:
        raise AttachmentError("attachment storage is not configured")


def build_resolver(settings: Settings) -> AttachmentResolver:
    if not settings.cloudinary_configured:
        logger.info("Cloudinary credentials missing; image attachments will be dropped")
        return UnconfiguredResolver()
    return CloudinaryResolver(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        folder=settings.cloudinary_folder,
        timeout=settings.attachment_timeout_seconds,
    )
