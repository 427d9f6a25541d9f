"""MediaService — forwards uploaded images to the media host (S3 + CDN).

Architecture:
- Each payload is checked with Pillow before upload (not an image -> 400)
- S3 upload via asyncio.to_thread() so boto3 never blocks the event loop
- Batches are all-or-nothing: one failure deletes what already landed and
  raises MediaUploadError, so the caller never writes a parent row with
  missing images
"""

import asyncio
import io
import mimetypes
import uuid
from dataclasses import dataclass

import boto3
import structlog
from PIL import Image, UnidentifiedImageError

from devhance.core.config import get_settings
from devhance.core.exceptions import MediaUploadError, ValidationError

logger = structlog.get_logger(__name__)

PROJECT_FOLDER = "projects"
PROFILE_FOLDER = "profiles"

_FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "GIF": ".gif",
    "WEBP": ".webp",
}


@dataclass(frozen=True)
class ImagePayload:
    """One uploaded file as received from the multipart form."""

    filename: str
    content: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class UploadedImage:
    key: str
    url: str


class MediaService:
    """Uploads image batches to the media host and returns durable URLs.

    Public API:
        upload_batch(images, folder) -> list[str]
    """

    def __init__(self, s3_client=None) -> None:
        self._s3 = s3_client

    def _client(self):
        if self._s3 is None:
            settings = get_settings()
            self._s3 = boto3.client("s3", region_name=settings.media_region)
        return self._s3

    def validate(self, image: ImagePayload, field: str) -> str:
        """Check size and decode the header with Pillow.

        Returns:
            The file extension to store the object under.

        Raises:
            ValidationError: empty, oversized or non-image payload
        """
        settings = get_settings()
        if not image.content:
            raise ValidationError.for_field(field, f"{image.filename or 'file'} is empty")
        if len(image.content) > settings.max_upload_bytes:
            limit_mb = settings.max_upload_bytes / (1024 * 1024)
            raise ValidationError.for_field(
                field, f"{image.filename or 'file'} exceeds the {limit_mb:.0f}MB limit"
            )

        try:
            with Image.open(io.BytesIO(image.content)) as img:
                img.verify()
                image_format = img.format
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise ValidationError.for_field(field, f"{image.filename or 'file'} is not a valid image")

        return _FORMAT_EXTENSIONS.get(image_format or "", mimetypes.guess_extension(image.content_type or "") or ".img")

    async def upload_batch(
        self,
        images: list[ImagePayload],
        folder: str,
        field: str = "images",
    ) -> list[str]:
        """Validate and upload every image, preserving order.

        Returns:
            URLs in the same order as ``images`` (empty list for no images).

        Raises:
            ValidationError: any payload is not an acceptable image
            MediaUploadError: the media host is unconfigured or any upload failed
        """
        if not images:
            return []

        extensions = [self.validate(image, field) for image in images]

        settings = get_settings()
        if not settings.media_bucket or not settings.media_cdn_domain:
            logger.error("media_upload_unconfigured", reason="no_bucket_or_domain")
            raise MediaUploadError("Image uploads are not configured")

        keys = [
            f"{settings.media_folder_prefix}/{folder}/{uuid.uuid4().hex}{ext}"
            for ext in extensions
        ]
        results = await asyncio.gather(
            *(self._put(key, image) for key, image in zip(keys, images)),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            uploaded = [r.key for r in results if isinstance(r, UploadedImage)]
            logger.warning(
                "media_batch_failed",
                folder=folder,
                failed=len(failures),
                uploaded=len(uploaded),
                error=str(failures[0]),
                error_type=type(failures[0]).__name__,
            )
            await self._discard(uploaded)
            raise MediaUploadError()

        logger.info("media_batch_uploaded", folder=folder, count=len(results))
        return [r.url for r in results]

    async def _put(self, key: str, image: ImagePayload) -> UploadedImage:
        settings = get_settings()
        content_type = image.content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
        await asyncio.to_thread(
            self._client().put_object,
            Bucket=settings.media_bucket,
            Key=key,
            Body=image.content,
            ContentType=content_type,
        )
        return UploadedImage(key=key, url=f"https://{settings.media_cdn_domain}/{key}")

    async def discard_urls(self, urls: list[str]) -> None:
        """Remove objects uploaded for a write that did not commit."""
        prefix = f"https://{get_settings().media_cdn_domain}/"
        keys = [url.removeprefix(prefix) for url in urls if url.startswith(prefix)]
        if keys:
            logger.info("media_orphans_discarded", count=len(keys))
        await self._discard(keys)

    async def _discard(self, keys: list[str]) -> None:
        """Best-effort removal of objects from a failed batch."""
        if not keys:
            return
        settings = get_settings()
        try:
            await asyncio.to_thread(
                self._client().delete_objects,
                Bucket=settings.media_bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except Exception as exc:
            logger.warning(
                "media_orphan_cleanup_failed",
                keys=keys,
                error=str(exc),
                error_type=type(exc).__name__,
            )


def get_media_service() -> MediaService:
    """FastAPI dependency. Override via app.dependency_overrides in tests."""
    return MediaService()
