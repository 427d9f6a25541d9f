"""Tests for MediaService.

Coverage:
- validate: empty, oversized, non-image payloads -> ValidationError on the field
- upload_batch: keys under <prefix>/<folder>/, CDN URLs in input order
- upload_batch: one failed put -> already uploaded objects deleted, MediaUploadError
- upload_batch: unconfigured bucket -> MediaUploadError before any put
- discard_urls: CDN URLs mapped back to keys and deleted, foreign URLs ignored
"""

from unittest.mock import MagicMock

import pytest

from devhance.core.config import get_settings
from devhance.core.exceptions import MediaUploadError, ValidationError
from devhance.services.media_service import PROJECT_FOLDER, ImagePayload, MediaService
from tests.conftest import make_png

pytestmark = pytest.mark.unit


@pytest.fixture
def media_env(monkeypatch):
    monkeypatch.setenv("MEDIA_BUCKET", "devhance-test")
    monkeypatch.setenv("MEDIA_CDN_DOMAIN", "cdn.devhance.test")
    monkeypatch.setenv("MEDIA_FOLDER_PREFIX", "devhance")
    get_settings.cache_clear()


def _image(name: str = "a.png", content: bytes | None = None) -> ImagePayload:
    return ImagePayload(filename=name, content=make_png() if content is None else content, content_type="image/png")


class TestValidate:
    def test_png_accepted(self):
        assert MediaService(s3_client=MagicMock()).validate(_image(), "images") == ".png"

    def test_empty_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            MediaService(s3_client=MagicMock()).validate(_image(content=b""), "images")
        assert exc_info.value.errors[0]["field"] == "images"

    def test_non_image_rejected(self):
        with pytest.raises(ValidationError, match="not a valid image"):
            MediaService(s3_client=MagicMock()).validate(_image("x.txt", b"plain text"), "image")

    def test_oversized_rejected(self, monkeypatch):
        monkeypatch.setenv("MAX_UPLOAD_BYTES", "10")
        get_settings.cache_clear()

        with pytest.raises(ValidationError, match="exceeds"):
            MediaService(s3_client=MagicMock()).validate(_image(), "images")


class TestUploadBatch:
    async def test_empty_batch_is_noop(self):
        s3 = MagicMock()

        assert await MediaService(s3_client=s3).upload_batch([], PROJECT_FOLDER) == []
        s3.put_object.assert_not_called()

    async def test_uploads_in_order(self, media_env):
        s3 = MagicMock()

        urls = await MediaService(s3_client=s3).upload_batch([_image("a.png"), _image("b.png")], PROJECT_FOLDER)

        assert len(urls) == 2
        keys = [call.kwargs["Key"] for call in s3.put_object.call_args_list]
        assert all(key.startswith("devhance/projects/") and key.endswith(".png") for key in keys)
        assert sorted(urls) == sorted(f"https://cdn.devhance.test/{key}" for key in keys)
        assert all(call.kwargs["Bucket"] == "devhance-test" for call in s3.put_object.call_args_list)

    async def test_partial_failure_discards_uploaded(self, media_env):
        s3 = MagicMock()
        s3.put_object.side_effect = [{}, RuntimeError("S3 unavailable")]

        with pytest.raises(MediaUploadError):
            await MediaService(s3_client=s3).upload_batch([_image("a.png"), _image("b.png")], PROJECT_FOLDER)

        s3.delete_objects.assert_called_once()
        deleted = s3.delete_objects.call_args.kwargs["Delete"]["Objects"]
        assert len(deleted) == 1

    async def test_cleanup_failure_still_raises_upload_error(self, media_env):
        s3 = MagicMock()
        s3.put_object.side_effect = [{}, RuntimeError("boom")]
        s3.delete_objects.side_effect = RuntimeError("cleanup failed")

        with pytest.raises(MediaUploadError):
            await MediaService(s3_client=s3).upload_batch([_image("a.png"), _image("b.png")], PROJECT_FOLDER)

    async def test_invalid_payload_uploads_nothing(self, media_env):
        s3 = MagicMock()

        with pytest.raises(ValidationError):
            await MediaService(s3_client=s3).upload_batch([_image(), _image("bad.txt", b"nope")], PROJECT_FOLDER)

        s3.put_object.assert_not_called()

    async def test_unconfigured_bucket(self, monkeypatch):
        monkeypatch.setenv("MEDIA_BUCKET", "")
        get_settings.cache_clear()
        s3 = MagicMock()

        with pytest.raises(MediaUploadError, match="not configured"):
            await MediaService(s3_client=s3).upload_batch([_image()], PROJECT_FOLDER)
        s3.put_object.assert_not_called()


class TestDiscardUrls:
    async def test_cdn_urls_deleted_by_key(self, media_env):
        s3 = MagicMock()

        await MediaService(s3_client=s3).discard_urls(
            ["https://cdn.devhance.test/devhance/profiles/abc.png", "https://elsewhere.test/x.png"]
        )

        s3.delete_objects.assert_called_once()
        deleted = s3.delete_objects.call_args.kwargs["Delete"]["Objects"]
        assert deleted == [{"Key": "devhance/profiles/abc.png"}]

    async def test_nothing_to_discard(self, media_env):
        s3 = MagicMock()

        await MediaService(s3_client=s3).discard_urls([])

        s3.delete_objects.assert_not_called()
