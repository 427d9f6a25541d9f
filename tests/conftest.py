"""Shared test fixtures for all test groups."""

import io

import pytest
from PIL import Image


def make_png(color: str = "red", size: tuple[int, int] = (4, 4)) -> bytes:
    """Encode a tiny real PNG so Pillow validation passes."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are lru_cached; env changes made by a test must not leak."""
    from devhance.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
