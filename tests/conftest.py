"""Pytest configuration and fixtures."""

import io
import os
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

os.environ.setdefault("STORAGE_BACKEND", "memory")

from imagegate.services.access_tokens import AccessTokenIssuer  # noqa: E402
from imagegate.services.metadata_db import InMemoryMetadataStore  # noqa: E402
from imagegate.services.pyramid import PyramidGenerator  # noqa: E402
from imagegate.services.signing import SigningKey, load_public_key  # noqa: E402
from imagegate.services.storage import InMemoryBlobStore  # noqa: E402

FIXTURES = Path(__file__).parent / "fixtures"
CDN_DOMAIN = "cdn.test"
KEY_PAIR_ID = "K2JCJMDEHXQW5F"


def make_image_bytes(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Deterministic test picture: gradient background plus a few shapes."""
    gradient = Image.linear_gradient("L").resize((width, height))
    if mode == "RGB":
        img = Image.merge("RGB", (gradient, gradient.transpose(Image.Transpose.FLIP_LEFT_RIGHT), gradient))
    else:
        img = gradient.convert(mode)
    draw = ImageDraw.Draw(img)
    draw.rectangle((width // 8, height // 8, width // 3, height // 3), fill=200 if mode == "L" else (200, 30, 30))
    draw.ellipse((width // 2, height // 2, width - 1, height - 1), outline=10 if mode == "L" else (10, 10, 240))
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def generator(blob_store, metadata_store):
    return PyramidGenerator(blob_store, metadata_store)


@pytest.fixture(scope="session")
def private_pem() -> str:
    return (FIXTURES / "signing_key.pem").read_text()


@pytest.fixture(scope="session")
def public_key():
    return load_public_key((FIXTURES / "signing_key.pub.pem").read_text())


@pytest.fixture(scope="session")
def other_public_key():
    return load_public_key((FIXTURES / "other_key.pub.pem").read_text())


@pytest.fixture
def signing_key(private_pem):
    return SigningKey(KEY_PAIR_ID, pem=private_pem)


@pytest.fixture
def issuer(signing_key):
    return AccessTokenIssuer(signing_key, CDN_DOMAIN)


@pytest.fixture
def image_bytes():
    """Factory fixture: ``image_bytes(width, height, fmt="PNG", mode="RGB")``."""
    return make_image_bytes
