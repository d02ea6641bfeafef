"""
Pytest configuration and fixtures for artguard tests.

Catalog tests run against an in-memory SQLite database shared across threads
(StaticPool), so the API tests see the same data as the fixtures.
"""

import io
from pathlib import Path
from typing import Callable, Generator

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from artguard.config import DedupSettings
from artguard.db import Base, CatalogDB

# ==============================================================================
# Database fixtures
# ==============================================================================


@pytest.fixture
def engine():
    """Provide a fresh in-memory database engine per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the test engine."""
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestSession()
    yield session
    session.close()


@pytest.fixture
def catalog(db_session: Session) -> CatalogDB:
    """CatalogDB with the injected test session."""
    return CatalogDB(db_session)


@pytest.fixture
def dedup_settings(tmp_path: Path) -> DedupSettings:
    """Settings with defaults and a per-test staging directory."""
    return DedupSettings(staging_dir=tmp_path / "staging")


# ==============================================================================
# Image fixtures
# ==============================================================================


def gradient_image(
    width: int = 64, height: int = 64, direction: str = "right", mode: str = "RGB"
) -> Image.Image:
    """
    Create a horizontal grey gradient.

    ``direction="right"`` gets brighter to the right (dHash all zeros),
    ``direction="left"`` gets darker to the right (dHash all ones).
    """
    img = Image.new("L", (width, height))
    for x in range(width):
        value = x * 255 // (width - 1)
        if direction == "left":
            value = 255 - value
        for y in range(height):
            img.putpixel((x, y), value)
    return img.convert(mode)


def encode(img: Image.Image, fmt: str = "PNG", **params) -> bytes:
    """Encode a PIL image to bytes."""
    buffer = io.BytesIO()
    img.save(buffer, fmt, **params)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory returning encoded gradient image bytes."""

    def _make(
        width: int = 64,
        height: int = 64,
        direction: str = "right",
        fmt: str = "PNG",
        mode: str = "RGB",
    ) -> bytes:
        return encode(gradient_image(width, height, direction, mode), fmt)

    return _make


@pytest.fixture
def png_bytes(make_image) -> bytes:
    """A 64x64 left-to-right gradient PNG."""
    return make_image()


@pytest.fixture
def sample_image(tmp_path: Path, png_bytes: bytes) -> Path:
    """The gradient PNG written to disk."""
    image_path = tmp_path / "artwork.png"
    image_path.write_bytes(png_bytes)
    return image_path
