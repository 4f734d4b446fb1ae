"""Shared fixtures for the test suite."""

import io

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pixelvault.models import Base


def create_test_image(
    width: int = 40,
    height: int = 20,
    format: str = "PNG",
    color: tuple = (200, 30, 30),
) -> bytes:
    """Create a small two-colored test image.

    The right half is blue so flips and crops produce visibly different
    pixels.
    """
    img = Image.new("RGB", (width, height), color=color)
    img.paste((30, 30, 200), (width // 2, 0, width, height))

    img_bytes = io.BytesIO()
    img.save(img_bytes, format=format)
    return img_bytes.getvalue()


def open_image(blob: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(blob))
    img.load()
    return img


@pytest.fixture
def png_bytes() -> bytes:
    return create_test_image()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return create_test_image(format="JPEG")


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads and sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    yield session
    session.close()
