"""SQLAlchemy database models."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, LargeBinary, String
from sqlalchemy.orm import declarative_base

# Create the declarative base
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Image(Base):
    """Metadata record of an original image.

    The image identifier is the MD5 hex digest of the original bytes, so
    identical uploads within an account share one row.
    """
    __tablename__ = "images"

    account_id = Column(String(255), primary_key=True, nullable=False)
    image_identifier = Column(String(64), primary_key=True, nullable=False)

    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    mime_type = Column(String(64), nullable=False)
    checksum = Column(String(64), nullable=False)
    size = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # "metadata" is reserved by the declarative base
    image_metadata = Column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return (
            f"<Image(account_id={self.account_id}, "
            f"image_identifier={self.image_identifier[:8]}..., "
            f"size={self.width}x{self.height})>"
        )


class OriginalBlob(Base):
    """Raw bytes of an original image, used by the database image store."""
    __tablename__ = "original_blobs"

    account_id = Column(String(255), primary_key=True, nullable=False)
    image_identifier = Column(String(64), primary_key=True, nullable=False)
    data = Column(LargeBinary, nullable=False)


class VariationBlob(Base):
    """A rendered variation, keyed by the width it was rendered at."""
    __tablename__ = "image_variations"

    account_id = Column(String(255), primary_key=True, nullable=False)
    image_identifier = Column(String(64), primary_key=True, nullable=False, index=True)
    width = Column(Integer, primary_key=True, nullable=False)
    data = Column(LargeBinary, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<VariationBlob(account_id={self.account_id}, "
            f"image_identifier={self.image_identifier[:8]}..., width={self.width})>"
        )
