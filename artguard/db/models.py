"""SQLAlchemy ORM models for the artwork catalog."""

import uuid as uuid_module
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid_module.uuid4())


class CatalogEntry(Base):
    """A published artwork image, identified by its content hash."""

    __tablename__ = "catalog_entries"

    id = Column(String(36), primary_key=True, default=_new_id)
    owner_id = Column(String(255), nullable=False)  # Uploading identity
    title = Column(Text)

    # Image identity
    content_hash = Column(String(64), nullable=False)  # SHA-256 of decoded pixels
    fingerprint = Column(String(16))  # dHash; NULL when it could not be computed

    width = Column(Integer)
    height = Column(Integer)
    source_url = Column(Text)  # Set when the image was fetched from a URL

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # Closes the check-then-insert race for exact duplicates
        UniqueConstraint("content_hash", name="unique_content_hash"),
        Index("idx_catalog_entries_fingerprint", "fingerprint"),
        Index("idx_catalog_entries_owner_created", "owner_id", "created_at"),
        Index("idx_catalog_entries_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CatalogEntry(id={self.id}, owner={self.owner_id}, hash={self.content_hash[:12]})>"
