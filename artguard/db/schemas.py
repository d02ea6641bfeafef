"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CatalogEntryResponse(BaseModel):
    """Schema for catalog entry API responses."""

    id: str
    owner_id: str
    title: Optional[str] = None
    content_hash: str
    fingerprint: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    source_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DuplicateResponse(BaseModel):
    """Body returned when a submission is rejected as a duplicate."""

    verdict: str
    message: str
    same_owner: bool
    matched_entry_id: Optional[str] = None
    distance: Optional[int] = Field(
        default=None, description="Hamming distance for near duplicates"
    )


class ErrorResponse(BaseModel):
    """Body returned for fetch and decode failures."""

    error: str
    message: str
    status_code: Optional[int] = None
