"""
Type definitions for the duplicate guard.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict


class VerdictKind(str, Enum):
    """Terminal outcome of a duplicate check."""

    UNIQUE = "unique"
    EXACT_DUPLICATE = "exact_duplicate"
    NEAR_DUPLICATE = "near_duplicate"


@dataclass
class DecodedRaster:
    """Canonical pixel matrix, row-major, after orientation and colour fixes."""

    width: int
    height: int
    channels: int
    pixels: bytes = field(repr=False)


@dataclass
class HashedImage:
    """Identity of a submitted image."""

    content_hash: str
    fingerprint: Optional[str]
    width: int
    height: int
    channels: int


@dataclass
class Submission:
    """
    One upload attempt.

    Exactly one of ``data``, ``staged_path`` or ``url`` must be set.
    ``staged_path`` points at a direct upload already written to the staging
    area; the guard removes it on every exit path.
    """

    owner_id: str
    data: Optional[bytes] = field(default=None, repr=False)
    staged_path: Optional[Path] = None
    url: Optional[str] = None
    title: Optional[str] = None
    cancel_event: Optional[threading.Event] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        sources = [s for s in (self.data, self.staged_path, self.url) if s is not None]
        if len(sources) != 1:
            raise ValueError("Submission needs exactly one of data, staged_path or url")
        if not self.owner_id:
            raise ValueError("Submission needs an owner_id")


class Verdict(BaseModel):
    """Result of running a submission through the duplicate guard."""

    model_config = ConfigDict(use_enum_values=False)

    kind: VerdictKind
    content_hash: str
    fingerprint: Optional[str] = None

    # Set for duplicates: the matched catalog entry and its owner
    matched_entry_id: Optional[str] = None
    owner_id: Optional[str] = None
    same_owner: bool = False
    distance: Optional[int] = None  # Hamming distance for near duplicates

    # Set when submit() persisted a unique image
    entry_id: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.kind != VerdictKind.UNIQUE
