"""
Catalog database using SQLAlchemy ORM.

Exposes the three capabilities the duplicate guard relies on:
- point lookup by content hash (backed by a unique constraint)
- bounded scan of entries that carry a perceptual fingerprint
- insert that fails with ``ContentHashConflict`` when the hash already exists
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import ContentHashConflict
from .models import CatalogEntry

logger = logging.getLogger(__name__)


class CatalogDB:
    """
    Catalog database interface using SQLAlchemy ORM.

    Pass a session to share it with the caller (FastAPI dependencies, tests);
    otherwise use the instance as a context manager to open its own.
    """

    def __init__(self, session: Optional[Session] = None):
        """
        Initialize catalog database access.

        Args:
            session: Optional SQLAlchemy session (for dependency injection)
        """
        self.session = session
        self._context_manager = None

    def __enter__(self) -> "CatalogDB":
        """Context manager entry."""
        if self.session is None:
            from .connection import get_db_context

            self._context_manager = get_db_context()
            self.session = self._context_manager.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        if self._context_manager:
            self._context_manager.__exit__(exc_type, exc_val, exc_tb)
            self._context_manager = None
            self.session = None

    @property
    def _session(self) -> Session:
        if self.session is None:
            raise RuntimeError("CatalogDB has no session; use it as a context manager")
        return self.session

    # Queries

    def get_entry(self, entry_id: str) -> Optional[CatalogEntry]:
        return self._session.get(CatalogEntry, entry_id)

    def find_by_content_hash(self, content_hash: str) -> Optional[CatalogEntry]:
        """Point lookup on the unique content hash."""
        return (
            self._session.query(CatalogEntry)
            .filter(CatalogEntry.content_hash == content_hash)
            .one_or_none()
        )

    def list_fingerprinted(self, limit: int) -> List[CatalogEntry]:
        """
        Return up to ``limit`` entries that have a fingerprint, newest first.

        Args:
            limit: Maximum number of candidates (the corpus cap)
        """
        return (
            self._session.query(CatalogEntry)
            .filter(CatalogEntry.fingerprint.isnot(None))
            .order_by(CatalogEntry.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_by_owner(self, owner_id: str) -> List[CatalogEntry]:
        return (
            self._session.query(CatalogEntry)
            .filter(CatalogEntry.owner_id == owner_id)
            .order_by(CatalogEntry.created_at.desc())
            .all()
        )

    def count(self) -> int:
        return self._session.query(CatalogEntry).count()

    # Mutations

    def insert_entry(
        self,
        content_hash: str,
        owner_id: str,
        fingerprint: Optional[str] = None,
        title: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        source_url: Optional[str] = None,
    ) -> CatalogEntry:
        """
        Insert and commit a new catalog entry.

        Raises:
            ContentHashConflict: If an entry with ``content_hash`` already
                exists (enforced by the database, not by a prior read)
        """
        entry = CatalogEntry(
            content_hash=content_hash,
            owner_id=owner_id,
            fingerprint=fingerprint,
            title=title,
            width=width,
            height=height,
            source_url=source_url,
        )
        self._session.add(entry)
        try:
            self._session.commit()
        except IntegrityError as e:
            self._session.rollback()
            if self.find_by_content_hash(content_hash) is not None:
                raise ContentHashConflict(content_hash) from e
            raise

        logger.info(f"Inserted catalog entry {entry.id} for owner {owner_id}")
        return entry

    def delete_entry(self, entry_id: str) -> bool:
        """
        Delete an entry.

        Returns:
            True if the entry existed and was removed
        """
        entry = self.get_entry(entry_id)
        if entry is None:
            return False

        self._session.delete(entry)
        self._session.commit()
        logger.info(f"Deleted catalog entry {entry_id}")
        return True

    def entries_missing_fingerprint(self, limit: Optional[int] = None) -> List[CatalogEntry]:
        query = (
            self._session.query(CatalogEntry)
            .filter(CatalogEntry.fingerprint.is_(None))
            .order_by(CatalogEntry.created_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def backfill_fingerprints(
        self,
        load_bytes: Callable[[CatalogEntry], Optional[bytes]],
        compute: Callable[[bytes], Optional[str]],
        limit: Optional[int] = None,
    ) -> Dict[str, int]:
        """
        Compute fingerprints for entries stored before they were tracked.

        Args:
            load_bytes: Returns the stored image bytes for an entry, or None
                if the file is gone
            compute: Fingerprint function (normally ``dhash_bytes``)
            limit: Maximum number of entries to process

        Returns:
            Counts of ``updated``, ``missing`` (no bytes) and ``failed``
            (bytes present but no fingerprint)
        """
        stats = {"updated": 0, "missing": 0, "failed": 0}

        for entry in self.entries_missing_fingerprint(limit):
            data = load_bytes(entry)
            if data is None:
                logger.warning(f"No stored image for entry {entry.id}")
                stats["missing"] += 1
                continue

            fingerprint = compute(data)
            if fingerprint is None:
                stats["failed"] += 1
                continue

            entry.fingerprint = fingerprint
            stats["updated"] += 1

        self._session.commit()
        logger.info(
            f"Fingerprint backfill: {stats['updated']} updated, "
            f"{stats['missing']} missing, {stats['failed']} failed"
        )
        return stats
