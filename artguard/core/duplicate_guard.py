"""
Duplicate guard.

Runs one submission through the publish pipeline:

    Received -> Acquired -> Hashed -> ExactChecked -> NearChecked -> Persisted | Rejected

1. Acquire bytes from the request body, a staged upload or a remote URL
2. Hash: content hash (hard failure) and dHash fingerprint (soft failure)
3. Exact check against the catalog's unique content hash
4. Near check: bounded scan of fingerprinted entries, first match wins
5. Persist; a unique-constraint conflict on insert means another upload of
   the same image won the race and is reported as an exact duplicate

Near-duplicate exclusion is not race-safe: two similar but byte-distinct
uploads arriving together can both be published.
"""

import logging
import threading
from enum import Enum
from typing import Optional

from ..analysis.content_hash import decode_image, hash_raster
from ..analysis.perceptual_hash import dhash_bytes, find_first_similar
from ..config import DedupSettings
from ..config import settings as default_settings
from ..db.catalog_db import CatalogDB
from ..db.models import CatalogEntry
from ..fetch.remote import RemoteFetcher
from ..shared import compute_checksum, format_bytes
from .errors import ArtGuardError, ContentHashConflict, FetchCancelled, ProcessingError
from .staging import StagingArea
from .types import HashedImage, Submission, Verdict, VerdictKind

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    """Pipeline stages a submission passes through."""

    RECEIVED = "received"
    ACQUIRED = "acquired"
    HASHED = "hashed"
    EXACT_CHECKED = "exact_checked"
    NEAR_CHECKED = "near_checked"
    PERSISTED = "persisted"
    REJECTED = "rejected"


class DuplicateGuard:
    """Decide whether a submitted image may be published."""

    def __init__(
        self,
        catalog: CatalogDB,
        fetcher: Optional[RemoteFetcher] = None,
        similarity_threshold: Optional[int] = None,
        corpus_cap: Optional[int] = None,
        settings: Optional[DedupSettings] = None,
    ):
        """
        Initialize the guard.

        Args:
            catalog: Catalog to query and insert into
            fetcher: Remote fetcher for URL submissions (created on demand)
            similarity_threshold: Max Hamming distance for a near duplicate
            corpus_cap: Max fingerprinted entries scanned per check
            settings: Settings to read defaults from
        """
        self.settings = settings or default_settings
        self.catalog = catalog
        self._fetcher = fetcher
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else self.settings.similarity_threshold
        )
        self.corpus_cap = corpus_cap if corpus_cap is not None else self.settings.corpus_cap

    @property
    def fetcher(self) -> RemoteFetcher:
        if self._fetcher is None:
            self._fetcher = RemoteFetcher(settings=self.settings)
        return self._fetcher

    # Public API

    def check(self, submission: Submission) -> Verdict:
        """Classify a submission without persisting it."""
        return self._run(submission, persist=False)

    def submit(self, submission: Submission) -> Verdict:
        """Classify a submission and persist it when unique."""
        return self._run(submission, persist=True)

    def hash_image(self, data: bytes) -> HashedImage:
        """
        Compute the identity of image bytes.

        Raises:
            DecodeError: If the bytes cannot be decoded
        """
        raster = decode_image(data)
        content = hash_raster(raster)
        fingerprint = dhash_bytes(data)
        if fingerprint is None:
            logger.warning(f"No fingerprint for {content[:12]}; near-duplicate check skipped")

        return HashedImage(
            content_hash=content,
            fingerprint=fingerprint,
            width=raster.width,
            height=raster.height,
            channels=raster.channels,
        )

    # Pipeline

    def _run(self, submission: Submission, persist: bool) -> Verdict:
        self._trace(submission, GuardState.RECEIVED)
        try:
            data = self._acquire(submission)
            self._trace(submission, GuardState.ACQUIRED, format_bytes(len(data)))

            hashed = self._hash(data)
            self._trace(submission, GuardState.HASHED, hashed.content_hash[:12])

            verdict = self._check_exact(submission, hashed)
            self._trace(submission, GuardState.EXACT_CHECKED)

            if verdict is None and hashed.fingerprint is not None:
                verdict = self._check_near(submission, hashed)
                self._trace(submission, GuardState.NEAR_CHECKED)

            if verdict is not None:
                self._trace(submission, GuardState.REJECTED, verdict.kind.value)
                logger.info(
                    f"Rejected upload from {submission.owner_id}: {verdict.kind.value} "
                    f"of entry {verdict.matched_entry_id}"
                )
                return verdict

            if not persist:
                return self._unique(hashed)

            return self._persist(submission, hashed)
        finally:
            if submission.staged_path is not None:
                StagingArea.discard(submission.staged_path)

    def _acquire(self, submission: Submission) -> bytes:
        self._check_cancelled(submission)

        if submission.data is not None:
            return submission.data

        if submission.staged_path is not None:
            try:
                return submission.staged_path.read_bytes()
            except OSError as e:
                logger.error(f"Cannot read staged upload {submission.staged_path}: {e}")
                raise ProcessingError("Staged upload is not readable") from e

        result = self.fetcher.fetch(submission.url, cancel_event=submission.cancel_event)
        return result.data

    def _hash(self, data: bytes) -> HashedImage:
        try:
            return self.hash_image(data)
        except ArtGuardError:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error hashing payload {compute_checksum(data)[:12]}: {e}"
            )
            raise ProcessingError("Unexpected error while processing the image") from e

    def _check_exact(self, submission: Submission, hashed: HashedImage) -> Optional[Verdict]:
        existing = self.catalog.find_by_content_hash(hashed.content_hash)
        if existing is None:
            return None
        return self._duplicate(VerdictKind.EXACT_DUPLICATE, submission, hashed, existing)

    def _check_near(self, submission: Submission, hashed: HashedImage) -> Optional[Verdict]:
        corpus = self.catalog.list_fingerprinted(self.corpus_cap)
        logger.debug(f"Scanning {len(corpus)} fingerprinted entries (cap {self.corpus_cap})")

        match = find_first_similar(
            hashed.fingerprint,
            ((entry, entry.fingerprint) for entry in corpus),
            threshold=self.similarity_threshold,
        )
        if match is None:
            return None

        entry, distance = match
        return self._duplicate(
            VerdictKind.NEAR_DUPLICATE, submission, hashed, entry, distance=distance
        )

    def _persist(self, submission: Submission, hashed: HashedImage) -> Verdict:
        # Last point at which an abandoned submission can be dropped cleanly
        self._check_cancelled(submission)

        try:
            entry = self.catalog.insert_entry(
                content_hash=hashed.content_hash,
                owner_id=submission.owner_id,
                fingerprint=hashed.fingerprint,
                title=submission.title,
                width=hashed.width,
                height=hashed.height,
                source_url=submission.url,
            )
        except ContentHashConflict:
            logger.warning(
                f"Concurrent upload of {hashed.content_hash[:12]} won the insert; "
                "reporting exact duplicate"
            )
            winner = self.catalog.find_by_content_hash(hashed.content_hash)
            return self._duplicate(VerdictKind.EXACT_DUPLICATE, submission, hashed, winner)

        self._trace(submission, GuardState.PERSISTED, entry.id)
        return self._unique(hashed, entry_id=entry.id)

    # Helpers

    @staticmethod
    def _unique(hashed: HashedImage, entry_id: Optional[str] = None) -> Verdict:
        return Verdict(
            kind=VerdictKind.UNIQUE,
            content_hash=hashed.content_hash,
            fingerprint=hashed.fingerprint,
            entry_id=entry_id,
        )

    @staticmethod
    def _duplicate(
        kind: VerdictKind,
        submission: Submission,
        hashed: HashedImage,
        entry: Optional[CatalogEntry],
        distance: Optional[int] = None,
    ) -> Verdict:
        owner_id = entry.owner_id if entry is not None else None
        return Verdict(
            kind=kind,
            content_hash=hashed.content_hash,
            fingerprint=hashed.fingerprint,
            matched_entry_id=entry.id if entry is not None else None,
            owner_id=owner_id,
            same_owner=owner_id == submission.owner_id,
            distance=distance,
        )

    @staticmethod
    def _check_cancelled(submission: Submission) -> None:
        event: Optional[threading.Event] = submission.cancel_event
        if event is not None and event.is_set():
            raise FetchCancelled("Submission was abandoned", url=submission.url)

    @staticmethod
    def _trace(submission: Submission, state: GuardState, detail: str = "") -> None:
        logger.debug(f"[{submission.owner_id}] {state.value} {detail}".rstrip())
