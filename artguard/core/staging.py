"""
Staging area for direct uploads.

Uploaded bodies are streamed to a private temporary file under a size cap
before the duplicate guard reads them. Staged files never outlive the
submission: the guard discards them on every exit path.
"""

import io
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Generator, Optional

from ..config import DedupSettings
from ..config import settings as default_settings
from ..shared import format_bytes, safe_filename
from .errors import UploadTooLarge

logger = logging.getLogger(__name__)


class StagingArea:
    """Writes uploads to temporary files with a byte ceiling."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        max_bytes: Optional[int] = None,
        chunk_size: Optional[int] = None,
        settings: Optional[DedupSettings] = None,
    ):
        cfg = settings or default_settings
        self.directory = Path(directory or cfg.staging_dir)
        self.max_bytes = max_bytes if max_bytes is not None else cfg.fetch_max_bytes
        self.chunk_size = chunk_size or cfg.fetch_chunk_size

    def stage_stream(self, stream: BinaryIO, filename: str = "") -> Path:
        """
        Copy ``stream`` into a new staged file.

        Args:
            stream: Readable binary stream (e.g. an UploadFile's file)
            filename: Original client filename, used only for naming

        Returns:
            Path of the staged file

        Raises:
            UploadTooLarge: If the stream exceeds ``max_bytes``; the partial
                file is removed first
        """
        self.directory.mkdir(parents=True, exist_ok=True)

        base, ext = os.path.splitext(filename)
        fd, name = tempfile.mkstemp(
            prefix=f"{safe_filename(base)}-",
            suffix=ext.lower()[:10],
            dir=self.directory,
        )
        path = Path(name)

        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                for chunk in iter(lambda: stream.read(self.chunk_size), b""):
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise UploadTooLarge(
                            f"Upload exceeds maximum size of {format_bytes(self.max_bytes)}",
                            limit=self.max_bytes,
                        )
                    out.write(chunk)
        except BaseException:
            self.discard(path)
            raise

        logger.debug(f"Staged {format_bytes(written)} upload at {path}")
        return path

    def stage_bytes(self, data: bytes, filename: str = "") -> Path:
        """Stage an in-memory body."""
        return self.stage_stream(io.BytesIO(data), filename)

    @contextmanager
    def staged(self, stream: BinaryIO, filename: str = "") -> Generator[Path, None, None]:
        """Stage ``stream`` for the duration of a with-block."""
        path = self.stage_stream(stream, filename)
        try:
            yield path
        finally:
            self.discard(path)

    @staticmethod
    def discard(path: Optional[Path]) -> None:
        """Remove a staged file if it still exists."""
        if path is None:
            return
        try:
            Path(path).unlink(missing_ok=True)
            logger.debug(f"Removed staged file {path}")
        except OSError as e:
            logger.warning(f"Could not remove staged file {path}: {e}")
