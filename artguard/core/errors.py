"""
Failure taxonomy for the upload pipeline.

Transport failures (``FetchError`` and subclasses) are recoverable by the
caller retrying or switching to a direct upload. ``DecodeError`` means the
payload itself is unusable. Duplicate conflicts are not exceptions; they are
returned as verdicts (see ``artguard.core.types.Verdict``).
"""

from typing import Optional


class ArtGuardError(Exception):
    """Base class for all artguard failures."""

    kind = "error"
    retryable = False

    def __init__(self, message: str = "") -> None:
        self.message = message or (self.__doc__ or self.kind).strip()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


# Transport errors


class FetchError(ArtGuardError):
    """Remote image could not be retrieved."""

    kind = "fetch_error"
    retryable = True

    def __init__(self, message: str = "", url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class InvalidUrl(FetchError):
    """URL is malformed or uses an unsupported scheme."""

    kind = "invalid_url"
    retryable = False


class FetchTimeout(FetchError):
    """Remote transfer did not complete within the time limit."""

    kind = "fetch_timeout"


class FetchTooLarge(FetchError):
    """Remote image exceeds the maximum allowed size."""

    kind = "fetch_too_large"

    def __init__(
        self, message: str = "", url: Optional[str] = None, limit: int = 0
    ) -> None:
        super().__init__(message, url)
        self.limit = limit


class FetchHttpError(FetchError):
    """Remote server answered with a non-success status."""

    kind = "fetch_http_error"

    def __init__(
        self, message: str = "", url: Optional[str] = None, status_code: int = 0
    ) -> None:
        super().__init__(message, url)
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class FetchNetworkError(FetchError):
    """Network failure while talking to the remote server."""

    kind = "fetch_network_error"


class TooManyRedirects(FetchError):
    """Redirect chain is longer than allowed."""

    kind = "too_many_redirects"


class FetchCancelled(FetchError):
    """Submission was abandoned while the transfer was in progress."""

    kind = "fetch_cancelled"


# Payload errors


class DecodeError(ArtGuardError):
    """Image is corrupt or in an unsupported format."""

    kind = "decode_error"


class ProcessingError(ArtGuardError):
    """Unexpected internal failure while processing an image."""

    kind = "processing_error"


# Storage


class ContentHashConflict(ArtGuardError):
    """Catalog already holds an entry with this content hash."""

    kind = "content_hash_conflict"

    def __init__(self, content_hash: str) -> None:
        super().__init__(f"Content hash already exists: {content_hash}")
        self.content_hash = content_hash


class UploadTooLarge(ArtGuardError):
    """Uploaded file exceeds the maximum allowed size."""

    kind = "upload_too_large"

    def __init__(self, message: str = "", limit: int = 0) -> None:
        super().__init__(message)
        self.limit = limit
