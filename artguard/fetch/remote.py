"""
Remote image fetcher.

Streams an image from a caller-supplied URL with hard limits:
- Size ceiling: the transfer is aborted as soon as the accumulated body
  exceeds ``max_bytes`` (nothing is kept)
- Redirect bound: 3xx hops are followed manually up to ``max_redirects``
- Wall-clock deadline: covers the whole redirect chain, not just each read;
  a watchdog thread breaks body reads that a trickling server keeps alive

Nothing is written to disk; the body is returned in memory.
"""

import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlsplit

import requests
from urllib3.exceptions import ReadTimeoutError

from ..config import DedupSettings
from ..config import settings as default_settings
from ..core.errors import (
    FetchCancelled,
    FetchError,
    FetchHttpError,
    FetchNetworkError,
    FetchTimeout,
    FetchTooLarge,
    InvalidUrl,
    TooManyRedirects,
)
from ..shared import format_bytes
from ..version import __version__

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = {301, 302, 303, 307, 308}
USER_AGENT = f"artguard/{__version__}"

# How often the watchdog checks the deadline and the cancel event (seconds)
WATCHDOG_INTERVAL = 0.05


@dataclass
class FetchResult:
    """Bytes retrieved from a remote source."""

    data: bytes = field(repr=False)
    final_url: str
    content_type: Optional[str] = None
    redirects: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


class _Watchdog:
    """
    Breaks a blocked body read once the deadline passes or the submission is
    cancelled.

    Socket timeouts apply per read, so a server that trickles bytes never
    trips them. The watchdog shuts the socket down from its own thread, which
    wakes the reader with end-of-stream.
    """

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    def __init__(
        self,
        response: requests.Response,
        deadline: float,
        cancel_event: Optional[threading.Event],
        interval: float = WATCHDOG_INTERVAL,
    ):
        self.response = response
        self.deadline = deadline
        self.cancel_event = cancel_event
        self.interval = interval
        self.reason: Optional[str] = None
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._watch, name="artguard-fetch-watchdog", daemon=True
        )

    def __enter__(self) -> "_Watchdog":
        self._thread.start()
        return self

    def __exit__(self, *exc) -> None:
        self._stopped.set()
        self._thread.join()

    def _watch(self) -> None:
        while not self._stopped.wait(self.interval):
            if self.cancel_event is not None and self.cancel_event.is_set():
                self.reason = self.CANCELLED
            elif time.monotonic() >= self.deadline:
                self.reason = self.TIMEOUT
            else:
                continue

            logger.warning(f"Aborting fetch of {self.response.url}: {self.reason}")
            self._abort()
            return

    def _abort(self) -> None:
        connection = getattr(self.response.raw, "connection", None)
        sock = getattr(connection, "sock", None)
        if sock is None:
            self.response.close()
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # Already closed by the peer
            logger.debug(f"Socket shutdown failed: {e}")


def validate_url(url: str) -> str:
    """
    Check that ``url`` is an absolute http(s) URL.

    Raises:
        InvalidUrl: If the URL is malformed or uses another scheme
    """
    if not url or not isinstance(url, str):
        raise InvalidUrl("No URL given", url=url)

    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        raise InvalidUrl(f"Malformed URL: {e}", url=url) from e

    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidUrl(f"Unsupported URL scheme: {parts.scheme or '(none)'}", url=url)
    if not parts.hostname:
        raise InvalidUrl("URL has no host", url=url)

    return url.strip()


class RemoteFetcher:
    """Fetch image bytes from remote URLs under size, redirect and time limits."""

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        max_redirects: Optional[int] = None,
        timeout: Optional[float] = None,
        chunk_size: Optional[int] = None,
        session: Optional[requests.Session] = None,
        settings: Optional[DedupSettings] = None,
    ):
        """
        Initialize fetcher.

        Args:
            max_bytes: Size ceiling in bytes (default from settings, 5 MiB)
            max_redirects: Maximum redirect hops (default from settings, 3)
            timeout: Wall-clock budget in seconds (default from settings, 10)
            chunk_size: Streaming chunk size in bytes
            session: Optional requests session (for connection reuse or tests)
            settings: Settings to read defaults from
        """
        cfg = settings or default_settings
        self.max_bytes = max_bytes if max_bytes is not None else cfg.fetch_max_bytes
        self.max_redirects = (
            max_redirects if max_redirects is not None else cfg.fetch_max_redirects
        )
        self.timeout = timeout if timeout is not None else cfg.fetch_timeout
        self.chunk_size = chunk_size or cfg.fetch_chunk_size
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    def fetch(
        self, url: str, cancel_event: Optional[threading.Event] = None
    ) -> FetchResult:
        """
        Retrieve the body at ``url``.

        Args:
            url: Absolute http(s) URL
            cancel_event: Set by the caller to abandon the transfer

        Returns:
            FetchResult with the body bytes

        Raises:
            InvalidUrl, FetchTimeout, FetchTooLarge, FetchHttpError,
            FetchNetworkError, TooManyRedirects, FetchCancelled
        """
        current_url = validate_url(url)
        deadline = time.monotonic() + self.timeout
        redirects = 0

        while True:
            self._check_cancelled(cancel_event, current_url)
            response = self._request(current_url, deadline)
            try:
                if response.status_code in REDIRECT_STATUSES:
                    location = response.headers.get("Location")
                    if not location:
                        raise FetchHttpError(
                            f"Redirect ({response.status_code}) without Location header",
                            url=current_url,
                            status_code=response.status_code,
                        )
                    redirects += 1
                    if redirects > self.max_redirects:
                        raise TooManyRedirects(
                            f"More than {self.max_redirects} redirects", url=url
                        )
                    next_url = validate_url(urljoin(current_url, location))
                    logger.debug(f"Redirect {redirects}: {current_url} -> {next_url}")
                    current_url = next_url
                    continue

                if not 200 <= response.status_code < 300:
                    raise FetchHttpError(
                        f"Remote server returned HTTP {response.status_code}",
                        url=current_url,
                        status_code=response.status_code,
                    )

                data = self._read_body(response, current_url, deadline, cancel_event)
            finally:
                response.close()

            logger.debug(
                f"Fetched {format_bytes(len(data))} from {current_url} "
                f"after {redirects} redirects"
            )
            return FetchResult(
                data=data,
                final_url=current_url,
                content_type=response.headers.get("Content-Type"),
                redirects=redirects,
            )

    def _request(self, url: str, deadline: float) -> requests.Response:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeout(f"Timed out after {self.timeout}s", url=url)

        try:
            return self.session.get(
                url, stream=True, allow_redirects=False, timeout=remaining
            )
        except requests.Timeout as e:
            raise FetchTimeout(f"Timed out after {self.timeout}s", url=url) from e
        except requests.exceptions.InvalidURL as e:
            raise InvalidUrl(f"Malformed URL: {e}", url=url) from e
        except requests.RequestException as e:
            raise FetchNetworkError(f"Network error: {e}", url=url) from e

    def _read_body(
        self,
        response: requests.Response,
        url: str,
        deadline: float,
        cancel_event: Optional[threading.Event],
    ) -> bytes:
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            raise self._too_large(url)

        buffer = bytearray()
        with _Watchdog(response, deadline, cancel_event) as watchdog:
            try:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    self._check_cancelled(cancel_event, url)
                    if time.monotonic() > deadline:
                        raise FetchTimeout(f"Timed out after {self.timeout}s", url=url)
                    if not chunk:
                        continue
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        buffer.clear()
                        raise self._too_large(url)
            except (requests.RequestException, OSError, ValueError) as e:
                # A read broken by the watchdog reports why it was aborted
                if watchdog.reason is not None:
                    raise self._aborted(watchdog.reason, url) from e
                raise self._transport_error(e, url) from e

        # Close-delimited bodies end quietly when the socket is shut down
        if watchdog.reason is not None:
            raise self._aborted(watchdog.reason, url)

        return bytes(buffer)

    def _aborted(self, reason: str, url: str) -> FetchError:
        if reason == _Watchdog.CANCELLED:
            return FetchCancelled("Submission was abandoned", url=url)
        return FetchTimeout(f"Timed out after {self.timeout}s", url=url)

    def _transport_error(self, error: Exception, url: str) -> FetchError:
        if isinstance(error, requests.Timeout):
            return FetchTimeout(f"Timed out after {self.timeout}s", url=url)
        # iter_content wraps read timeouts in ConnectionError
        if (
            isinstance(error, requests.ConnectionError)
            and error.args
            and isinstance(error.args[0], ReadTimeoutError)
        ):
            return FetchTimeout(f"Timed out after {self.timeout}s", url=url)
        return FetchNetworkError(f"Network error: {error}", url=url)

    def _too_large(self, url: str) -> FetchTooLarge:
        logger.warning(f"Aborting fetch of {url}: exceeds {format_bytes(self.max_bytes)}")
        return FetchTooLarge(
            f"Image exceeds maximum size of {format_bytes(self.max_bytes)}",
            url=url,
            limit=self.max_bytes,
        )

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], url: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled("Submission was abandoned", url=url)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "RemoteFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
