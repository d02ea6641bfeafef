"""
Tests for the remote fetcher.

The HTTP layer is a mocked requests session; responses are built by
``make_response``.
"""

import socket
import threading
import time
from typing import Dict, Iterable, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import ReadTimeoutError

from artguard.config import DedupSettings
from artguard.core.errors import (
    FetchCancelled,
    FetchHttpError,
    FetchNetworkError,
    FetchTimeout,
    FetchTooLarge,
    InvalidUrl,
    TooManyRedirects,
)
from artguard.fetch.remote import RemoteFetcher, validate_url

MIB = 1024 * 1024
CHUNK = 64 * 1024


def make_response(
    status: int = 200,
    chunks: Optional[Iterable[bytes]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    """Build a fake streamed requests.Response."""
    response = MagicMock()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers or {})
    response.iter_content.return_value = iter(chunks if chunks is not None else [])
    return response


def redirect(location: str, status: int = 302) -> MagicMock:
    return make_response(status=status, headers={"Location": location})


def make_fetcher(*responses, **kwargs) -> RemoteFetcher:
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    return RemoteFetcher(session=session, **kwargs)


class TestValidateUrl:
    @pytest.mark.parametrize(
        "url", ["https://example.com/a.png", "http://example.com:8080/x?y=1"]
    )
    def test_accepts_http_urls(self, url: str) -> None:
        assert validate_url(url) == url

    @pytest.mark.parametrize(
        "url",
        ["", "not a url", "ftp://example.com/a.png", "file:///etc/passwd", "https://"],
    )
    def test_rejects_malformed(self, url: str) -> None:
        with pytest.raises(InvalidUrl):
            validate_url(url)


class TestFetch:
    """Tests for successful and failed transfers."""

    def test_simple_fetch(self) -> None:
        fetcher = make_fetcher(
            make_response(chunks=[b"abc", b"def"], headers={"Content-Type": "image/png"})
        )

        result = fetcher.fetch("https://example.com/art.png")

        assert result.data == b"abcdef"
        assert result.size == 6
        assert result.content_type == "image/png"
        assert result.redirects == 0
        assert result.final_url == "https://example.com/art.png"

    def test_request_is_streamed_without_auto_redirects(self) -> None:
        fetcher = make_fetcher(make_response(chunks=[b"x"]), timeout=7.0)
        fetcher.fetch("https://example.com/art.png")

        _, kwargs = fetcher.session.get.call_args
        assert kwargs["stream"] is True
        assert kwargs["allow_redirects"] is False
        assert 0 < kwargs["timeout"] <= 7.0

    def test_defaults_from_settings(self) -> None:
        fetcher = RemoteFetcher(
            session=MagicMock(),
            settings=DedupSettings(fetch_max_bytes=123, fetch_max_redirects=1, fetch_timeout=2),
        )

        assert fetcher.max_bytes == 123
        assert fetcher.max_redirects == 1
        assert fetcher.timeout == 2

    def test_builtin_defaults(self) -> None:
        fetcher = RemoteFetcher(session=MagicMock(), settings=DedupSettings())

        assert fetcher.max_bytes == 5 * MIB
        assert fetcher.max_redirects == 3
        assert fetcher.timeout == 10.0

    def test_response_closed(self) -> None:
        response = make_response(chunks=[b"x"])
        fetcher = make_fetcher(response)

        fetcher.fetch("https://example.com/art.png")

        response.close.assert_called_once()

    def test_invalid_url_makes_no_request(self) -> None:
        fetcher = make_fetcher()

        with pytest.raises(InvalidUrl):
            fetcher.fetch("ftp://example.com/a.png")

        fetcher.session.get.assert_not_called()


class TestRedirects:
    """Redirect chain handling."""

    def test_chain_within_bound(self) -> None:
        fetcher = make_fetcher(
            redirect("https://cdn.example.com/1"),
            redirect("https://cdn.example.com/2", status=301),
            make_response(chunks=[b"image"]),
            max_redirects=3,
        )

        result = fetcher.fetch("https://example.com/art.png")

        assert result.data == b"image"
        assert result.redirects == 2
        assert result.final_url == "https://cdn.example.com/2"

    def test_chain_exactly_at_bound(self) -> None:
        fetcher = make_fetcher(
            redirect("https://a.example.com/"),
            redirect("https://b.example.com/"),
            redirect("https://c.example.com/"),
            make_response(chunks=[b"ok"]),
            max_redirects=3,
        )

        assert fetcher.fetch("https://example.com/").redirects == 3

    def test_too_many_redirects(self) -> None:
        responses = [redirect(f"https://example.com/{i}") for i in range(4)]
        fetcher = make_fetcher(*responses, make_response(chunks=[b"never"]), max_redirects=3)

        with pytest.raises(TooManyRedirects):
            fetcher.fetch("https://example.com/start")

        assert fetcher.session.get.call_count == 4
        for response in responses:
            response.close.assert_called_once()

    def test_zero_redirects_allowed(self) -> None:
        fetcher = make_fetcher(redirect("https://example.com/next"), max_redirects=0)

        with pytest.raises(TooManyRedirects):
            fetcher.fetch("https://example.com/")

    def test_relative_location(self) -> None:
        fetcher = make_fetcher(
            redirect("/images/real.png"),
            make_response(chunks=[b"ok"]),
        )

        result = fetcher.fetch("https://example.com/art/old.png")

        assert result.final_url == "https://example.com/images/real.png"
        assert fetcher.session.get.call_args_list[1].args[0] == result.final_url

    def test_redirect_without_location(self) -> None:
        fetcher = make_fetcher(make_response(status=302))

        with pytest.raises(FetchHttpError) as exc_info:
            fetcher.fetch("https://example.com/")

        assert exc_info.value.status_code == 302

    def test_redirect_to_unsupported_scheme(self) -> None:
        fetcher = make_fetcher(redirect("file:///etc/passwd"))

        with pytest.raises(InvalidUrl):
            fetcher.fetch("https://example.com/")


class TestSizeLimit:
    """Byte ceiling enforcement."""

    def test_streaming_over_cap_aborts(self) -> None:
        yielded = []

        def six_mib():
            for _ in range(6 * MIB // CHUNK):
                yielded.append(1)
                yield b"\0" * CHUNK

        response = make_response(chunks=six_mib())
        fetcher = make_fetcher(response, max_bytes=5 * MIB, chunk_size=CHUNK)

        with pytest.raises(FetchTooLarge) as exc_info:
            fetcher.fetch("https://example.com/huge.png")

        # Stops on the first chunk past the cap instead of draining the body
        assert len(yielded) == 5 * MIB // CHUNK + 1
        assert exc_info.value.limit == 5 * MIB
        response.close.assert_called_once()

    def test_exactly_at_cap_is_allowed(self) -> None:
        fetcher = make_fetcher(make_response(chunks=[b"x" * 10]), max_bytes=10)
        assert fetcher.fetch("https://example.com/").size == 10

    def test_declared_length_over_cap_fails_fast(self) -> None:
        response = make_response(
            chunks=[b"x"], headers={"Content-Length": str(6 * MIB)}
        )
        fetcher = make_fetcher(response, max_bytes=5 * MIB)

        with pytest.raises(FetchTooLarge):
            fetcher.fetch("https://example.com/huge.png")

        response.iter_content.assert_not_called()

    def test_lying_content_length(self) -> None:
        response = make_response(
            chunks=[b"x" * 8, b"x" * 8], headers={"Content-Length": "4"}
        )
        fetcher = make_fetcher(response, max_bytes=10)

        with pytest.raises(FetchTooLarge):
            fetcher.fetch("https://example.com/")


class TestFailures:
    """Transport failure mapping."""

    @pytest.mark.parametrize("status", [400, 403, 404, 500, 503])
    def test_http_error_status(self, status: int) -> None:
        fetcher = make_fetcher(make_response(status=status))

        with pytest.raises(FetchHttpError) as exc_info:
            fetcher.fetch("https://example.com/art.png")

        assert exc_info.value.status_code == status
        assert exc_info.value.retryable is True

    def test_connect_timeout(self) -> None:
        fetcher = make_fetcher(requests.ConnectTimeout("slow"))

        with pytest.raises(FetchTimeout):
            fetcher.fetch("https://example.com/art.png")

    def test_read_timeout_while_streaming(self) -> None:
        response = make_response()
        response.iter_content.side_effect = requests.ConnectionError(
            ReadTimeoutError(None, "https://example.com", "Read timed out.")
        )
        fetcher = make_fetcher(response)

        with pytest.raises(FetchTimeout):
            fetcher.fetch("https://example.com/art.png")

    def test_wall_clock_deadline(self) -> None:
        """A trickling transfer is cut off by the overall deadline."""
        clock = iter([0.0, 0.0, 2.0, 20.0, 20.0, 20.0])
        fetcher = make_fetcher(make_response(chunks=[b"a", b"b", b"c"]), timeout=10.0)

        with patch("artguard.fetch.remote.time.monotonic", side_effect=lambda: next(clock, 20.0)):
            with pytest.raises(FetchTimeout):
                fetcher.fetch("https://example.com/art.png")

    def test_connection_error(self) -> None:
        fetcher = make_fetcher(requests.ConnectionError("refused"))

        with pytest.raises(FetchNetworkError):
            fetcher.fetch("https://example.com/art.png")

    def test_other_request_exception(self) -> None:
        fetcher = make_fetcher(requests.exceptions.ChunkedEncodingError("bad chunk"))

        with pytest.raises(FetchNetworkError):
            fetcher.fetch("https://example.com/art.png")

    def test_cancelled_before_request(self) -> None:
        cancel = threading.Event()
        cancel.set()
        fetcher = make_fetcher()

        with pytest.raises(FetchCancelled):
            fetcher.fetch("https://example.com/art.png", cancel_event=cancel)

        fetcher.session.get.assert_not_called()

    def test_cancelled_mid_stream(self) -> None:
        cancel = threading.Event()

        def chunks():
            yield b"first"
            cancel.set()
            yield b"second"

        response = make_response(chunks=chunks())
        fetcher = make_fetcher(response)

        with pytest.raises(FetchCancelled):
            fetcher.fetch("https://example.com/art.png", cancel_event=cancel)

        response.close.assert_called_once()


@pytest.fixture
def trickling_server():
    """
    Local HTTP server that declares a 100000-byte body and then sends one
    byte every 50 ms, so no single socket read ever times out.

    Yields the URL to fetch.
    """
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    listener.settimeout(10)
    stop = threading.Event()

    def serve():
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(4096)
                conn.sendall(
                    b"HTTP/1.1 200 OK\r\n"
                    b"Content-Type: image/png\r\n"
                    b"Content-Length: 100000\r\n\r\n"
                )
                while not stop.wait(0.05):
                    conn.sendall(b"x")
            except OSError:
                pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    host, port = listener.getsockname()
    yield f"http://{host}:{port}/slow.png"

    stop.set()
    listener.close()
    thread.join(timeout=5)


class TestTricklingServer:
    """Deadline and cancellation against a real socket that never stalls a read."""

    @pytest.fixture
    def session(self):
        session = requests.Session()
        session.trust_env = False  # Never route 127.0.0.1 through a proxy
        yield session
        session.close()

    def test_deadline_interrupts_blocked_read(self, trickling_server, session):
        fetcher = RemoteFetcher(timeout=1.0, session=session)

        started = time.monotonic()
        with pytest.raises(FetchTimeout):
            fetcher.fetch(trickling_server)

        assert time.monotonic() - started < 3.0

    def test_cancel_interrupts_blocked_read(self, trickling_server, session):
        fetcher = RemoteFetcher(timeout=30.0, session=session)
        cancel = threading.Event()
        timer = threading.Timer(0.5, cancel.set)

        started = time.monotonic()
        timer.start()
        try:
            with pytest.raises(FetchCancelled):
                fetcher.fetch(trickling_server, cancel_event=cancel)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 3.0
