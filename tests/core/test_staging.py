"""Tests for the upload staging area."""

import io

import pytest

from artguard.core.errors import UploadTooLarge
from artguard.core.staging import StagingArea


@pytest.fixture
def staging(tmp_path):
    return StagingArea(directory=tmp_path / "staging", max_bytes=100, chunk_size=16)


def test_stage_stream_writes_file(staging):
    path = staging.stage_stream(io.BytesIO(b"x" * 50), "My Painting.PNG")

    assert path.read_bytes() == b"x" * 50
    assert path.parent == staging.directory
    assert path.name.startswith("My-Painting-")
    assert path.suffix == ".png"


def test_stage_at_limit(staging):
    path = staging.stage_bytes(b"x" * 100)
    assert path.stat().st_size == 100


def test_over_limit_removes_partial_file(staging):
    with pytest.raises(UploadTooLarge) as exc_info:
        staging.stage_bytes(b"x" * 101, "big.png")

    assert exc_info.value.limit == 100
    assert list(staging.directory.iterdir()) == []


def test_read_error_removes_partial_file(staging):
    class BrokenStream(io.BytesIO):
        def read(self, size=-1):
            if self.tell() >= 16:
                raise OSError("connection reset")
            return super().read(size)

    with pytest.raises(OSError):
        staging.stage_stream(BrokenStream(b"x" * 64))

    assert list(staging.directory.iterdir()) == []


def test_staged_context_manager(staging):
    with staging.staged(io.BytesIO(b"abc"), "a.jpg") as path:
        assert path.exists()

    assert not path.exists()


def test_discard_is_idempotent(staging):
    path = staging.stage_bytes(b"abc")

    StagingArea.discard(path)
    StagingArea.discard(path)
    StagingArea.discard(None)

    assert not path.exists()


def test_defaults_from_settings(dedup_settings):
    staging = StagingArea(settings=dedup_settings)

    assert staging.directory == dedup_settings.staging_dir
    assert staging.max_bytes == dedup_settings.fetch_max_bytes
