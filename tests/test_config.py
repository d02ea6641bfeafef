"""Tests for duplicate guard settings."""

import pytest
from pydantic import ValidationError

from artguard.config import MIB, DedupSettings
from artguard.db.config import Settings


def test_defaults(monkeypatch):
    for name in ("FETCH_MAX_BYTES", "FETCH_MAX_REDIRECTS", "SIMILARITY_THRESHOLD"):
        monkeypatch.delenv(f"ARTGUARD_{name}", raising=False)

    settings = DedupSettings(_env_file=None)

    assert settings.fetch_max_bytes == 5 * MIB
    assert settings.fetch_max_redirects == 3
    assert settings.fetch_timeout == 10.0
    assert settings.similarity_threshold == 8
    assert settings.corpus_cap == 2000


def test_environment_override(monkeypatch):
    monkeypatch.setenv("ARTGUARD_SIMILARITY_THRESHOLD", "5")
    monkeypatch.setenv("ARTGUARD_FETCH_MAX_BYTES", "1024")

    settings = DedupSettings(_env_file=None)

    assert settings.similarity_threshold == 5
    assert settings.fetch_max_bytes == 1024


@pytest.mark.parametrize(
    "field, value",
    [("similarity_threshold", 65), ("similarity_threshold", -1), ("fetch_max_bytes", 0)],
)
def test_rejects_out_of_range(field, value):
    with pytest.raises(ValidationError):
        DedupSettings(_env_file=None, **{field: value})


def test_database_url_override():
    settings = Settings(database_url_override="sqlite:///catalog.db")
    assert settings.database_url == "sqlite:///catalog.db"


def test_database_url_from_parts():
    settings = Settings(
        database_url_override=None,
        postgres_user="u",
        postgres_password="p",
        postgres_host="db",
        postgres_port=5433,
        postgres_db="art",
    )
    assert settings.database_url == "postgresql://u:p@db:5433/art"
