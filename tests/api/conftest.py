"""Pytest configuration for API tests."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from artguard.api import create_app
from artguard.api.routers.artworks import get_guard, get_staging
from artguard.core.duplicate_guard import DuplicateGuard
from artguard.core.staging import StagingArea
from artguard.db import CatalogDB, get_db
from artguard.fetch.remote import RemoteFetcher


@pytest.fixture
def fetcher():
    """Remote fetcher stand-in; tests set ``fetch`` return values or errors."""
    return MagicMock(spec=RemoteFetcher)


@pytest.fixture
def staging(dedup_settings):
    return StagingArea(settings=dedup_settings)


@pytest.fixture
def app(db_session, dedup_settings, fetcher, staging):
    """Application wired to the test database, staging dir and fetcher."""
    app = create_app(init_database=False)

    # Override the get_db dependency to use our test database session
    def override_get_db():
        yield db_session

    def override_get_guard():
        return DuplicateGuard(CatalogDB(db_session), fetcher=fetcher, settings=dedup_settings)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_guard] = override_get_guard
    app.dependency_overrides[get_staging] = lambda: staging
    return app


@pytest.fixture
def client(app):
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client
