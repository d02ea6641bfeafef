"""Database module for the artguard catalog."""

from .catalog_db import CatalogDB
from .connection import get_db, get_db_context, init_db
from .models import Base, CatalogEntry
from .schemas import CatalogEntryResponse, DuplicateResponse, ErrorResponse

__all__ = [
    "get_db",
    "get_db_context",
    "init_db",
    "Base",
    "CatalogEntry",
    "CatalogDB",
    "CatalogEntryResponse",
    "DuplicateResponse",
    "ErrorResponse",
]
