"""HTTP surface for artwork uploads."""

from .app import create_app

__all__ = ["create_app"]
