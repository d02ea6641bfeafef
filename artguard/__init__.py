"""
artguard - duplicate and near-duplicate guard for artwork uploads.

Decides, before an uploaded image is stored, whether it re-encodes an image
already in the catalog or is a visually near-identical variant of one.
"""

from .version import __version__

__all__ = ["__version__"]
