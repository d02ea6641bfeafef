"""
Shared utilities for artguard.

Common helpers used by the pipeline, the HTTP surface and the CLI.
"""

from .media_utils import (
    # File type detection
    IMAGE_CONTENT_TYPES,
    IMAGE_EXTENSIONS,
    is_image_content_type,
    is_image_file,
    # Bytes and names
    compute_checksum,
    format_bytes,
    safe_filename,
    # Logging
    setup_logging,
)

__all__ = [
    # Constants
    "IMAGE_CONTENT_TYPES",
    "IMAGE_EXTENSIONS",
    # Functions
    "is_image_content_type",
    "is_image_file",
    "compute_checksum",
    "format_bytes",
    "safe_filename",
    "setup_logging",
]
