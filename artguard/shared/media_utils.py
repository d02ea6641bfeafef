"""
Media utilities for artguard.

File type checks, checksums, formatting and logging setup shared by the
upload pipeline, the HTTP surface and the CLI.
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional, Set

logger = logging.getLogger(__name__)

# Image types accepted for upload
IMAGE_EXTENSIONS: Set[str] = {
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
}

IMAGE_CONTENT_TYPES: Set[str] = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
}


def is_image_file(file_path: Path) -> bool:
    """
    Check if a file is an accepted image based on extension.

    Args:
        file_path: Path to check

    Returns:
        True if image file, False otherwise
    """
    return file_path.suffix.lower() in IMAGE_EXTENSIONS


def is_image_content_type(content_type: Optional[str]) -> bool:
    """Check a MIME type (parameters such as charset are ignored)."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() in IMAGE_CONTENT_TYPES


def compute_checksum(data: bytes, algorithm: str = "sha256") -> str:
    """
    Compute cryptographic checksum of raw bytes.

    Args:
        data: Bytes to hash
        algorithm: Hash algorithm (sha256, md5, etc.)

    Returns:
        Hexadecimal checksum string
    """
    hash_obj = hashlib.new(algorithm)
    hash_obj.update(data)
    return hash_obj.hexdigest()


def format_bytes(size_bytes: int) -> str:
    """
    Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "2.50 MB")
    """
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    return f"{size:.2f} {units[unit_index]}"


def safe_filename(name: str) -> str:
    """
    Convert a string to a safe filename.

    Args:
        name: Input string

    Returns:
        Safe filename string
    """
    unsafe_chars = '<>:"/\\|?*'
    for char in unsafe_chars:
        name = name.replace(char, "_")

    name = "-".join(name.split())
    name = name.strip(". ")

    if len(name) > 40:
        name = name[:40]

    return name or "unnamed"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set logging level to DEBUG
        quiet: If True, set logging level to WARNING
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
