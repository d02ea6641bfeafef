"""
Perceptual hashing for near-duplicate detection.

Implements the difference hash (dHash): the image is reduced to a 9x8
grayscale grid and each of the 64 bits records whether a pixel is brighter
than its right-hand neighbour. The hash survives recompression, resizing and
colour quantization but changes when the composition changes.

Fingerprints are compared by Hamming distance. A distance of -1 means the
two fingerprints cannot be compared (missing, malformed or of different
length) and must never be treated as a match.
"""

import io
import logging
import re
from typing import Iterable, Optional, Tuple, TypeVar

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

DEFAULT_HASH_SIZE = 8
DEFAULT_THRESHOLD = 8

# Sentinel for fingerprints that cannot be compared
NOT_COMPARABLE = -1

# Plain hex digits only: no sign, 0x prefix, underscores or whitespace
_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")

T = TypeVar("T")


def _load_image_for_hashing(data: bytes) -> Optional[Image.Image]:
    """
    Load image bytes for hash computation.

    Args:
        data: Raw image file bytes

    Returns:
        Orientation-corrected PIL Image, or None if unable to load
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        return ImageOps.exif_transpose(img)
    except Exception as e:
        logger.warning(f"Error loading image for hashing: {e}")
        return None


def dhash_bytes(data: bytes, hash_size: int = DEFAULT_HASH_SIZE) -> Optional[str]:
    """
    Calculate difference hash (dHash) for image bytes.

    Best-effort: any failure is logged and reported as None so callers can
    carry on without a fingerprint.

    Args:
        data: Raw image file bytes
        hash_size: Size of the hash (default 8 = 64-bit hash)

    Returns:
        Zero-padded hexadecimal hash (16 chars for the default size),
        or None on error
    """
    if not data:
        return None

    img = _load_image_for_hashing(data)
    if img is None:
        return None

    try:
        # Convert to grayscale
        img = img.convert("L")

        # Resize to hash_size+1 x hash_size
        # We need +1 width to compute horizontal gradients
        img = img.resize((hash_size + 1, hash_size), Image.Resampling.LANCZOS)

        pixels = list(img.getdata())

        bits = []
        for row in range(hash_size):
            row_start = row * (hash_size + 1)
            for col in range(hash_size):
                left_pixel = pixels[row_start + col]
                right_pixel = pixels[row_start + col + 1]
                bits.append(left_pixel > right_pixel)

        return _bits_to_hex(bits)

    except Exception as e:
        logger.warning(f"Error computing dHash: {e}")
        return None


def _bits_to_hex(bits: list) -> str:
    """
    Convert a list of boolean values to a hexadecimal string.

    Args:
        bits: List of boolean values, most significant first

    Returns:
        Hexadecimal string, zero-padded to len(bits) / 4 digits
    """
    binary_str = "".join("1" if b else "0" for b in bits)
    hex_value = format(int(binary_str, 2), "x")

    expected_length = (len(bits) + 3) // 4  # Round up to nearest hex digit
    return hex_value.zfill(expected_length)


def hamming_distance(hash1: Optional[str], hash2: Optional[str]) -> int:
    """
    Calculate Hamming distance between two fingerprints.

    Hamming distance is the number of bit positions where the hashes differ.
    Lower distance = more similar images. For 64-bit hashes:
    - 0-5: Very similar (likely re-encodes or minor edits)
    - 6-10: Similar (resized, recompressed, light colour changes)
    - 11+: Likely different images

    Args:
        hash1: First fingerprint (hex string)
        hash2: Second fingerprint (hex string)

    Returns:
        Number of differing bits (0-64 for 64-bit hashes), or -1 if either
        input is missing, not hex, or the two differ in bit length
    """
    if not hash1 or not hash2 or len(hash1) != len(hash2):
        return NOT_COMPARABLE

    if not _HEX_DIGITS.fullmatch(hash1) or not _HEX_DIGITS.fullmatch(hash2):
        logger.debug(f"Malformed fingerprint: {hash1!r} / {hash2!r}")
        return NOT_COMPARABLE

    return bin(int(hash1, 16) ^ int(hash2, 16)).count("1")


def is_similar(
    hash1: Optional[str], hash2: Optional[str], threshold: int = DEFAULT_THRESHOLD
) -> bool:
    """
    Check if two fingerprints represent near-identical images.

    Args:
        hash1: First fingerprint (hex string)
        hash2: Second fingerprint (hex string)
        threshold: Maximum Hamming distance to consider similar (default 8)

    Returns:
        True if the distance is valid and within threshold, False otherwise
    """
    distance = hamming_distance(hash1, hash2)
    return distance != NOT_COMPARABLE and distance <= threshold


def similarity_score(hash1: Optional[str], hash2: Optional[str]) -> float:
    """
    Calculate similarity between two fingerprints as a percentage.

    Returns:
        Similarity percentage (0-100, where 100 is identical); 0.0 when the
        fingerprints are not comparable
    """
    distance = hamming_distance(hash1, hash2)
    if distance == NOT_COMPARABLE:
        return 0.0

    max_distance = len(hash1) * 4  # type: ignore[arg-type]
    return (1 - (distance / max_distance)) * 100


def find_first_similar(
    fingerprint: Optional[str],
    candidates: Iterable[Tuple[T, Optional[str]]],
    threshold: int = DEFAULT_THRESHOLD,
) -> Optional[Tuple[T, int]]:
    """
    Scan candidates and stop at the first near duplicate.

    Args:
        fingerprint: Fingerprint of the submitted image
        candidates: (item, fingerprint) pairs to compare against
        threshold: Maximum Hamming distance to consider similar

    Returns:
        (item, distance) for the first match, or None if nothing matched
    """
    if not fingerprint:
        return None

    scanned = 0
    for item, candidate in candidates:
        scanned += 1
        distance = hamming_distance(fingerprint, candidate)
        if distance != NOT_COMPARABLE and distance <= threshold:
            logger.debug(f"Near duplicate after {scanned} candidates (distance {distance})")
            return item, distance

    logger.debug(f"No near duplicate among {scanned} candidates")
    return None
