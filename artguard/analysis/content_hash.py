"""
Content normalization and hashing.

Decodes arbitrary raster encodings into a canonical pixel form and derives a
SHA-256 content hash from it, so the same picture saved as JPEG-quality-100,
PNG or lossless WebP hashes identically as long as the decoded pixels match.

Normalization steps:
- Apply EXIF orientation so rotated-by-metadata copies line up
- Convert to 8-bit RGB (palette, greyscale, CMYK and 16-bit modes included)
- Drop any alpha channel; transparency is not part of identity
"""

import hashlib
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from ..core.errors import DecodeError
from ..core.types import DecodedRaster

logger = logging.getLogger(__name__)

REFERENCE_MODE = "RGB"


def _to_reference_mode(img: Image.Image) -> Image.Image:
    """Convert any Pillow mode to 3-channel RGB, discarding alpha."""
    if img.mode == REFERENCE_MODE:
        return img

    if img.mode.startswith("I;16"):
        # 16-bit greyscale: scale down to 8 bits before expanding to RGB
        img = img.convert("I").point(lambda value: value * (1 / 256)).convert("L")
    elif img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")

    return img.convert(REFERENCE_MODE)


def decode_image(data: bytes) -> DecodedRaster:
    """
    Decode image bytes into a canonical raster.

    Args:
        data: Raw image file bytes

    Returns:
        DecodedRaster with RGB pixel bytes

    Raises:
        DecodeError: If the bytes are not a decodable image
    """
    if not data:
        raise DecodeError("Empty image payload")

    try:
        with Image.open(io.BytesIO(data)) as opened:
            # Force a full decode so truncated files fail here
            opened.load()
            img = ImageOps.exif_transpose(opened)
            img = _to_reference_mode(img)
            return DecodedRaster(
                width=img.width,
                height=img.height,
                channels=len(img.getbands()),
                pixels=img.tobytes(),
            )
    except UnidentifiedImageError as e:
        logger.error(f"Unsupported image format: {e}")
        raise DecodeError("Unsupported or unrecognised image format") from e
    except Image.DecompressionBombError as e:
        logger.error(f"Image rejected as decompression bomb: {e}")
        raise DecodeError("Image dimensions are too large") from e
    except (OSError, SyntaxError, ValueError) as e:
        # Pillow reports truncated and corrupt streams as OSError/SyntaxError
        logger.error(f"Error decoding image: {e}")
        raise DecodeError(f"Corrupt image data: {e}") from e


def hash_raster(raster: DecodedRaster) -> str:
    """
    Compute the content hash of a decoded raster.

    The digest covers the pixel bytes followed by width, height and channel
    count as decimal text, so equal pixel streams at different aspect ratios
    do not collide.

    Returns:
        64-character hex SHA-256 digest
    """
    digest = hashlib.sha256()
    digest.update(raster.pixels)
    digest.update(str(raster.width).encode("ascii"))
    digest.update(str(raster.height).encode("ascii"))
    digest.update(str(raster.channels).encode("ascii"))
    return digest.hexdigest()


def content_hash(data: bytes) -> str:
    """Decode ``data`` and return its content hash."""
    return hash_raster(decode_image(data))
