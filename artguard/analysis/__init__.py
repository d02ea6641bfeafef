"""Image identity: content hashes and perceptual fingerprints."""

from .content_hash import content_hash, decode_image, hash_raster
from .perceptual_hash import (
    NOT_COMPARABLE,
    dhash_bytes,
    find_first_similar,
    hamming_distance,
    is_similar,
    similarity_score,
)

__all__ = [
    "content_hash",
    "decode_image",
    "hash_raster",
    "NOT_COMPARABLE",
    "dhash_bytes",
    "find_first_similar",
    "hamming_distance",
    "is_similar",
    "similarity_score",
]
