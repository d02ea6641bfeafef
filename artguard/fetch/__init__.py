"""Remote retrieval of submitted images."""

from .remote import FetchResult, RemoteFetcher, validate_url

__all__ = ["FetchResult", "RemoteFetcher", "validate_url"]
