"""HTTP access: retrying client, disk cache, diagram rendering."""

from .cache import DiskCache
from .client import HTTPError, HttpClient, RateLimiter
from .kroki import KrokiRenderer

__all__ = [
    "DiskCache",
    "HTTPError",
    "HttpClient",
    "KrokiRenderer",
    "RateLimiter",
]
