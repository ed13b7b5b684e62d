"""Render diagram fences through a Kroki server."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Iterable

from ..config import CACHE_DIR, DIAGRAM_CONCURRENCY
from ..exceptions import DiagramError
from .cache import DiskCache
from .client import HTTPError, HttpClient

logger = logging.getLogger(__name__)


class KrokiRenderer:
    """Turns (diagram type, source) pairs into SVG, caching every result.

    Kroki output only depends on its input, so cache entries never expire and
    rebuilds stay byte-identical even when the server is down.
    """

    def __init__(
        self,
        server: str,
        cache: DiskCache | None = None,
        client: HttpClient | None = None,
        concurrency: int = DIAGRAM_CONCURRENCY,
    ):
        self.server = server.rstrip("/")
        self.cache = cache if cache is not None else DiskCache(CACHE_DIR / "diagrams")
        self.client = client or HttpClient(max_retries=2)
        self.concurrency = max(1, concurrency)
        self._semaphore: asyncio.Semaphore | None = None

    def cache_key(self, kind: str, source: str) -> str:
        digest = hashlib.sha256(source.encode("utf-8")).hexdigest()
        return f"kroki:{kind}:svg:{digest}"

    async def render(self, kind: str, source: str) -> str:
        """Render one diagram to an SVG string.

        Raises:
            DiagramError: If the server is unreachable or rejects the diagram
        """
        key = self.cache_key(kind, source)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.decode("utf-8")

        url = f"{self.server}/{kind}/svg"
        async with self._semaphore or asyncio.Semaphore(1):
            try:
                content, headers = await self.client.post(url, source.encode("utf-8"))
            except HTTPError as e:
                detail = e.content.decode("utf-8", "replace").strip()[:200]
                raise DiagramError(f"{kind} diagram rejected by {self.server} (HTTP {e.status_code}): {detail}") from e
            except OSError as e:
                raise DiagramError(f"Diagram service at {self.server} is unreachable: {e}") from e

        svg = _strip_xml_prolog(content.decode("utf-8"))
        self.cache.put(key, svg.encode("utf-8"), {"content-type": headers.get("Content-Type", "")})
        return svg

    async def render_all(
        self, blocks: Iterable[tuple[str, str]], keep_source_on_error: bool = False
    ) -> tuple[dict[tuple[str, str], str | None], list[str]]:
        """Render every distinct block concurrently.

        Args:
            blocks: (type, source) pairs, duplicates allowed
            keep_source_on_error: Map failing blocks to None (rendered as code)
                instead of raising

        Returns:
            (mapping, warnings)
        """
        unique = sorted(set(blocks))
        # Created here so it binds to the running event loop.
        self._semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *(self.render(kind, source) for kind, source in unique), return_exceptions=True
        )

        rendered: dict[tuple[str, str], str | None] = {}
        warnings: list[str] = []
        for block, result in zip(unique, results):
            if isinstance(result, BaseException):
                if not isinstance(result, DiagramError) or not keep_source_on_error:
                    raise result
                logger.warning("%s", result)
                warnings.append(str(result))
                rendered[block] = None
            else:
                rendered[block] = result
        return rendered, warnings

    async def health(self) -> bool:
        """True when the server answers its health endpoint."""
        try:
            await self.client.fetch(f"{self.server}/health")
        except (HTTPError, OSError):
            return False
        return True


def _strip_xml_prolog(svg: str) -> str:
    svg = svg.lstrip()
    if svg.startswith("<?xml"):
        end = svg.find("?>")
        if end != -1:
            svg = svg[end + 2 :].lstrip()
    return svg
