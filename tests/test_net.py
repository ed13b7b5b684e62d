"""Tests for the disk cache, HTTP client and diagram renderer."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from folio.exceptions import DiagramError
from folio.net.cache import DiskCache
from folio.net.client import HTTPError, HttpClient, RateLimiter
from folio.net.kroki import KrokiRenderer


class TestDiskCache(unittest.TestCase):
    def test_put_get_clear(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache = DiskCache(Path(td))
            self.assertIsNone(cache.get("k"))
            cache.put("k", b"value", {"Content-Type": "image/svg+xml"})
            self.assertTrue(cache.exists("k"))
            self.assertEqual(cache.get("k"), b"value")
            self.assertEqual(cache.stats(), (1, 5))
            self.assertTrue(cache.clear("k"))
            self.assertFalse(cache.clear("k"))

    def test_max_age(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache = DiskCache(Path(td))
            cache.put("k", b"value")
            self.assertEqual(cache.get("k", max_age_seconds=3600), b"value")
            self.assertIsNone(cache.get("k", max_age_seconds=-1))

    def test_clear_all(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache = DiskCache(Path(td) / "cache")
            cache.put("a", b"1")
            cache.put("b", b"2")
            self.assertEqual(cache.clear_all(), 2)
            self.assertEqual(cache.stats(), (0, 0))
            self.assertTrue(cache.cache_dir.is_dir())


class TestHttpClient(unittest.TestCase):
    def test_retries_server_errors(self) -> None:
        client = HttpClient(max_retries=3)
        responses = [(b"", {}, 503), (b"", {"Retry-After": "0"}, 429), (b"ok", {}, 200)]
        with (
            patch.object(HttpClient, "_fetch_sync", side_effect=responses) as fetch,
            patch("folio.net.client.asyncio.sleep", new=AsyncMock()),
        ):
            content, _ = asyncio.run(client.fetch("https://example.test/"))
        self.assertEqual(content, b"ok")
        self.assertEqual(fetch.call_count, 3)

    def test_client_errors_are_not_retried(self) -> None:
        client = HttpClient(max_retries=3)
        with patch.object(HttpClient, "_fetch_sync", return_value=(b"gone", {}, 404)) as fetch:
            with self.assertRaises(HTTPError) as ctx:
                asyncio.run(client.fetch("https://example.test/missing"))
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(fetch.call_count, 1)

    def test_gives_up_after_max_retries(self) -> None:
        client = HttpClient(max_retries=2)
        with (
            patch.object(HttpClient, "_fetch_sync", side_effect=OSError("refused")) as fetch,
            patch("folio.net.client.asyncio.sleep", new=AsyncMock()),
        ):
            with self.assertRaises(OSError):
                asyncio.run(client.fetch("https://example.test/"))
        self.assertEqual(fetch.call_count, 2)

    def test_status(self) -> None:
        client = HttpClient(max_retries=1)
        with patch.object(HttpClient, "_fetch_sync", return_value=(b"", {}, 500)):
            self.assertEqual(asyncio.run(client.status("https://example.test/")), 500)

    def test_post_sends_body(self) -> None:
        client = HttpClient()
        with patch.object(HttpClient, "_fetch_sync", return_value=(b"<svg/>", {}, 200)) as fetch:
            asyncio.run(client.post("http://kroki.test/mermaid/svg", b"graph TD"))
        url, method, data, headers = fetch.call_args.args
        self.assertEqual((url, method, data), ("http://kroki.test/mermaid/svg", "POST", b"graph TD"))
        self.assertEqual(headers, {"Content-Type": "text/plain"})


class TestRateLimiter(unittest.TestCase):
    def test_rejects_non_positive_rate(self) -> None:
        with self.assertRaises(ValueError):
            RateLimiter(0)

    def test_burst_up_to_rate(self) -> None:
        async def take(limiter: RateLimiter, n: int) -> None:
            for _ in range(n):
                await limiter.acquire()

        limiter = RateLimiter(5)
        asyncio.run(take(limiter, 5))
        self.assertLess(limiter.tokens, 1.0)


class TestKrokiRenderer(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.cache = DiskCache(Path(self._td.name))
        self.client = AsyncMock()
        self.renderer = KrokiRenderer("http://kroki.test/", cache=self.cache, client=self.client)

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_render_strips_prolog_and_caches(self) -> None:
        self.client.post.return_value = (b'<?xml version="1.0" encoding="UTF-8"?><svg>1</svg>', {})
        svg = asyncio.run(self.renderer.render("graphviz", "digraph { a -> b }"))
        self.assertEqual(svg, "<svg>1</svg>")
        self.assertEqual(self.client.post.await_args.args[0], "http://kroki.test/graphviz/svg")

        again = asyncio.run(self.renderer.render("graphviz", "digraph { a -> b }"))
        self.assertEqual(again, svg)
        self.assertEqual(self.client.post.await_count, 1)

    def test_render_all_deduplicates(self) -> None:
        self.client.post.return_value = (b"<svg/>", {})
        blocks = [("mermaid", "a"), ("mermaid", "b"), ("mermaid", "a")]
        rendered, warnings = asyncio.run(self.renderer.render_all(blocks))
        self.assertEqual(set(rendered), {("mermaid", "a"), ("mermaid", "b")})
        self.assertEqual(warnings, [])
        self.assertEqual(self.client.post.await_count, 2)

    def test_rejected_diagram(self) -> None:
        self.client.post.side_effect = HTTPError(url="u", status_code=400, headers={}, content=b"Syntax error")
        with self.assertRaises(DiagramError) as ctx:
            asyncio.run(self.renderer.render_all([("mermaid", "graph ???")]))
        self.assertIn("Syntax error", str(ctx.exception))

    def test_keep_source_on_error(self) -> None:
        self.client.post.side_effect = OSError("refused")
        rendered, warnings = asyncio.run(
            self.renderer.render_all([("mermaid", "graph TD")], keep_source_on_error=True)
        )
        self.assertEqual(rendered, {("mermaid", "graph TD"): None})
        self.assertEqual(len(warnings), 1)

    def test_health(self) -> None:
        self.client.fetch.return_value = (b"{}", {})
        self.assertTrue(asyncio.run(self.renderer.health()))
        self.client.fetch.side_effect = OSError("refused")
        self.assertFalse(asyncio.run(self.renderer.health()))


if __name__ == "__main__":
    unittest.main()
