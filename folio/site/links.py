"""Link and structure check over a freshly built site."""

from __future__ import annotations

import asyncio
import http.client
import logging
import tempfile
from html.parser import HTMLParser
from pathlib import Path, PurePosixPath
from typing import Literal
from urllib.parse import unquote, urldefrag, urljoin, urlsplit

from pydantic import BaseModel, Field

from ..config import LINK_CHECK_RATE
from ..content.siteconfig import LinkCheckerConfig, load_site_config
from ..net.client import HTTPError, HttpClient
from .build import build_site

logger = logging.getLogger(__name__)


class LinkProblem(BaseModel):
    source: str
    url: str
    kind: Literal["internal", "anchor", "external"]
    level: Literal["error", "warn"]
    message: str


class LinkReport(BaseModel):
    files: int = 0
    internal_checked: int = 0
    external_checked: int = 0
    problems: list[LinkProblem] = Field(default_factory=list)

    @property
    def errors(self) -> list[LinkProblem]:
        return [p for p in self.problems if p.level == "error"]

    @property
    def ok(self) -> bool:
        return not self.errors


class _PageScanner(HTMLParser):
    """Collects outgoing links and anchor targets of one HTML page."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.links: list[str] = []
        self.ids: set[str] = set()

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        values = dict(attrs)
        if values.get("id"):
            self.ids.add(values["id"])
        if tag == "a" and values.get("name"):
            self.ids.add(values["name"])
        if tag == "a" and values.get("href"):
            self.links.append(values["href"])
        elif tag == "img" and values.get("src"):
            self.links.append(values["src"])


def scan_html(html: str) -> _PageScanner:
    scanner = _PageScanner()
    scanner.feed(html)
    scanner.close()
    return scanner


def check_site(root: Path, *, check_external: bool = True, client: HttpClient | None = None) -> LinkReport:
    """Build the site into a temporary directory and verify its links.

    Args:
        root: Site root
        check_external: Also request external http(s) links
        client: HTTP client for external links (default: rate-limited HttpClient)

    Returns:
        LinkReport; `ok` is False when an error-level problem was found
    """
    config = load_site_config(root)
    with tempfile.TemporaryDirectory(prefix="folio-check-") as tmp:
        out_dir = Path(tmp) / "public"
        build_site(root, out_dir, run_assets=False)
        return check_output(out_dir, config.base_url, config.link_checker, check_external=check_external, client=client)


def check_output(
    out_dir: Path,
    base_url: str,
    settings: LinkCheckerConfig,
    *,
    check_external: bool = True,
    client: HttpClient | None = None,
) -> LinkReport:
    """Verify the links of an already built output directory."""
    pages: dict[str, _PageScanner] = {}
    for file in sorted(out_dir.rglob("*.html")):
        rel = file.relative_to(out_dir).as_posix()
        pages[rel] = scan_html(file.read_text(encoding="utf-8"))

    report = LinkReport(files=len(pages))
    external: dict[str, list[str]] = {}
    seen_internal: set[tuple[str, str]] = set()

    for rel in sorted(pages):
        page_url = "/" + (rel[: -len("index.html")] if rel.endswith("index.html") else rel)
        for href in pages[rel].links:
            href = href.strip()
            scheme = urlsplit(href).scheme
            if href.startswith(base_url + "/") or href == base_url:
                href = href[len(base_url) :] or "/"
                scheme = ""
            if scheme in ("mailto", "tel", "data"):
                continue
            if scheme in ("http", "https") or href.startswith("//"):
                if href.startswith("//"):
                    href = "https:" + href
                external.setdefault(href, []).append(rel)
                continue
            if scheme:
                continue

            target, fragment = urldefrag(urljoin(page_url, href))
            key = (target, fragment)
            if key in seen_internal:
                continue
            seen_internal.add(key)
            report.internal_checked += 1

            target_file = _resolve_file(out_dir, target)
            if target_file is None:
                report.problems.append(
                    LinkProblem(source=rel, url=href, kind="internal", level=settings.internal_level, message="target does not exist")
                )
                continue
            if fragment and target_file.endswith(".html"):
                ids = pages[target_file].ids if target_file in pages else set()
                if unquote(fragment) not in ids:
                    report.problems.append(
                        LinkProblem(
                            source=rel,
                            url=href,
                            kind="anchor",
                            level=settings.internal_level,
                            message=f"no element with id {fragment!r} on {target_file}",
                        )
                    )

    if check_external:
        urls = [u for u in sorted(external) if not u.startswith(tuple(settings.skip_prefixes))]
        skipped = len(external) - len(urls)
        if skipped:
            logger.info("Skipping %d external links by prefix", skipped)
        results = asyncio.run(_check_external(urls, settings, client))
        report.external_checked = len(urls)
        for url in urls:
            message = results.get(url)
            if message is not None:
                report.problems.append(
                    LinkProblem(
                        source=external[url][0], url=url, kind="external", level=settings.external_level, message=message
                    )
                )

    logger.info(
        "Checked %d internal and %d external links in %d files",
        report.internal_checked,
        report.external_checked,
        report.files,
    )
    return report


def _resolve_file(out_dir: Path, url_path: str) -> str | None:
    """Map a site-relative URL path to an output file (relative), or None."""
    rel = unquote(url_path).lstrip("/")
    candidates = [rel + "index.html"] if rel.endswith("/") or not rel else [rel, rel + "/index.html"]
    for candidate in candidates:
        parts = PurePosixPath(candidate).parts
        if ".." in parts:
            return None
        if (out_dir / candidate).is_file():
            return candidate
    return None


async def _check_external(
    urls: list[str], settings: LinkCheckerConfig, client: HttpClient | None
) -> dict[str, str | None]:
    client = client or HttpClient(rate_limit=LINK_CHECK_RATE, max_retries=2)
    anchor_skip = tuple(settings.skip_anchor_prefixes)
    bodies: dict[str, asyncio.Task[tuple[bytes | None, str | None]]] = {}

    async def get(url: str) -> tuple[bytes | None, str | None]:
        try:
            content, _headers = await client.fetch(url)
        except HTTPError as e:
            return None, f"HTTP {e.status_code}"
        except (OSError, ValueError, http.client.HTTPException) as e:
            # InvalidURL (a ValueError) for hrefs urllib refuses, HTTPException for broken responses.
            return None, f"request failed: {e}"
        return content, None

    async def check(url: str) -> str | None:
        base, fragment = urldefrag(url)
        # One request per document even when several anchors point into it.
        if base not in bodies:
            bodies[base] = asyncio.ensure_future(get(base))
        content, problem = await bodies[base]
        if problem is not None:
            return problem
        if fragment and not url.startswith(anchor_skip) and content is not None:
            ids = scan_html(content.decode("utf-8", "replace")).ids
            if unquote(fragment) not in ids:
                return f"anchor {fragment!r} not found"
        return None

    async with client:
        results = await asyncio.gather(*(check(u) for u in urls))
    return dict(zip(urls, results))
