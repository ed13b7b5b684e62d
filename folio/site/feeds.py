"""Machine-readable outputs: sitemap, robots.txt, Atom feed, search index."""

from __future__ import annotations

import json
from datetime import date
from html import escape

from ..content.loader import Page, Site
from ..content.text import strip_html

ATOM_LIMIT = 20
SEARCH_BODY_CHARS = 3000


def sitemap_xml(entries: list[tuple[str, date | None]]) -> str:
    """Sitemap for (permalink, lastmod) pairs, sorted by permalink."""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for url, lastmod in sorted(set(entries), key=lambda e: e[0]):
        lines.append("  <url>")
        lines.append(f"    <loc>{escape(url)}</loc>")
        if lastmod:
            lines.append(f"    <lastmod>{lastmod.isoformat()}</lastmod>")
        lines.append("  </url>")
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"


def robots_txt(sitemap_url: str) -> str:
    return f"User-agent: *\nDisallow:\nAllow: /\nSitemap: {sitemap_url}\n"


def atom_feed(site: Site, pages: list[Page]) -> str:
    """Atom feed of the newest dated pages.

    `updated` is the newest page date rather than the build time, so the feed
    only changes when content does.
    """
    config = site.config
    dated = sorted((p for p in pages if p.date), key=lambda p: (p.date, p.source), reverse=True)[:ATOM_LIMIT]
    feed_url = config.permalink(config.feed_filename)
    updated = max(((p.updated or p.date) for p in dated), default=date(1970, 1, 1))

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="{escape(config.default_language)}">',
        f"  <title>{escape(config.title)}</title>",
    ]
    if config.description:
        lines.append(f"  <subtitle>{escape(config.description)}</subtitle>")
    lines.extend(
        [
            f'  <link href="{escape(feed_url)}" rel="self" type="application/atom+xml"/>',
            f'  <link href="{escape(config.permalink("/"))}"/>',
            f"  <updated>{_timestamp(updated)}</updated>",
            f"  <id>{escape(feed_url)}</id>",
        ]
    )
    for page in dated:
        lines.append("  <entry>")
        lines.append(f"    <title>{escape(page.title)}</title>")
        lines.append(f"    <published>{_timestamp(page.date)}</published>")
        lines.append(f"    <updated>{_timestamp(page.updated or page.date)}</updated>")
        if config.extra.author_name:
            lines.append(f"    <author><name>{escape(config.extra.author_name)}</name></author>")
        lines.append(f'    <link rel="alternate" href="{escape(page.permalink)}" type="text/html"/>')
        lines.append(f"    <id>{escape(page.permalink)}</id>")
        for tag in page.tags:
            lines.append(f'    <category term="{escape(tag)}"/>')
        summary = page.summary or page.description
        if summary:
            lines.append(f'    <summary type="html">{escape(summary)}</summary>')
        lines.append(f'    <content type="html">{escape(page.html)}</content>')
        lines.append("  </entry>")
    lines.append("</feed>")
    return "\n".join(lines) + "\n"


def search_index(pages: list[Page]) -> str:
    """JSON search index: one document per page, sorted by URL."""
    docs = []
    for page in sorted(pages, key=lambda p: p.path):
        docs.append(
            {
                "title": page.title,
                "url": page.path,
                "description": page.description or "",
                "tags": page.tags,
                "body": strip_html(page.html)[:SEARCH_BODY_CHARS],
            }
        )
    return json.dumps(docs, sort_keys=True, ensure_ascii=False, indent=1) + "\n"


def _timestamp(d: date) -> str:
    return f"{d.isoformat()}T00:00:00+00:00"
