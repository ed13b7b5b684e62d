"""HTML templates for the static site generator."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from html import escape
from typing import Any

from ..content.siteconfig import AuthorExtra, SiteConfig


@dataclass(frozen=True)
class Document:
    """Per-page data for the outer layout."""

    title: str
    canonical: str
    description: str = ""
    og_type: str = "website"
    json_ld: dict[str, Any] | None = None
    noindex: bool = False
    head_extra: str = ""


@dataclass(frozen=True)
class NavItem:
    label: str
    href: str


@dataclass(frozen=True)
class ListingRow:
    title: str
    href: str
    date: date | None = None
    description: str | None = None
    reading_time: int | None = None


@dataclass(frozen=True)
class SeriesNeighbour:
    title: str
    href: str


@dataclass(frozen=True)
class PostView:
    """Everything the post layout renders."""

    title: str
    html: str
    date: date | None
    updated: date | None
    reading_time: int
    word_count: int
    tags: list[tuple[str, str]] = field(default_factory=list)
    series: str | None = None
    previous: SeriesNeighbour | None = None
    next: SeriesNeighbour | None = None
    show_author: bool = True


# Sends scroll depth milestones to the analytics script when one is loaded.
SCROLL_TRACKER = """
(function () {
  var marks = [25, 50, 75, 100], sent = {};
  function report() {
    var doc = document.documentElement;
    var max = doc.scrollHeight - window.innerHeight;
    var depth = max > 0 ? Math.round((window.scrollY / max) * 100) : 100;
    marks.forEach(function (m) {
      if (depth >= m && !sent[m]) {
        sent[m] = true;
        if (window.plausible) { window.plausible("Scroll Depth", {props: {depth: m + "%"}}); }
      }
    });
  }
  window.addEventListener("scroll", report, {passive: true});
})();
""".strip()


def html_doc(config: SiteConfig, doc: Document, nav: Iterable[NavItem], body: str) -> str:
    title = escape(doc.title)
    description = escape(doc.description or config.description)
    lines = [
        "<!doctype html>",
        f'<html lang="{escape(config.default_language, quote=True)}">',
        "<head>",
        '<meta charset="utf-8">',
        '<meta name="viewport" content="width=device-width, initial-scale=1">',
        f"<title>{title}</title>",
        f'<meta name="description" content="{description}">',
        f'<link rel="canonical" href="{escape(doc.canonical, quote=True)}">',
        f'<meta property="og:title" content="{title}">',
        f'<meta property="og:description" content="{description}">',
        f'<meta property="og:type" content="{escape(doc.og_type, quote=True)}">',
        f'<meta property="og:url" content="{escape(doc.canonical, quote=True)}">',
    ]
    if config.extra.author_image:
        image = config.permalink(config.extra.author_image)
        lines.append(f'<meta property="og:image" content="{escape(image, quote=True)}">')
    if doc.noindex:
        lines.append('<meta name="robots" content="noindex">')
    lines.append(f'<link rel="stylesheet" href="{escape(config.assets.stylesheet_href, quote=True)}">')
    if config.highlight_stylesheet_href:
        lines.append(f'<link rel="stylesheet" href="{escape(config.highlight_stylesheet_href, quote=True)}">')
    if config.generate_feed:
        feed = config.permalink(config.feed_filename)
        lines.append(
            f'<link rel="alternate" type="application/atom+xml" title="{escape(config.title, quote=True)}" '
            f'href="{escape(feed, quote=True)}">'
        )
    if doc.json_ld:
        lines.append(json_ld_script(doc.json_ld))
    lines.append(analytics(config.extra))
    if doc.head_extra:
        lines.append(doc.head_extra)
    lines.extend(
        [
            "</head>",
            "<body>",
            '<header class="site">',
            f'<a class="brand" href="/">{escape(config.title)}</a>',
            f"<nav>{' '.join(link(item.href, item.label) for item in nav)}</nav>",
            "</header>",
            "<main>",
            body,
            "</main>",
            f'<footer class="site">{escape(config.extra.author_name or config.title)}</footer>',
            "</body>",
            "</html>",
        ]
    )
    return "\n".join(line for line in lines if line) + "\n"


def link(href: str, text: str) -> str:
    return f'<a href="{escape(href, quote=True)}">{escape(text)}</a>'


def h1(text: str) -> str:
    return f"<h1>{escape(text)}</h1>"


def h2(text: str) -> str:
    return f"<h2>{escape(text)}</h2>"


def para(text: str) -> str:
    return f"<p>{escape(text)}</p>"


def format_date(d: date) -> str:
    return f"{d:%B} {d.day}, {d.year}"


def analytics(extra: AuthorExtra) -> str:
    parts = []
    if extra.analytics_src:
        domain = f' data-domain="{escape(extra.analytics_domain, quote=True)}"' if extra.analytics_domain else ""
        parts.append(f'<script defer{domain} src="{escape(extra.analytics_src, quote=True)}"></script>')
    if extra.track_scroll:
        parts.append(f"<script>{SCROLL_TRACKER}</script>")
    return "\n".join(parts)


def json_ld_script(data: dict[str, Any]) -> str:
    payload = json.dumps(data, sort_keys=True, ensure_ascii=False).replace("</", "<\\/")
    return f'<script type="application/ld+json">{payload}</script>'


def json_ld_post(config: SiteConfig, title: str, description: str | None, url: str,
                 published: date | None, modified: date | None, keywords: list[str]) -> dict[str, Any]:
    data: dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "headline": title,
        "url": url,
        "mainEntityOfPage": {"@type": "WebPage", "@id": url},
    }
    if description:
        data["description"] = description
    if published:
        data["datePublished"] = published.isoformat()
        data["dateModified"] = (modified or published).isoformat()
    if keywords:
        data["keywords"] = keywords
    author = _person(config)
    if author:
        data["author"] = author
    return data


def json_ld_home(config: SiteConfig) -> dict[str, Any]:
    data: dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "WebSite",
        "name": config.title,
        "url": config.permalink("/"),
    }
    if config.description:
        data["description"] = config.description
    author = _person(config)
    if author:
        data["author"] = author
    return data


def _person(config: SiteConfig) -> dict[str, Any] | None:
    extra = config.extra
    if not extra.author_name:
        return None
    person: dict[str, Any] = {"@type": "Person", "name": extra.author_name, "url": config.permalink("/")}
    if extra.author_title:
        person["jobTitle"] = extra.author_title
    if extra.author_image:
        person["image"] = config.permalink(extra.author_image)
    return person


def author_bio(config: SiteConfig) -> str:
    extra = config.extra
    if not extra.author_name:
        return ""
    lines = ['<aside class="author">']
    if extra.author_image:
        src = "/" + extra.author_image.lstrip("/")
        lines.append(
            f'<img src="{escape(src, quote=True)}" alt="{escape(extra.author_name, quote=True)}" '
            'width="72" height="72" loading="lazy">'
        )
    lines.append("<div>")
    lines.append(f'<div class="name">{escape(extra.author_name)}</div>')
    if extra.author_title:
        lines.append(f'<div class="muted">{escape(extra.author_title)}</div>')
    if extra.author_bio:
        lines.append(f"<p>{escape(extra.author_bio)}</p>")
    lines.append("</div>")
    lines.append("</aside>")
    return "\n".join(lines)


def post_meta(d: date | None, updated: date | None, reading_time: int, word_count: int) -> str:
    parts = []
    if d:
        parts.append(f'<time datetime="{d.isoformat()}">{format_date(d)}</time>')
    if updated and updated != d:
        parts.append(f'Updated <time datetime="{updated.isoformat()}">{format_date(updated)}</time>')
    if reading_time:
        parts.append(f"{reading_time} min read")
    if word_count:
        parts.append(f"{word_count:,} words")
    return f'<div class="meta">{" · ".join(parts)}</div>' if parts else ""


def tag_links(tags: Iterable[tuple[str, str]]) -> str:
    items = [link(href, f"#{name}") for name, href in tags]
    return f'<div class="tags">{"".join(items)}</div>' if items else ""


def series_nav(series: str | None, previous: SeriesNeighbour | None, nxt: SeriesNeighbour | None) -> str:
    if not previous and not nxt:
        return ""
    label = f" in {series}" if series else ""
    lines = ['<nav class="series-nav" aria-label="Series navigation">']
    if previous:
        lines.append(
            f'<a class="previous" rel="prev" href="{escape(previous.href, quote=True)}">'
            f"<small>← Previous{escape(label)}</small>{escape(previous.title)}</a>"
        )
    if nxt:
        lines.append(
            f'<a class="next" rel="next" href="{escape(nxt.href, quote=True)}">'
            f"<small>Next{escape(label)} →</small>{escape(nxt.title)}</a>"
        )
    lines.append("</nav>")
    return "\n".join(lines)


def post_body(config: SiteConfig, post: PostView) -> str:
    lines = ["<article>", h1(post.title)]
    meta = post_meta(post.date, post.updated, post.reading_time, post.word_count)
    if meta:
        lines.append(meta)
    if post.tags:
        lines.append(tag_links(post.tags))
    lines.append(post.html)
    lines.append("</article>")
    nav = series_nav(post.series, post.previous, post.next)
    if nav:
        lines.append(nav)
    if post.show_author:
        bio = author_bio(config)
        if bio:
            lines.append(bio)
    return "\n".join(lines)


def page_body(title: str, html: str) -> str:
    return "\n".join(["<article>", h1(title), html, "</article>"])


def listing(rows: Iterable[ListingRow]) -> str:
    lines = ['<ul class="listing">']
    for r in rows:
        lines.append("<li>")
        lines.append(f'<a class="title" href="{escape(r.href, quote=True)}">{escape(r.title)}</a>')
        meta = []
        if r.date:
            meta.append(f'<time datetime="{r.date.isoformat()}">{format_date(r.date)}</time>')
        if r.reading_time:
            meta.append(f"{r.reading_time} min read")
        if meta:
            lines.append(f'<div class="muted">{" · ".join(meta)}</div>')
        if r.description:
            lines.append(f"<div>{escape(r.description)}</div>")
        lines.append("</li>")
    lines.append("</ul>")
    return "\n".join(lines)


def pagination(previous: str | None, nxt: str | None, current: int, total: int) -> str:
    if total <= 1:
        return ""
    prev_html = link(previous, "← Newer") if previous else "<span></span>"
    next_html = link(nxt, "Older →") if nxt else "<span></span>"
    return (
        '<nav class="pagination" aria-label="Pagination">'
        f'{prev_html}<span class="muted">Page {current} of {total}</span>{next_html}</nav>'
    )


def section_body(title: str, intro_html: str, rows: list[ListingRow], pager: str = "") -> str:
    lines = []
    if title:
        lines.append(h1(title))
    if intro_html:
        lines.append(intro_html)
    if rows:
        lines.append(listing(rows))
    if pager:
        lines.append(pager)
    return "\n".join(lines)


def home_body(config: SiteConfig, intro_html: str, rows: list[ListingRow]) -> str:
    lines = [h1(config.title)]
    if intro_html:
        lines.append(intro_html)
    elif config.description:
        lines.append(para(config.description))
    if rows:
        lines.append(h2("Latest posts"))
        lines.append(listing(rows))
    bio = author_bio(config)
    if bio:
        lines.append(bio)
    return "\n".join(lines)


def taxonomy_list_body(name: str, terms: Iterable[tuple[str, str, int]]) -> str:
    lines = [h1(name.capitalize()), '<ul class="listing">']
    for term, href, count in terms:
        lines.append(f'<li>{link(href, term)} <span class="muted">({count})</span></li>')
    lines.append("</ul>")
    return "\n".join(lines)


def term_body(taxonomy: str, term: str, rows: list[ListingRow], pager: str = "") -> str:
    lines = [
        f"<h1>{escape(taxonomy.capitalize())}: {escape(term)}</h1>",
        f'<div class="muted">{len(rows)} post{"s" if len(rows) != 1 else ""}</div>',
        listing(rows),
    ]
    if pager:
        lines.append(pager)
    return "\n".join(lines)


def not_found_body() -> str:
    return "\n".join([h1("Page not found"), para("The page you were looking for does not exist."), link("/", "Go home")])


def redirect_doc(url: str) -> str:
    target = escape(url, quote=True)
    return (
        "<!doctype html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        "<title>Redirect</title>\n"
        f'<link rel="canonical" href="{target}">\n'
        '<meta name="robots" content="noindex">\n'
        f'<meta http-equiv="refresh" content="0; url={target}">\n'
        "</head>\n"
        f'<body><a href="{target}">Click here</a> to be redirected.</body>\n'
        "</html>\n"
    )
