"""Load the content tree (sections, pages, page bundles) into memory."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from ..config import CONTENT_DIR
from ..exceptions import ContentError
from .frontmatter import PageMeta, SectionMeta, parse_page, parse_section
from .markdown import Heading
from .siteconfig import SiteConfig, load_site_config
from .text import count_words, reading_time, slugify

logger = logging.getLogger(__name__)

SECTION_FILE = "_index.md"
BUNDLE_FILE = "index.md"

# "2024-01-31-my-post.md" / "2024-01-31_my-post.md"
_DATED_STEM = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})[-_](?P<rest>.+)$")


class Page(BaseModel):
    """A rendered-to-be page. `source` is relative to the content directory."""

    source: str
    slug: str
    path: str
    permalink: str
    meta: PageMeta
    raw_body: str
    section: str
    assets: list[str] = Field(default_factory=list)
    word_count: int = 0
    reading_time: int = 0
    html: str = ""
    summary: str | None = None
    toc: list[Heading] = Field(default_factory=list)

    # Directory (content-relative) the page lives in, before it is attached to a section.
    _directory: str = PrivateAttr(default="")

    @property
    def title(self) -> str:
        return self.meta.title or self.slug

    @property
    def description(self) -> str | None:
        return self.meta.description

    @property
    def date(self) -> date | None:
        return self.meta.date

    @property
    def updated(self) -> date | None:
        return self.meta.updated

    @property
    def tags(self) -> list[str]:
        return self.terms("tags")

    @property
    def categories(self) -> list[str]:
        return self.terms("categories")

    def terms(self, taxonomy: str) -> list[str]:
        return list(self.meta.taxonomies.get(taxonomy, []))


class Section(BaseModel):
    """A content section (`_index.md`) and the pages it lists."""

    source: str
    path: str
    permalink: str
    meta: SectionMeta
    raw_body: str
    parent: str | None = None
    html: str = ""
    pages: list[str] = Field(default_factory=list)
    subsections: list[str] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.meta.title or ""


@dataclass
class Site:
    """Everything the build needs, keyed by content-relative source path."""

    config: SiteConfig
    root: Path
    content_dir: Path
    pages: dict[str, Page] = field(default_factory=dict)
    sections: dict[str, Section] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    taxonomies: dict[str, Any] = field(default_factory=dict)

    def sorted_pages(self) -> list[Page]:
        return [self.pages[k] for k in sorted(self.pages)]

    def section_pages(self, section: Section) -> list[Page]:
        return [self.pages[s] for s in section.pages]

    def resolve(self, link: str) -> str:
        """Resolve an ``@/blog/post.md#anchor`` internal link to a permalink.

        Raises:
            ContentError: If the target file is not part of the site
        """
        target, _, anchor = link[2:].partition("#")
        target = target.strip("/")
        item = self.pages.get(target) or self.sections.get(target)
        if item is None and not target.endswith(".md"):
            item = self.pages.get(f"{target}/{BUNDLE_FILE}")
        if item is None:
            raise ContentError(f"Broken internal link {link!r}: no such content file")
        return item.permalink + (f"#{anchor}" if anchor else "")


def load_site(root: Path, include_drafts: bool = False, config: SiteConfig | None = None) -> Site:
    """Read config.toml and the whole content tree.

    Args:
        root: Site root (contains config.toml and content/)
        include_drafts: Keep pages with `draft = true`
        config: Pre-loaded configuration (otherwise read from root)

    Returns:
        Site with pages attached to sections and section listings sorted
    """
    root = root.resolve()
    config = config or load_site_config(root)
    content_dir = root / CONTENT_DIR
    site = Site(config=config, root=root, content_dir=content_dir)

    if not content_dir.is_dir():
        raise ContentError(f"No {CONTENT_DIR}/ directory in {root}")

    _walk(site, content_dir, include_drafts, skip_dirs=set(config.lint.clean_dirs))

    if SECTION_FILE not in site.sections:
        site.sections[SECTION_FILE] = _make_section(site, SECTION_FILE, SectionMeta(), "")

    _check_unique_paths(site)
    _link_tree(site)
    for section in site.sections.values():
        section.pages = _sort_section(site, section)

    logger.info("Loaded %d pages in %d sections", len(site.pages), len(site.sections))
    return site


def _walk(site: Site, directory: Path, include_drafts: bool, skip_dirs: set[str]) -> None:
    rel_dir = directory.relative_to(site.content_dir).as_posix()
    rel_dir = "" if rel_dir == "." else rel_dir

    section_file = directory / SECTION_FILE
    if section_file.exists():
        source = _join(rel_dir, SECTION_FILE)
        meta, body = parse_section(section_file.read_text(encoding="utf-8"), section_file)
        site.sections[source] = _make_section(site, source, meta, body)

    for entry in sorted(directory.iterdir()):
        if entry.name.startswith("."):
            continue
        if entry.is_dir():
            if entry.name in skip_dirs:
                continue
            if (entry / BUNDLE_FILE).exists() and not (entry / SECTION_FILE).exists():
                _load_page(site, entry / BUNDLE_FILE, include_drafts, bundle=True, skip_dirs=skip_dirs)
            else:
                _walk(site, entry, include_drafts, skip_dirs)
        elif entry.suffix == ".md" and entry.name != SECTION_FILE:
            _load_page(site, entry, include_drafts, bundle=False, skip_dirs=skip_dirs)


def _load_page(site: Site, file: Path, include_drafts: bool, *, bundle: bool, skip_dirs: set[str]) -> None:
    source = file.relative_to(site.content_dir).as_posix()
    meta, body = parse_page(file.read_text(encoding="utf-8"), file)
    if meta.draft and not include_drafts:
        logger.debug("Skipping draft %s", source)
        return

    stem = file.parent.name if bundle else file.stem
    dated = _DATED_STEM.match(stem)
    if dated:
        stem = dated.group("rest")
        if meta.date is None:
            try:
                prefix_date = date.fromisoformat(dated.group("date"))
            except ValueError as e:
                raise ContentError(f"{source}: invalid date prefix in file name: {e}") from e
            meta = meta.model_copy(update={"date": prefix_date})

    slug = slugify(meta.slug) if meta.slug else slugify(stem)
    if not slug:
        raise ContentError(f"{source}: cannot derive a slug, set `slug` in the front matter")

    parent_dir = file.parent.parent if bundle else file.parent
    rel_parent = parent_dir.relative_to(site.content_dir).as_posix()
    if meta.path:
        path = url_path(meta.path)
    else:
        path = url_path(_join("" if rel_parent == "." else rel_parent, slug))

    assets: list[str] = []
    if bundle:
        assets = _bundle_assets(site.content_dir, file.parent, skip_dirs)

    words = count_words(body)
    page = Page(
        source=source,
        slug=slug,
        path=path,
        permalink=site.config.permalink(path),
        meta=meta,
        raw_body=body,
        section="",
        assets=assets,
        word_count=words,
        reading_time=reading_time(words),
    )
    page._directory = "" if rel_parent == "." else rel_parent
    site.pages[source] = page


def _bundle_assets(content_dir: Path, bundle_dir: Path, skip_dirs: set[str]) -> list[str]:
    assets = []
    for path in sorted(bundle_dir.rglob("*")):
        rel = path.relative_to(bundle_dir)
        if any(part in skip_dirs or part.startswith(".") for part in rel.parts):
            continue
        if path.is_file() and path.name != BUNDLE_FILE:
            assets.append(path.relative_to(content_dir).as_posix())
    return assets


def _make_section(site: Site, source: str, meta: SectionMeta, body: str) -> Section:
    rel_dir = source[: -len(SECTION_FILE)].strip("/")
    path = "/" + (rel_dir + "/" if rel_dir else "")
    return Section(
        source=source,
        path=path,
        permalink=site.config.permalink(path),
        meta=meta,
        raw_body=body,
    )


def url_path(path: str) -> str:
    """`/a/b/` form of a site-relative path; empty and `/` both mean the root."""
    stripped = path.strip("/")
    return f"/{stripped}/" if stripped else "/"


def output_file(path: str) -> str:
    """File (relative to the output dir) a page or section at `path` renders to."""
    rel = path.strip("/")
    return f"{rel}/index.html" if rel else "index.html"


def _check_unique_paths(site: Site) -> None:
    seen: dict[str, str] = {}
    for item in [*site.sections.values(), *site.pages.values()]:
        file = output_file(item.path)
        other = seen.get(file)
        if other is not None:
            raise ContentError(f"{item.source} and {other} both render to {item.path}")
        seen[file] = item.source


def _link_tree(site: Site) -> None:
    for source in sorted(site.sections):
        if source == SECTION_FILE:
            continue
        parent = _nearest_section(site, source.rsplit("/", 2)[0] if source.count("/") > 1 else "")
        site.sections[source].parent = parent
        site.sections[parent].subsections.append(source)

    for source in sorted(site.pages):
        page = site.pages[source]
        page.section = _nearest_section(site, page._directory)


def _nearest_section(site: Site, directory: str) -> str:
    while True:
        candidate = _join(directory, SECTION_FILE)
        if candidate in site.sections:
            return candidate
        if not directory:
            return SECTION_FILE
        directory = directory.rsplit("/", 1)[0] if "/" in directory else ""


def _sort_section(site: Site, section: Section) -> list[str]:
    members = sorted(
        (p for p in site.pages.values() if p.section == section.source), key=lambda p: p.source
    )
    sort_by = section.meta.sort_by

    if sort_by == "date":
        undated = [p for p in members if p.date is None]
        for p in undated:
            site.warnings.append(f"{p.source}: no date, left out of {section.source} listing")
        dated = [p for p in members if p.date is not None]
        # Newest first; ties keep source order.
        dated.sort(key=lambda p: p.date, reverse=True)
        return [p.source for p in dated]
    if sort_by == "weight":
        unweighted = [p for p in members if p.meta.weight is None]
        for p in unweighted:
            site.warnings.append(f"{p.source}: no weight, left out of {section.source} listing")
        weighted = [p for p in members if p.meta.weight is not None]
        weighted.sort(key=lambda p: p.meta.weight)
        return [p.source for p in weighted]
    if sort_by == "title":
        return [p.source for p in sorted(members, key=lambda p: p.title.casefold())]
    return [p.source for p in members]


def _join(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory else name
