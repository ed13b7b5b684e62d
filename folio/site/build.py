"""Static site generator: content tree in, output directory out."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from datetime import date
from pathlib import Path

from pydantic import BaseModel, Field

from ..config import OUTPUT_DIR, STATIC_DIR
from ..content.highlight import highlight_stylesheet
from ..content.loader import SECTION_FILE, Page, Section, Site, load_site, output_file
from ..content.markdown import MarkdownOptions, extract_diagrams, render_markdown
from ..content.siteconfig import SiteConfig, load_site_config
from ..content.taxonomy import SeriesLink, Taxonomy, build_taxonomies, series_navigation
from ..exceptions import ContentError
from ..net.kroki import KrokiRenderer
from .assets import compile_css, copy_assets
from .feeds import atom_feed, robots_txt, search_index, sitemap_xml
from .templates import (
    Document,
    ListingRow,
    NavItem,
    PostView,
    SeriesNeighbour,
    home_body,
    html_doc,
    json_ld_home,
    json_ld_post,
    not_found_body,
    page_body,
    pagination,
    post_body,
    redirect_doc,
    section_body,
    taxonomy_list_body,
    term_body,
)

logger = logging.getLogger(__name__)

PAGE_LAYOUTS = {"post", "page"}
SECTION_LAYOUTS = {"home", "section"}
HOME_LATEST = 5


class BuildReport(BaseModel):
    """Summary of one build."""

    out_dir: str
    pages: int = 0
    sections: int = 0
    terms: int = 0
    diagrams: int = 0
    total_bytes: int = 0
    warnings: list[str] = Field(default_factory=list)


def build_site(
    root: Path,
    out_dir: Path | None = None,
    *,
    base_url: str | None = None,
    include_drafts: bool = False,
    run_assets: bool = True,
    renderer: KrokiRenderer | None = None,
) -> BuildReport:
    """Build the site under `root` into `out_dir`.

    Runs asset copy, CSS compilation, content loading, diagram rendering and
    page generation. Everything is written to a staging directory first; the
    previous output is only replaced when the whole build succeeded.

    Args:
        root: Site root (config.toml, content/, static/)
        out_dir: Output directory (default: root/public)
        base_url: Override config.toml's base_url (dev server, link checks)
        include_drafts: Render pages marked `draft = true`
        run_assets: Run the asset copy and CSS steps first
        renderer: Diagram renderer (default: Kroki at `diagrams.server`)

    Returns:
        BuildReport
    """
    root = root.resolve()
    out_dir = (out_dir or root / OUTPUT_DIR).resolve()
    config = load_site_config(root)
    if base_url:
        config = config.model_copy(update={"base_url": base_url.rstrip("/")})

    warnings: list[str] = []
    if run_assets:
        copy_assets(root, config, warnings)
        compile_css(root, config, warnings)

    site = load_site(root, include_drafts=include_drafts, config=config)
    diagrams = _render_diagrams(site, renderer, warnings)
    _render_content(site, diagrams)
    taxonomies = build_taxonomies(site)
    series = series_navigation(site)

    out_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{out_dir.name}.", dir=out_dir.parent))
    try:
        staging.chmod(0o755)
        writer = _SiteWriter(site, staging)
        writer.copy_static(root / STATIC_DIR)
        writer.write_all(taxonomies, series)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    _swap(staging, out_dir)

    warnings.extend(site.warnings)
    report = BuildReport(
        out_dir=str(out_dir),
        pages=len(site.pages),
        sections=sum(1 for s in site.sections.values() if s.meta.render),
        terms=sum(len(t.terms) for t in taxonomies.values()),
        diagrams=sum(1 for svg in diagrams.values() if svg is not None),
        total_bytes=_dir_size_bytes(out_dir),
        warnings=warnings,
    )
    logger.info("Built %d pages, %d sections into %s", report.pages, report.sections, out_dir)
    return report


def _render_diagrams(
    site: Site, renderer: KrokiRenderer | None, warnings: list[str]
) -> dict[tuple[str, str], str | None]:
    blocks = []
    for item in [*site.sections.values(), *site.pages.values()]:
        blocks.extend(extract_diagrams(item.raw_body))
    if not blocks:
        return {}

    renderer = renderer or KrokiRenderer(site.config.diagrams.server)
    keep_source = site.config.diagrams.on_error == "source"
    logger.info("Rendering %d diagrams via %s", len(set(blocks)), renderer.server)
    rendered, problems = asyncio.run(renderer.render_all(blocks, keep_source_on_error=keep_source))
    warnings.extend(problems)
    return rendered


def _render_content(site: Site, diagrams: dict[tuple[str, str], str | None]) -> None:
    md = site.config.markdown
    options = MarkdownOptions(
        highlight_code=md.highlight_code,
        highlight_theme=md.highlight_theme,
        external_links_target_blank=md.external_links_target_blank,
        external_links_no_follow=md.external_links_no_follow,
        external_links_no_referrer=md.external_links_no_referrer,
        smart_punctuation=md.smart_punctuation,
        base_url=site.config.base_url,
    )
    items: list[Page | Section] = [
        *(site.sections[k] for k in sorted(site.sections)),
        *site.sorted_pages(),
    ]
    for item in items:
        try:
            result = render_markdown(item.raw_body, options=options, resolver=site.resolve, diagrams=diagrams)
        except ContentError as e:
            raise ContentError(f"{item.source}: {e}") from e
        item.html = result.html
        if isinstance(item, Page):
            item.summary = result.summary_html
            item.toc = result.toc


class _SiteWriter:
    """Writes every output file of a loaded, rendered site into one directory."""

    def __init__(self, site: Site, out_dir: Path):
        self.site = site
        self.config: SiteConfig = site.config
        self.out_dir = out_dir
        self.sitemap: list[tuple[str, date | None]] = []
        self.owners: dict[str, str] = {}
        self.nav: list[NavItem] = []

    def copy_static(self, static_dir: Path) -> None:
        if static_dir.is_dir():
            shutil.copytree(static_dir, self.out_dir, dirs_exist_ok=True, ignore=_ignore_junk)

    def write_all(self, taxonomies: dict[str, Taxonomy], series: dict[str, SeriesLink]) -> None:
        self.nav = self._nav(taxonomies)

        for source in sorted(self.site.sections):
            section = self.site.sections[source]
            if section.meta.render:
                self._write_section(section)

        for page in self.site.sorted_pages():
            self._write_page(page, taxonomies.get("tags"), series.get(page.source))
            self._copy_bundle_assets(page)

        for name in sorted(taxonomies):
            taxonomy = taxonomies[name]
            if taxonomy.config.render:
                self._write_taxonomy(taxonomy)
            if taxonomy.config.feed:
                self._write_term_feeds(taxonomy)

        for page in self.site.sorted_pages():
            for alias in page.meta.aliases:
                self._write_alias(alias, page.permalink, page.source)

        doc = Document(title=f"Page not found | {self.config.title}", canonical=self.config.permalink("/404.html"), noindex=True)
        self._write("404.html", html_doc(self.config, doc, self.nav, not_found_body()))

        if self.config.generate_feed:
            self._write(self.config.feed_filename, atom_feed(self.site, self.site.sorted_pages()))
        if self.config.build_search_index:
            name = f"search_index.{self.config.default_language}.json"
            self._write(name, search_index(self.site.sorted_pages()))

        self._write("sitemap.xml", sitemap_xml(self.sitemap))
        self._write("robots.txt", robots_txt(self.config.permalink("/sitemap.xml")))
        if self.config.highlight_stylesheet_href:
            css = highlight_stylesheet(self.config.markdown.highlight_theme)
            self._write(self.config.highlight_stylesheet_href.lstrip("/"), css, owner="highlight stylesheet")

    # Pages

    def _write_page(self, page: Page, tags: Taxonomy | None, link: SeriesLink | None) -> None:
        layout = self._page_layout(page)
        doc_title = f"{page.title} | {self.config.title}" if self.config.title else page.title

        if layout == "post":
            tag_links = []
            if tags is not None and tags.config.render:
                for name in page.tags:
                    term = tags.term(name)
                    if term is not None:
                        tag_links.append((name, term.path))
            view = PostView(
                title=page.title,
                html=page.html,
                date=page.date,
                updated=page.updated,
                reading_time=page.reading_time,
                word_count=page.word_count,
                tags=tag_links,
                series=link.category if link else None,
                previous=self._neighbour(link.previous) if link else None,
                next=self._neighbour(link.next) if link else None,
            )
            doc = Document(
                title=doc_title,
                canonical=page.permalink,
                description=page.description or "",
                og_type="article",
                json_ld=json_ld_post(
                    self.config, page.title, page.description, page.permalink, page.date, page.updated, page.tags
                ),
            )
            body = post_body(self.config, view)
        else:
            doc = Document(title=doc_title, canonical=page.permalink, description=page.description or "")
            body = page_body(page.title, page.html)

        self._write(output_file(page.path), html_doc(self.config, doc, self.nav, body), owner=page.source)
        self.sitemap.append((page.permalink, page.updated or page.date))

    def _page_layout(self, page: Page) -> str:
        if page.meta.template:
            layout = page.meta.template.removesuffix(".html")
            if layout not in PAGE_LAYOUTS:
                raise ContentError(f"{page.source}: unknown template {page.meta.template!r}")
            return layout
        section = self.site.sections[page.section]
        return "post" if section.meta.sort_by == "date" else "page"

    def _neighbour(self, source: str | None) -> SeriesNeighbour | None:
        if source is None:
            return None
        page = self.site.pages[source]
        return SeriesNeighbour(title=page.title, href=page.path)

    def _copy_bundle_assets(self, page: Page) -> None:
        bundle_dir = Path(page.source).parent
        target = self.out_dir / page.path.strip("/")
        for asset in page.assets:
            dst = target / Path(asset).relative_to(bundle_dir)
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.site.content_dir / asset, dst)

    def _write_alias(self, alias: str, target: str, source: str) -> None:
        rel = alias.strip("/")
        if not rel:
            raise ContentError(f"{source}: alias {alias!r} points at the site root")
        file = rel if rel.endswith(".html") else output_file(rel)
        if (self.out_dir / file).exists():
            raise ContentError(f"{source}: alias {alias!r} collides with an existing page")
        self._write(file, redirect_doc(target), owner=f"{source} alias {alias!r}")

    # Sections

    def _write_section(self, section: Section) -> None:
        is_root = section.source == SECTION_FILE
        layout = (section.meta.template or ("home" if is_root else "section")).removesuffix(".html")
        if layout not in SECTION_LAYOUTS:
            raise ContentError(f"{section.source}: unknown template {section.meta.template!r}")

        pages = self._listing_pages(section)
        if layout == "home":
            if section.meta.sort_by != "date":
                # Latest dated pages from anywhere in the site.
                pages = [p for p in self.site.sorted_pages() if p.date is not None]
                pages.sort(key=lambda p: (p.date, p.source), reverse=True)
            rows = [_row(p) for p in pages[:HOME_LATEST]]
            doc = Document(
                title=self.config.title,
                canonical=section.permalink,
                description=section.meta.description or "",
                json_ld=json_ld_home(self.config),
            )
            self._write(
                output_file(section.path),
                html_doc(self.config, doc, self.nav, home_body(self.config, section.html, rows)),
                owner=section.source,
            )
            self.sitemap.append((section.permalink, None))
            return

        title = section.title or section.path.strip("/").rsplit("/", 1)[-1].capitalize()
        chunks = _paginate(pages, section.meta.paginate_by)
        for number, chunk in enumerate(chunks, start=1):
            path = _pager_path(section.path, number)
            pager = pagination(
                _pager_path(section.path, number - 1) if number > 1 else None,
                _pager_path(section.path, number + 1) if number < len(chunks) else None,
                number,
                len(chunks),
            )
            doc = Document(
                title=_numbered(f"{title} | {self.config.title}" if self.config.title else title, number),
                canonical=self.config.permalink(path),
                description=section.meta.description or "",
            )
            intro = section.html if number == 1 else ""
            body = section_body(title, intro, [_row(p) for p in chunk], pager)
            self._write(output_file(path), html_doc(self.config, doc, self.nav, body), owner=section.source)
            self.sitemap.append((self.config.permalink(path), None))
        if section.meta.paginate_by:
            self._write(output_file(f"{section.path}page/1/"), redirect_doc(section.permalink), owner=section.source)

    def _listing_pages(self, section: Section) -> list[Page]:
        pages = self.site.section_pages(section)
        merged = False
        for sub_source in section.subsections:
            sub = self.site.sections[sub_source]
            if sub.meta.transparent:
                pages = pages + self._listing_pages(sub)
                merged = True
        if merged and section.meta.sort_by == "date":
            pages.sort(key=lambda p: (p.date is not None, p.date), reverse=True)
        elif merged and section.meta.sort_by == "title":
            pages.sort(key=lambda p: p.title.casefold())
        return pages

    # Taxonomies

    def _write_taxonomy(self, taxonomy: Taxonomy) -> None:
        terms = [(t.name, t.path, len(t.pages)) for t in taxonomy.terms]
        label = taxonomy.name.capitalize()
        doc = Document(title=f"{label} | {self.config.title}", canonical=self.config.permalink(taxonomy.path))
        self._write(
            output_file(taxonomy.path),
            html_doc(self.config, doc, self.nav, taxonomy_list_body(taxonomy.name, terms)),
            owner=f"{taxonomy.name} taxonomy",
        )
        self.sitemap.append((self.config.permalink(taxonomy.path), None))

        for term in taxonomy.terms:
            pages = [self.site.pages[s] for s in term.pages]
            chunks = _paginate(pages, taxonomy.config.paginate_by)
            for number, chunk in enumerate(chunks, start=1):
                path = _pager_path(term.path, number)
                pager = pagination(
                    _pager_path(term.path, number - 1) if number > 1 else None,
                    _pager_path(term.path, number + 1) if number < len(chunks) else None,
                    number,
                    len(chunks),
                )
                doc = Document(
                    title=_numbered(f"{label}: {term.name} | {self.config.title}", number),
                    canonical=self.config.permalink(path),
                )
                body = term_body(taxonomy.name, term.name, [_row(p) for p in chunk], pager)
                self._write(
                    output_file(path),
                    html_doc(self.config, doc, self.nav, body),
                    owner=f"{taxonomy.name} term {term.name!r}",
                )
                self.sitemap.append((self.config.permalink(path), None))

    def _write_term_feeds(self, taxonomy: Taxonomy) -> None:
        for term in taxonomy.terms:
            pages = [self.site.pages[s] for s in term.pages]
            self._write(f"{term.path.strip('/')}/{self.config.feed_filename}", atom_feed(self.site, pages))

    def _nav(self, taxonomies: dict[str, Taxonomy]) -> list[NavItem]:
        root = self.site.sections[SECTION_FILE]
        subsections = [self.site.sections[s] for s in root.subsections]
        subsections = [s for s in subsections if s.meta.render]
        subsections.sort(key=lambda s: (s.meta.weight is None, s.meta.weight or 0, s.path))
        items = [
            NavItem(label=s.title or s.path.strip("/").rsplit("/", 1)[-1].capitalize(), href=s.path)
            for s in subsections
        ]
        for name in sorted(taxonomies):
            if taxonomies[name].config.render:
                items.append(NavItem(label=name.capitalize(), href=taxonomies[name].path))
        return items

    # Files

    def _write(self, rel_path: str, text: str, owner: str | None = None) -> None:
        """Write one output file; two outputs claiming the same file is a ContentError."""
        owner = owner or rel_path
        previous = self.owners.get(rel_path)
        if previous is not None:
            raise ContentError(f"{owner} and {previous} both render to /{rel_path}")
        self.owners[rel_path] = owner
        path = self.out_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def _row(page: Page) -> ListingRow:
    return ListingRow(
        title=page.title,
        href=page.path,
        date=page.date,
        description=page.description,
        reading_time=page.reading_time,
    )


def _paginate(items: list[Page], per_page: int | None) -> list[list[Page]]:
    if not per_page:
        return [items]
    chunks = [items[i : i + per_page] for i in range(0, len(items), per_page)]
    return chunks or [[]]


def _pager_path(base: str, number: int) -> str:
    return base if number == 1 else f"{base}page/{number}/"


def _numbered(title: str, number: int) -> str:
    return title if number == 1 else f"{title} (page {number})"


def _ignore_junk(path: str, names: list[str]) -> set[str]:
    ignored = {".DS_Store", "__pycache__", ".gitkeep"}
    return {n for n in names if n in ignored}


def _swap(staging: Path, out_dir: Path) -> None:
    """Replace out_dir with staging using renames only."""
    if not out_dir.exists():
        staging.replace(out_dir)
        return
    graveyard = Path(tempfile.mkdtemp(prefix=f".{out_dir.name}.old.", dir=out_dir.parent))
    out_dir.replace(graveyard / "previous")
    staging.replace(out_dir)
    shutil.rmtree(graveyard, ignore_errors=True)


def _dir_size_bytes(path: Path) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += (Path(root) / name).stat().st_size
            except OSError:
                continue
    return total
