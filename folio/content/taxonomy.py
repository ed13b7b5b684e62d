"""Taxonomy indexes (tags, categories) and series navigation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from ..exceptions import ContentError
from .loader import Page, Site
from .siteconfig import TaxonomyConfig
from .text import slugify

logger = logging.getLogger(__name__)


class TaxonomyTerm(BaseModel):
    """One term of a taxonomy and the pages bearing it (newest first)."""

    name: str
    slug: str
    path: str
    permalink: str
    pages: list[str] = Field(default_factory=list)


@dataclass
class Taxonomy:
    config: TaxonomyConfig
    terms: list[TaxonomyTerm] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def path(self) -> str:
        return f"/{slugify(self.name)}/"

    def term(self, name: str) -> TaxonomyTerm | None:
        slug = slugify(name)
        for term in self.terms:
            if term.slug == slug:
                return term
        return None


class SeriesLink(BaseModel):
    """Previous/next neighbours of a page within its series."""

    category: str
    previous: str | None = None
    next: str | None = None


def build_taxonomies(site: Site) -> dict[str, Taxonomy]:
    """Group pages by every declared taxonomy.

    Args:
        site: Loaded site

    Returns:
        Mapping of taxonomy name to Taxonomy, terms sorted by slug

    Raises:
        ContentError: If a page uses a taxonomy that config.toml does not declare
    """
    declared = {t.name: t for t in site.config.taxonomies}
    for page in site.sorted_pages():
        for name in page.meta.taxonomies:
            if name not in declared:
                raise ContentError(f"{page.source}: taxonomy {name!r} is not declared in config.toml")

    taxonomies: dict[str, Taxonomy] = {}
    for name, tax_config in declared.items():
        by_slug: dict[str, TaxonomyTerm] = {}
        members: dict[str, list[Page]] = {}
        for page in site.sorted_pages():
            for term_name in page.terms(name):
                slug = slugify(term_name)
                if not slug:
                    site.warnings.append(f"{page.source}: empty {name} term {term_name!r} ignored")
                    continue
                if slug not in by_slug:
                    path = f"/{slugify(name)}/{slug}/"
                    by_slug[slug] = TaxonomyTerm(
                        name=term_name,
                        slug=slug,
                        path=path,
                        permalink=site.config.permalink(path),
                    )
                    members[slug] = []
                if all(p.source != page.source for p in members[slug]):
                    members[slug].append(page)

        terms = []
        for slug in sorted(by_slug):
            pages = members[slug]
            # Newest first; undated last; ties keep source order.
            pages.sort(key=lambda p: p.source)
            pages.sort(key=lambda p: (p.date is not None, p.date), reverse=True)
            term = by_slug[slug]
            term.pages = [p.source for p in pages]
            terms.append(term)
        taxonomies[name] = Taxonomy(config=tax_config, terms=terms)
        logger.debug("Taxonomy %s: %d terms", name, len(terms))

    site.taxonomies = taxonomies
    return taxonomies


def series_navigation(site: Site, taxonomy: str = "categories") -> dict[str, SeriesLink]:
    """Compute previous/next links between pages sharing a category.

    A page's series is its first category. Members are the dated pages that
    carry that category, ordered by (date, source). Undated or uncategorised
    pages get no entry.

    Args:
        site: Loaded site
        taxonomy: Taxonomy that defines series

    Returns:
        Mapping of page source to its SeriesLink
    """
    members: dict[str, list[Page]] = {}
    for page in site.sorted_pages():
        if page.date is None:
            continue
        for category in dict.fromkeys(page.terms(taxonomy)):
            members.setdefault(category, []).append(page)

    for pages in members.values():
        pages.sort(key=lambda p: (p.date, p.source))

    links: dict[str, SeriesLink] = {}
    for page in site.sorted_pages():
        categories = page.terms(taxonomy)
        if page.date is None or not categories:
            continue
        series = members[categories[0]]
        idx = [p.source for p in series].index(page.source)
        links[page.source] = SeriesLink(
            category=categories[0],
            previous=series[idx - 1].source if idx > 0 else None,
            next=series[idx + 1].source if idx + 1 < len(series) else None,
        )
    return links
