"""Content store: front matter, site config, loading, Markdown, taxonomies."""

from .frontmatter import PageMeta, SectionMeta, parse_page, parse_section
from .loader import Page, Section, Site, load_site
from .markdown import MarkdownOptions, render_markdown
from .siteconfig import SiteConfig, load_site_config
from .taxonomy import SeriesLink, Taxonomy, TaxonomyTerm, build_taxonomies, series_navigation

__all__ = [
    "MarkdownOptions",
    "Page",
    "PageMeta",
    "Section",
    "SectionMeta",
    "SeriesLink",
    "Site",
    "SiteConfig",
    "Taxonomy",
    "TaxonomyTerm",
    "build_taxonomies",
    "load_site",
    "load_site_config",
    "parse_page",
    "parse_section",
    "render_markdown",
    "series_navigation",
]
