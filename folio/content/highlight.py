"""Syntax highlighting for fenced code blocks (Pygments).

`highlight_theme` in config.toml keeps the theme names the site has always
used; each maps onto the closest Pygments style. A Pygments style name is
accepted as is.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.styles import get_all_styles
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

CSS_SCOPE = ".highlight"
FALLBACK_STYLE = "default"

THEME_STYLES = {
    "ascetic-white": "bw",
    "ayu-dark": "native",
    "ayu-light": "friendly",
    "base16-ocean-dark": "material",
    "base16-ocean-light": "default",
    "cheerfully-light": "friendly",
    "dracula": "dracula",
    "gruvbox-dark": "gruvbox-dark",
    "gruvbox-light": "gruvbox-light",
    "inspired-github": "default",
    "material-dark": "material",
    "material-light": "default",
    "monokai": "monokai",
    "nord": "nord",
    "one-dark": "one-dark",
    "solarized-dark": "solarized-dark",
    "solarized-light": "solarized-light",
    "visual-studio-dark": "native",
    "zenburn": "zenburn",
}


def pygments_style(theme: str) -> str:
    if theme in THEME_STYLES:
        return THEME_STYLES[theme]
    if theme in set(get_all_styles()):
        return theme
    logger.warning("Unknown highlight theme %r, using Pygments %r", theme, FALLBACK_STYLE)
    return FALLBACK_STYLE


@lru_cache(maxsize=None)
def _formatter() -> HtmlFormatter:
    # Token spans only; the renderer owns the <pre><code> wrapper.
    return HtmlFormatter(nowrap=True)


def highlight_block(code: str, lang: str) -> str | None:
    """Highlighted HTML for `code`, or None when `lang` has no lexer."""
    if not lang:
        return None
    try:
        lexer = get_lexer_by_name(lang, stripnl=False, ensurenl=False)
    except ClassNotFound:
        logger.debug("No lexer for %r, leaving block unhighlighted", lang)
        return None
    return pygments_highlight(code, lexer, _formatter())


def highlight_stylesheet(theme: str) -> str:
    """CSS for the token classes, scoped to `<pre class="highlight">`."""
    return HtmlFormatter(style=pygments_style(theme)).get_style_defs(CSS_SCOPE) + "\n"
