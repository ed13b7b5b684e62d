"""Markdown → HTML renderer (CommonMark-ish subset).

The goal is readable, deterministic output, not perfect CommonMark
conformance. Block structure is parsed line by line, inline markup with a
placeholder stash so that everything not explicitly produced as HTML is
escaped.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from pydantic import BaseModel

from .highlight import highlight_block
from .text import slugify, strip_html

SUMMARY_MARKER = "<!-- more -->"

# Fence info strings that the diagram service can render.
DIAGRAM_TYPES = {
    "blockdiag",
    "bpmn",
    "bytefield",
    "d2",
    "ditaa",
    "erd",
    "excalidraw",
    "graphviz",
    "mermaid",
    "nomnoml",
    "pikchr",
    "plantuml",
    "seqdiag",
    "structurizr",
    "svgbob",
    "vega",
    "vegalite",
    "wavedrom",
}
DIAGRAM_ALIASES = {"dot": "graphviz", "puml": "plantuml"}

DiagramKey = tuple[str, str]


class Heading(BaseModel):
    """A table-of-contents entry."""

    level: int
    title: str
    id: str


@dataclass(frozen=True)
class MarkdownOptions:
    highlight_code: bool = False
    highlight_theme: str = ""
    external_links_target_blank: bool = False
    external_links_no_follow: bool = False
    external_links_no_referrer: bool = False
    smart_punctuation: bool = False
    base_url: str = ""


@dataclass
class RenderResult:
    html: str
    toc: list[Heading] = field(default_factory=list)
    summary_html: str | None = None
    links: list[str] = field(default_factory=list)


_FENCE = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})\s*(?P<info>[^`]*)$")
_ATX = re.compile(r"^ {0,3}(?P<hashes>#{1,6})(?:\s+(?P<text>.*?))?(?:\s+#+)?\s*$")
_CUSTOM_ID = re.compile(r"\s*\{#(?P<id>[A-Za-z0-9_-]+)\}\s*$")
_HR = re.compile(r"^ {0,3}(?:(?:-\s*){3,}|(?:\*\s*){3,}|(?:_\s*){3,})$")
_SETEXT = re.compile(r"^ {0,3}(?P<ch>=+|-+)\s*$")
_BULLET = re.compile(r"^(?P<indent> {0,3})(?P<marker>[-*+])(?:(?P<space> +)(?P<text>.*))?$")
_ORDERED = re.compile(r"^(?P<indent> {0,3})(?P<num>\d{1,9})(?P<marker>[.)])(?:(?P<space> +)(?P<text>.*))?$")
_QUOTE = re.compile(r"^ {0,3}> ?(?P<text>.*)$")
_HTML_BLOCK = re.compile(
    r"^ {0,3}(?:<!--|<(?:/)?(?:address|article|aside|audio|blockquote|center|details|dialog|div|dl|"
    r"fieldset|figcaption|figure|footer|form|h[1-6]|header|hr|iframe|img|nav|ol|p|picture|pre|"
    r"script|section|style|summary|svg|table|ul|video)\b)",
    re.IGNORECASE,
)
_RAW_UNTIL_CLOSE = re.compile(r"^ {0,3}<(pre|script|style|textarea)\b", re.IGNORECASE)
_TABLE_SEP_CELL = re.compile(r"^:?-{3,}:?$")
_TOKEN = re.compile(r"\x00(\d+)\x00")
_INLINE_TAG = re.compile(r"</?[A-Za-z][A-Za-z0-9-]*(?:\s[^<>]*)?/?>")


def render_markdown(
    text: str,
    *,
    options: MarkdownOptions | None = None,
    resolver: Callable[[str], str] | None = None,
    diagrams: Mapping[DiagramKey, str | None] | None = None,
) -> RenderResult:
    """Convert Markdown to HTML.

    Args:
        text: Markdown body (front matter already removed)
        options: Rendering switches taken from the [markdown] config table
        resolver: Maps ``@/path.md#anchor`` links to URLs; may raise ContentError
        diagrams: Pre-rendered SVG keyed by (diagram type, source). A key that
            maps to None is rendered as a plain code block.

    Returns:
        RenderResult with HTML, table of contents, optional summary and links
    """
    renderer = _Renderer(options or MarkdownOptions(), resolver, diagrams or {})
    return renderer.render(text)


def extract_diagrams(text: str) -> list[DiagramKey]:
    """Return every (type, source) diagram fence in a Markdown document, in order."""
    found: list[DiagramKey] = []
    lines = _normalize(text).split("\n")
    i = 0
    while i < len(lines):
        m = _FENCE.match(lines[i])
        if not m:
            i += 1
            continue
        fence = m.group("fence")
        kind = diagram_kind(m.group("info"))
        body: list[str] = []
        i += 1
        while i < len(lines) and not _closes(lines[i], fence):
            body.append(_strip_indent(lines[i], len(m.group("indent"))))
            i += 1
        i += 1
        if kind:
            found.append((kind, "\n".join(body)))
    return found


def diagram_kind(info: str) -> str | None:
    words = info.strip().split()
    if not words:
        return None
    lang = words[0].lower()
    lang = DIAGRAM_ALIASES.get(lang, lang)
    return lang if lang in DIAGRAM_TYPES else None


class _Renderer:
    def __init__(
        self,
        options: MarkdownOptions,
        resolver: Callable[[str], str] | None,
        diagrams: Mapping[DiagramKey, str | None],
    ):
        self.options = options
        self.resolver = resolver
        self.diagrams = diagrams
        self.toc: list[Heading] = []
        self.links: list[str] = []
        self._ids: dict[str, int] = {}
        self._stash: list[str] = []
        self._summary_at: int | None = None

    def render(self, text: str) -> RenderResult:
        out: list[str] = []
        self._blocks(_normalize(text).split("\n"), out, top=True)
        html = "\n".join(out)
        summary = None
        if self._summary_at is not None:
            summary = "\n".join(out[: self._summary_at])
        return RenderResult(html=html, toc=self.toc, summary_html=summary, links=self.links)

    # Blocks

    def _blocks(self, lines: list[str], out: list[str], top: bool = False, tight: bool = False) -> None:
        para: list[str] = []

        def flush() -> None:
            if not para:
                return
            # Trailing spaces survive so "  \n" can become a hard break.
            body = self._inline("\n".join(s.lstrip() for s in para).rstrip())
            out.append(body if tight else f"<p>{body}</p>")
            para.clear()

        i = 0
        while i < len(lines):
            line = lines[i]
            stripped = line.strip()

            if top and stripped == SUMMARY_MARKER:
                flush()
                if self._summary_at is None:
                    self._summary_at = len(out)
                out.append('<span id="continue-reading"></span>')
                i += 1
                continue

            fence = _FENCE.match(line)
            if fence:
                flush()
                i = self._fenced(lines, i, fence, out)
                continue

            if para:
                setext = _SETEXT.match(line)
                if setext:
                    level = 1 if setext.group("ch").startswith("=") else 2
                    text = " ".join(s.strip() for s in para)
                    para.clear()
                    out.append(self._heading(level, text))
                    i += 1
                    continue

            if not stripped:
                flush()
                i += 1
                continue

            if _HR.match(line):
                flush()
                out.append("<hr>")
                i += 1
                continue

            atx = _ATX.match(line)
            if atx:
                flush()
                out.append(self._heading(len(atx.group("hashes")), atx.group("text") or ""))
                i += 1
                continue

            if _looks_like_table_start(lines, i):
                flush()
                table_lines: list[str] = []
                while i < len(lines) and lines[i].strip().startswith("|"):
                    table_lines.append(lines[i])
                    i += 1
                out.append(self._table(table_lines))
                continue

            if _QUOTE.match(line):
                flush()
                i = self._blockquote(lines, i, out)
                continue

            if _BULLET.match(line) or _ORDERED.match(line):
                ordered = _ORDERED.match(line)
                # An ordered list may only interrupt a paragraph when it starts at 1.
                if not para or not ordered or ordered.group("num") == "1":
                    flush()
                    i = self._list(lines, i, out)
                    continue

            if _HTML_BLOCK.match(line):
                flush()
                i = self._html_block(lines, i, out)
                continue

            if not para and (line.startswith("    ") or line.startswith("\t")):
                i = self._indented_code(lines, i, out)
                continue

            para.append(line)
            i += 1

        flush()

    def _fenced(self, lines: list[str], i: int, m: re.Match[str], out: list[str]) -> int:
        fence = m.group("fence")
        indent = len(m.group("indent"))
        info = m.group("info").strip()
        body: list[str] = []
        i += 1
        while i < len(lines) and not _closes(lines[i], fence):
            body.append(_strip_indent(lines[i], indent))
            i += 1
        code = "\n".join(body)

        kind = diagram_kind(info)
        svg = self.diagrams.get((kind, code)) if kind else None
        if kind and svg:
            out.append(f'<figure class="diagram diagram-{kind}">{svg}</figure>')
        else:
            out.append(self._code_block(code, info.split()[0] if info else ""))
        return i + 1

    def _code_block(self, code: str, lang: str) -> str:
        lang = re.sub(r"[^A-Za-z0-9_+#-]", "", lang)
        code_attrs = f' class="language-{lang}" data-lang="{lang}"' if lang else ""
        pre_attrs = ""
        if self.options.highlight_code:
            theme = _escape_attr(self.options.highlight_theme)
            pre_attrs = f' class="highlight" data-theme="{theme}"'
            if lang:
                pre_attrs += f' data-lang="{lang}"'
        body = highlight_block(code, lang) if self.options.highlight_code else None
        if body is None:
            body = _escape_block(code)
        return f"<pre{pre_attrs}><code{code_attrs}>{body}</code></pre>"

    def _indented_code(self, lines: list[str], i: int, out: list[str]) -> int:
        body: list[str] = []
        while i < len(lines):
            line = lines[i]
            if line.startswith("    "):
                body.append(line[4:])
            elif line.startswith("\t"):
                body.append(line[1:])
            elif not line.strip():
                body.append("")
            else:
                break
            i += 1
        while body and not body[-1].strip():
            body.pop()
        out.append(self._code_block("\n".join(body), ""))
        return i

    def _heading(self, level: int, raw: str) -> str:
        custom = _CUSTOM_ID.search(raw)
        if custom:
            raw = raw[: custom.start()]
        html = self._inline(raw.strip())
        title = strip_html(html)
        anchor = self._unique_id(custom.group("id") if custom else (slugify(title) or "section"))
        self.toc.append(Heading(level=level, title=title, id=anchor))
        return f'<h{level} id="{anchor}">{html}</h{level}>'

    def _unique_id(self, base: str) -> str:
        count = self._ids.get(base)
        if count is None:
            self._ids[base] = 0
            return base
        while True:
            count += 1
            candidate = f"{base}-{count}"
            if candidate not in self._ids:
                self._ids[base] = count
                self._ids[candidate] = 0
                return candidate

    def _blockquote(self, lines: list[str], i: int, out: list[str]) -> int:
        inner: list[str] = []
        while i < len(lines):
            m = _QUOTE.match(lines[i])
            if m:
                inner.append(m.group("text"))
            elif lines[i].strip() and inner and inner[-1].strip() and not _starts_block(lines[i]):
                inner.append(lines[i])  # lazy continuation
            else:
                break
            i += 1
        out.append("<blockquote>")
        self._blocks(inner, out)
        out.append("</blockquote>")
        return i

    def _list(self, lines: list[str], i: int, out: list[str]) -> int:
        first = _ORDERED.match(lines[i])
        ordered = first is not None
        pattern = _ORDERED if ordered else _BULLET
        marker = (first or _BULLET.match(lines[i])).group("marker")

        items: list[list[str]] = []
        loose = False
        content_col = 0
        while i < len(lines):
            line = lines[i]
            m = pattern.match(line)
            if m and m.group("marker") == marker and (not items or len(m.group("indent")) < content_col):
                text = m.group("text") or ""
                space = len(m.group("space") or " ")
                if space > 4 or not text:
                    space = 1
                content_col = len(m.group("indent")) + len(m.group("num") if ordered else "") + len(marker) + space
                if items and items[-1] and not items[-1][-1].strip():
                    loose = True
                items.append([text])
                i += 1
                continue

            if not line.strip():
                nxt = _next_non_blank(lines, i)
                if nxt is None:
                    break
                follow = lines[nxt]
                sibling = pattern.match(follow)
                if _indent_width(follow) >= content_col or (sibling and sibling.group("marker") == marker):
                    items[-1].append("")
                    i += 1
                    continue
                break

            if _indent_width(line) >= content_col:
                items[-1].append(_strip_indent(line, content_col))
                i += 1
                continue

            if items[-1] and items[-1][-1].strip() and not _starts_block(line):
                items[-1].append(line.strip())  # lazy continuation
                i += 1
                continue
            break

        for item in items:
            # Blank lines between blocks inside one item also make the list loose.
            trimmed = _trim_blank(item)
            if "" in trimmed[1:]:
                loose = True

        start = ""
        if ordered and first is not None and first.group("num") != "1":
            start = f' start="{int(first.group("num"))}"'
        tag = "ol" if ordered else "ul"
        out.append(f"<{tag}{start}>")
        for item in items:
            item_lines = _trim_blank(item)
            checkbox = ""
            if item_lines:
                task = re.match(r"^\[([ xX])\]\s+", item_lines[0])
                if task:
                    checked = " checked" if task.group(1) in "xX" else ""
                    checkbox = f'<input type="checkbox" disabled{checked}> '
                    item_lines = [item_lines[0][task.end() :], *item_lines[1:]]
            inner: list[str] = []
            self._blocks(item_lines, inner, tight=not loose)
            out.append(f"<li>{checkbox}" + "\n".join(inner) + "</li>")
        out.append(f"</{tag}>")
        return i

    def _html_block(self, lines: list[str], i: int, out: list[str]) -> int:
        raw: list[str] = []
        closing = _RAW_UNTIL_CLOSE.match(lines[i])
        if closing:
            end_tag = f"</{closing.group(1).lower()}>"
            while i < len(lines):
                raw.append(lines[i])
                i += 1
                if end_tag in raw[-1].lower():
                    break
        elif lines[i].lstrip().startswith("<!--"):
            while i < len(lines):
                raw.append(lines[i])
                i += 1
                if "-->" in raw[-1]:
                    break
        else:
            while i < len(lines) and lines[i].strip():
                raw.append(lines[i])
                i += 1
        out.append("\n".join(raw))
        return i

    def _table(self, table_lines: list[str]) -> str:
        rows = [_split_row(line) for line in table_lines if line.strip().startswith("|")]
        if len(rows) < 2:
            return "<pre>" + _escape_block("\n".join(table_lines)) + "</pre>"

        header, sep, body_rows = rows[0], rows[1], rows[2:]
        aligns: list[str] = []
        for cell in sep:
            if cell.startswith(":") and cell.endswith(":"):
                aligns.append("center")
            elif cell.endswith(":"):
                aligns.append("right")
            elif cell.startswith(":"):
                aligns.append("left")
            else:
                aligns.append("")

        def attr(col: int) -> str:
            if col < len(aligns) and aligns[col]:
                return f' style="text-align: {aligns[col]}"'
            return ""

        out = ["<table>", "<thead>", "<tr>"]
        for col, h in enumerate(header):
            out.append(f"<th{attr(col)}>{self._inline(h)}</th>")
        out.extend(["</tr>", "</thead>", "<tbody>"])
        for r in body_rows:
            out.append("<tr>")
            for col in range(len(header)):
                cell = r[col] if col < len(r) else ""
                out.append(f"<td{attr(col)}>{self._inline(cell)}</td>")
            out.append("</tr>")
        out.extend(["</tbody>", "</table>"])
        return "\n".join(out)

    # Inline

    def _inline(self, text: str) -> str:
        text = text.replace("\x00", "")
        html = self._inline_tokens(text)
        # Tokens may nest (a link label containing code), restore until stable.
        while _TOKEN.search(html):
            html = _TOKEN.sub(lambda m: self._stash[int(m.group(1))], html)
        return html

    def _stash_html(self, html: str) -> str:
        self._stash.append(html)
        return f"\x00{len(self._stash) - 1}\x00"

    def _inline_tokens(self, text: str) -> str:
        stash = self._stash_html

        # Backslash escapes
        text = re.sub(r"\\([\\`*_{}\[\]()#+\-.!|~<>])", lambda m: stash(_escape_block(m.group(1))), text)
        # Code spans
        text = re.sub(
            r"(`+)(.+?)(?<!`)\1(?!`)",
            lambda m: stash(f"<code>{_escape_block(m.group(2).strip())}</code>"),
            text,
            flags=re.DOTALL,
        )
        # Autolinks
        text = re.sub(r"<(https?://[^\s<>]+)>", lambda m: stash(self._anchor(m.group(1), _escape_block(m.group(1)))), text)
        # Inline HTML passes through untouched
        text = _INLINE_TAG.sub(lambda m: stash(m.group(0)), text)
        # Images
        text = re.sub(
            r"!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"([^\"]*)\")?\s*\)",
            lambda m: stash(self._image(m.group(1), m.group(2), m.group(3))),
            text,
        )
        # Links
        text = re.sub(
            r"\[((?:[^\[\]]|\x00\d+\x00)+)\]\(\s*<?([^)\s>]+)>?(?:\s+\"([^\"]*)\")?\s*\)",
            self._link_repl,
            text,
        )
        # Strong, emphasis, strikethrough
        text = re.sub(r"\*\*(?=\S)(.+?)(?<=\S)\*\*", lambda m: stash(f"<strong>{self._inline_tokens(m.group(1))}</strong>"), text, flags=re.DOTALL)
        text = re.sub(r"(?<!\w)__(?=\S)(.+?)(?<=\S)__(?!\w)", lambda m: stash(f"<strong>{self._inline_tokens(m.group(1))}</strong>"), text, flags=re.DOTALL)
        text = re.sub(r"\*(?=\S)([^*]+?)(?<=\S)\*", lambda m: stash(f"<em>{self._inline_tokens(m.group(1))}</em>"), text, flags=re.DOTALL)
        text = re.sub(r"(?<!\w)_(?=\S)([^_]+?)(?<=\S)_(?!\w)", lambda m: stash(f"<em>{self._inline_tokens(m.group(1))}</em>"), text, flags=re.DOTALL)
        text = re.sub(r"~~(?=\S)(.+?)(?<=\S)~~", lambda m: stash(f"<del>{self._inline_tokens(m.group(1))}</del>"), text, flags=re.DOTALL)
        # Hard line breaks
        text = re.sub(r"(?: {2,}|\\)\n", lambda m: stash("<br>\n"), text)

        escaped = _escape_block(text)
        if self.options.smart_punctuation:
            escaped = _smarten(escaped)
        return escaped

    def _link_repl(self, m: re.Match[str]) -> str:
        href = self._href(m.group(2))
        label = self._inline_tokens(m.group(1))
        if not href:
            return self._stash_html(label)
        title = m.group(3)
        return self._stash_html(self._anchor(href, label, title))

    def _href(self, raw: str) -> str | None:
        href = _safe_href(raw)
        if href and href.startswith("@/"):
            if self.resolver is None:
                return href
            href = self.resolver(href)
        return href

    def _anchor(self, href: str, label_html: str, title: str | None = None) -> str:
        self.links.append(href)
        attrs = [f'href="{_escape_attr(href)}"']
        if title:
            attrs.append(f'title="{_escape_attr(title)}"')
        if self._is_external(href):
            if self.options.external_links_target_blank:
                attrs.append('target="_blank"')
            rel = []
            if self.options.external_links_target_blank:
                rel.append("noopener")
            if self.options.external_links_no_follow:
                rel.append("nofollow")
            if self.options.external_links_no_referrer:
                rel.append("noreferrer")
            if rel:
                attrs.append(f'rel="{" ".join(rel)}"')
        return f"<a {' '.join(attrs)}>{label_html}</a>"

    def _image(self, alt: str, src: str, title: str | None) -> str:
        href = self._href(src)
        if not href:
            return _escape_block(alt)
        self.links.append(href)
        attrs = f'src="{_escape_attr(href)}" alt="{_escape_attr(alt)}"'
        if title:
            attrs += f' title="{_escape_attr(title)}"'
        return f"<img {attrs}>"

    def _is_external(self, href: str) -> bool:
        if not href.startswith(("http://", "https://")):
            return False
        base = self.options.base_url
        return not (base and href.startswith(base))


def _normalize(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _closes(line: str, fence: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and stripped[0] == fence[0] and set(stripped) == {fence[0]} and len(stripped) >= len(fence)


def _strip_indent(line: str, width: int) -> str:
    n = 0
    while n < width and n < len(line) and line[n] == " ":
        n += 1
    return line[n:]


def _indent_width(line: str) -> int:
    expanded = line.expandtabs(4)
    return len(expanded) - len(expanded.lstrip(" "))


def _next_non_blank(lines: list[str], i: int) -> int | None:
    for j in range(i, len(lines)):
        if lines[j].strip():
            return j
    return None


def _trim_blank(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def _starts_block(line: str) -> bool:
    return bool(
        _FENCE.match(line)
        or _ATX.match(line)
        or _HR.match(line)
        or _QUOTE.match(line)
        or _BULLET.match(line)
        or _ORDERED.match(line)
        or _HTML_BLOCK.match(line)
    )


def _split_row(line: str) -> list[str]:
    inner = line.strip()
    if inner.startswith("|"):
        inner = inner[1:]
    if inner.endswith("|") and not inner.endswith("\\|"):
        inner = inner[:-1]
    cells = re.split(r"(?<!\\)\|", inner)
    return [c.strip().replace("\\|", "|") for c in cells]


def _looks_like_table_start(lines: list[str], i: int) -> bool:
    if i + 1 >= len(lines):
        return False
    header = lines[i].strip()
    sep = lines[i + 1].strip()
    if not header.startswith("|") or not sep.startswith("|"):
        return False
    cells = _split_row(sep)
    return bool(cells) and all(_TABLE_SEP_CELL.match(c) for c in cells)


def _escape_block(text: str) -> str:
    # Block escaping (pre/code) – keep newlines.
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _escape_attr(text: str) -> str:
    return (
        text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")
    )


def _safe_href(href: str | None) -> str | None:
    if href is None:
        return None
    cleaned = href.strip()
    if not cleaned:
        return None
    lowered = cleaned.lower()
    if lowered.startswith(("javascript:", "data:", "vbscript:")):
        return None
    return cleaned


def _smarten(text: str) -> str:
    text = text.replace("---", "\u2014").replace("--", "\u2013").replace("...", "\u2026")
    text = re.sub(r"(^|[\s(\[])\"", "\\1\u201c", text)
    text = text.replace('"', "\u201d")
    text = re.sub(r"(^|[\s(\[])'", "\\1\u2018", text)
    return text.replace("'", "\u2019")
