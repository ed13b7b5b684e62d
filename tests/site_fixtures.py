"""Helpers that lay out small sites on disk for the tests."""

from __future__ import annotations

import textwrap
from pathlib import Path

CONFIG = """\
base_url = "https://example.test"
title = "Example"
description = "A test site."

taxonomies = [
    {name = "tags"},
    {name = "categories", render = false},
]
"""


def write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def post(title: str, date: str | None = None, tags: list[str] | None = None,
         categories: list[str] | None = None, body: str = "Body text.", extra: str = "") -> str:
    lines = ["+++", f'title = "{title}"']
    if date:
        lines.append(f"date = {date}")
    if extra:
        lines.append(extra)
    if tags is not None or categories is not None:
        lines.append("[taxonomies]")
        if tags is not None:
            lines.append("tags = [" + ", ".join(f'"{t}"' for t in tags) + "]")
        if categories is not None:
            lines.append("categories = [" + ", ".join(f'"{c}"' for c in categories) + "]")
    lines.append("+++")
    lines.append("")
    lines.append(body)
    return "\n".join(lines) + "\n"


def make_site(root: Path, config_extra: str = "") -> Path:
    """A site with a home page and a date-sorted blog section."""
    write(root, "config.toml", CONFIG + config_extra)
    write(root, "content/_index.md", '+++\ntitle = "Home"\n+++\n\nWelcome.\n')
    write(root, "content/blog/_index.md", '+++\ntitle = "Blog"\nsort_by = "date"\n+++\n')
    return root
