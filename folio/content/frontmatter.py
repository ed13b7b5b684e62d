"""TOML front matter (`+++` delimited) for pages and sections."""

from __future__ import annotations

import datetime as dt
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import FrontMatterError

DELIMITER = "+++"


class PageMeta(BaseModel):
    """Front matter of a page (blog post or standalone page)."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    date: dt.date | None = None
    updated: dt.date | None = None
    draft: bool = False
    slug: str | None = None
    path: str | None = None
    weight: int | None = None
    aliases: list[str] = Field(default_factory=list)
    template: str | None = None
    taxonomies: dict[str, list[str]] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("date", "updated", mode="before")
    @classmethod
    def _narrow_datetime(cls, value: Any) -> Any:
        # TOML offset/local datetimes only matter to the day.
        if isinstance(value, dt.datetime):
            return value.date()
        return value


class SectionMeta(BaseModel):
    """Front matter of a section (`_index.md`)."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    sort_by: Literal["date", "title", "weight", "none"] = "none"
    paginate_by: int | None = Field(default=None, gt=0)
    render: bool = True
    template: str | None = None
    transparent: bool = False
    weight: int | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


def split_front_matter(text: str, path: Path | str = "<string>") -> tuple[str, str]:
    """Split a content file into its raw TOML block and Markdown body.

    Args:
        text: Full file contents
        path: Used in error messages only

    Returns:
        (toml, body) tuple

    Raises:
        FrontMatterError: If the opening or closing delimiter is missing
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    lines = text.split("\n")

    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start >= len(lines) or lines[start].strip() != DELIMITER:
        raise FrontMatterError(path, "front matter must start with '+++'")

    for end in range(start + 1, len(lines)):
        if lines[end].strip() == DELIMITER:
            toml_text = "\n".join(lines[start + 1 : end])
            body = "\n".join(lines[end + 1 :])
            return toml_text, body.lstrip("\n")

    raise FrontMatterError(path, "unterminated front matter (missing closing '+++')")


def parse_page(text: str, path: Path | str = "<string>") -> tuple[PageMeta, str]:
    """Parse a page's front matter and return (meta, body)."""
    data, body = _load(text, path)
    return _validate(PageMeta, data, path), body


def parse_section(text: str, path: Path | str = "<string>") -> tuple[SectionMeta, str]:
    """Parse a section's front matter and return (meta, body)."""
    data, body = _load(text, path)
    return _validate(SectionMeta, data, path), body


def _load(text: str, path: Path | str) -> tuple[dict[str, Any], str]:
    toml_text, body = split_front_matter(text, path)
    try:
        data = tomllib.loads(toml_text)
    except tomllib.TOMLDecodeError as e:
        raise FrontMatterError(path, f"invalid TOML: {e}") from e
    return data, body


def _validate(model: type[BaseModel], data: dict[str, Any], path: Path | str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise FrontMatterError(path, problems) from e
