"""Site configuration model (config.toml)."""

from __future__ import annotations

import tomllib
from pathlib import Path, PurePosixPath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import CONFIG_FILE, KROKI_URL, LINT_CLEAN_DIRS, LINT_COMMAND, LINT_MANIFEST, STATIC_DIR, TAILWIND_BIN
from ..exceptions import ConfigError

HIGHLIGHT_STYLESHEET = "syntax.css"


class TaxonomyConfig(BaseModel):
    """A declared taxonomy (classification axis)."""

    model_config = ConfigDict(extra="forbid")

    name: str
    render: bool = True
    paginate_by: int | None = Field(default=None, gt=0)
    feed: bool = False


class MarkdownConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    highlight_code: bool = False
    highlight_theme: str = "base16-ocean-dark"
    external_links_target_blank: bool = False
    external_links_no_follow: bool = False
    external_links_no_referrer: bool = False
    smart_punctuation: bool = False


class LinkCheckerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    skip_prefixes: list[str] = Field(default_factory=list)
    skip_anchor_prefixes: list[str] = Field(default_factory=list)
    internal_level: Literal["error", "warn"] = "error"
    external_level: Literal["error", "warn"] = "error"


class DiagramConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    server: str = KROKI_URL
    on_error: Literal["error", "source"] = "error"


class LintConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    manifest: str = LINT_MANIFEST
    command: list[str] = Field(default_factory=lambda: list(LINT_COMMAND))
    clean_dirs: list[str] = Field(default_factory=lambda: list(LINT_CLEAN_DIRS))

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            import shlex

            return shlex.split(value)
        return value


class AssetCopy(BaseModel):
    """Copy files matching `from` (a glob relative to the site root) into static/`to`."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: str = Field(alias="from")
    dest: str = Field(default="", alias="to")


class AssetsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    copy_: list[AssetCopy] = Field(default_factory=list, alias="copy")
    css_input: str = "input.css"
    css_output: str = "static/css/styles.css"
    tailwind_bin: str = TAILWIND_BIN

    @field_validator("css_output")
    @classmethod
    def _published(cls, value: str) -> str:
        parts = PurePosixPath(value).parts
        if len(parts) < 2 or parts[0] != STATIC_DIR or ".." in parts:
            raise ValueError(f"must be a file under {STATIC_DIR}/ so the build publishes it, got {value!r}")
        return value

    @property
    def stylesheet_href(self) -> str:
        """Site URL of the compiled stylesheet (`static/css/x.css` -> `/css/x.css`)."""
        return "/" + PurePosixPath(*PurePosixPath(self.css_output).parts[1:]).as_posix()


class AuthorExtra(BaseModel):
    """The [extra] table. Author fields are typed, anything else passes through."""

    model_config = ConfigDict(extra="allow")

    author_name: str | None = None
    author_title: str | None = None
    author_bio: str | None = None
    author_image: str | None = None
    analytics_src: str | None = None
    analytics_domain: str | None = None
    track_scroll: bool = False

    def get(self, key: str, default: Any = None) -> Any:
        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.model_extra or {}).get(key, default)


class SiteConfig(BaseModel):
    """Validated contents of config.toml."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    base_url: str
    title: str = ""
    description: str = ""
    default_language: str = "en"
    compile_sass: bool = False
    build_search_index: bool = False
    generate_feed: bool = False
    feed_filename: str = "atom.xml"
    taxonomies: list[TaxonomyConfig] = Field(default_factory=list)
    markdown: MarkdownConfig = Field(default_factory=MarkdownConfig)
    link_checker: LinkCheckerConfig = Field(default_factory=LinkCheckerConfig)
    diagrams: DiagramConfig = Field(default_factory=DiagramConfig)
    lint: LintConfig = Field(default_factory=LintConfig)
    assets: AssetsConfig = Field(default_factory=AssetsConfig)
    extra: AuthorExtra = Field(default_factory=AuthorExtra)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def permalink(self, path: str) -> str:
        """Absolute URL for a site-relative path such as ``/blog/post/``."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @property
    def highlight_stylesheet_href(self) -> str | None:
        """Token colours for highlighted code, published next to the main stylesheet."""
        if not self.markdown.highlight_code:
            return None
        return PurePosixPath(self.assets.stylesheet_href).with_name(HIGHLIGHT_STYLESHEET).as_posix()

    def taxonomy(self, name: str) -> TaxonomyConfig | None:
        for tax in self.taxonomies:
            if tax.name == name:
                return tax
        return None


def load_site_config(root: Path) -> SiteConfig:
    """Load and validate `config.toml` from a site root.

    Raises:
        ConfigError: If the file is missing, is not valid TOML or fails validation
    """
    path = root / CONFIG_FILE
    if not path.exists():
        raise ConfigError(f"No {CONFIG_FILE} found in {root}")
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: invalid TOML: {e}") from e
    return parse_site_config(data, path)


def parse_site_config(data: dict[str, Any], path: Path | str = CONFIG_FILE) -> SiteConfig:
    try:
        return SiteConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"{path}: {problems}") from e
