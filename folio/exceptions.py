"""Exception hierarchy shared across folio."""

from __future__ import annotations

from pathlib import Path


class FolioError(Exception):
    """Base error for everything folio raises on purpose."""


class ConfigError(FolioError):
    """Raised when config.toml or lighthouserc.toml is missing or invalid."""


class FrontMatterError(FolioError):
    """Raised when a content file's front matter cannot be parsed."""

    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        super().__init__(f"{path}: {message}")


class ContentError(FolioError):
    """Raised for content tree problems (URL clashes, broken @/ links, ...)."""


class DiagramError(FolioError):
    """Raised when the diagram service cannot render a block."""


class AuditError(FolioError):
    """Raised when the performance audit cannot run."""
