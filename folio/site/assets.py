"""Asset copy and stylesheet compilation steps that run before a build."""

from __future__ import annotations

import glob
import logging
import shutil
import subprocess
from pathlib import Path

from ..config import STATIC_DIR
from ..content.siteconfig import SiteConfig
from ..exceptions import FolioError
from .styles import CSS

logger = logging.getLogger(__name__)


def copy_assets(root: Path, config: SiteConfig, warnings: list[str] | None = None) -> list[Path]:
    """Copy vendored files (e.g. from node_modules) into static/.

    Args:
        root: Site root
        config: Site configuration; uses the [[assets.copy]] entries
        warnings: Collects a message for every pattern that matched nothing

    Returns:
        Destination paths, in copy order
    """
    copied: list[Path] = []
    static_dir = root / STATIC_DIR
    for entry in config.assets.copy_:
        matches = sorted(glob.glob(str(root / entry.source)))
        if not matches:
            msg = f"Asset pattern {entry.source!r} matched nothing"
            logger.warning(msg)
            if warnings is not None:
                warnings.append(msg)
            continue
        dest_dir = static_dir / entry.dest
        dest_dir.mkdir(parents=True, exist_ok=True)
        for match in matches:
            src = Path(match)
            dst = dest_dir / src.name
            if src.is_dir():
                shutil.copytree(src, dst, dirs_exist_ok=True)
            else:
                shutil.copy2(src, dst)
            copied.append(dst)
            logger.debug("Copied %s -> %s", src, dst)
    return copied


def tailwind_command(root: Path, config: SiteConfig, *, watch: bool = False) -> list[str] | None:
    """The Tailwind CLI invocation, or None when input or binary is missing."""
    assets = config.assets
    if not (root / assets.css_input).exists():
        return None
    binary = shutil.which(assets.tailwind_bin)
    if binary is None:
        return None
    cmd = [binary, "-i", assets.css_input, "-o", assets.css_output]
    cmd.append("--watch" if watch else "--minify")
    return cmd


def compile_css(root: Path, config: SiteConfig, warnings: list[str] | None = None) -> Path | None:
    """Compile the Tailwind stylesheet, or provide the built-in one.

    Returns:
        Path of the stylesheet that the build will publish, or None when an
        existing stylesheet is left untouched

    Raises:
        FolioError: If the Tailwind CLI exits non-zero
    """
    output = root / config.assets.css_output
    cmd = tailwind_command(root, config)
    if cmd is not None:
        logger.info("Compiling CSS: %s", " ".join(cmd))
        proc = subprocess.run(cmd, cwd=root, capture_output=True, text=True)
        if proc.returncode != 0:
            raise FolioError(f"tailwindcss failed (exit {proc.returncode}): {proc.stderr.strip()}")
        return output

    if (root / config.assets.css_input).exists():
        msg = f"{config.assets.tailwind_bin} not found on PATH, using the built-in stylesheet"
        logger.warning(msg)
        if warnings is not None:
            warnings.append(msg)

    if output.exists():
        return None
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(CSS.lstrip(), encoding="utf-8")
    return output


def watch_css(root: Path, config: SiteConfig) -> subprocess.Popen[bytes] | None:
    """Start `tailwindcss --watch` in the background for dev mode."""
    cmd = tailwind_command(root, config, watch=True)
    if cmd is None:
        logger.info("No Tailwind input or binary, CSS watch disabled")
        return None
    logger.info("Watching CSS: %s", " ".join(cmd))
    return subprocess.Popen(cmd, cwd=root)
