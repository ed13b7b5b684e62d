"""Environment checks behind `folio doctor`.

Each check returns a DiagnosticResult instead of raising, so one missing
tool never hides the state of the others.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import CACHE_DIR, LIGHTHOUSE_BIN
from .content.siteconfig import SiteConfig, load_site_config
from .exceptions import ConfigError
from .net.cache import DiskCache
from .net.kroki import KrokiRenderer


class HealthStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class DiagnosticResult:
    check: str
    status: HealthStatus
    message: str


def check_python_version() -> DiagnosticResult:
    version = sys.version_info
    text = f"Python {version.major}.{version.minor}.{version.micro}"
    if version >= (3, 11):
        return DiagnosticResult("Python", HealthStatus.OK, text)
    return DiagnosticResult("Python", HealthStatus.ERROR, f"{text} (requires 3.11+)")


def check_site_config(root: Path) -> DiagnosticResult:
    try:
        config = load_site_config(root)
    except ConfigError as e:
        return DiagnosticResult("Site config", HealthStatus.ERROR, str(e))
    return DiagnosticResult("Site config", HealthStatus.OK, f"{config.title or 'untitled'} at {config.base_url}")


def check_tool(name: str, binary: str, purpose: str) -> DiagnosticResult:
    """Probe an external executable with `--version`."""
    exe = shutil.which(binary)
    if exe is None:
        return DiagnosticResult(name, HealthStatus.WARNING, f"{binary} not found in PATH ({purpose} disabled)")
    try:
        result = subprocess.run([exe, "--version"], capture_output=True, text=True, timeout=10)
    except (subprocess.TimeoutExpired, OSError) as e:
        return DiagnosticResult(name, HealthStatus.WARNING, f"{binary} did not answer --version: {e}")
    lines = (result.stdout or result.stderr).strip().splitlines()
    return DiagnosticResult(name, HealthStatus.OK, lines[0] if lines else exe)


def check_diagram_service(config: SiteConfig) -> DiagnosticResult:
    server = config.diagrams.server
    renderer = KrokiRenderer(server, cache=DiskCache(CACHE_DIR / "diagrams"))
    if asyncio.run(renderer.health()):
        return DiagnosticResult("Diagram service", HealthStatus.OK, f"Kroki reachable at {server}")
    return DiagnosticResult(
        "Diagram service",
        HealthStatus.WARNING,
        f"Kroki not reachable at {server} (start it with `podman-compose up -d`)",
    )


def check_cache_directory() -> DiagnosticResult:
    cache = DiskCache(CACHE_DIR)
    count, size = cache.stats()
    return DiagnosticResult(
        "Cache", HealthStatus.OK, f"{cache.cache_dir} ({count} entries, {size / 1024**2:.1f} MB)"
    )


def run_diagnostics(root: Path) -> list[DiagnosticResult]:
    """Run every check for the site at `root`."""
    results = [check_python_version(), check_site_config(root)]
    try:
        config = load_site_config(root)
    except ConfigError:
        config = None

    tailwind = config.assets.tailwind_bin if config else "tailwindcss"
    lint_cmd = config.lint.command[0] if config and config.lint.command else "cargo"
    results.append(check_tool("Tailwind CSS", tailwind, "CSS compilation"))
    results.append(check_tool("Linter", lint_cmd, "content checks"))
    results.append(check_tool("Lighthouse", LIGHTHOUSE_BIN, "performance audit"))
    if config is not None:
        results.append(check_diagram_service(config))
    results.append(check_cache_directory())
    return results
