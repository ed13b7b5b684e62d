"""Configuration constants and paths for folio."""

import os
import shlex
from pathlib import Path

# Cache location - user-level, survives project moves
CACHE_DIR = Path(os.getenv("FOLIO_CACHE_DIR", Path.home() / ".folio" / "cache"))

# Site layout (relative to the site root)
CONFIG_FILE = "config.toml"
CONTENT_DIR = "content"
STATIC_DIR = "static"
OUTPUT_DIR = os.getenv("FOLIO_OUTPUT_DIR", "public")
AUDIT_CONFIG_FILE = "lighthouserc.toml"

# Diagram rendering service (Kroki)
KROKI_URL = os.getenv("FOLIO_KROKI_URL", "http://localhost:8000")
DIAGRAM_CONCURRENCY = int(os.getenv("FOLIO_DIAGRAM_CONCURRENCY", "4"))

# HTTP client settings
USER_AGENT = os.getenv("FOLIO_USER_AGENT", "folio-linkcheck/0.3")
CONNECT_TIMEOUT = 10.0
READ_TIMEOUT = float(os.getenv("FOLIO_READ_TIMEOUT", "30"))
MAX_RETRIES = int(os.getenv("FOLIO_MAX_RETRIES", "3"))

# External link checks: requests per second across all hosts
LINK_CHECK_RATE = float(os.getenv("FOLIO_LINK_CHECK_RATE", "5"))

# Words per minute used for reading time
READING_WPM = int(os.getenv("FOLIO_READING_WPM", "200"))

# Content linter defaults (one sub-project per manifest file)
LINT_MANIFEST = "Cargo.toml"
LINT_COMMAND = shlex.split(
    os.getenv("FOLIO_LINT_COMMAND", "cargo clippy --quiet -- -D warnings")
)
LINT_CLEAN_DIRS = ["target"]

# External tools
TAILWIND_BIN = os.getenv("FOLIO_TAILWIND_BIN", "tailwindcss")
LIGHTHOUSE_BIN = os.getenv("FOLIO_LIGHTHOUSE_BIN", "lighthouse")

# Dev server
DEV_HOST = "127.0.0.1"
DEV_PORT = int(os.getenv("FOLIO_DEV_PORT", "1111"))
WATCH_INTERVAL = 0.5
