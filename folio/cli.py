"""CLI entry point for folio.

This CLI intentionally avoids third-party CLI frameworks so the project remains
easy to run in CI images that only carry a Python interpreter.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .config import CACHE_DIR, CONFIG_FILE, CONTENT_DIR, DEV_HOST, DEV_PORT, OUTPUT_DIR
from .exceptions import FolioError


def app(argv: list[str] | None = None) -> None:
    """Console script entrypoint."""
    raise SystemExit(main(argv))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="folio",
        description="Portfolio & blog toolkit: build, serve, lint and audit a static site.",
    )
    parser.add_argument("--version", action="version", version=f"folio {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log progress (DEBUG level)")
    parser.add_argument("--root", "-C", type=Path, default=Path("."), help="Site root (contains config.toml)")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_build = sub.add_parser("build", help="Copy assets, compile CSS and generate the site")
    p_build.add_argument("--out", "-o", type=Path, default=None, help=f"Output directory (default: {OUTPUT_DIR})")
    p_build.add_argument("--base-url", default=None, help="Override base_url from config.toml")
    p_build.add_argument("--drafts", action="store_true", help="Include draft pages")

    for name, help_text in (("serve", "Serve the site locally with live reload"), ("dev", "serve plus the Tailwind watcher")):
        p_serve = sub.add_parser(name, help=help_text)
        p_serve.add_argument("--host", default=DEV_HOST, help="Interface to bind")
        p_serve.add_argument("--port", "-p", type=int, default=DEV_PORT, help="Port to bind")
        p_serve.add_argument("--drafts", action="store_true", help="Include draft pages")

    p_check = sub.add_parser("check", help="Lint every code project embedded in the content")
    p_check.add_argument("--content-dir", type=Path, default=None, help=f"Directory to search (default: {CONTENT_DIR})")

    p_links = sub.add_parser("check-links", help="Build into a temp dir and verify internal and external links")
    p_links.add_argument("--skip-external", action="store_true", help="Only check internal links and anchors")

    p_audit = sub.add_parser("audit", help="Run Lighthouse over the build and assert score thresholds")
    p_audit.add_argument("--config", type=Path, default=None, help="Audit config (default: lighthouserc.toml)")
    p_audit.add_argument("--reports", type=Path, default=None, help="Evaluate existing Lighthouse JSON reports instead")

    p_clean = sub.add_parser("clean", help="Remove content build dirs, the output directory and the cache")
    p_clean.add_argument("--content-only", action="store_true", help="Only clean the content projects")

    sub.add_parser("doctor", help="Check external tools and the diagram service")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "build": _cmd_build,
        "serve": _cmd_serve,
        "dev": _cmd_serve,
        "check": _cmd_check,
        "check-links": _cmd_check_links,
        "audit": _cmd_audit,
        "clean": _cmd_clean,
        "doctor": _cmd_doctor,
    }
    command = commands.get(args.cmd)
    if command is None:
        parser.print_help()
        return 2

    try:
        return command(args)
    except (FolioError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _cmd_build(args: Any) -> int:
    from .site.build import build_site

    report = build_site(args.root, args.out, base_url=args.base_url, include_drafts=bool(args.drafts))
    print("✓ Site built")
    print(f"  Output: {report.out_dir}")
    print(f"  Pages: {report.pages}")
    print(f"  Sections: {report.sections}")
    print(f"  Terms: {report.terms}")
    if report.diagrams:
        print(f"  Diagrams: {report.diagrams}")
    print(f"  Size: {report.total_bytes / 1024:.1f} KB")
    _print_warnings(report.warnings)
    return 0


def _cmd_serve(args: Any) -> int:
    from .site.serve import dev, serve

    if args.cmd == "dev":
        return dev(args.root, args.host, args.port, drafts=bool(args.drafts))
    return serve(args.root, args.host, args.port, drafts=bool(args.drafts))


def _cmd_check(args: Any) -> int:
    from .checks.content import check_content
    from .content.siteconfig import LintConfig, load_site_config

    lint = load_site_config(args.root).lint if (args.root / CONFIG_FILE).exists() else LintConfig()
    content_dir = args.content_dir or args.root / CONTENT_DIR
    if not content_dir.is_dir():
        print(f"Error: {content_dir} is not a directory", file=sys.stderr)
        return 1
    report = check_content(content_dir, lint.command, lint.manifest, lint.clean_dirs, verbose=bool(args.verbose))
    return report.exit_code


def _cmd_check_links(args: Any) -> int:
    from .site.links import check_site

    report = check_site(args.root, check_external=not args.skip_external)
    for problem in report.problems:
        mark = "✗" if problem.level == "error" else "!"
        print(f"{mark} {problem.source}: {problem.url} ({problem.message})")
    print(
        f"\nChecked {report.internal_checked} internal and {report.external_checked} external links "
        f"in {report.files} files: {len(report.errors)} errors, {len(report.problems) - len(report.errors)} warnings"
    )
    if report.ok:
        print("✓ Links OK")
        return 0
    return 1


def _cmd_audit(args: Any) -> int:
    from .checks.audit import load_audit_config, run_audit

    config = load_audit_config(args.root, args.config)
    report = run_audit(config, args.root, reports_dir=args.reports)

    for url in report.urls:
        failed = [r for r in report.results if r.url == url and not r.passed]
        if not failed:
            print(f"✓ {url}")
            continue
        print(f"✗ {url}" if any(r.level == "error" for r in failed) else f"! {url}")
        for r in failed:
            print(f"    {r.level:5} {r.audit}: {r.message}")

    print(f"\nReports written to {report.output_dir}")
    if report.failures:
        print(f"{len(report.failures)} assertion(s) failed.")
    else:
        print("All assertions passed!")
    return report.exit_code


def _cmd_clean(args: Any) -> int:
    from .checks.content import clean_content
    from .content.siteconfig import LintConfig, load_site_config
    from .net.cache import DiskCache

    lint = load_site_config(args.root).lint if (args.root / CONFIG_FILE).exists() else LintConfig()
    content_dir = args.root / CONTENT_DIR
    if content_dir.is_dir():
        removed = clean_content(content_dir, lint.clean_dirs, lint.manifest)
        print(f"Removed {len(removed)} build director{'y' if len(removed) == 1 else 'ies'} under {content_dir}")
    if args.content_only:
        return 0

    out_dir = args.root / OUTPUT_DIR
    if out_dir.exists():
        shutil.rmtree(out_dir)
        print(f"Removed {out_dir}")
    count = DiskCache(CACHE_DIR).clear_all()
    print(f"Cleared cache: {count} entries")
    return 0


def _cmd_doctor(args: Any) -> int:
    from .diagnostics import HealthStatus, run_diagnostics

    results = run_diagnostics(args.root)
    marks = {HealthStatus.OK: "✓", HealthStatus.WARNING: "!", HealthStatus.ERROR: "✗"}
    for result in results:
        print(f"{marks[result.status]} {result.check}: {result.message}")
    return 1 if any(r.status == HealthStatus.ERROR for r in results) else 0


def _print_warnings(warnings: list[str]) -> None:
    if not warnings:
        return
    print(f"\nWarnings ({len(warnings)}):")
    for w in warnings[:10]:
        print(f"  - {w}")
    if len(warnings) > 10:
        print(f"  ... and {len(warnings) - 10} more")


if __name__ == "__main__":
    app()
