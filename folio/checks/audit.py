"""Performance/accessibility gate: run Lighthouse over the built site and
assert score thresholds per URL pattern.

Thresholds come from lighthouserc.toml:

    [collect]
    static_dist_dir = "public"

    [[assert.matrix]]
    matching_url_pattern = "^http://[^/]+/blog/.*/"
    [assert.matrix.assertions]
    "categories:performance" = ["error", { min_score = 0.92 }]
    "color-contrast" = "off"

    [upload]
    output_dir = ".lighthouseci"
"""

from __future__ import annotations

import contextlib
import json
import logging
import re
import shutil
import subprocess
import threading
import tomllib
from collections.abc import Iterator
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import AUDIT_CONFIG_FILE, LIGHTHOUSE_BIN, OUTPUT_DIR
from ..content.text import slugify
from ..exceptions import AuditError, ConfigError

logger = logging.getLogger(__name__)

Level = Literal["off", "warn", "error"]

# Score modes that never carry a score; such audits always pass.
UNSCORED_MODES = {"notApplicable", "manual", "informative"}

BLOG_PATTERN = "^http://[^/]+/blog/.*/"


class Assertion(BaseModel):
    """One threshold. A bare level with no option means `min_score = 1`."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    level: Level
    min_score: float | None = Field(default=None, validation_alias=AliasChoices("min_score", "minScore"))
    max_numeric_value: float | None = Field(
        default=None, validation_alias=AliasChoices("max_numeric_value", "maxNumericValue")
    )


class MatrixEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    matching_url_pattern: str = Field(validation_alias=AliasChoices("matching_url_pattern", "matchingUrlPattern"))
    preset: str | None = None
    assertions: dict[str, Assertion] = Field(default_factory=dict)

    @field_validator("matching_url_pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value

    @field_validator("assertions", mode="before")
    @classmethod
    def _expand_shorthand(cls, value: Any) -> Any:
        # "off" | "warn" | "error" | [level, {options}]
        if not isinstance(value, dict):
            return value
        expanded = {}
        for audit_id, rule in value.items():
            if isinstance(rule, str):
                expanded[audit_id] = {"level": rule}
            elif isinstance(rule, list) and len(rule) in (1, 2):
                options = rule[1] if len(rule) == 2 else {}
                if not isinstance(options, dict):
                    raise ValueError(f"{audit_id}: options must be a table")
                expanded[audit_id] = {"level": rule[0], **options}
            else:
                expanded[audit_id] = rule
        return expanded


class CollectConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    static_dist_dir: str = OUTPUT_DIR
    urls: list[str] = Field(default_factory=list)
    number_of_runs: int = Field(default=1, gt=0)
    chrome_flags: str = "--headless"


class AssertConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    matrix: list[MatrixEntry] = Field(default_factory=list)


class UploadConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target: Literal["filesystem"] = "filesystem"
    output_dir: str = ".lighthouseci"


class AuditConfig(BaseModel):
    """Validated contents of lighthouserc.toml."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    collect: CollectConfig = Field(default_factory=CollectConfig)
    assert_: AssertConfig = Field(default_factory=lambda: AssertConfig(matrix=default_matrix()), alias="assert")
    upload: UploadConfig = Field(default_factory=UploadConfig)

    @property
    def matrix(self) -> list[MatrixEntry]:
        return self.assert_.matrix


class AssertionResult(BaseModel):
    url: str
    audit: str
    level: Level
    passed: bool
    actual: float | None = None
    expected: float | None = None
    operator: str = ">="
    message: str = ""


class AuditReport(BaseModel):
    urls: list[str] = Field(default_factory=list)
    results: list[AssertionResult] = Field(default_factory=list)
    output_dir: str | None = None

    @property
    def failures(self) -> list[AssertionResult]:
        return [r for r in self.results if not r.passed and r.level == "error"]

    @property
    def warnings(self) -> list[AssertionResult]:
        return [r for r in self.results if not r.passed and r.level == "warn"]

    @property
    def exit_code(self) -> int:
        return 1 if self.failures else 0


def default_matrix() -> list[MatrixEntry]:
    """Thresholds for standalone pages and for blog posts."""
    pages = {
        "categories:performance": ["error", {"min_score": 0.75}],
        "categories:accessibility": ["error", {"min_score": 0.95}],
        "categories:best-practices": ["error", {"min_score": 0.95}],
        "categories:seo": ["error", {"min_score": 0.95}],
        "first-contentful-paint": ["error", {"min_score": 0.8}],
        "render-blocking-resources": "off",
        "uses-long-cache-ttl": "off",
        "offscreen-images": "off",
        "mainthread-work-breakdown": "warn",
        "modern-image-formats": "warn",
    }
    posts = {
        "categories:performance": ["error", {"min_score": 0.92}],
        "categories:accessibility": ["error", {"min_score": 0.93}],
        "categories:best-practices": ["error", {"min_score": 0.95}],
        "categories:seo": ["error", {"min_score": 0.95}],
        "first-contentful-paint": ["error", {"min_score": 0.7}],
        "render-blocking-resources": "off",
        "uses-long-cache-ttl": "off",
        "dom-size": "warn",
        "color-contrast": "off",
    }
    return [
        MatrixEntry(matching_url_pattern=f"^(?!{BLOG_PATTERN[1:]})", preset="lighthouse:no-pwa", assertions=pages),
        MatrixEntry(matching_url_pattern=BLOG_PATTERN, preset="lighthouse:no-pwa", assertions=posts),
    ]


def load_audit_config(root: Path, path: Path | None = None) -> AuditConfig:
    """Read lighthouserc.toml, or fall back to the built-in matrix.

    Raises:
        ConfigError: If the file exists but cannot be parsed or validated
    """
    file = path or root / AUDIT_CONFIG_FILE
    if not file.exists():
        if path is not None:
            raise ConfigError(f"{file} does not exist")
        logger.debug("No %s, using default thresholds", AUDIT_CONFIG_FILE)
        return AuditConfig()
    try:
        data = tomllib.loads(file.read_text(encoding="utf-8"))
        return AuditConfig.model_validate(data)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{file}: invalid TOML: {e}") from e
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ConfigError(f"{file}: {problems}") from e


def collect_urls(dist_dir: Path, base: str) -> list[str]:
    """One URL per index.html in the build, sorted."""
    urls = []
    for file in sorted(dist_dir.rglob("index.html")):
        rel = file.parent.relative_to(dist_dir).as_posix()
        urls.append(f"{base}/" if rel == "." else f"{base}/{rel}/")
    return urls


def run_lighthouse(url: str, binary: str = LIGHTHOUSE_BIN, chrome_flags: str = "--headless") -> dict[str, Any]:
    """Run the Lighthouse CLI against one URL and return its JSON report.

    Raises:
        AuditError: If Lighthouse is missing, fails, or prints invalid JSON
    """
    exe = shutil.which(binary)
    if exe is None:
        raise AuditError(f"{binary} not found on PATH (npm install -g lighthouse)")
    cmd = [exe, url, "--output=json", "--output-path=stdout", "--quiet", f"--chrome-flags={chrome_flags}"]
    logger.info("Lighthouse %s", url)
    proc = subprocess.run(cmd, capture_output=True, text=True)
    if proc.returncode != 0:
        raise AuditError(f"lighthouse failed for {url} (exit {proc.returncode}): {proc.stderr.strip()[-500:]}")
    try:
        report = json.loads(proc.stdout)
    except json.JSONDecodeError as e:
        raise AuditError(f"lighthouse printed invalid JSON for {url}: {e}") from e
    if not isinstance(report, dict):
        raise AuditError(f"lighthouse printed an unexpected report for {url}")
    return report


def report_url(report: dict[str, Any]) -> str:
    return str(report.get("finalDisplayedUrl") or report.get("finalUrl") or report.get("requestedUrl") or "")


def evaluate(report: dict[str, Any], matrix: list[MatrixEntry], url: str | None = None) -> list[AssertionResult]:
    """Check one Lighthouse report against every matrix entry matching its URL.

    Args:
        report: Lighthouse result (LHR) JSON
        matrix: Threshold matrix
        url: URL to match patterns against (default: the report's URL)

    Returns:
        One result per applied assertion, `off` assertions excluded
    """
    url = url or report_url(report)
    results: list[AssertionResult] = []
    for entry in matrix:
        if not re.search(entry.matching_url_pattern, url):
            continue
        for audit_id in sorted(entry.assertions):
            assertion = entry.assertions[audit_id]
            if assertion.level == "off":
                continue
            results.extend(_check(report, url, audit_id, assertion))
    return results


def _check(report: dict[str, Any], url: str, audit_id: str, assertion: Assertion) -> list[AssertionResult]:
    if audit_id.startswith("categories:"):
        category = (report.get("categories") or {}).get(audit_id.split(":", 1)[1])
        found = category is not None
        score = category.get("score") if found else None
        numeric = None
        unscored = False
    else:
        audit = (report.get("audits") or {}).get(audit_id)
        found = audit is not None
        score = audit.get("score") if found else None
        numeric = audit.get("numericValue") if found else None
        unscored = found and audit.get("scoreDisplayMode") in UNSCORED_MODES

    def result(passed: bool, actual: float | None, expected: float, operator: str, message: str) -> AssertionResult:
        return AssertionResult(
            url=url,
            audit=audit_id,
            level=assertion.level,
            passed=passed,
            actual=actual,
            expected=expected,
            operator=operator,
            message=message,
        )

    results = []
    min_score = assertion.min_score
    if min_score is None and assertion.max_numeric_value is None:
        min_score = 1.0

    if min_score is not None:
        if not found:
            results.append(result(False, None, min_score, ">=", "not present in the report"))
        elif unscored and score is None:
            results.append(result(True, None, min_score, ">=", "not applicable"))
        elif score is None:
            results.append(result(False, None, min_score, ">=", "no score"))
        else:
            ok = float(score) >= min_score
            results.append(result(ok, float(score), min_score, ">=", "" if ok else f"score {score} < {min_score}"))

    if assertion.max_numeric_value is not None:
        limit = assertion.max_numeric_value
        if numeric is None:
            results.append(result(False, None, limit, "<=", "no numeric value"))
        else:
            ok = float(numeric) <= limit
            results.append(result(ok, float(numeric), limit, "<=", "" if ok else f"value {numeric} > {limit}"))
    return results


@contextlib.contextmanager
def static_server(directory: Path) -> Iterator[str]:
    """Serve `directory` on an ephemeral localhost port; yields the base URL."""
    handler = partial(_QuietHandler, directory=str(directory))
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug(format, *args)


def run_audit(
    config: AuditConfig,
    root: Path,
    reports_dir: Path | None = None,
    binary: str = LIGHTHOUSE_BIN,
) -> AuditReport:
    """Collect Lighthouse reports (or read existing ones) and assert thresholds.

    Args:
        config: Audit configuration
        root: Site root; relative directories in `config` resolve against it
        reports_dir: Directory of pre-collected Lighthouse JSON reports; when
            given, Lighthouse is not run
        binary: Lighthouse executable

    Returns:
        AuditReport; `exit_code` is 1 iff an error-level assertion failed

    Raises:
        AuditError: If there is nothing to audit or Lighthouse cannot run
    """
    if reports_dir is not None:
        reports = _read_reports(reports_dir)
        fresh = False
    else:
        reports = _collect(config, root, binary)
        fresh = True
    if not reports:
        raise AuditError("No pages to audit")

    report = AuditReport(urls=[url for url, _ in reports])
    for url, lhr in reports:
        report.results.extend(evaluate(lhr, config.matrix, url))

    out_dir = root / config.upload.output_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    if fresh:
        for url, lhr in reports:
            name = f"lhr-{slugify(url.split('://', 1)[-1].split('/', 1)[-1]) or 'index'}.json"
            (out_dir / name).write_text(json.dumps(lhr, indent=2, sort_keys=True), encoding="utf-8")
    results = [r.model_dump() for r in report.results]
    (out_dir / "assertion-results.json").write_text(json.dumps(results, indent=2, sort_keys=True), encoding="utf-8")
    report.output_dir = str(out_dir)

    logger.info(
        "Audited %d URLs: %d failures, %d warnings", len(report.urls), len(report.failures), len(report.warnings)
    )
    return report


def _collect(config: AuditConfig, root: Path, binary: str) -> list[tuple[str, dict[str, Any]]]:
    dist_dir = root / config.collect.static_dist_dir
    if not (dist_dir / "index.html").exists():
        raise AuditError(f"No build found in {dist_dir}, run `folio build` first")

    reports = []
    with static_server(dist_dir) as base:
        if config.collect.urls:
            urls = [u if "://" in u else f"{base}/{u.lstrip('/')}" for u in config.collect.urls]
        else:
            urls = collect_urls(dist_dir, base)
        for url in urls:
            runs = [run_lighthouse(url, binary, config.collect.chrome_flags) for _ in range(config.collect.number_of_runs)]
            reports.append((url, _representative(runs)))
    return reports


def _representative(runs: list[dict[str, Any]]) -> dict[str, Any]:
    """The run with the median performance score."""
    if len(runs) == 1:
        return runs[0]

    def perf(run: dict[str, Any]) -> float:
        score = ((run.get("categories") or {}).get("performance") or {}).get("score")
        return float(score) if score is not None else 0.0

    ordered = sorted(runs, key=perf)
    return ordered[len(ordered) // 2]


def _read_reports(reports_dir: Path) -> list[tuple[str, dict[str, Any]]]:
    if not reports_dir.is_dir():
        raise AuditError(f"{reports_dir} is not a directory")
    reports = []
    for file in sorted(reports_dir.glob("*.json")):
        try:
            data = json.loads(file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise AuditError(f"{file}: invalid JSON: {e}") from e
        if not isinstance(data, dict) or "categories" not in data:
            logger.debug("Skipping %s (not a Lighthouse report)", file)
            continue
        url = report_url(data)
        if not url:
            raise AuditError(f"{file}: report has no URL")
        reports.append((url, data))
    return reports
