"""Tests for the Lighthouse threshold gate."""

from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from folio.checks.audit import (
    AuditConfig,
    Assertion,
    MatrixEntry,
    collect_urls,
    default_matrix,
    evaluate,
    load_audit_config,
    run_audit,
)
from folio.cli import main
from folio.exceptions import AuditError, ConfigError

HOME = "http://127.0.0.1:8080/"
POST = "http://127.0.0.1:8080/blog/async-runtime-internals/"


def lhr(url: str, performance: float = 1.0, **audit_scores: float | None) -> dict:
    """A minimal Lighthouse result where everything scores 1 unless overridden."""
    categories = {
        name: {"score": 1.0} for name in ("accessibility", "best-practices", "seo")
    }
    categories["performance"] = {"score": performance}
    audits = {
        audit_id: {"score": 1.0, "numericValue": 100.0}
        for audit_id in (
            "first-contentful-paint",
            "mainthread-work-breakdown",
            "modern-image-formats",
            "dom-size",
            "color-contrast",
        )
    }
    for audit_id, score in audit_scores.items():
        audits[audit_id.replace("_", "-")] = {"score": score}
    return {"requestedUrl": url, "finalDisplayedUrl": url, "categories": categories, "audits": audits}


class TestEvaluate(unittest.TestCase):
    def test_homepage_uses_page_thresholds(self) -> None:
        results = evaluate(lhr(HOME, performance=0.8), default_matrix())
        perf = [r for r in results if r.audit == "categories:performance"]
        self.assertEqual(len(perf), 1)
        self.assertTrue(perf[0].passed)
        self.assertEqual(perf[0].expected, 0.75)
        self.assertNotIn("dom-size", {r.audit for r in results})

    def test_blog_post_uses_post_thresholds(self) -> None:
        results = evaluate(lhr(POST, performance=0.8), default_matrix())
        perf = next(r for r in results if r.audit == "categories:performance")
        self.assertFalse(perf.passed)
        self.assertEqual(perf.expected, 0.92)
        self.assertEqual(perf.level, "error")
        self.assertIn("0.8 < 0.92", perf.message)

    def test_blog_index_is_not_a_post(self) -> None:
        results = evaluate(lhr("http://127.0.0.1:8080/blog/", performance=0.8), default_matrix())
        perf = next(r for r in results if r.audit == "categories:performance")
        self.assertTrue(perf.passed)

    def test_off_assertions_are_skipped(self) -> None:
        results = evaluate(lhr(POST, color_contrast=0.0), default_matrix())
        self.assertNotIn("color-contrast", {r.audit for r in results})
        self.assertNotIn("render-blocking-resources", {r.audit for r in results})

    def test_warn_level_failure(self) -> None:
        results = evaluate(lhr(POST, dom_size=0.5), default_matrix())
        dom = next(r for r in results if r.audit == "dom-size")
        self.assertFalse(dom.passed)
        self.assertEqual(dom.level, "warn")
        self.assertEqual(dom.expected, 1.0)

    def test_missing_and_unscored_audits(self) -> None:
        matrix = [
            MatrixEntry(
                matching_url_pattern=".*",
                assertions={"missing-audit": Assertion(level="error"), "manual-audit": Assertion(level="error")},
            )
        ]
        report = lhr(HOME)
        report["audits"]["manual-audit"] = {"score": None, "scoreDisplayMode": "manual"}
        results = {r.audit: r for r in evaluate(report, matrix)}
        self.assertFalse(results["missing-audit"].passed)
        self.assertTrue(results["manual-audit"].passed)

    def test_max_numeric_value(self) -> None:
        matrix = [
            MatrixEntry(
                matching_url_pattern=".*",
                assertions={"first-contentful-paint": ["error", {"maxNumericValue": 50}]},
            )
        ]
        results = evaluate(lhr(HOME), matrix)
        self.assertEqual(len(results), 1)
        self.assertFalse(results[0].passed)
        self.assertEqual(results[0].operator, "<=")


class TestAuditConfig(unittest.TestCase):
    def test_defaults_without_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            config = load_audit_config(Path(td))
        self.assertEqual(len(config.matrix), 2)
        self.assertEqual(config.upload.output_dir, ".lighthouseci")

    def test_toml_shorthand(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / "lighthouserc.toml").write_text(
                "[collect]\n"
                'static_dist_dir = "dist"\n'
                "number_of_runs = 3\n"
                "[[assert.matrix]]\n"
                'matching_url_pattern = "^http://[^/]+/blog/.*/"\n'
                "[assert.matrix.assertions]\n"
                '"categories:performance" = ["error", { min_score = 0.92 }]\n'
                '"color-contrast" = "off"\n',
                encoding="utf-8",
            )
            config = load_audit_config(root)
        self.assertEqual(config.collect.static_dist_dir, "dist")
        self.assertEqual(config.collect.number_of_runs, 3)
        assertions = config.matrix[0].assertions
        self.assertEqual(assertions["categories:performance"].min_score, 0.92)
        self.assertEqual(assertions["color-contrast"].level, "off")

    def test_invalid_config(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / "lighthouserc.toml").write_text(
                '[[assert.matrix]]\nmatching_url_pattern = "("\n', encoding="utf-8"
            )
            with self.assertRaises(ConfigError):
                load_audit_config(root)
            (root / "lighthouserc.toml").write_text('[[assert.matrix]]\nmatching_url_pattern = ".*"\n'
                                                    '[assert.matrix.assertions]\n"x" = "fatal"\n', encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_audit_config(root)
            with self.assertRaises(ConfigError):
                load_audit_config(root, root / "missing.toml")


class TestRunAudit(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.reports = self.root / "reports"
        self.reports.mkdir()

    def tearDown(self) -> None:
        self._td.cleanup()

    def write_report(self, name: str, report: dict) -> None:
        (self.reports / name).write_text(json.dumps(report), encoding="utf-8")

    def test_existing_reports(self) -> None:
        self.write_report("home.json", lhr(HOME, performance=0.5))
        self.write_report("post.json", lhr(POST))
        self.write_report("manifest.json", [{"url": HOME}])

        report = run_audit(AuditConfig(), self.root, reports_dir=self.reports)
        self.assertEqual(sorted(report.urls), [HOME, POST])
        self.assertEqual([(r.url, r.audit) for r in report.failures], [(HOME, "categories:performance")])
        self.assertEqual(report.exit_code, 1)

        written = json.loads((self.root / ".lighthouseci" / "assertion-results.json").read_text(encoding="utf-8"))
        self.assertEqual(len(written), len(report.results))

    def test_warnings_do_not_fail(self) -> None:
        self.write_report("post.json", lhr(POST, dom_size=0.2))
        report = run_audit(AuditConfig(), self.root, reports_dir=self.reports)
        self.assertEqual(len(report.warnings), 1)
        self.assertEqual(report.exit_code, 0)

    def test_nothing_to_audit(self) -> None:
        with self.assertRaises(AuditError):
            run_audit(AuditConfig(), self.root, reports_dir=self.reports)

    def test_collects_with_lighthouse(self) -> None:
        dist = self.root / "public"
        (dist / "blog" / "post").mkdir(parents=True)
        (dist / "index.html").write_text("<html></html>", encoding="utf-8")
        (dist / "blog" / "post" / "index.html").write_text("<html></html>", encoding="utf-8")
        config = AuditConfig.model_validate({"collect": {"number_of_runs": 3}})

        scores = iter([0.9, 0.5, 0.7, 1.0, 1.0, 1.0])

        def fake_lighthouse(url: str, binary: str, chrome_flags: str) -> dict:
            return lhr(url, performance=next(scores))

        with patch("folio.checks.audit.run_lighthouse", side_effect=fake_lighthouse) as run:
            report = run_audit(config, self.root)

        self.assertEqual(run.call_count, 6)
        post, home = report.urls
        self.assertRegex(home, r"^http://127\.0\.0\.1:\d+/$")
        self.assertTrue(post.endswith("/blog/post/"))
        perf = next(r for r in report.results if r.url == post and r.audit == "categories:performance")
        # Median of 0.9, 0.5, 0.7.
        self.assertEqual(perf.actual, 0.7)
        names = sorted(p.name for p in (self.root / ".lighthouseci").iterdir())
        self.assertEqual(names, ["assertion-results.json", "lhr-blog-post.json", "lhr-index.json"])

    def test_collect_requires_build(self) -> None:
        with self.assertRaises(AuditError):
            run_audit(AuditConfig(), self.root)


class TestCollectUrls(unittest.TestCase):
    def test_one_url_per_index(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            dist = Path(td)
            (dist / "about").mkdir()
            (dist / "index.html").write_text("", encoding="utf-8")
            (dist / "about" / "index.html").write_text("", encoding="utf-8")
            (dist / "404.html").write_text("", encoding="utf-8")
            self.assertEqual(collect_urls(dist, "http://h"), ["http://h/", "http://h/about/"])


class TestAuditCommand(unittest.TestCase):
    def test_low_homepage_performance_fails(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            reports = root / "reports"
            reports.mkdir()
            (reports / "home.json").write_text(json.dumps(lhr(HOME, performance=0.5)), encoding="utf-8")

            out = io.StringIO()
            with redirect_stdout(out):
                code = main(["--root", td, "audit", "--reports", str(reports)])
            self.assertEqual(code, 1)
            self.assertIn(f"✗ {HOME}", out.getvalue())
            self.assertIn("categories:performance", out.getvalue())

            (reports / "home.json").write_text(json.dumps(lhr(HOME, performance=0.8)), encoding="utf-8")
            with redirect_stdout(io.StringIO()):
                self.assertEqual(main(["--root", td, "audit", "--reports", str(reports)]), 0)


if __name__ == "__main__":
    unittest.main()
