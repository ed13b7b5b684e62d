"""Tests for config.toml loading."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from folio.content.siteconfig import load_site_config, parse_site_config
from folio.exceptions import ConfigError


class TestSiteConfig(unittest.TestCase):
    def test_loads_original_style_config(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / "config.toml").write_text(
                'base_url = "https://chesedo.me/"\n'
                'title = "chesedo"\n'
                "compile_sass = false\n"
                "build_search_index = true\n"
                'taxonomies = [{name = "tags"}, {name = "categories", render = false}]\n'
                "[markdown]\n"
                "highlight_code = true\n"
                'highlight_theme = "cheerfully-light"\n'
                "[link_checker]\n"
                'skip_anchor_prefixes = ["https://github.com"]\n'
                "[extra]\n"
                'author_name = "Pieter Engelbrecht"\n'
                'author_image = "images/profile.webp"\n'
                'mastodon = "@someone"\n',
                encoding="utf-8",
            )
            config = load_site_config(root)

        self.assertEqual(config.base_url, "https://chesedo.me")
        self.assertTrue(config.build_search_index)
        self.assertFalse(config.taxonomy("categories").render)
        self.assertTrue(config.taxonomy("tags").render)
        self.assertIsNone(config.taxonomy("series"))
        self.assertEqual(config.markdown.highlight_theme, "cheerfully-light")
        self.assertEqual(config.link_checker.skip_anchor_prefixes, ["https://github.com"])
        self.assertEqual(config.extra.author_name, "Pieter Engelbrecht")
        self.assertEqual(config.extra.get("mastodon"), "@someone")

    def test_permalink_joins_with_one_slash(self) -> None:
        config = parse_site_config({"base_url": "https://example.test/"})
        self.assertEqual(config.permalink("/blog/post/"), "https://example.test/blog/post/")
        self.assertEqual(config.permalink("atom.xml"), "https://example.test/atom.xml")
        self.assertEqual(config.permalink("https://other.test/x"), "https://other.test/x")

    def test_lint_command_string_is_split(self) -> None:
        config = parse_site_config({"base_url": "https://x.test", "lint": {"command": "cargo clippy -- -D warnings"}})
        self.assertEqual(config.lint.command, ["cargo", "clippy", "--", "-D", "warnings"])

    def test_asset_copy_aliases(self) -> None:
        config = parse_site_config(
            {"base_url": "https://x.test", "assets": {"copy": [{"from": "node_modules/a/*", "to": "js"}]}}
        )
        self.assertEqual(config.assets.copy_[0].source, "node_modules/a/*")
        self.assertEqual(config.assets.copy_[0].dest, "js")

    def test_css_output_must_be_published(self) -> None:
        config = parse_site_config({"base_url": "https://x.test", "assets": {"css_output": "static/site.css"}})
        self.assertEqual(config.assets.stylesheet_href, "/site.css")
        self.assertIsNone(config.highlight_stylesheet_href)
        for bad in ("build/styles.css", "static", "static/../styles.css"):
            with self.assertRaises(ConfigError):
                parse_site_config({"base_url": "https://x.test", "assets": {"css_output": bad}})

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_site_config(Path(td))

    def test_unknown_key_rejected(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            parse_site_config({"base_url": "https://x.test", "bsae_url": "typo"})
        self.assertIn("bsae_url", str(ctx.exception))

    def test_base_url_required(self) -> None:
        with self.assertRaises(ConfigError):
            parse_site_config({"title": "x"})


if __name__ == "__main__":
    unittest.main()
