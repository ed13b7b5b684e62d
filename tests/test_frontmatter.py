"""Tests for TOML front matter parsing."""

from __future__ import annotations

import unittest
from datetime import date

from folio.content.frontmatter import parse_page, parse_section, split_front_matter
from folio.exceptions import FrontMatterError


class TestSplitFrontMatter(unittest.TestCase):
    def test_splits_block_and_body(self) -> None:
        toml, body = split_front_matter('+++\ntitle = "A"\n+++\n\nHello\n')
        self.assertEqual(toml, 'title = "A"')
        self.assertEqual(body, "Hello\n")

    def test_tolerates_bom_and_leading_blank_lines(self) -> None:
        toml, body = split_front_matter('\ufeff\n\n+++\ntitle = "A"\n+++\nBody')
        self.assertEqual(toml, 'title = "A"')
        self.assertEqual(body, "Body")

    def test_missing_opening_delimiter(self) -> None:
        with self.assertRaises(FrontMatterError) as ctx:
            split_front_matter("---\ntitle: A\n---\n", "post.md")
        self.assertIn("post.md", str(ctx.exception))

    def test_missing_closing_delimiter(self) -> None:
        with self.assertRaises(FrontMatterError):
            split_front_matter('+++\ntitle = "A"\n\nBody\n')


class TestParsePage(unittest.TestCase):
    def test_parses_all_fields(self) -> None:
        text = (
            "+++\n"
            'title = "Async runtime internals"\n'
            'description = "Polling"\n'
            "date = 2024-02-01\n"
            "updated = 2024-03-05T10:00:00Z\n"
            'aliases = ["/old/"]\n'
            "[taxonomies]\n"
            'tags = ["Rust", "Async"]\n'
            'categories = ["Rust in practice"]\n'
            "+++\n"
            "Body\n"
        )
        meta, body = parse_page(text, "post.md")
        self.assertEqual(meta.title, "Async runtime internals")
        self.assertEqual(meta.date, date(2024, 2, 1))
        self.assertEqual(meta.updated, date(2024, 3, 5))
        self.assertEqual(meta.taxonomies["tags"], ["Rust", "Async"])
        self.assertEqual(meta.aliases, ["/old/"])
        self.assertFalse(meta.draft)
        self.assertEqual(body, "Body\n")

    def test_unknown_key_is_rejected(self) -> None:
        with self.assertRaises(FrontMatterError) as ctx:
            parse_page('+++\ntitel = "typo"\n+++\n', "content/post.md")
        self.assertIn("titel", str(ctx.exception))
        self.assertEqual(ctx.exception.path.name, "post.md")

    def test_invalid_toml(self) -> None:
        with self.assertRaises(FrontMatterError) as ctx:
            parse_page('+++\ntitle = "unterminated\n+++\n', "bad.md")
        self.assertIn("invalid TOML", str(ctx.exception))

    def test_wrong_type(self) -> None:
        with self.assertRaises(FrontMatterError):
            parse_page('+++\ntaxonomies = { tags = "Rust" }\n+++\n')


class TestParseSection(unittest.TestCase):
    def test_defaults(self) -> None:
        meta, body = parse_section("+++\n+++\nIntro\n")
        self.assertEqual(meta.sort_by, "none")
        self.assertTrue(meta.render)
        self.assertIsNone(meta.paginate_by)
        self.assertEqual(body, "Intro\n")

    def test_invalid_sort_by(self) -> None:
        with self.assertRaises(FrontMatterError):
            parse_section('+++\nsort_by = "random"\n+++\n')

    def test_paginate_by_must_be_positive(self) -> None:
        with self.assertRaises(FrontMatterError):
            parse_section("+++\npaginate_by = 0\n+++\n")


if __name__ == "__main__":
    unittest.main()
