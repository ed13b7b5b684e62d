"""Tests for the Markdown renderer."""

from __future__ import annotations

import unittest

from folio.content.markdown import MarkdownOptions, diagram_kind, extract_diagrams, render_markdown
from folio.exceptions import ContentError


class TestBlocks(unittest.TestCase):
    def test_headings_get_unique_ids(self) -> None:
        result = render_markdown("# Intro\n\n## Intro\n\n## Intro\n")
        self.assertIn('<h1 id="intro">Intro</h1>', result.html)
        self.assertIn('<h2 id="intro-1">Intro</h2>', result.html)
        self.assertIn('<h2 id="intro-2">Intro</h2>', result.html)
        self.assertEqual([h.id for h in result.toc], ["intro", "intro-1", "intro-2"])

    def test_custom_heading_id(self) -> None:
        result = render_markdown("## Wakers {#wakers-explained}\n")
        self.assertIn('<h2 id="wakers-explained">Wakers</h2>', result.html)
        self.assertEqual(result.toc[0].title, "Wakers")

    def test_setext_heading(self) -> None:
        result = render_markdown("Title\n=====\n\nSub\n---\n")
        self.assertIn('<h1 id="title">Title</h1>', result.html)
        self.assertIn('<h2 id="sub">Sub</h2>', result.html)

    def test_fenced_code_is_escaped_and_tagged(self) -> None:
        result = render_markdown("```rust\nlet v: Vec<u8> = vec![];\n```\n")
        self.assertIn('<code class="language-rust" data-lang="rust">', result.html)
        self.assertIn("Vec&lt;u8&gt;", result.html)

    def test_highlight_theme_on_pre(self) -> None:
        options = MarkdownOptions(highlight_code=True, highlight_theme="cheerfully-light")
        result = render_markdown("```rust\nfn main() {}\n```\n", options=options)
        self.assertIn('<pre class="highlight" data-theme="cheerfully-light" data-lang="rust">', result.html)

    def test_rust_fence_gets_token_spans(self) -> None:
        options = MarkdownOptions(highlight_code=True, highlight_theme="cheerfully-light")
        html = render_markdown("```rust\nfn main() { let v: Vec<u8> = vec![]; }\n```\n", options=options).html
        self.assertIn('<span class="k">fn</span>', html)
        self.assertIn('<span class="nf">main</span>', html)
        self.assertIn("&lt;", html)
        self.assertNotIn("Vec<u8>", html)

    def test_unhighlighted_without_flag_or_lexer(self) -> None:
        plain = render_markdown("```rust\nfn main() {}\n```\n").html
        self.assertNotIn("<span", plain)
        options = MarkdownOptions(highlight_code=True)
        unknown = render_markdown("```nosuchlang\n<x>\n```\n", options=options).html
        self.assertIn("<code class=\"language-nosuchlang\" data-lang=\"nosuchlang\">&lt;x&gt;</code>", unknown)

    def test_nested_lists(self) -> None:
        md = "- one\n- two\n  - nested\n- three\n"
        html = render_markdown(md).html
        self.assertEqual(html.count("<ul>"), 2)
        self.assertIn("<li>one</li>", html)
        self.assertIn("<li>three</li>", html)

    def test_ordered_list_start(self) -> None:
        html = render_markdown("3. three\n4. four\n").html
        self.assertIn('<ol start="3">', html)

    def test_task_list(self) -> None:
        html = render_markdown("- [x] done\n- [ ] todo\n").html
        self.assertIn('<input type="checkbox" disabled checked> done', html)
        self.assertIn('<input type="checkbox" disabled> todo', html)

    def test_table_alignment(self) -> None:
        md = "| a | b |\n|:---|---:|\n| 1 | 2 |\n"
        html = render_markdown(md).html
        self.assertIn('<th style="text-align: left">a</th>', html)
        self.assertIn('<td style="text-align: right">2</td>', html)

    def test_blockquote(self) -> None:
        html = render_markdown("> quoted\n> text\n").html
        self.assertIn("<blockquote>", html)
        self.assertIn("<p>quoted\ntext</p>", html)

    def test_raw_html_block_passes_through(self) -> None:
        html = render_markdown('<div class="note">\nkeep <b>me</b>\n</div>\n').html
        self.assertIn('<div class="note">\nkeep <b>me</b>\n</div>', html)

    def test_summary_marker(self) -> None:
        result = render_markdown("Intro paragraph.\n\n<!-- more -->\n\nRest.\n")
        self.assertEqual(result.summary_html, "<p>Intro paragraph.</p>")
        self.assertIn('<span id="continue-reading"></span>', result.html)

    def test_no_summary_without_marker(self) -> None:
        self.assertIsNone(render_markdown("Just text.\n").summary_html)


class TestInline(unittest.TestCase):
    def test_emphasis_and_code(self) -> None:
        html = render_markdown("Some **bold**, *em*, ~~gone~~ and `x < y`.").html
        self.assertIn("<strong>bold</strong>", html)
        self.assertIn("<em>em</em>", html)
        self.assertIn("<del>gone</del>", html)
        self.assertIn("<code>x &lt; y</code>", html)

    def test_text_is_escaped(self) -> None:
        html = render_markdown("a < b & c").html
        self.assertEqual(html, "<p>a &lt; b &amp; c</p>")

    def test_unsafe_links_dropped(self) -> None:
        html = render_markdown("Click [bad](javascript:alert(1)) and [ok](https://example.com).").html
        self.assertNotIn("javascript:", html.lower())
        self.assertIn('<a href="https://example.com">ok</a>', html)

    def test_internal_links_resolved(self) -> None:
        def resolver(link: str) -> str:
            self.assertEqual(link, "@/blog/post.md#usage")
            return "https://example.test/blog/post/#usage"

        result = render_markdown("See [post](@/blog/post.md#usage).", resolver=resolver)
        self.assertIn('href="https://example.test/blog/post/#usage"', result.html)
        self.assertEqual(result.links, ["https://example.test/blog/post/#usage"])

    def test_resolver_errors_propagate(self) -> None:
        def resolver(link: str) -> str:
            raise ContentError(f"Broken internal link {link!r}")

        with self.assertRaises(ContentError):
            render_markdown("[x](@/missing.md)", resolver=resolver)

    def test_external_link_attributes(self) -> None:
        options = MarkdownOptions(
            external_links_target_blank=True,
            external_links_no_referrer=True,
            base_url="https://example.test",
        )
        html = render_markdown("[out](https://rust-lang.org) [in](https://example.test/about/)", options=options).html
        self.assertIn('<a href="https://rust-lang.org" target="_blank" rel="noopener noreferrer">out</a>', html)
        self.assertIn('<a href="https://example.test/about/">in</a>', html)

    def test_image(self) -> None:
        html = render_markdown('![A diagram](diagram.png "Flow")').html
        self.assertIn('<img src="diagram.png" alt="A diagram" title="Flow">', html)

    def test_hard_break(self) -> None:
        html = render_markdown("line one  \nline two").html
        self.assertIn("line one<br>\nline two", html)

    def test_smart_punctuation(self) -> None:
        html = render_markdown('"Hello" -- it\'s...', options=MarkdownOptions(smart_punctuation=True)).html
        self.assertIn("“Hello” – it’s…", html)


class TestDiagrams(unittest.TestCase):
    def test_extract_diagrams(self) -> None:
        md = "```mermaid\ngraph LR\n  A --> B\n```\n\n```rust\nfn main() {}\n```\n\n```dot\ndigraph { a -> b }\n```\n"
        self.assertEqual(
            extract_diagrams(md),
            [("mermaid", "graph LR\n  A --> B"), ("graphviz", "digraph { a -> b }")],
        )

    def test_diagram_kind(self) -> None:
        self.assertEqual(diagram_kind("excalidraw"), "excalidraw")
        self.assertEqual(diagram_kind("puml"), "plantuml")
        self.assertIsNone(diagram_kind("rust"))
        self.assertIsNone(diagram_kind(""))

    def test_rendered_svg_replaces_fence(self) -> None:
        md = "```mermaid\ngraph LR\n```\n"
        html = render_markdown(md, diagrams={("mermaid", "graph LR"): "<svg>ok</svg>"}).html
        self.assertEqual(html, '<figure class="diagram diagram-mermaid"><svg>ok</svg></figure>')

    def test_unrendered_diagram_falls_back_to_code(self) -> None:
        md = "```mermaid\ngraph LR\n```\n"
        html = render_markdown(md, diagrams={("mermaid", "graph LR"): None}).html
        self.assertIn('<code class="language-mermaid" data-lang="mermaid">graph LR</code>', html)


if __name__ == "__main__":
    unittest.main()
