"""Built-in stylesheet, written when no compiled Tailwind bundle exists."""

CSS = r"""
:root {
  --bg: #f5f5f5;
  --fg: #1a1a1a;
  --muted: #5f5f5f;
  --border: #e1e1e1;
  --accent: #daa520;
  --link: #8a6512;
  --sans: "Montserrat", ui-sans-serif, system-ui, -apple-system, "Segoe UI", sans-serif;
  --mono: ui-monospace, "SF Mono", "Consolas", "Liberation Mono", monospace;
  --page-max: 760px;
}

html, body { height: 100%; }

body {
  font-family: var(--sans);
  font-size: 17px;
  line-height: 1.7;
  max-width: var(--page-max);
  margin: 0 auto;
  padding: 2rem 1.25rem 3rem;
  background: var(--bg);
  color: var(--fg);
  text-rendering: optimizeLegibility;
  -webkit-font-smoothing: antialiased;
}

a { color: var(--link); text-decoration: none; }
a:hover { text-decoration: underline; text-underline-offset: 0.15em; }

header.site {
  display: flex;
  justify-content: space-between;
  align-items: baseline;
  border-bottom: 2px solid var(--accent);
  padding-bottom: 0.75rem;
  margin-bottom: 2rem;
  gap: 0.5rem 1rem;
  flex-wrap: wrap;
}

header.site .brand { font-weight: 700; color: var(--fg); letter-spacing: 0.02em; }
nav a { margin-left: 1rem; color: var(--muted); font-size: 15px; }

h1, h2, h3, h4 { line-height: 1.3; margin: 2rem 0 0.75rem; font-weight: 700; }
h1 { font-size: 2rem; margin-top: 0; }
h2 { font-size: 1.45rem; }
h3 { font-size: 1.2rem; }

.muted { color: var(--muted); font-size: 15px; }
.meta { color: var(--muted); font-size: 14px; margin-bottom: 1.5rem; }
.rule { border-top: 1px solid var(--border); margin: 2rem 0; }

ul, ol { padding-left: 1.4rem; }
li { margin: 0.3rem 0; }
ul.listing { list-style: none; padding-left: 0; }
ul.listing li { margin: 1.25rem 0; }
ul.listing .title { font-weight: 600; font-size: 1.1rem; }

.tags a {
  display: inline-block;
  font-size: 13px;
  padding: 0.05rem 0.5rem;
  margin: 0 0.35rem 0.35rem 0;
  border: 1px solid var(--border);
  color: var(--muted);
}

table { border-collapse: collapse; width: 100%; margin: 1rem 0; }
th, td { border: 1px solid var(--border); padding: 0.35rem 0.6rem; vertical-align: top; }
th { text-align: left; font-weight: 600; }

pre {
  overflow-x: auto;
  margin: 1rem 0;
  padding: 0.75rem 1rem;
  border: 1px solid var(--border);
  background: #fbfbf8;
  font-size: 14px;
  line-height: 1.5;
}

code { font-family: var(--mono); font-size: 0.9em; }
p code, li code { background: #ececec; padding: 0.1rem 0.3rem; }

blockquote {
  margin: 1rem 0;
  padding: 0 1rem;
  border-left: 3px solid var(--accent);
  color: var(--muted);
}

img, svg { max-width: 100%; height: auto; }
figure.diagram { margin: 1.5rem 0; text-align: center; }

hr { border: none; border-top: 1px solid var(--border); margin: 2rem 0; }

.series-nav {
  display: flex;
  justify-content: space-between;
  gap: 1rem;
  border-top: 1px solid var(--border);
  border-bottom: 1px solid var(--border);
  padding: 1rem 0;
  margin: 2.5rem 0;
}
.series-nav .next { margin-left: auto; text-align: right; }
.series-nav small { display: block; color: var(--muted); }

.author {
  display: flex;
  gap: 1rem;
  align-items: center;
  margin-top: 2.5rem;
  padding: 1rem;
  background: #fff;
  border: 1px solid var(--border);
}
.author img { width: 72px; height: 72px; border-radius: 50%; object-fit: cover; }
.author .name { font-weight: 700; }

.pagination { display: flex; justify-content: space-between; margin: 2rem 0; }

footer.site { margin-top: 3rem; color: var(--muted); font-size: 13px; }

@media print {
  body { background: #fff; color: #000; max-width: none; padding: 1rem; }
  a { color: #000; text-decoration: underline; }
  nav, .series-nav { display: none; }
}

@media (max-width: 640px) {
  body { font-size: 16px; padding: 1.25rem 1rem 2rem; }
  nav a { margin-left: 0; margin-right: 1rem; }
}
"""
