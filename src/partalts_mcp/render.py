"""Markdown to HTML for model replies shown in the browser."""

import re

import markdown
from markdown.extensions import Extension


class EscapeRawHtml(Extension):
    """Render raw HTML in the source as text instead of passing it through."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")


# GitHub-flavoured tables and fences, single newlines become <br>
_EXTENSIONS = ["tables", "fenced_code", "nl2br", "sane_lists"]

_COMPARISON_CLASSES = [
    (re.compile(r"<table(?=[\s>])"), '<table class="comparison-table"'),
    (re.compile(r"<tr(?=[\s>])"), '<tr class="comparison-row"'),
    (re.compile(r"<td(?=[\s>])"), '<td class="comparison-cell"'),
    (re.compile(r"<th(?=[\s>])"), '<th class="comparison-header"'),
]


def markdown_to_html(text: str) -> str:
    """Render markdown; any HTML the model wrote comes out escaped."""
    return markdown.markdown(text, extensions=[*_EXTENSIONS, EscapeRawHtml()])


def comparison_html(text: str) -> str:
    """Render a comparison reply with CSS classes on table elements."""
    html = markdown_to_html(text)
    for pattern, replacement in _COMPARISON_CLASSES:
        html = pattern.sub(replacement, html)
    return html
