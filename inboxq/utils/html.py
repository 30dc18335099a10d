"""HTML-to-text conversion for email bodies.

Plenty of newsletters and notifications are HTML-only with no text/plain
MIME part. This module converts them to plain text before annotation.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup


def html_to_text(html: str | None) -> str:
    """Convert an HTML email body to plain text.

    Drops script/style/head elements and collapses whitespace runs.

    Args:
        html: Raw HTML string from email body.

    Returns:
        Plain text extracted from the HTML.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style", "head"]):
        tag.decompose()

    text = soup.get_text(separator="\n")

    # Collapse whitespace: multiple blank lines -> single, strip each line
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str | None, max_chars: int, suffix: str = "") -> str:
    """Cut ``text`` to ``max_chars`` characters, appending ``suffix`` only when cut."""
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + suffix
