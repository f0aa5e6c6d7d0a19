"""HTML to readable text."""

import re
from typing import Optional, Tuple

from bs4 import BeautifulSoup

NOISE_TAGS = ["script", "style", "noscript", "header", "footer", "nav", "aside", "form", "iframe", "svg"]
CONTENT_KEYWORDS = ["content", "main", "article-body", "post-content", "entry"]


def _has_content_keyword(value) -> bool:
    if not value:
        return False
    if isinstance(value, (list, tuple)):
        value = " ".join(value)
    value = value.lower()
    return any(keyword in value for keyword in CONTENT_KEYWORDS)


def normalize_whitespace(text: str) -> str:
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.splitlines()]
    text = "\n".join(line for line in lines if line)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def html_to_text(html: str) -> Tuple[Optional[str], str]:
    """
    Reduce an HTML page to its title and main text.

    Prefers <main>, <article> or a content container, then falls back to <body>.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = None
    if soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    for element in soup.find_all(NOISE_TAGS):
        element.decompose()

    content = (
        soup.find("main")
        or soup.find("article")
        or soup.find("div", role="main")
        or soup.find("div", class_=_has_content_keyword)
        or soup.find("div", id=_has_content_keyword)
        or soup.find("body")
        or soup
    )
    return title, normalize_whitespace(content.get_text(separator="\n"))
