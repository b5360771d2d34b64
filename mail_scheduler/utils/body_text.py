"""Plain-text alternative for HTML email bodies."""

import html
import re

from bs4 import BeautifulSoup

_BLOCK_TAGS = ["p", "div", "tr", "li", "table", "blockquote"]
_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
_ZERO_WIDTH = re.compile(r"[\u200b\u200c\u200d\ufeff]")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")


def _collapse_blank_lines(lines: list[str], keep: int = 2) -> list[str]:
    result = []
    blanks = 0
    for line in lines:
        if line:
            blanks = 0
            result.append(line)
            continue
        blanks += 1
        if blanks <= keep:
            result.append(line)
    return result


def html_to_text(body: str) -> str:
    """Render an HTML body as readable plain text. Links keep their target in brackets."""
    if not body or not body.strip():
        return ""

    soup = BeautifulSoup(body, "lxml")
    for el in soup(["script", "style", "head", "meta", "link", "title"]):
        el.decompose()

    for a in soup.find_all("a"):
        href = (a.get("href") or "").strip()
        label = a.get_text(" ", strip=True)
        if href and not href.startswith("mailto:") and href != label:
            a.replace_with(f"{label} [{href}]" if label else href)
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    for tag in soup.find_all(_HEADING_TAGS):
        tag.insert_before("\n\n")
        tag.insert_after("\n")

    text = html.unescape(soup.get_text(separator=" "))
    text = _ZERO_WIDTH.sub("", text).replace("\u00a0", " ").replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_SPACE.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    return "\n".join(_collapse_blank_lines(lines)).strip()
