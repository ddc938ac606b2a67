from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from bs4 import BeautifulSoup
from markdownify import MarkdownConverter

ExportFormat = Literal["markdown", "text"]

EDITABLE_REMOVED_TAGS: tuple[str, ...] = ("img", "figure", "link", "script", "style", "iframe", "svg")
MAX_FILENAME_LENGTH = 100
DEFAULT_FILENAME = "export"

_FILENAME_UNSAFE_PATTERN = re.compile(r'[/\\?%*:|"<>.]')
_EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")
_TEXT_BLOCK_TAGS: tuple[str, ...] = (
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre", "tr", "div",
)

_MEDIA_TYPES: dict[str, str] = {
    "markdown": "text/markdown; charset=utf-8",
    "text": "text/plain; charset=utf-8",
}
_EXTENSIONS: dict[str, str] = {
    "markdown": ".md",
    "text": ".txt",
}


@dataclass(frozen=True)
class ExportDocument:
    filename: str
    media_type: str
    content: str


class _ExportMarkdownConverter(MarkdownConverter):
    def convert_pre(self, el, text, *args, **kwargs):
        code = el.find("code")
        language = ""
        if code is not None:
            for css_class in code.get("class", []):
                if css_class.startswith("language-"):
                    language = css_class[len("language-") :]
                    break
            body = code.get_text()
        else:
            body = el.get_text()
        return f"\n\n```{language}\n{body.strip(chr(10))}\n```\n\n"


_CONVERTER = _ExportMarkdownConverter(heading_style="ATX", bullets="-")


def build_editable_html(html: str) -> str:
    """Copy of translated HTML for hand editing: media dropped, links flattened to text."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(list(EDITABLE_REMOVED_TAGS)):
        if not element.decomposed:
            element.decompose()
    for anchor in soup.find_all("a"):
        anchor.unwrap()
    return soup.decode()


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for line_break in soup.find_all("br"):
        line_break.replace_with("\n")
    for block in soup.find_all(list(_TEXT_BLOCK_TAGS)):
        block.insert_after("\n")
    text = soup.get_text()
    lines = [line.strip() for line in text.splitlines()]
    return _EXCESS_NEWLINES_PATTERN.sub("\n\n", "\n".join(lines)).strip()


def html_to_markdown(html: str) -> str:
    markdown = _CONVERTER.convert(html)
    return _EXCESS_NEWLINES_PATTERN.sub("\n\n", markdown).strip()


def sanitize_filename(name: str) -> str:
    cleaned = _FILENAME_UNSAFE_PATTERN.sub("-", name)[:MAX_FILENAME_LENGTH]
    return cleaned if cleaned.strip() else DEFAULT_FILENAME


def render_export(html: str, *, title: str, export_format: ExportFormat) -> ExportDocument:
    if export_format == "markdown":
        content = html_to_markdown(html)
    else:
        content = html_to_text(html)
    return ExportDocument(
        filename=sanitize_filename(title) + _EXTENSIONS[export_format],
        media_type=_MEDIA_TYPES[export_format],
        content=content,
    )
