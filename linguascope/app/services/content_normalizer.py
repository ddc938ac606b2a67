from __future__ import annotations

import logging
import re
from html import escape
from urllib.parse import quote, urljoin, urlsplit

import httpx
import trafilatura
from bs4 import BeautifulSoup, CData, Comment, Declaration, Doctype, ProcessingInstruction
from bs4.element import Tag

from linguascope.app.services.errors import ExtractionError, HttpStatusError, NetworkError
from linguascope.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("linguascope.content")

ALLOWED_TAGS: frozenset[str] = frozenset(
    {
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "p",
        "b",
        "i",
        "em",
        "strong",
        "ul",
        "ol",
        "li",
        "a",
        "br",
        "blockquote",
        "pre",
        "code",
        "table",
        "thead",
        "tbody",
        "tr",
        "th",
        "td",
    }
)
ALLOWED_ATTRIBUTES: frozenset[str] = frozenset({"href"})

# Disallowed elements are normally unwrapped; these lose their content too.
_DROPPED_WITH_CONTENT: frozenset[str] = frozenset(
    {
        "script",
        "style",
        "template",
        "noscript",
        "noembed",
        "noframes",
        "iframe",
        "object",
        "embed",
        "svg",
        "math",
        "head",
        "title",
        "select",
        "textarea",
        "xmp",
        "plaintext",
    }
)
_UNSAFE_URL_SCHEMES: tuple[str, ...] = ("javascript:", "vbscript:", "data:")
_MARKUP_NODE_TYPES = (Comment, CData, Declaration, Doctype, ProcessingInstruction)

FALLBACK_REMOVAL_TAGS: tuple[str, ...] = (
    "script",
    "style",
    "nav",
    "footer",
    "aside",
    "header",
    "form",
    "dialog",
    "iframe",
)
FALLBACK_REMOVAL_SELECTORS: tuple[str, ...] = (
    '[role="navigation"]',
    '[role="search"]',
    '[class*="ad"]',
    '[id*="ad-"]',
    '[class*="comment"]',
    '[id*="comment"]',
    '[class*="cookie"]',
    '[id*="cookie"]',
    '[class*="promo"]',
    '[id*="promo"]',
    '[class*="sidebar"]',
    '[id*="sidebar"]',
    '[class*="social"]',
    '[id*="social"]',
)

_BLANK_LINE_PATTERN = re.compile(r"\n(?:[ \t]*\n)+")


class ContentNormalizer:
    def __init__(
        self,
        *,
        relay_prefix: str = "https://corsproxy.io/?",
        fetch_timeout_seconds: float = 30.0,
        user_agent: str = "linguascope/0.1",
        readability_min_chars: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._relay_prefix = relay_prefix
        self._fetch_timeout_seconds = max(1.0, fetch_timeout_seconds)
        self._user_agent = user_agent.strip() or "linguascope/0.1"
        self._readability_min_chars = max(0, readability_min_chars)
        self._transport = transport
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    async def extract_from_url(self, url: str) -> str:
        raw_html = await self._fetch_through_relay(url)
        return self.normalize_html(raw_html, base_url=url)

    def normalize_html(self, raw_html: str, *, base_url: str | None = None) -> str:
        extraction_method = "readability"
        content = self._extract_readable_html(raw_html, base_url=base_url)
        if content is None or len(extract_text(content).strip()) <= self._readability_min_chars:
            LOGGER.warning(
                "readability extraction insufficient; falling back to manual cleaning base_url=%s",
                base_url,
            )
            extraction_method = "manual_fallback"
            content = strip_boilerplate(raw_html)

        soup = _sanitize_soup(content)
        if base_url is not None:
            _rewrite_links(soup, base_url=base_url)
        final_html = str(soup)

        if not soup.get_text().strip():
            raise ExtractionError(f"no text content after sanitization base_url={base_url}")

        self._telemetry.emit(
            "content.normalized",
            extraction_method=extraction_method,
            content_html=final_html,
        )
        return final_html

    def text_to_html(self, raw_text: str) -> str:
        return text_to_html(raw_text)

    async def _fetch_through_relay(self, url: str) -> str:
        relay_url = f"{self._relay_prefix}{quote(url, safe='')}"
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._fetch_timeout_seconds,
                follow_redirects=True,
                headers={
                    "Accept": "text/html,application/xhtml+xml",
                    "User-Agent": self._user_agent,
                },
            ) as client:
                response = await client.get(relay_url)
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "content fetch failed url=%s error_type=%s",
                url,
                type(exc).__name__,
            )
            raise NetworkError(f"network_error:{type(exc).__name__}") from exc

        if not response.is_success:
            LOGGER.info("content fetch rejected url=%s status=%s", url, response.status_code)
            raise HttpStatusError(response.status_code, response.reason_phrase or None)
        return response.text

    def _extract_readable_html(self, raw_html: str, *, base_url: str | None) -> str | None:
        extracted = trafilatura.extract(
            raw_html,
            url=base_url,
            output_format="html",
            include_links=True,
            include_tables=True,
            include_formatting=True,
            include_comments=False,
            include_images=False,
        )
        if not isinstance(extracted, str) or not extracted.strip():
            return None
        return extracted


def strip_boilerplate(raw_html: str) -> str:
    soup = BeautifulSoup(raw_html, "lxml")
    for element in soup.select(", ".join((*FALLBACK_REMOVAL_TAGS, *FALLBACK_REMOVAL_SELECTORS))):
        if element.decomposed or element.name in {"html", "body"}:
            continue
        element.decompose()
    body = soup.body
    if body is None:
        return ""
    return body.decode_contents()


def sanitize_html(fragment: str) -> str:
    return str(_sanitize_soup(fragment))


def _sanitize_soup(fragment: str) -> BeautifulSoup:
    soup = BeautifulSoup(fragment, "html.parser")

    for node in soup.find_all(string=lambda value: isinstance(value, _MARKUP_NODE_TYPES)):
        node.extract()

    for element in soup.find_all(list(_DROPPED_WITH_CONTENT)):
        if not element.decomposed:
            element.decompose()

    for element in soup.find_all(True):
        if element.decomposed:
            continue
        if element.name not in ALLOWED_TAGS:
            element.unwrap()
            continue
        element.attrs = {
            name: value for name, value in element.attrs.items() if name in ALLOWED_ATTRIBUTES
        }
        href = element.get("href")
        if isinstance(href, str) and _is_unsafe_href(href):
            del element["href"]
    return soup


def _is_unsafe_href(href: str) -> bool:
    compact = "".join(character for character in href if character > " ").lower()
    return compact.startswith(_UNSAFE_URL_SCHEMES)


def _rewrite_links(soup: BeautifulSoup, *, base_url: str) -> None:
    for anchor in soup.find_all("a"):
        if not isinstance(anchor, Tag):
            continue
        href = anchor.get("href")
        if not isinstance(href, str) or not href.strip():
            continue
        try:
            anchor["href"] = absolute_url(href, base_url=base_url)
        except ValueError:
            del anchor["href"]
            continue
        anchor["target"] = "_blank"
        anchor["rel"] = "noopener noreferrer"


def absolute_url(href: str, *, base_url: str) -> str:
    resolved = urljoin(base_url, href.strip())
    parsed = urlsplit(resolved)
    # Accessing the port validates it; urlsplit alone accepts "host:abc".
    _ = parsed.port
    if not parsed.scheme:
        raise ValueError(f"href does not resolve to an absolute URL: {href!r}")
    if parsed.scheme in {"http", "https"} and not parsed.netloc:
        raise ValueError(f"href has no host: {href!r}")
    return resolved


def text_to_html(raw_text: str) -> str:
    normalized = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    paragraphs: list[str] = []
    for block in _BLANK_LINE_PATTERN.split(normalized):
        if not block.strip():
            continue
        lines = block.strip("\n").split("\n")
        paragraphs.append(f"<p>{'<br>'.join(escape(line, quote=False) for line in lines)}</p>")
    if not paragraphs:
        raise ExtractionError("pasted text is empty")
    return "".join(paragraphs)


def extract_text(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text()
