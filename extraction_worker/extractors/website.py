from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from extraction_worker.content_selection import ContentSelector
from extraction_worker.errors import ExtractionError, ValidationError
from extraction_worker.extractors.base import collapse_whitespace

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

STRIP_TAGS = ("script", "style", "iframe", "noscript", "svg", "video", "audio", "object", "embed", "canvas")

# Tried in order; first selector with non-empty text wins, else <body>
CONTENT_SELECTORS = (
    "article",
    "main",
    '[role="main"]',
    ".content",
    ".article",
    ".post",
    "#content",
    "#main",
)


@dataclass(frozen=True)
class WebsiteContent:
    url: str
    title: str
    description: str
    favicon: str
    content: str
    ai_content: str | None = None

    def to_artifact(self) -> dict[str, Any]:
        data = asdict(self)
        if data["ai_content"] is None:
            del data["ai_content"]
        return data

    def best_text(self) -> str:
        return self.ai_content or self.content


def validate_url(url: str) -> str:
    url = (url or "").strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValidationError(f"Invalid website URL: {url!r}")
    return url


def _is_icon_link(tag: Any) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return "icon" in [r.lower() for r in rel]


def parse_html(html: str | bytes, url: str, *, encoding: str | None = None) -> WebsiteContent:
    soup = BeautifulSoup(html, "lxml", from_encoding=encoding if isinstance(html, bytes) else None)
    hostname = urlsplit(url).hostname or url

    title = soup.title.get_text().strip() if soup.title else ""
    description = ""
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        meta = soup.find("meta", attrs=attrs)
        if meta is not None and meta.get("content"):
            description = meta["content"].strip()
            break

    icon = next((link for link in soup.find_all("link", href=True) if _is_icon_link(link)), None)
    favicon = urljoin(url, icon["href"] if icon is not None else "/favicon.ico")

    for tag in soup(list(STRIP_TAGS)):
        tag.decompose()

    content = ""
    for selector in CONTENT_SELECTORS:
        matches = soup.select(selector)
        if not matches:
            continue
        content = collapse_whitespace(" ".join(m.get_text(" ") for m in matches))
        if content:
            break
    if not content and soup.body is not None:
        content = collapse_whitespace(soup.body.get_text(" "))

    return WebsiteContent(
        url=url,
        title=title or hostname,
        description=description,
        favicon=favicon,
        content=content,
    )


class WebsiteExtractor:
    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        max_bytes: int = 10 * 1024 * 1024,
        selector: ContentSelector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_s
        self._max_bytes = max_bytes
        self._selector = selector
        self._transport = transport

    async def fetch(self, url: str) -> tuple[bytes, str | None]:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as resp:
                resp.raise_for_status()
                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self._max_bytes:
                    raise ExtractionError(f"Page too large: {declared} bytes (limit {self._max_bytes})")
                chunks: list[bytes] = []
                total = 0
                async for chunk in resp.aiter_bytes():
                    total += len(chunk)
                    if total > self._max_bytes:
                        raise ExtractionError(f"Page too large: more than {self._max_bytes} bytes")
                    chunks.append(chunk)
                return b"".join(chunks), resp.charset_encoding

    async def extract(self, url: str, *, use_ai: bool = True) -> WebsiteContent:
        url = validate_url(url)
        logger.info("Fetching website %s", url)
        try:
            body, encoding = await self.fetch(url)
        except httpx.HTTPError as e:
            raise ExtractionError(f"Failed to fetch website content: {e}", attempted=("fetch",)) from e

        page = parse_html(body, url, encoding=encoding)
        logger.info("Scraped %s title=%r chars=%d", url, page.title, len(page.content))

        if not use_ai or self._selector is None or not page.content:
            return page

        try:
            ai_content = await self._selector.select(content=page.content, title=page.title, url=url)
        except Exception as e:
            # Refinement is optional; the scrape stands on its own
            logger.warning("Content selection failed for %s, keeping scraped text: %s", url, e)
            return page
        return WebsiteContent(**{**asdict(page), "ai_content": ai_content})
