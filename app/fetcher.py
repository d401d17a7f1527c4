from __future__ import annotations

import logging
import re
import urllib.parse
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from app.config import DEFAULT_FETCH_TIMEOUT_S, DEFAULT_LINK_PARSER, LINK_PARSERS

logger = logging.getLogger(__name__)


USER_AGENT: str = "KeywordCrawler/1.0"

# Lightweight anchor scan; not a markup parser. Misses single-quoted and
# unquoted hrefs and can match inside comments or scripts.
_LINK_PATTERN = re.compile(r'<a\s+(?:[^>]*?\s+)?href="([^"]*)"', re.IGNORECASE)

_IGNORED_SCHEMES = ("mailto:", "javascript:")


class FetchError(Exception):
    """A single page could not be retrieved."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


# -----------------------------
# Utilities
# -----------------------------

def _clean_link(raw: str) -> Optional[str]:
    # "../" segments are dropped from the raw text rather than normalized.
    link = raw.replace("../", "")
    if link.startswith(_IGNORED_SCHEMES) or "#" in link:
        return None
    return link


def _links_from_regex(content: str) -> List[str]:
    return [m.group(1) for m in _LINK_PATTERN.finditer(content or "")]


def _links_from_soup(content: str) -> List[str]:
    soup = BeautifulSoup(content or "", "lxml")
    return [a.get("href") or "" for a in soup.find_all("a", href=True)]


def resolve(base_url: str, link: str) -> str:
    """
    Resolve `link` against `base_url` (RFC 3986) and drop the fragment.
    Returns "" when the result is structurally invalid.
    """
    try:
        joined = urllib.parse.urljoin(base_url, link)
        parts = urllib.parse.urlsplit(joined)
        _ = parts.port  # raises ValueError on a malformed port
    except ValueError as e:
        logger.warning("Could not resolve link '%s' against base '%s': %s", link, base_url, e)
        return ""
    return urllib.parse.urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


# -----------------------------
# PageFetcher
# -----------------------------

class PageFetcher:
    """
    HTTP page retrieval + link discovery.
    Public API used by the crawl engine:
      - fetch(url)
      - extract_links(content)
      - resolve(base_url, link)
      - aclose()
    """

    def __init__(
        self,
        user_agent: str = USER_AGENT,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT_S,
        link_parser: str = DEFAULT_LINK_PARSER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if link_parser not in LINK_PARSERS:
            raise ValueError(f"Unknown link parser: {link_parser}")
        self.user_agent = user_agent
        self.link_parser = link_parser

        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.user_agent},
            timeout=httpx.Timeout(float(timeout)),
            follow_redirects=True,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, url: str) -> str:
        try:
            resp = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(url, "timeout") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise FetchError(url, f"HTTP {resp.status_code}", status_code=resp.status_code)
        return resp.text or ""

    def extract_links(self, content: str) -> List[str]:
        if self.link_parser == "soup":
            raw_links = _links_from_soup(content)
        else:
            raw_links = _links_from_regex(content)

        links: List[str] = []
        for raw in raw_links:
            link = _clean_link(raw)
            if link is not None:
                links.append(link)
        return links

    resolve = staticmethod(resolve)
