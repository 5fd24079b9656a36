"""
Webpage metadata fetcher.

Downloads an article page with httpx and extracts its title, description
and Open Graph properties with BeautifulSoup:
- Follows redirects and sends an identifying User-Agent
- Bounded by a request timeout
- Decodes with the charset declared by the response, or the one sniffed
  from the document itself
- Maps every failure to a FetchError subclass so the worker can record it
"""

import asyncio
import logging
from typing import Optional, Union

import httpx
from bs4 import BeautifulSoup

from core.config import settings
from core.exceptions import HTTPStatusError, NetworkError, ParseError
from schemas.metadata import PageMetadata

logger = logging.getLogger(__name__)


class MetadataFetcher:
    """
    Fetch a page and parse its metadata.

    Attributes:
        client: Optional shared httpx.AsyncClient; a short-lived client is
            opened per fetch when omitted
        timeout: Request timeout in seconds (default: FETCH_TIMEOUT_SECONDS)
        user_agent: User-Agent header value (default: FETCH_USER_AGENT)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None
    ):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.user_agent = user_agent or settings.FETCH_USER_AGENT

    async def fetch(self, url: str) -> PageMetadata:
        """
        Fetch a page and extract its metadata.

        Args:
            url: Page URL

        Returns:
            Extracted PageMetadata (fields may be empty)

        Raises:
            NetworkError: Connection failure, timeout or redirect loop
            HTTPStatusError: Non-2xx final response
            ParseError: Body could not be parsed
        """
        response = await self._get(url)

        if not response.is_success:
            raise HTTPStatusError(
                f"Unexpected status {response.status_code} for {url}",
                context={"url": url},
                status_code=response.status_code
            )

        # Parse HTML in thread pool
        return await asyncio.to_thread(
            parse_metadata, response.content, response.charset_encoding
        )

    async def _get(self, url: str) -> httpx.Response:
        headers = {"User-Agent": self.user_agent}
        try:
            if self.client is not None:
                return await self.client.get(
                    url,
                    headers=headers,
                    timeout=self.timeout,
                    follow_redirects=True
                )
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                return await client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Timed out fetching {url}",
                context={"url": url, "timeout": self.timeout},
                original_exception=e
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(
                f"Failed to fetch {url}",
                context={"url": url},
                original_exception=e
            )


def parse_metadata(content: Union[str, bytes], encoding: Optional[str] = None) -> PageMetadata:
    """
    Extract metadata from an HTML document.

    - title: <title>, falling back to og:title
    - description: meta[name=description], falling back to og:description
    - properties: every meta[property^="og:"] with non-empty content,
      keyed by lower-cased property name, values in document order

    Args:
        content: Raw bytes (decoded with `encoding` or sniffed) or text
        encoding: Charset declared by the response, if any

    Raises:
        ParseError: Document could not be parsed
    """
    try:
        if isinstance(content, bytes):
            soup = BeautifulSoup(content, "html.parser", from_encoding=encoding)
        else:
            soup = BeautifulSoup(content, "html.parser")
    except Exception as e:
        raise ParseError(
            "Failed to parse document",
            context={"encoding": encoding},
            original_exception=e
        )

    title_tag = soup.find("title")
    title = title_tag.get_text().strip() if title_tag else ""
    if not title:
        title = _meta_content(soup, property="og:title")

    description = _meta_content(soup, name="description")
    if not description:
        description = _meta_content(soup, property="og:description")

    properties = {}
    for tag in soup.select('meta[property^="og:"]'):
        prop = (tag.get("property") or "").strip().lower()
        if not prop:
            continue
        value = (tag.get("content") or "").strip()
        if not value:
            continue
        properties.setdefault(prop, []).append(value)

    return PageMetadata(title=title, description=description, properties=properties)


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    """Content of the first <meta> matching attrs, stripped"""
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()
