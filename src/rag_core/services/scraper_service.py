"""Web page scraping for link ingestion."""

from typing import Optional
from urllib.parse import urlparse

import httpx

from rag_core.config import Settings, get_settings
from rag_core.models.document import ScrapedContent
from rag_core.utils.errors import ScrapingError, ValidationError
from rag_core.utils.html import html_to_text
from rag_core.utils.logging import get_logger

logger = get_logger("scraper_service")

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class ScraperService:
    """
    Fetch a web page and reduce it to readable text.

    Only http(s) URLs are accepted; redirects are followed and the request
    is bounded by SCRAPER_TIMEOUT.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self.timeout = settings.scraper.timeout
        self.max_chars = settings.scraper.max_content_chars
        self._headers = {
            "User-Agent": settings.scraper.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        }
        self._transport = transport

    @staticmethod
    def validate_url(url: str) -> str:
        """Return the stripped URL or raise ValidationError."""
        url = (url or "").strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Only http and https URLs can be scraped", errors={"url": url})
        return url

    async def scrape(self, url: str) -> ScrapedContent:
        """
        Fetch and extract a page.

        Raises:
            ValidationError: If the URL is not http(s)
            ScrapingError: If the fetch fails or the page has no readable HTML text
        """
        url = self.validate_url(url)
        logger.info(f"Scraping URL: {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ScrapingError(f"Timed out fetching {url}", url=url) from e
        except httpx.HTTPStatusError as e:
            raise ScrapingError(
                f"HTTP {e.response.status_code} fetching {url}",
                url=url,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ScrapingError(f"Failed to fetch {url}: {e}", url=url) from e

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type not in HTML_CONTENT_TYPES:
            raise ScrapingError(
                f"URL did not return HTML (content-type: {content_type or 'unknown'})",
                url=url,
                details={"content_type": content_type},
            )

        title, text = html_to_text(response.text)
        if not text:
            raise ScrapingError("No readable text found on page", url=url)

        if len(text) > self.max_chars:
            logger.warning(f"Truncating scraped content of {url} to {self.max_chars} characters")
            text = text[: self.max_chars]

        final_url = str(response.url)
        title = title or urlparse(final_url).netloc or final_url
        logger.info(f"Scraped {final_url}: title={title!r}, chars={len(text)}")
        return ScrapedContent(url=final_url, title=title, text=text, content_type=content_type)
