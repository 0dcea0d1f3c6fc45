"""Scraping service - fetches broker pages through ScrapingBee or directly."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ghostmydata.config import settings

logger = logging.getLogger(__name__)

SCRAPINGBEE_ENDPOINT = "https://app.scrapingbee.com/api/v1/"

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Upgrade-Insecure-Requests": "1",
}

# Markers of a challenge page rather than real content
BOT_INDICATORS = [
    "Access Denied",
    "Request blocked",
    "captcha",
    "CAPTCHA",
    "Please verify you are a human",
    "cf-browser-verification",
    "challenge-form",
]

# ScrapingBee credit cost per request
CREDITS_BASE = 1
CREDITS_RENDER_JS = 5
CREDITS_PREMIUM = 25
CREDITS_STEALTH = 75


@dataclass
class ScrapeOptions:
    render_js: bool = True
    premium_proxy: bool = False
    stealth_proxy: bool = False
    country_code: Optional[str] = None
    wait_for: Optional[str] = None
    timeout: Optional[float] = None
    force_direct: bool = False


@dataclass
class ScrapeResult:
    """Result of fetching one URL."""
    success: bool
    html: str
    status_code: int
    error: Optional[str] = None
    credits_used: int = 0


def credit_cost(options: ScrapeOptions) -> int:
    if options.stealth_proxy:
        return CREDITS_STEALTH
    if options.premium_proxy:
        return CREDITS_PREMIUM
    return CREDITS_RENDER_JS if options.render_js else CREDITS_BASE


class ScrapingService:
    """Fetches pages, preferring ScrapingBee and falling back to direct HTTP."""

    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = (api_key if api_key is not None else settings.scrapingbee_api_key).strip()
        self.transport = transport
        self.timeout = settings.scrape_timeout_seconds
        self.direct_timeout = 15

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _client(self, timeout: float, headers: Optional[dict] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
            transport=self.transport,
        )

    async def scrape_url(self, url: str, options: Optional[ScrapeOptions] = None) -> ScrapeResult:
        """Fetch a URL, falling back to a direct fetch when ScrapingBee can't help."""
        options = options or ScrapeOptions()

        if options.force_direct or not self.enabled:
            return await self.fetch_direct(url, options)

        result = await self.fetch_with_scrapingbee(url, options)

        # A body means the target answered; let the scanner judge it
        if result.success or result.html:
            return result

        if result.status_code == 402:
            logger.warning("ScrapingBee credits exhausted, falling back to direct fetch for %s", url)
            return await self.fetch_direct(url, options)

        if 400 <= result.status_code < 500:
            return result

        logger.info("ScrapingBee failed (%s), falling back to direct fetch for %s", result.error, url)
        return await self.fetch_direct(url, options)

    async def fetch_with_scrapingbee(self, url: str, options: ScrapeOptions) -> ScrapeResult:
        """Fetch through the ScrapingBee API; Spb-Status carries the target's status."""
        params = {
            "api_key": self.api_key,
            "url": url,
            "render_js": "true" if options.render_js else "false",
        }
        if options.stealth_proxy:
            params["stealth_proxy"] = "true"
        elif options.premium_proxy:
            params["premium_proxy"] = "true"
        if options.country_code:
            params["country_code"] = options.country_code
        if options.wait_for:
            params["wait_for"] = options.wait_for

        cost = credit_cost(options)

        try:
            async with self._client(options.timeout or self.timeout) as client:
                response = await client.get(SCRAPINGBEE_ENDPOINT, params=params)
        except httpx.TimeoutException:
            return ScrapeResult(success=False, html="", status_code=0, error="Request timeout")
        except httpx.HTTPError as e:
            return ScrapeResult(success=False, html="", status_code=0, error=str(e))

        html = response.text

        if response.status_code >= 400:
            error = f"ScrapingBee API error {response.status_code}"
            try:
                message = response.json().get("message")
                if message:
                    error = f"ScrapingBee: {message}"
            except ValueError:
                if html:
                    error = f"ScrapingBee: {html[:200]}"
            return ScrapeResult(success=False, html="", status_code=response.status_code, error=error)

        target_status = int(response.headers.get("Spb-Status", "200"))

        if target_status == 404 and len(html) > 1000:
            # Many brokers answer "no results" with a full 404 page
            return ScrapeResult(success=True, html=html, status_code=404, credits_used=cost)

        if target_status >= 400:
            return ScrapeResult(
                success=False,
                html=html,
                status_code=target_status,
                error=f"Target site returned HTTP {target_status}",
                credits_used=cost,
            )

        if len(html) < 10000 and any(marker in html for marker in BOT_INDICATORS):
            return ScrapeResult(
                success=False,
                html=html,
                status_code=403,
                error="Bot detection triggered on target site",
                credits_used=cost,
            )

        return ScrapeResult(success=True, html=html, status_code=target_status, credits_used=cost)

    async def fetch_direct(self, url: str, options: ScrapeOptions) -> ScrapeResult:
        """Plain HTTP fetch with browser headers."""
        try:
            async with self._client(options.timeout or self.direct_timeout, BROWSER_HEADERS) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            return ScrapeResult(success=False, html="", status_code=0, error="Request timeout")
        except httpx.HTTPError as e:
            return ScrapeResult(success=False, html="", status_code=0, error=str(e))

        if response.status_code >= 400:
            return ScrapeResult(
                success=False,
                html="",
                status_code=response.status_code,
                error=f"HTTP {response.status_code}: {response.reason_phrase}",
            )

        html = response.text
        blocked = (
            any(marker in html for marker in BOT_INDICATORS)
            or "blocked" in html
            or len(html) < 1000
        )
        if blocked:
            return ScrapeResult(
                success=False,
                html=html,
                status_code=403,
                error="Bot detection triggered - response may be blocked",
            )

        return ScrapeResult(success=True, html=html, status_code=200)

    async def scrape_urls(
        self,
        urls: list[str],
        options: Optional[ScrapeOptions] = None,
        concurrency: int = 3,
    ) -> dict[str, ScrapeResult]:
        """Scrape URLs in batches with a pause between batches."""
        results = {}

        for i in range(0, len(urls), concurrency):
            batch = urls[i:i + concurrency]
            batch_results = await asyncio.gather(*(self.scrape_url(url, options) for url in batch))
            results.update(zip(batch, batch_results))

            if i + concurrency < len(urls):
                await asyncio.sleep(1)

        return results


scraping_service = ScrapingService()


async def scrape_url(url: str, options: Optional[ScrapeOptions] = None) -> ScrapeResult:
    return await scraping_service.scrape_url(url, options)
