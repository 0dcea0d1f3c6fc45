"""Base class for scanners that scrape a people-search site's result page."""

import asyncio
import logging
import re
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from brokers.base import (
    REJECT_THRESHOLD,
    BaseScanner,
    ExposureType,
    ScanInput,
    ScannerError,
    ScannerErrorType,
    ScanResult,
    Severity,
    mask_data,
)
from brokers.validator import STATE_ABBREVIATIONS, ExtractedData, profile_validator
from ghostmydata.services.scraping import ScrapeOptions, scrape_url

logger = logging.getLogger(__name__)

MAX_RELATIVES = 10


@dataclass
class RateLimit:
    requests_per_minute: int = 10
    delay_ms: int = 1000


@dataclass
class BrokerConfig:
    """Static description of a broker site."""
    name: str
    source: str
    base_url: str
    search_url: str
    opt_out_url: str
    opt_out_instructions: str
    estimated_removal_days: int
    privacy_email: Optional[str] = None
    requires_verification: bool = False
    use_premium_proxy: bool = False
    use_stealth_proxy: bool = False
    rate_limit: RateLimit = field(default_factory=RateLimit)


@dataclass
class BrokerSearchResult:
    """What a parser pulled out of a search result page."""
    found: bool = False
    profile_url: Optional[str] = None
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    location: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    age: Optional[str] = None
    relatives: list[str] = field(default_factory=list)
    addresses: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)

    def set_relative_count(self, count: int | str):
        """Pages only print how many relatives there are; keep at most MAX_RELATIVES placeholders."""
        self.relatives = ["Relative"] * min(int(count), MAX_RELATIVES)


class FetchError(Exception):
    """A page could not be fetched."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BaseBrokerScanner(BaseScanner):
    """Search URL -> fetch -> parse -> validated exposure."""

    config: BrokerConfig

    def __init__(self):
        self.last_error: Optional[ScannerError] = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def source(self) -> str:
        return self.config.source

    @property
    def proxy_used(self) -> str:
        if self.config.use_stealth_proxy:
            return "stealth"
        if self.config.use_premium_proxy:
            return "premium"
        return "none"

    @abstractmethod
    def build_search_url(self, input: ScanInput) -> Optional[str]:
        """Return the search URL, or None when the input can't be searched."""

    @abstractmethod
    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        """Pull a BrokerSearchResult out of the result page."""

    async def scan(self, input: ScanInput) -> list[ScanResult]:
        """Run one search. Never raises; failures land in last_error."""
        self.last_error = None
        results = []

        try:
            search_url = self.build_search_url(input)
            if not search_url:
                return results

            await asyncio.sleep(self.config.rate_limit.delay_ms / 1000)

            html = await self.fetch_html(search_url)
            search_result = self.parse_search_results(html, input)

            if search_result.found:
                exposure = self.create_exposure_result(search_result, input)
                if exposure:
                    results.append(exposure)
            else:
                logger.debug("[%s] No match for search", self.config.name)

        except Exception as e:
            if self.last_error is None:
                self.last_error = self.categorize_error(str(e))
            logger.warning("[%s] Scan failed: %s", self.config.name, e)

        return results

    async def fetch_html(self, url: str) -> str:
        """Fetch through the scraping service, escalating to a stealth proxy on 403."""
        use_stealth = self.config.use_stealth_proxy
        use_premium = self.config.use_premium_proxy

        result = await scrape_url(url, ScrapeOptions(
            render_js=True,
            timeout=30,
            stealth_proxy=use_stealth,
            premium_proxy=not use_stealth and use_premium,
        ))
        if result.success:
            return result.html

        if result.status_code == 403 and not use_stealth:
            logger.info("[%s] 403, retrying with stealth proxy", self.config.name)
            retry = await scrape_url(url, ScrapeOptions(render_js=True, timeout=30, stealth_proxy=True))
            if retry.success:
                return retry.html

            self.last_error = ScannerError(
                type=ScannerErrorType.BOT_DETECTION,
                message=retry.error or "403 even with stealth proxy",
                http_status=403,
            )
            raise FetchError(retry.error or f"Failed to fetch {url} (even with stealth proxy)", 403)

        status = result.status_code
        if status in (401, 403):
            self.last_error = ScannerError(ScannerErrorType.BOT_DETECTION, result.error or f"HTTP {status}", status)
        elif status == 429:
            self.last_error = ScannerError(ScannerErrorType.BOT_DETECTION, result.error or "Rate limited", 429)
        else:
            self.last_error = ScannerError(ScannerErrorType.NETWORK, result.error or f"HTTP {status}", status or None)

        raise FetchError(result.error or f"Failed to fetch {url}", status)

    @staticmethod
    def categorize_error(message: str) -> ScannerError:
        lowered = message.lower()
        if "403" in message or "access denied" in lowered:
            return ScannerError(ScannerErrorType.BOT_DETECTION, message, 403)
        if "timeout" in lowered or "ETIMEDOUT" in message:
            return ScannerError(ScannerErrorType.TIMEOUT, message)
        if "fetch failed" in lowered or "ECONNREFUSED" in message or "connection" in lowered:
            return ScannerError(ScannerErrorType.NETWORK, message)
        return ScannerError(ScannerErrorType.UNKNOWN, message)

    def create_exposure_result(self, search_result: BrokerSearchResult, input: ScanInput) -> Optional[ScanResult]:
        """Validate a match against the profile; returns None below the reject threshold."""
        extracted = ExtractedData(
            name=search_result.name,
            first_name=search_result.first_name,
            last_name=search_result.last_name,
            city=search_result.city or _location_part(search_result.location, 0),
            state=search_result.state or _location_part(search_result.location, 1),
            age=search_result.age,
            phones=search_result.phones,
            emails=search_result.emails,
        )
        confidence = profile_validator.validate(input, extracted, self.config.source)

        logger.info(
            "[%s] Confidence: %s (%s)",
            self.config.name, confidence.score, confidence.classification,
        )
        if confidence.score < REJECT_THRESHOLD:
            logger.info("[%s] Rejected: score %s below %s", self.config.name, confidence.score, REJECT_THRESHOLD)
            return None

        exposed_fields = [{"type": "name"}]
        if search_result.phones:
            exposed_fields.append({"type": "phone", "count": len(search_result.phones)})
        if search_result.emails:
            exposed_fields.append({"type": "email", "count": len(search_result.emails)})
        if search_result.addresses:
            exposed_fields.append({"type": "address", "count": len(search_result.addresses)})
        if search_result.age:
            exposed_fields.append({"type": "age", "value": search_result.age})
        if search_result.relatives:
            exposed_fields.append({"type": "relatives", "count": len(search_result.relatives)})

        return ScanResult(
            source=self.config.source,
            source_name=self.config.name,
            source_url=search_result.profile_url or self.config.base_url,
            data_type=ExposureType.COMBINED_PROFILE,
            data_preview=self.build_data_preview(search_result, input),
            severity=self.calculate_profile_severity(search_result),
            raw_data={
                "profileUrl": search_result.profile_url,
                "location": search_result.location,
                "age": search_result.age,
                "relativesCount": len(search_result.relatives),
                "addressesCount": len(search_result.addresses),
                "phonesCount": len(search_result.phones),
                "optOutUrl": self.config.opt_out_url,
                "optOutInstructions": self.config.opt_out_instructions,
                "estimatedRemovalDays": self.config.estimated_removal_days,
                "privacyEmail": self.config.privacy_email,
                "exposedFields": exposed_fields,
            },
            confidence=confidence,
        )

    def build_data_preview(self, search_result: BrokerSearchResult, input: ScanInput) -> str:
        parts = []
        name = search_result.name or input.full_name
        if name:
            parts.append(mask_data(name, ExposureType.NAME))
        if search_result.location:
            parts.append(search_result.location)
        elif search_result.addresses:
            parts.append(mask_data(search_result.addresses[0], ExposureType.ADDRESS))
        if search_result.age:
            parts.append(f"Age: {search_result.age}")
        return " | ".join(parts) or "Profile found"

    def calculate_profile_severity(self, search_result: BrokerSearchResult) -> Severity:
        # More data exposed = higher severity
        points = 0
        if search_result.phones:
            points += 2
        if search_result.emails:
            points += 2
        if search_result.addresses:
            points += 3
        if search_result.relatives:
            points += 2
        if search_result.age:
            points += 1

        if points >= 7:
            return Severity.CRITICAL
        if points >= 5:
            return Severity.HIGH
        if points >= 2:
            return Severity.MEDIUM
        return Severity.LOW

    # --- parsing helpers ---

    @staticmethod
    def format_name_for_url(name: str) -> str:
        """"Jane O'Doe" -> "jane-odoe"."""
        cleaned = re.sub(r"[^a-z\s]", "", name.lower().strip())
        return re.sub(r"\s+", "-", cleaned)

    @staticmethod
    def format_state_for_url(state: str) -> str:
        normalized = state.lower().strip()
        if len(normalized) == 2:
            return normalized
        abbreviation = STATE_ABBREVIATIONS.get(normalized)
        return abbreviation.lower() if abbreviation else normalized

    @staticmethod
    def name_in_html(html: str, name: str) -> bool:
        lowered = html.lower()
        return all(part in lowered for part in name.lower().split())

    @staticmethod
    def extract_between(html: str, start_marker: str, end_marker: str) -> Optional[str]:
        start = html.find(start_marker)
        if start == -1:
            return None
        content_start = start + len(start_marker)
        end = html.find(end_marker, content_start)
        if end == -1:
            return None
        return html[content_start:end].strip()

    @staticmethod
    def extract_matches(html: str, pattern: str | re.Pattern) -> list[str]:
        """First capture group of every match, deduplicated in order."""
        matches = []
        for match in re.finditer(pattern, html):
            value = match.group(1)
            if value and value.strip() not in matches:
                matches.append(value.strip())
        return matches


def _location_part(location: Optional[str], index: int) -> Optional[str]:
    """"Chicago, IL" -> "Chicago" (0) or "IL" (1)."""
    if not location:
        return None
    parts = [part.strip() for part in location.split(",")]
    if index < len(parts) and parts[index]:
        return parts[index]
    return None
