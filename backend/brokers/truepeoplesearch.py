"""TruePeopleSearch scanner and opt-out automation."""

import logging
import re
from typing import Optional
from urllib.parse import quote

from playwright.async_api import async_playwright

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit

logger = logging.getLogger(__name__)

REMOVAL_URL = "https://www.truepeoplesearch.com/removal"


class TruePeopleSearchScanner(BaseBrokerScanner):
    """TruePeopleSearch - results page scan, form opt-out without CAPTCHA."""

    def __init__(self):
        super().__init__()
        self.config = BrokerConfig(
            name="TruePeopleSearch",
            source="TRUEPEOPLESEARCH",
            base_url="https://www.truepeoplesearch.com",
            search_url="https://www.truepeoplesearch.com/results",
            opt_out_url=REMOVAL_URL,
            opt_out_instructions=(
                "1. Go to truepeoplesearch.com and search for your name\n"
                "2. Find your listing and click to view your profile\n"
                "3. Copy the profile URL\n"
                f"4. Go to {REMOVAL_URL} and paste your profile URL\n"
                "5. Click \"Remove This Record\"\n"
                "6. Your listing will be removed within 72 hours"
            ),
            estimated_removal_days=1,
            requires_verification=False,
            use_premium_proxy=True,
            rate_limit=RateLimit(requests_per_minute=10, delay_ms=2000),
        )

    def build_search_url(self, input: ScanInput) -> Optional[str]:
        if not input.full_name:
            return None

        url = f"{self.config.search_url}?name={quote(input.full_name.strip(), safe='')}"
        if input.addresses:
            address = input.addresses[0]
            location = ", ".join(part for part in (address.city, address.state) if part)
            if location:
                url += f"&citystatezip={quote(location, safe='')}"
        return url

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        result = BrokerSearchResult()

        no_results = any(marker in html for marker in [
            "No results found",
            "We couldn't find",
            "0 Records Found",
            "Try modifying your search",
        ])
        if no_results:
            return result

        has_results = any(marker in html for marker in [
            "card-summary",
            "people-list",
            "result-item",
            "View Free Details",
        ]) or bool(input.full_name and self.name_in_html(html, input.full_name))
        if not has_results:
            return result

        result.found = True

        profile = re.search(r'href="(/find/person/[^"]+)"', html)
        if profile:
            result.profile_url = f"{self.config.base_url}{profile.group(1)}"

        location = re.search(r'<span[^>]*class="[^"]*location[^"]*"[^>]*>([^<]+)</span>', html, re.I)
        if location:
            result.location = location.group(1).strip()
        else:
            city_state = re.search(r"([A-Za-z\s]+),\s*([A-Z]{2})\s*\d{5}", html)
            if city_state:
                result.location = f"{city_state.group(1).strip()}, {city_state.group(2)}"

        age = re.search(r"(?:Age|age)[:\s]*(\d+)", html)
        if age:
            result.age = age.group(1)

        addresses = re.findall(r"(?:current address|past address|address)", html, re.I)
        if addresses:
            result.addresses = ["Address on file"] * min(len(addresses), 10)

        result.phones = re.findall(r"\(\d{3}\)\s*\d{3}-\d{4}", html)[:5]

        relatives = re.search(r"(\d+)\s*(?:relatives|possible relatives)", html, re.I)
        if relatives:
            result.set_relative_count(relatives.group(1))

        email = re.search(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", html)
        if email:
            result.emails = [email.group(0)]

        return result

    async def submit_opt_out(self, profile_url: str, user_info: dict) -> dict:
        """Auto-submit opt-out request."""

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                context = await browser.new_context(
                    user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
                )
                page = await context.new_page()

                await page.goto(REMOVAL_URL, timeout=30000)
                await page.wait_for_load_state("networkidle", timeout=30000)

                selectors = self.get_form_selectors()

                url_input = await page.query_selector(selectors["profile_url"])
                if url_input:
                    await url_input.fill(profile_url)

                remove_button = await page.query_selector(selectors["submit"])
                if remove_button:
                    await remove_button.click()
                    await page.wait_for_load_state("networkidle", timeout=30000)

                content = await page.content()
                success = any(phrase in content.lower() for phrase in [
                    "has been removed",
                    "successfully removed",
                    "removal request",
                    "will be removed",
                ])

                await browser.close()

                return {
                    "success": success,
                    "confirmation": "SUBMITTED" if success else None,
                    "error": None if success else "Could not confirm submission",
                }

        except Exception as e:
            logger.warning("TruePeopleSearch opt-out failed: %s", e)
            return {
                "success": False,
                "confirmation": None,
                "error": str(e),
            }

    def get_form_selectors(self) -> dict:
        return {
            "profile_url": 'input[name="RecordUrl"], input[placeholder*="URL"]',
            "submit": 'button[type="submit"], input[value*="Remove"]',
        }
