"""FastPeopleSearch scanner and opt-out automation."""

import logging
import re
from typing import Optional

from playwright.async_api import async_playwright

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit

logger = logging.getLogger(__name__)

REMOVAL_URL = "https://www.fastpeoplesearch.com/removal"


class FastPeopleSearchScanner(BaseBrokerScanner):
    """FastPeopleSearch - /name/first-last_city-st search; opt-out form has a reCAPTCHA."""

    def __init__(self):
        super().__init__()
        self.config = BrokerConfig(
            name="FastPeopleSearch",
            source="FASTPEOPLESEARCH",
            base_url="https://www.fastpeoplesearch.com",
            search_url="https://www.fastpeoplesearch.com/name",
            opt_out_url=REMOVAL_URL,
            opt_out_instructions=(
                "1. Find your profile on FastPeopleSearch\n"
                "2. Click \"View Free Details\" to get the full profile URL\n"
                f"3. Go to {REMOVAL_URL}\n"
                "4. Enter your profile URL\n"
                "5. Check \"I'm not a robot\"\n"
                "6. Click \"Begin Removal Process\""
            ),
            estimated_removal_days=2,
            requires_verification=False,
            use_premium_proxy=True,
            rate_limit=RateLimit(requests_per_minute=10, delay_ms=2000),
        )

    def build_search_url(self, input: ScanInput) -> Optional[str]:
        if not input.full_name:
            return None
        parts = input.full_name.split()
        if len(parts) < 2:
            return None

        first = self.format_name_for_url(parts[0])
        last = self.format_name_for_url(parts[-1])
        url = f"{self.config.search_url}/{first}-{last}"

        if input.addresses:
            address = input.addresses[0]
            if address.city and address.state:
                url += f"_{self.format_name_for_url(address.city)}-{self.format_state_for_url(address.state)}"
        return url

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        result = BrokerSearchResult()

        no_results = any(marker in html for marker in [
            "No Results Found",
            "We couldn't find",
            "0 people found",
            "Try a different search",
        ])
        if no_results:
            return result

        has_results = any(marker in html for marker in [
            "people-list",
            "search-results",
            "result-card",
            "View Free Details",
            "Full Profile",
        ]) or bool(input.full_name and self.name_in_html(html, input.full_name))
        if not has_results:
            return result

        result.found = True

        profile = re.search(r'href="(/name/[^"]+)"', html)
        if profile:
            result.profile_url = f"{self.config.base_url}{profile.group(1)}"

        location = re.search(r"(?:Lives in|Location|Resides)[:\s]*([^<]+(?:,\s*[A-Z]{2}))", html, re.I)
        if location:
            result.location = location.group(1).strip()

        age = re.search(r"(?:Age|age)[:\s]*(\d+)", html)
        if age:
            result.age = age.group(1)

        addresses = re.findall(r"\d+\s+[A-Za-z\s]+(?:St|Ave|Rd|Blvd|Dr|Ln|Way|Ct|Pl)", html, re.I)
        if addresses:
            result.addresses = ["Address on file"] * min(len(addresses), 10)

        result.phones = re.findall(r"\(\d{3}\)\s*\d{3}-\d{4}|\d{3}-\d{3}-\d{4}", html)[:5]

        if "Possible Relatives" in html or "Related To" in html:
            relatives = re.findall(r'<a[^>]*href="/name/[^"]*"[^>]*>([^<]+)<', html, re.I)
            if relatives:
                result.set_relative_count(len(relatives))

        email = re.search(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", html)
        if email:
            result.emails = [email.group(0)]

        return result

    async def submit_opt_out(self, profile_url: str, user_info: dict) -> dict:
        """Fill the removal form; the reCAPTCHA stops it short of submission."""

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                page = await browser.new_page()

                await page.goto(REMOVAL_URL, timeout=30000)
                await page.wait_for_load_state("networkidle", timeout=30000)

                url_input = await page.query_selector(self.get_form_selectors()["profile_url"])
                if url_input:
                    await url_input.fill(profile_url)

                # Would need CAPTCHA solving here
                await browser.close()

                return {
                    "success": False,
                    "confirmation": None,
                    "error": "CAPTCHA required for FastPeopleSearch",
                    "instructions": self.config.opt_out_instructions,
                }

        except Exception as e:
            logger.warning("FastPeopleSearch opt-out failed: %s", e)
            return {"success": False, "confirmation": None, "error": str(e)}

    def get_form_selectors(self) -> dict:
        return {
            "profile_url": 'input[name="url"], input[placeholder*="url"]',
            "submit": 'button[type="submit"]',
        }
