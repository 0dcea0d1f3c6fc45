"""BeenVerified scanner."""

import re
from typing import Optional

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit


class BeenVerifiedScanner(BaseBrokerScanner):
    """BeenVerified - paywalled behind Cloudflare, so it always goes through the stealth proxy."""

    def __init__(self):
        super().__init__()
        self.config = BrokerConfig(
            name="BeenVerified",
            source="BEENVERIFIED",
            base_url="https://www.beenverified.com",
            search_url="https://www.beenverified.com/people",
            opt_out_url="https://www.beenverified.com/f/optout/search",
            opt_out_instructions=(
                "1. Go to beenverified.com/f/optout/search\n"
                "2. Search for your name and state\n"
                "3. Find your listing and click 'Remove My Info'\n"
                "4. Enter your email address to receive verification\n"
                "5. Click the link in the confirmation email\n"
                "6. Your information will be removed within 24 hours"
            ),
            estimated_removal_days=1,
            privacy_email="privacy@beenverified.com",
            requires_verification=True,
            use_stealth_proxy=True,
            rate_limit=RateLimit(requests_per_minute=5, delay_ms=3000),
        )

    def build_search_url(self, input: ScanInput) -> Optional[str]:
        if not input.full_name:
            return None
        parts = input.full_name.split()
        if len(parts) < 2:
            return None

        url = f"{self.config.search_url}/{parts[0].lower()}-{parts[-1].lower()}"
        if input.addresses and input.addresses[0].state:
            url += f"/{self.format_state_for_url(input.addresses[0].state)}"
        return url

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        result = BrokerSearchResult()

        no_results = any(marker in html for marker in [
            "No results found",
            "We couldn't find",
            "Try another search",
            "0 results",
        ])
        if no_results:
            return result

        has_results = any(marker in html for marker in [
            "people-search-results",
            "person-card",
            "search-result",
            "View Report",
        ]) or bool(input.full_name and self.name_in_html(html, input.full_name))
        if not has_results:
            return result

        result.found = True

        profile = re.search(r'href="(/pp/[^"]+)"', html)
        if profile:
            result.profile_url = f"{self.config.base_url}{profile.group(1)}"

        location = re.search(r"(?:Located in|Lives in|Current City)[:\s]*([^<]+)", html, re.I)
        if location:
            result.location = re.sub(r"\s+", " ", location.group(1).strip())

        age = re.search(r"(?:Age|age)[:\s]*(\d+)", html)
        if age:
            result.age = age.group(1)

        addresses = re.findall(r"address(?:es)?", html, re.I)
        if addresses:
            result.addresses = ["Address on file"] * min(len(addresses), 5)

        phones = re.findall(r"phones?", html, re.I)
        if phones:
            result.phones = ["Phone on file"] * min(len(phones), 3)

        relatives = re.search(r"(\d+)\s*(?:relatives|associates)", html, re.I)
        if relatives:
            result.set_relative_count(relatives.group(1))

        return result

    async def submit_opt_out(self, profile_url: str, user_info: dict) -> dict:
        """Submit opt-out - requires email verification."""
        return {
            "success": False,
            "confirmation": None,
            "error": "BeenVerified requires email verification - manual submission needed",
            "instructions": self.config.opt_out_instructions,
        }

    def get_form_selectors(self) -> dict:
        return {
            "first_name": 'input[name="firstName"]',
            "last_name": 'input[name="lastName"]',
            "state": 'select[name="state"]',
            "email": 'input[type="email"]',
            "submit": 'button[type="submit"]',
        }
