"""WhitePages scanner."""

import re
from typing import Optional

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit


class WhitePagesScanner(BaseBrokerScanner):
    """WhitePages - /name/First-Last/City-ST search; suppression needs a phone call."""

    def __init__(self):
        super().__init__()
        self.config = BrokerConfig(
            name="WhitePages",
            source="WHITEPAGES",
            base_url="https://www.whitepages.com",
            search_url="https://www.whitepages.com/name",
            opt_out_url="https://www.whitepages.com/suppression-requests",
            opt_out_instructions=(
                "1. Go to whitepages.com and search for your listing\n"
                "2. Click on your profile to view the full listing\n"
                "3. Copy the URL of your profile page\n"
                "4. Visit whitepages.com/suppression-requests\n"
                "5. Paste your profile URL and enter your phone number\n"
                "6. You'll receive a verification call - enter the code\n"
                "7. Your listing will be removed within 24 hours"
            ),
            estimated_removal_days=1,
            privacy_email="privacy@whitepages.com",
            requires_verification=True,
            use_premium_proxy=True,
            rate_limit=RateLimit(requests_per_minute=10, delay_ms=2000),
        )

    def build_search_url(self, input: ScanInput) -> Optional[str]:
        if not input.full_name:
            return None
        parts = input.full_name.split()
        if len(parts) < 2:
            return None

        url = f"{self.config.search_url}/{self.format_name_for_url(parts[0])}-{self.format_name_for_url(parts[-1])}"

        if input.addresses:
            address = input.addresses[0]
            if address.city and address.state:
                state = self.format_state_for_url(address.state).upper()
                url += f"/{self.format_name_for_url(address.city)}-{state}"
        return url

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        result = BrokerSearchResult()

        no_results = any(marker in html for marker in [
            "We couldn't find",
            "No results",
            "0 people found",
            "Try searching again",
        ])
        if no_results:
            return result

        has_results = any(marker in html for marker in [
            'class="serp-results"',
            'class="person-card"',
            "data-person-card",
            'class="results"',
        ]) or bool(input.full_name and self.name_in_html(html, input.full_name))
        if not has_results:
            return result

        result.found = True

        profile = re.search(r'href="(/person/[^"]+)"', html)
        if profile:
            result.profile_url = f"{self.config.base_url}{profile.group(1)}"

        location = re.search(r"(?:Lives in|Location|Address)[:\s]*([^<,\n]{1,200})", html, re.I)
        if location:
            result.location = location.group(1).strip()

        age = re.search(r"(?:Age|age)[:\s]*(\d+)", html)
        if age:
            result.age = age.group(1)

        relatives = re.search(r"(\d+)\s*(?:relatives|associates|related)", html, re.I)
        if relatives:
            result.set_relative_count(relatives.group(1))

        addresses = re.findall(r"address|lived at|residence", html, re.I)
        if addresses:
            result.addresses = ["Address on file"] * min(len(addresses), 5)

        phones = re.findall(r"\d{3}[-.)]\s*\d{3}[-.)]\s*\d{4}|phone number", html, re.I)
        if phones:
            result.phones = ["Phone on file"] * min(len(phones), 3)

        return result

    async def submit_opt_out(self, profile_url: str, user_info: dict) -> dict:
        """Submit opt-out - requires phone verification."""
        return {
            "success": False,
            "confirmation": None,
            "error": "WhitePages requires phone verification - manual submission needed",
            "instructions": self.config.opt_out_instructions,
        }

    def get_form_selectors(self) -> dict:
        return {
            "profile_url": 'input[name="url"], input[type="url"]',
            "phone": 'input[name="phone"], input[type="tel"]',
            "submit": 'button[type="submit"]',
        }
