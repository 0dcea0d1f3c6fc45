"""Radaris scanner - the parent of the Radaris white-label cluster."""

import re
from typing import Optional

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit


class RadarisScanner(BaseBrokerScanner):
    """Radaris - /p/First/Last/ only; city and state aren't accepted in the URL."""

    def __init__(self):
        super().__init__()
        self.config = BrokerConfig(
            name="Radaris",
            source="RADARIS",
            base_url="https://radaris.com",
            search_url="https://radaris.com/p",
            opt_out_url="https://radaris.com/control/privacy",
            opt_out_instructions=(
                "1. Go to radaris.com and search for your name\n"
                "2. Find your listing and view your profile\n"
                "3. Click 'Control Info' or go to radaris.com/control/privacy\n"
                "4. You'll need to create an account to remove your info\n"
                "5. Verify your identity via phone or email\n"
                "6. Request removal of your profile\n"
                "7. Removal takes 24-48 hours but may require follow-up"
            ),
            estimated_removal_days=7,
            privacy_email="privacy@radaris.com",
            requires_verification=True,
            use_premium_proxy=True,
            rate_limit=RateLimit(requests_per_minute=5, delay_ms=3000),
        )

    def build_search_url(self, input: ScanInput) -> Optional[str]:
        if not input.full_name:
            return None
        parts = input.full_name.split()
        if len(parts) < 2:
            return None
        return f"{self.config.search_url}/{parts[0].capitalize()}/{parts[-1].capitalize()}/"

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        result = BrokerSearchResult()

        no_results = any(marker in html for marker in [
            "No results found",
            "We couldn't find",
            "Person not found",
            "0 results",
        ])
        if no_results:
            return result

        has_results = any(marker in html for marker in [
            "person-card",
            "profile-details",
            "search-result",
            "View Full Profile",
            "View Details",
        ]) or bool(input.full_name and self.name_in_html(html, input.full_name))
        if not has_results:
            return result

        result.found = True

        profile = re.search(r'href="(/p/[^"]+/[^"]+)"', html)
        if profile:
            result.profile_url = f"{self.config.base_url}{profile.group(1)}"

        location = re.search(r"(?:Located in|Lives in|Current Location)[:\s]*([^<,]+,\s*[A-Z]{2})", html, re.I)
        if location:
            result.location = location.group(1).strip()

        age = re.search(r"(?:Age|age)[:\s]*(\d+)", html)
        if age:
            result.age = age.group(1)

        addresses = re.findall(r"address(?:es)?|lived at", html, re.I)
        if addresses:
            result.addresses = ["Address on file"] * min(len(addresses), 10)

        phones = re.findall(r"phones?|mobile|landline", html, re.I)
        if phones:
            result.phones = ["Phone on file"] * min(len(phones), 5)

        relatives = re.search(r"(\d+)\s*(?:relatives|family|associates)", html, re.I)
        if relatives:
            result.set_relative_count(relatives.group(1))

        email = re.search(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", html)
        if email:
            result.emails = [email.group(0)]

        return result
