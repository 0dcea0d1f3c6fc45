"""Spokeo scanner."""

import re
from typing import Optional
from urllib.parse import quote

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit
from brokers.validator import STATE_ABBREVIATIONS

# abbreviation -> "New-York"
STATE_NAMES = {
    abbreviation.lower(): "-".join(word.capitalize() for word in name.split())
    for name, abbreviation in STATE_ABBREVIATIONS.items()
}

PROFILE_URL_PATTERNS = [
    r'href="(/[^"]+)"[^>]*data-link-to-full-profile',
    r'href="(/[A-Z][a-z]+-[A-Z][a-z]+/[^"]+)"',
    r'<a[^>]*href="(/[^"]+)"[^>]*>View',
]

AGE_PATTERNS = [
    r"age[:\s]*(\d+)",
    r"(\d+)\s*years?\s*old",
    r'"age"[:\s]*(\d+)',
]


class SpokeoScanner(BaseBrokerScanner):
    """Spokeo - /First-Last/State search; opt-out needs an email confirmation link."""

    def __init__(self):
        super().__init__()
        self.config = BrokerConfig(
            name="Spokeo",
            source="SPOKEO",
            base_url="https://www.spokeo.com",
            search_url="https://www.spokeo.com/search",
            opt_out_url="https://www.spokeo.com/optout",
            opt_out_instructions=(
                "1. Go to Spokeo.com and search for your listing\n"
                "2. Copy the URL of your profile\n"
                "3. Visit spokeo.com/optout\n"
                "4. Paste the profile URL and enter your email\n"
                "5. Click the confirmation link sent to your email\n"
                "6. Your listing will be removed within 24-48 hours"
            ),
            estimated_removal_days=3,
            privacy_email="privacy@spokeo.com",
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

        url = f"{self.config.base_url}/{quote(parts[0], safe='')}-{quote(parts[-1], safe='')}"

        # Spokeo takes the state only, spelled out
        if input.addresses and input.addresses[0].state:
            url += f"/{self.full_state_name(input.addresses[0].state)}"
        return url

    @staticmethod
    def full_state_name(state: str) -> str:
        normalized = state.lower().strip()
        if len(normalized) > 2:
            return "-".join(word.capitalize() for word in normalized.split())
        return STATE_NAMES.get(normalized, state)

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        result = BrokerSearchResult()

        no_results = any(marker in html for marker in [
            "We did not find",
            "No results found",
            "0 results",
            "0 matches",
            "Try a different search",
            "no matching records",
        ])
        if no_results:
            return result

        # e.g. "<title>Jane Doe, Georgia (1 match)"
        title = re.search(r"<title>([^<]+)\((\d+)\s*match", html, re.I)

        has_results = bool(title and int(title.group(2)) > 0) or any(marker in html for marker in [
            "person-card",
            "result-card",
            "data-link-to-full-profile",
            "View Full Profile",
            "See Full Results",
        ]) or bool(input.full_name and self.name_in_html(html, input.full_name))
        if not has_results:
            return result

        result.found = True

        for pattern in PROFILE_URL_PATTERNS:
            match = re.search(pattern, html, re.I)
            if match:
                result.profile_url = f"{self.config.base_url}{match.group(1)}"
                break

        if title:
            title_parts = title.group(1).split(",")
            if len(title_parts) > 1 and title_parts[1].strip():
                result.location = title_parts[1].strip()
        if not result.location:
            location = re.search(r"(?:Lives in|Located in|Location)[:\s]*([^<,\n]{1,200})", html, re.I)
            if location:
                result.location = location.group(1).strip()

        for pattern in AGE_PATTERNS:
            match = re.search(pattern, html, re.I)
            if match:
                result.age = match.group(1)
                break

        relatives = re.search(r"(\d+)\s*(?:relatives|family members|associated people)", html, re.I)
        if relatives:
            result.set_relative_count(relatives.group(1))

        lowered = html.lower()
        if "address" in lowered:
            result.addresses = ["Address on file"]
        if "phone" in lowered or "Mobile" in html or "Landline" in html:
            result.phones = ["Phone on file"]
        if "email" in lowered or "@" in html:
            result.emails = ["Email on file"]

        return result

    async def submit_opt_out(self, profile_url: str, user_info: dict) -> dict:
        """Submit opt-out - requires manual CAPTCHA."""
        return {
            "success": False,
            "confirmation": None,
            "error": "Spokeo requires CAPTCHA - manual submission needed",
            "instructions": self.config.opt_out_instructions,
        }

    def get_form_selectors(self) -> dict:
        return {
            "profile_url": 'input[name="url"], input[id="url"]',
            "email": 'input[name="email"], input[type="email"]',
            "submit": 'button[type="submit"], input[type="submit"]',
        }
