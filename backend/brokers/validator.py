"""Profile validator - decides whether a scraped profile belongs to the user.

Two tiers:
    Tier 1 looks for hard identifier combinations (name + email, name + phone,
    name + full street address, or an exact email/phone on a profile without a
    name) and returns 100 / CONFIRMED straight away.

    Tier 2 adds up soft signals: name (0-35), location (0-30), age (0-25) and
    partial phone/email correlation (0-10). People-search brokers need one
    matching factor, everything else two; with fewer the score is capped just
    under the reject threshold.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from brokers.base import (
    REJECT_THRESHOLD,
    ConfidenceFactors,
    ConfidenceResult,
    MatchClassification,
    ScanInput,
    classify,
)

logger = logging.getLogger(__name__)

MIN_FACTORS = 2

# Aggregated people-search data only needs one matching factor
PEOPLE_SEARCH_SOURCES = {
    "SPOKEO", "WHITEPAGES", "BEENVERIFIED", "TRUEPEOPLESEARCH",
    "RADARIS", "INTELIUS", "FASTPEOPLESEARCH", "PEOPLEFINDER",
    "MYLIFE", "USPHONEBOOK", "THATSTHEM", "CYBERBACKGROUNDCHECKS",
    "INSTANTCHECKMATE", "TRUTHFINDER", "PEOPLESEARCHNOW",
    "SEARCHPEOPLEFREE", "FAMILYTREENOW", "ADVANCEDBACKGROUNDCHECKS",
    "USSEARCH", "ZABASEARCH", "NUWBER", "SPYDIALER", "CHECKPEOPLE",
    "PUBLICRECORDSNOW", "PEOPLEFINDERS", "PEOPLELOOKER",
}

STATE_ABBREVIATIONS = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND",
    "ohio": "OH", "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA",
    "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT",
    "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
}

STREET_ABBREVIATIONS = [
    ("street", "st"),
    ("avenue", "ave"),
    ("drive", "dr"),
    ("road", "rd"),
    ("lane", "ln"),
    ("court", "ct"),
    ("boulevard", "blvd"),
    ("apartment", "apt"),
    ("suite", "ste"),
]


@dataclass
class ExtractedData:
    """Fields pulled out of a broker page for validation."""
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    street: Optional[str] = None
    age: Optional[int | str] = None
    phones: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)


def normalize_name(name: str) -> str:
    name = re.sub(r"[^a-z\s]", "", name.lower().strip())
    return re.sub(r"\s+", " ", name)


def normalize_city(city: str) -> str:
    return re.sub(r"[^a-z\s]", "", city.lower().strip())


def normalize_state(state: str) -> str:
    cleaned = state.lower().strip()
    if len(cleaned) == 2:
        return cleaned.upper()
    return STATE_ABBREVIATIONS.get(cleaned, cleaned.upper())


def normalize_phone(phone: str) -> str:
    """Last 10 digits, so +1 prefixes don't matter."""
    return re.sub(r"\D", "", phone)[-10:]


def normalize_street(street: str) -> str:
    street = re.sub(r"[^a-z0-9\s]", "", street.lower().strip())
    street = re.sub(r"\s+", " ", street)
    for long_form, short_form in STREET_ABBREVIATIONS:
        street = re.sub(rf"\b{long_form}\b", short_form, street)
    return street


def levenshtein_distance(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(a) + 1))
    for i, char_b in enumerate(b, start=1):
        current = [i]
        for j, char_a in enumerate(a, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def calculate_age(dob: str, today: Optional[date] = None) -> Optional[int]:
    try:
        birth = datetime.fromisoformat(dob).date()
    except (TypeError, ValueError):
        return None

    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def parse_age(value: int | str) -> Optional[int]:
    if isinstance(value, int):
        return value
    match = re.search(r"(\d+)", value)
    return int(match.group(1)) if match else None


def _mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "****"
    return "*" * (len(phone) - 4) + phone[-4:]


def _name_parts(name: str) -> tuple[str, str]:
    parts = name.split(" ")
    return parts[0], parts[-1]


class ProfileValidator:
    """Scores how likely a scraped profile is the user's."""

    def validate(self, profile: ScanInput, extracted: ExtractedData, source: str) -> ConfidenceResult:
        """Run Tier 1, falling back to Tier 2 scoring."""
        tier1 = self._validate_tier1(profile, extracted, source)
        if tier1:
            return tier1
        return self._validate_tier2(profile, extracted, source)

    # Tier 1

    def _validate_tier1(
        self,
        profile: ScanInput,
        extracted: ExtractedData,
        source: str,
    ) -> Optional[ConfidenceResult]:
        # An exact email or phone on a nameless profile is still the user's data
        if not profile.full_name:
            if profile.emails and self._has_exact_email_match(profile, extracted):
                logger.info("%s: tier 1 email-only match", source)
                return self._tier1_result(
                    [f"TIER 1 CONFIRMED: Exact email match (no-name profile) on {source}"],
                    "email-only",
                )
            if profile.phones and self._has_exact_phone_match(profile, extracted):
                logger.info("%s: tier 1 phone-only match", source)
                return self._tier1_result(
                    [f"TIER 1 CONFIRMED: Exact phone match (no-name profile) on {source}"],
                    "phone-only",
                )
            return None

        if not self._has_any_name_match(profile, extracted):
            return None

        shown_name = extracted.name or f"{extracted.first_name} {extracted.last_name}"

        if self._has_exact_email_match(profile, extracted):
            logger.info("%s: tier 1 name + email match", source)
            return self._tier1_result(
                [f"TIER 1 CONFIRMED: Name match + exact email match on {source}", f'Name: "{shown_name}"'],
                "email",
            )

        if self._has_exact_phone_match(profile, extracted):
            logger.info("%s: tier 1 name + phone match", source)
            return self._tier1_result(
                [f"TIER 1 CONFIRMED: Name match + exact phone match on {source}", f'Name: "{shown_name}"'],
                "phone",
            )

        if self._has_full_address_match(profile, extracted):
            logger.info("%s: tier 1 name + address match", source)
            return self._tier1_result(
                [f"TIER 1 CONFIRMED: Name match + full address match on {source}", f'Name: "{shown_name}"'],
                "address",
            )

        return None

    def _tier1_result(self, reasoning: list[str], match_type: str) -> ConfidenceResult:
        no_name = match_type in ("email-only", "phone-only")
        factors = ConfidenceFactors(
            name_match=0 if no_name else 35,
            location_match=30 if match_type == "address" else 0,
            data_correlation=0 if match_type == "address" else 10,
        )
        return ConfidenceResult(
            score=100,
            classification=MatchClassification.CONFIRMED,
            factors=factors,
            reasoning=reasoning,
        )

    def _has_any_name_match(self, profile: ScanInput, extracted: ExtractedData) -> bool:
        profile_name = normalize_name(profile.full_name or "")
        if not profile_name:
            return False
        profile_first, profile_last = _name_parts(profile_name)

        if extracted.name:
            extracted_name = normalize_name(extracted.name)
            extracted_first, extracted_last = _name_parts(extracted_name)

            if profile_name == extracted_name:
                return True
            if profile_first == extracted_first and profile_last == extracted_last:
                return True
            if extracted_name and (extracted_name in profile_name or profile_name in extracted_name):
                return True
            if profile_last == extracted_last and len(profile_last) > 2:
                return True

        if extracted.first_name or extracted.last_name:
            first = normalize_name(extracted.first_name or "")
            last = normalize_name(extracted.last_name or "")
            if profile_first == first and profile_last == last:
                return True
            if profile_last == last and len(last) > 2:
                return True

        if profile.aliases and extracted.name:
            extracted_name = normalize_name(extracted.name)
            if any(normalize_name(alias) == extracted_name for alias in profile.aliases):
                return True

        return False

    def _has_exact_email_match(self, profile: ScanInput, extracted: ExtractedData) -> bool:
        if not profile.emails or not extracted.emails:
            return False
        profile_emails = {e.lower().strip() for e in profile.emails}
        return any(e.lower().strip() in profile_emails for e in extracted.emails)

    def _has_exact_phone_match(self, profile: ScanInput, extracted: ExtractedData) -> bool:
        if not profile.phones or not extracted.phones:
            return False
        profile_phones = {normalize_phone(p) for p in profile.phones}
        return any(normalize_phone(p) in profile_phones for p in extracted.phones)

    def _has_full_address_match(self, profile: ScanInput, extracted: ExtractedData) -> bool:
        if not profile.addresses:
            return False
        if not (extracted.street and extracted.city and extracted.state):
            return False

        target = (
            normalize_street(extracted.street),
            normalize_city(extracted.city),
            normalize_state(extracted.state),
        )
        for addr in profile.addresses:
            candidate = (
                normalize_street(addr.street or ""),
                normalize_city(addr.city or ""),
                normalize_state(addr.state or ""),
            )
            if candidate == target:
                return True
        return False

    # Tier 2

    def _validate_tier2(
        self,
        profile: ScanInput,
        extracted: ExtractedData,
        source: str,
    ) -> ConfidenceResult:
        reasoning: list[str] = []
        factors = ConfidenceFactors()

        factors.name_match = self._score_name(profile, extracted, reasoning)
        factors.location_match = self._score_location(profile, extracted, reasoning)
        factors.age_match = self._score_age(profile, extracted, reasoning)
        factors.data_correlation = self._score_correlation(profile, extracted, reasoning)

        score = min(
            100,
            factors.name_match + factors.location_match + factors.age_match + factors.data_correlation,
        )

        matched = sum(
            1 for value in (
                factors.name_match,
                factors.location_match,
                factors.age_match,
                factors.data_correlation,
            ) if value > 0
        )
        normalized_source = re.sub(r"[^A-Z]", "", source.upper())
        min_factors = 1 if normalized_source in PEOPLE_SEARCH_SOURCES else MIN_FACTORS

        if matched < min_factors:
            reasoning.append(
                f"PRECISION CHECK: Only {matched} factor(s) matched (need {min_factors}+)."
            )
            cap = REJECT_THRESHOLD - 1
            if score > cap:
                logger.info("%s: score %d capped to %d (%d factors)", source, score, cap, matched)
                score = cap
                reasoning.append(f"Score capped to {cap} due to insufficient matching factors.")
        else:
            reasoning.append(
                f"PRECISION CHECK: {matched} factors matched ({min_factors} needed)."
            )

        return ConfidenceResult(
            score=score,
            classification=classify(score),
            factors=factors,
            reasoning=reasoning,
        )

    def _score_name(self, profile: ScanInput, extracted: ExtractedData, reasoning: list[str]) -> int:
        if not profile.full_name:
            reasoning.append("No profile name to compare")
            return 0

        profile_name = normalize_name(profile.full_name)
        profile_first, profile_last = _name_parts(profile_name)
        extracted_name = normalize_name(extracted.name or "")

        # Aliases are checked before the legal name
        if profile.aliases and extracted_name:
            for alias in profile.aliases:
                if normalize_name(alias) == extracted_name:
                    reasoning.append(f'Alias match: "{extracted.name}" matches alias "{alias}"')
                    return 28

        if extracted.name:
            extracted_first, extracted_last = _name_parts(extracted_name)

            if profile_name == extracted_name:
                reasoning.append(f'Exact name match: "{extracted.name}"')
                return 35
            if profile_first == extracted_first and profile_last == extracted_last:
                reasoning.append(f"First and last name match: {extracted_first} {extracted_last}")
                return 30
            if extracted_name and (extracted_name in profile_name or profile_name in extracted_name):
                reasoning.append(f'Partial name overlap: "{extracted.name}" in "{profile.full_name}"')
                return 20
            if profile_last == extracted_last and len(profile_last) > 2:
                reasoning.append(f"Last name match only: {extracted_last}")
                return 15
            if profile_first == extracted_first and len(profile_first) > 2:
                reasoning.append(f"First name match only: {extracted_first}")
                return 10

            distance = levenshtein_distance(profile_name, extracted_name)
            if distance <= 2:
                reasoning.append(f'Fuzzy name match (distance {distance}): "{extracted.name}"')
                return 10

        if extracted.first_name or extracted.last_name:
            first = normalize_name(extracted.first_name or "")
            last = normalize_name(extracted.last_name or "")

            if profile_first == first and profile_last == last:
                reasoning.append(f"First+Last name match: {first} {last}")
                return 30
            if profile_last == last and len(last) > 2:
                reasoning.append(f"Last name match: {last}")
                return 15
            if profile_first == first and len(first) > 2:
                reasoning.append(f"First name match: {first}")
                return 10

        reasoning.append(
            f'Name mismatch: profile="{profile.full_name}", extracted="{extracted.name or "unknown"}"'
        )
        return 0

    def _score_location(self, profile: ScanInput, extracted: ExtractedData, reasoning: list[str]) -> int:
        if not profile.addresses:
            reasoning.append("No profile addresses to compare")
            return 0
        if not extracted.city and not extracted.state:
            reasoning.append("No location data in scan result")
            return 0

        city = normalize_city(extracted.city or "")
        state = normalize_state(extracted.state or "")

        for addr in profile.addresses:
            profile_city = normalize_city(addr.city or "")
            profile_state = normalize_state(addr.state or "")

            if city and state and profile_city == city and profile_state == state:
                reasoning.append(f"City+State match: {extracted.city}, {extracted.state}")
                return 30
            if state and profile_state == state:
                reasoning.append(f"State match only: {extracted.state}")
                return 18
            # Common city names make this the weakest signal
            if city and profile_city == city:
                reasoning.append(f"City match only (no state): {extracted.city}")
                return 10

        reasoning.append(
            f'Location mismatch: extracted "{extracted.city or ""}, {extracted.state or ""}"'
        )
        return 0

    def _score_age(self, profile: ScanInput, extracted: ExtractedData, reasoning: list[str]) -> int:
        if not profile.date_of_birth:
            reasoning.append("No profile DOB to compare")
            return 0
        if not extracted.age:
            reasoning.append("No age data in scan result")
            return 0

        profile_age = calculate_age(profile.date_of_birth)
        if profile_age is None:
            reasoning.append("Could not calculate profile age")
            return 0

        extracted_age = parse_age(extracted.age)
        if extracted_age is None:
            reasoning.append(f"Could not parse extracted age: {extracted.age}")
            return 0

        diff = abs(profile_age - extracted_age)
        if diff == 0:
            reasoning.append(f"Exact age match: {extracted_age}")
            return 25
        if diff <= 2:
            reasoning.append(f"Age within 2 years: profile={profile_age}, extracted={extracted_age}")
            return 18
        if diff <= 5:
            reasoning.append(f"Age within 5 years: profile={profile_age}, extracted={extracted_age}")
            return 12
        if diff <= 10:
            reasoning.append(f"Age within 10 years: profile={profile_age}, extracted={extracted_age}")
            return 5

        reasoning.append(f"Age mismatch: profile={profile_age}, extracted={extracted_age}")
        return 0

    def _score_correlation(self, profile: ScanInput, extracted: ExtractedData, reasoning: list[str]) -> int:
        """Partial phone/email overlap (exact matches usually end in Tier 1)."""
        score = 0

        if profile.phones and extracted.phones:
            profile_phones = [normalize_phone(p) for p in profile.phones]
            for phone in (normalize_phone(p) for p in extracted.phones):
                if phone in profile_phones:
                    score += 5
                    reasoning.append(f"Phone match: {_mask_phone(phone)}")
                    break
                # Same local number, different area code
                last7 = phone[-7:]
                if len(last7) == 7 and any(p.endswith(last7) for p in profile_phones):
                    score += 3
                    reasoning.append(f"Phone partial match (last 7 digits): {_mask_phone(phone)}")
                    break

        if profile.emails and extracted.emails:
            profile_emails = [e.lower().strip() for e in profile.emails]
            profile_domains = {e.partition("@")[2] for e in profile_emails}
            for email in (e.lower().strip() for e in extracted.emails):
                if email in profile_emails:
                    score += 5
                    reasoning.append("Email match")
                    break
                domain = email.partition("@")[2]
                if domain and domain in profile_domains:
                    score += 2
                    reasoning.append(f"Email domain match: @{domain}")
                    break

        if score == 0:
            reasoning.append("No phone/email correlation found")
        return min(10, score)


profile_validator = ProfileValidator()
