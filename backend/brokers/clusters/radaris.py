"""Radaris cluster - Radaris-operated brands sharing its profile markup."""

import re
from typing import Optional

from brokers.base import ScanInput
from brokers.broker_scanner import BrokerConfig, BrokerSearchResult
from brokers.cluster import ClusterBrokerScanner, ClusterSite, make_cluster_config, split_full_name

NO_RESULT_MARKERS = ["No results found", "We couldn't find", "Person not found", "0 results"]
RESULT_MARKERS = ["person-card", "profile-details", "search-result", "View Full Profile", "View Details"]

LOCATION_RE = re.compile(r"(?:Located in|Lives in|Current Location)[:\s]*([^<,]+,\s*[A-Z]{2})", re.I)
AGE_RE = re.compile(r"(?:Age|age)[:\s]*(\d+)")
ADDRESS_RE = re.compile(r"(?:address|addresses|lived at)", re.I)
PHONE_RE = re.compile(r"(?:phone|phones|mobile|landline)", re.I)
RELATIVES_RE = re.compile(r"(\d+)\s*(?:relatives|family|associates)", re.I)
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

RADARIS_SITES = [
    ClusterSite("CENTEDA", "Centeda", "https://centeda.com", "/p", "https://centeda.com/ng/privacy", "support@centeda.com"),
    ClusterSite("PUBLICREPORTS", "PublicReports", "https://publicreports.com", "/p", "https://publicreports.com/ng/privacy", "support@publicreports.com"),
    ClusterSite("VIRTORY", "Virtory", "https://virtory.com", "/p", "https://virtory.com/ng/privacy"),
    ClusterSite("CLUBSET", "Clubset", "https://clubset.com", "/p", "https://clubset.com/ng/privacy"),
    ClusterSite("PERSONTRUST", "PersonTrust", "https://persontrust.com", "/p", "https://persontrust.com/ng/privacy"),
    ClusterSite("COUNCILON", "Councilon", "https://councilon.com", "/p", "https://councilon.com/ng/privacy"),
    ClusterSite("KWOLD", "Kwold", "https://kwold.com", "/p", "https://kwold.com/ng/privacy"),
    ClusterSite("NEWENGLANDFACTS", "NewEnglandFacts", "https://newenglandfacts.com", "/p", "https://newenglandfacts.com/ng/privacy"),
    ClusterSite("PUB360", "Pub360", "https://pub360.com", "/p", "https://pub360.com/ng/privacy"),
    ClusterSite("DATAVERIA_CLUSTER", "DataVeria", "https://dataveria.com", "/p", "https://dataveria.com/ng/privacy"),
    ClusterSite("VERICORA", "Vericora", "https://vericora.com", "/p", "https://vericora.com/ng/privacy"),
]

OPT_OUT_STEPS = [
    "Search for your name",
    "Find your profile listing",
    "Request removal via the privacy page",
    "Verify your identity if required",
]


def build_url(config: BrokerConfig, input: ScanInput) -> Optional[str]:
    names = split_full_name(input)
    if not names:
        return None
    first, last = names
    return f"{config.search_url}/{first.capitalize()}/{last.capitalize()}/"


def parse(html: str, input: ScanInput, config: BrokerConfig) -> BrokerSearchResult:
    result = BrokerSearchResult()

    if any(marker in html for marker in NO_RESULT_MARKERS):
        return result

    lowered = html.lower()
    has_results = any(marker in html for marker in RESULT_MARKERS) or bool(
        input.full_name and all(part.lower() in lowered for part in input.full_name.split(" "))
    )
    if not has_results:
        return result

    result.found = True

    location = LOCATION_RE.search(html)
    if location:
        result.location = location.group(1).strip()

    age = AGE_RE.search(html)
    if age:
        result.age = age.group(1)

    address_count = len(ADDRESS_RE.findall(html))
    if address_count:
        result.addresses = ["Address on file"] * min(address_count, 10)

    phone_count = len(PHONE_RE.findall(html))
    if phone_count:
        result.phones = ["Phone on file"] * min(phone_count, 5)

    relatives = RELATIVES_RE.search(html)
    if relatives:
        result.set_relative_count(relatives.group(1))

    email = EMAIL_RE.search(html)
    if email:
        result.emails = [email.group(0)]

    return result


def create_scanners() -> list[ClusterBrokerScanner]:
    return [
        ClusterBrokerScanner(
            make_cluster_config(site, OPT_OUT_STEPS, estimated_removal_days=7, requires_verification=True, delay_ms=3000),
            build_url,
            parse,
            cluster="radaris",
        )
        for site in RADARIS_SITES
    ]


BROKER_KEYS = [site.key for site in RADARIS_SITES]
