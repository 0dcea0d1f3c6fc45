"""PeopleConnect cluster - Intelius-family sites with /first-last search paths."""

import re
from typing import Optional

from brokers.base import ScanInput
from brokers.broker_scanner import BrokerConfig, BrokerSearchResult
from brokers.cluster import ClusterBrokerScanner, ClusterSite, make_cluster_config, split_full_name

NO_RESULT_MARKERS = ["No results found", "We couldn't find", "0 results", "Try another search"]
RESULT_MARKERS = ["search-results", "person-card", "result-item", "View Report", "View Full Report"]

PROFILE_URL_RE = re.compile(r'href="(/people/[^"]+)"')
LOCATION_RE = re.compile(r"(?:Lives in|Location)[:\s]*([^<]+(?:,\s*[A-Z]{2}))", re.I)
AGE_RE = re.compile(r"(?:Age|age)[:\s]*(\d+)")
ADDRESS_RE = re.compile(r"(?:address|addresses)", re.I)
PHONE_RE = re.compile(r"(?:phone|phones)", re.I)
RELATIVES_RE = re.compile(r"(\d+)\s*(?:relatives|associates)", re.I)

PEOPLECONNECT_SITES = [
    ClusterSite("SNOOPSTATION", "SnoopStation", "https://www.snoopstation.com", "/people-search", "https://www.snoopstation.com/opt-out"),
    ClusterSite("ONLINESEARCHES", "OnlineSearches", "https://www.onlinesearches.com", "/people-search", "https://www.onlinesearches.com/opt-out"),
    ClusterSite("EASYBACKGROUNDCHECKS_PC", "EasyBackgroundChecks", "https://www.easybackgroundchecks.com", "/people-search", "https://www.easybackgroundchecks.com/opt-out"),
    ClusterSite("PEOPLELOOKUP", "PeopleLookup", "https://www.peoplelookup.com", "/people-search", "https://www.peoplelookup.com/opt-out", "privacy@peoplelookup.com"),
    ClusterSite("USAPEOPLEDATA", "USAPeopleData", "https://usapeopledata.com", "/search", "https://usapeopledata.com/opt-out"),
    ClusterSite("ALLAREACODES", "AllAreaCodes", "https://www.allareacodes.com", "/people", "https://www.allareacodes.com/opt-out"),
    ClusterSite("GEORGIAPUBLICRECORDS", "GeorgiaPublicRecords", "https://georgiapublicrecords.com", "/search", "https://georgiapublicrecords.com/opt-out"),
    ClusterSite("REVERSEPHONELOOKUP_PC", "ReversePhoneLookup", "https://www.reversephonelookup.com", "/people", "https://www.reversephonelookup.com/opt-out"),
]

OPT_OUT_STEPS = [
    "Search for your name and location",
    "Select your listing from the results",
    "Enter your email address",
    "Click the verification link sent to your email",
    "Your information will be removed within 72 hours",
]


def build_url(config: BrokerConfig, input: ScanInput) -> Optional[str]:
    names = split_full_name(input)
    if not names:
        return None
    first, last = names
    return f"{config.search_url}/{first.lower()}-{last.lower()}"


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

    profile_url = PROFILE_URL_RE.search(html)
    if profile_url:
        result.profile_url = f"{config.base_url}{profile_url.group(1)}"

    location = LOCATION_RE.search(html)
    if location:
        result.location = location.group(1).strip()

    age = AGE_RE.search(html)
    if age:
        result.age = age.group(1)

    address_count = len(ADDRESS_RE.findall(html))
    if address_count:
        result.addresses = ["Address on file"] * min(address_count, 5)

    phone_count = len(PHONE_RE.findall(html))
    if phone_count:
        result.phones = ["Phone on file"] * min(phone_count, 3)

    relatives = RELATIVES_RE.search(html)
    if relatives:
        result.set_relative_count(relatives.group(1))

    return result


def create_scanners() -> list[ClusterBrokerScanner]:
    return [
        ClusterBrokerScanner(
            make_cluster_config(site, OPT_OUT_STEPS, estimated_removal_days=3, requires_verification=True, delay_ms=3000),
            build_url,
            parse,
            cluster="peopleconnect",
        )
        for site in PEOPLECONNECT_SITES
    ]


BROKER_KEYS = [site.key for site in PEOPLECONNECT_SITES]
