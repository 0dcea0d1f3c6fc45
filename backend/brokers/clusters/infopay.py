"""InfoPay cluster - InfoTracer's white-label record sites.

All of them take ?fname=&lname= query params and share result markup
(person-card / search-result blocks with location and age).
"""

import re
from typing import Optional
from urllib.parse import quote

from brokers.base import ScanInput
from brokers.broker_scanner import BrokerConfig, BrokerSearchResult
from brokers.cluster import ClusterBrokerScanner, ClusterSite, make_cluster_config, split_full_name

NO_RESULT_MARKERS = [
    "no results found",
    "0 records",
    "no records",
    "no matching records",
    "person not found",
    "we couldn't find",
]

RESULT_MARKERS = [
    "person-card",
    "search-result",
    "result-item",
    "View Full Report",
    "View Record",
    "records found",
]

LOCATION_RE = re.compile(r"(?:Located in|Lives in|Location|Current City)[:\s]*([^<,]+,\s*[A-Z]{2})", re.I)
AGE_RE = re.compile(r"(?:Age|age)[:\s]*(\d+)")
ADDRESS_RE = re.compile(r"(?:address|addresses|lived at)", re.I)
PHONE_RE = re.compile(r"(?:phone|phones|mobile|landline)", re.I)
RELATIVES_RE = re.compile(r"(\d+)\s*(?:relatives|associates|family)", re.I)

INFOPAY_SITES = [
    ClusterSite("RECORDSFINDER", "RecordsFinder", "https://recordsfinder.com", "/people-search", "https://recordsfinder.com/optout", "privacy@recordsfinder.com"),
    ClusterSite("COURTCASEFINDER", "CourtCaseFinder", "https://courtcasefinder.com", "/people-search", "https://courtcasefinder.com/optout", "privacy@courtcasefinder.com"),
    ClusterSite("STATERECORDS", "StateRecords", "https://staterecords.org", "/people-search", "https://staterecords.org/optout", "privacy@staterecords.org"),
    ClusterSite("VERIFYRECORDS", "VerifyRecords", "https://www.verifyrecords.com", "/people-search", "https://www.verifyrecords.com/optout"),
    ClusterSite("GOVWARRANTSEARCH", "GovWarrantSearch", "https://govwarrantsearch.com", "/people-search", "https://govwarrantsearch.com/optout"),
    ClusterSite("NDB", "NDB (National Database)", "https://ndb.com", "/people-search", "https://ndb.com/optout"),
    ClusterSite("VERIFYPUBLICRECORDS", "VerifyPublicRecords", "https://verifypublicrecords.com", "/people-search", "https://verifypublicrecords.com/optout"),
    ClusterSite("USWARRANTS", "USWarrants", "https://uswarrants.org", "/people-search", "https://uswarrants.org/optout"),
    ClusterSite("USRECORDS", "USRecords", "https://usrecords.org", "/people-search", "https://usrecords.org/optout"),
    ClusterSite("SEARCHUSAPEOPLE", "SearchUSAPeople", "https://searchusapeople.com", "/people-search", "https://searchusapeople.com/optout"),
    ClusterSite("FREEBACKGROUNDCHECK_IP", "FreeBackgroundCheck (InfoPay)", "https://freebackgroundcheck.org", "/people-search", "https://freebackgroundcheck.org/optout"),
    ClusterSite("BIRTHRECORDS", "BirthRecords", "https://birthrecords.org", "/people-search", "https://birthrecords.org/optout"),
]

OPT_OUT_STEPS = [
    "Search for your name",
    "Select your listing",
    "Follow the opt-out process",
    "Verify via email if required",
]


def build_url(config: BrokerConfig, input: ScanInput) -> Optional[str]:
    names = split_full_name(input)
    if not names:
        return None
    first, last = names
    return f"{config.search_url}?fname={quote(first, safe='')}&lname={quote(last, safe='')}"


def parse(html: str, input: ScanInput, config: BrokerConfig) -> BrokerSearchResult:
    result = BrokerSearchResult()
    lowered = html.lower()

    if any(marker in lowered for marker in NO_RESULT_MARKERS):
        return result

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
            make_cluster_config(site, OPT_OUT_STEPS, estimated_removal_days=7, requires_verification=False, delay_ms=2000),
            build_url,
            parse,
            cluster="infopay",
        )
        for site in INFOPAY_SITES
    ]


BROKER_KEYS = [site.key for site in INFOPAY_SITES]
