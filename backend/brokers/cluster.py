"""Cluster scanners - one URL builder and one parser shared by white-label sites.

Many broker brands run on the same backend platform and serve identical
markup, so a cluster defines the search/parse logic once and stamps out a
scanner per site from a small site table.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from brokers.base import ScanInput
from brokers.broker_scanner import BaseBrokerScanner, BrokerConfig, BrokerSearchResult, RateLimit

UrlBuilder = Callable[[BrokerConfig, ScanInput], Optional[str]]
HtmlParser = Callable[[str, ScanInput, BrokerConfig], BrokerSearchResult]


@dataclass
class ClusterSite:
    key: str
    name: str
    base_url: str
    search_path: str
    opt_out_url: str
    privacy_email: Optional[str] = None


class ClusterBrokerScanner(BaseBrokerScanner):
    """A broker scanner whose behaviour comes entirely from its cluster."""

    def __init__(self, config: BrokerConfig, url_builder: UrlBuilder, parser: HtmlParser, cluster: str = ""):
        super().__init__()
        self.config = config
        self.url_builder = url_builder
        self.parser = parser
        self.cluster = cluster

    def build_search_url(self, input: ScanInput) -> Optional[str]:
        return self.url_builder(self.config, input)

    def parse_search_results(self, html: str, input: ScanInput) -> BrokerSearchResult:
        return self.parser(html, input, self.config)


def split_full_name(input: ScanInput) -> Optional[tuple[str, str]]:
    """First and last name, or None when there aren't at least two parts."""
    if not input.full_name:
        return None
    parts = input.full_name.split()
    if len(parts) < 2:
        return None
    return parts[0], parts[-1]


def make_cluster_config(
    site: ClusterSite,
    opt_out_steps: list[str],
    estimated_removal_days: int,
    requires_verification: bool,
    delay_ms: int,
    requests_per_minute: int = 5,
) -> BrokerConfig:
    steps = [f"1. Go to {site.opt_out_url}"]
    steps += [f"{i}. {step}" for i, step in enumerate(opt_out_steps, start=2)]

    return BrokerConfig(
        name=site.name,
        source=site.key,
        base_url=site.base_url,
        search_url=f"{site.base_url}{site.search_path}",
        opt_out_url=site.opt_out_url,
        opt_out_instructions="\n".join(steps),
        estimated_removal_days=estimated_removal_days,
        privacy_email=site.privacy_email,
        requires_verification=requires_verification,
        use_premium_proxy=True,
        rate_limit=RateLimit(requests_per_minute=requests_per_minute, delay_ms=delay_ms),
    )
