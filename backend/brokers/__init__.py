"""Data broker scanners."""

from typing import Optional

from brokers.broker_scanner import BaseBrokerScanner
from brokers.beenverified import BeenVerifiedScanner
from brokers.clusters import get_all_cluster_scanners, get_cluster_scanner
from brokers.fastpeoplesearch import FastPeopleSearchScanner
from brokers.radaris import RadarisScanner
from brokers.spokeo import SpokeoScanner
from brokers.truepeoplesearch import TruePeopleSearchScanner
from brokers.whitepages import WhitePagesScanner

# Registry of standalone scanner implementations, keyed by directory source
SCANNER_REGISTRY = {
    "SPOKEO": SpokeoScanner,
    "WHITEPAGES": WhitePagesScanner,
    "BEENVERIFIED": BeenVerifiedScanner,
    "RADARIS": RadarisScanner,
    "TRUEPEOPLESEARCH": TruePeopleSearchScanner,
    "FASTPEOPLESEARCH": FastPeopleSearchScanner,
}


def get_scanner(source: str) -> Optional[BaseBrokerScanner]:
    """Get a fresh scanner for a directory source, standalone or cluster."""
    scanner_class = SCANNER_REGISTRY.get(source)
    if scanner_class:
        return scanner_class()
    return get_cluster_scanner(source)


def list_scanners() -> list[BaseBrokerScanner]:
    """Fresh instances of every standalone and cluster scanner."""
    return [cls() for cls in SCANNER_REGISTRY.values()] + get_all_cluster_scanners()


__all__ = [
    "BaseBrokerScanner",
    "SpokeoScanner",
    "WhitePagesScanner",
    "BeenVerifiedScanner",
    "RadarisScanner",
    "TruePeopleSearchScanner",
    "FastPeopleSearchScanner",
    "SCANNER_REGISTRY",
    "get_scanner",
    "list_scanners",
]
