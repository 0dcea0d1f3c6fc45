"""Cluster scanner registry."""

from typing import Optional

from brokers.cluster import ClusterBrokerScanner
from brokers.clusters import infopay, peopleconnect, radaris

CLUSTERS = {
    "infopay": infopay,
    "peopleconnect": peopleconnect,
    "radaris": radaris,
}

CLUSTER_BROKER_KEYS = infopay.BROKER_KEYS + peopleconnect.BROKER_KEYS + radaris.BROKER_KEYS


def get_all_cluster_scanners() -> list[ClusterBrokerScanner]:
    """Fresh scanner instances for every cluster site."""
    scanners = []
    for module in CLUSTERS.values():
        scanners.extend(module.create_scanners())
    return scanners


def get_cluster_scanner(source: str) -> Optional[ClusterBrokerScanner]:
    for scanner in get_all_cluster_scanners():
        if scanner.source == source:
            return scanner
    return None


__all__ = [
    "CLUSTERS",
    "CLUSTER_BROKER_KEYS",
    "get_all_cluster_scanners",
    "get_cluster_scanner",
]
