"""Broker relationship graph used to project exposures onto unscanned brokers.

People-search brokers buy from the same handful of aggregators, so a
confirmed listing on one makes a listing on its category peers and corporate
siblings likely. Weights below scale the source score onto each target.
"""

from dataclasses import dataclass

from brokers.directory import (
    BROKER_CATEGORIES,
    DATA_BROKER_DIRECTORY,
    NOT_REMOVABLE,
    get_broker_category,
    get_consolidation_parent,
    get_subsidiaries,
)


@dataclass
class ProjectionTarget:
    broker_key: str
    weight: float


CATEGORY_PROJECTION_RULES: dict[str, list[tuple[str, float]]] = {
    "PEOPLE_SEARCH": [
        ("PEOPLE_SEARCH", 0.90),
        ("PHONE_LOOKUP", 0.82),
        ("BACKGROUND_CHECK", 0.82),
        ("PROPERTY_RECORDS", 0.70),  # only when the user has an address
        ("COURT_RECORDS", 0.60),
    ],
    "PHONE_LOOKUP": [
        ("PHONE_LOOKUP", 0.85),
        ("PEOPLE_SEARCH", 0.75),
    ],
    "BACKGROUND_CHECK": [
        ("BACKGROUND_CHECK", 0.85),
        ("PEOPLE_SEARCH", 0.75),
        ("COURT_RECORDS", 0.70),
    ],
}

SUBSIDIARY_WEIGHT = 0.95
SAME_PARENT_WEIGHT = 0.90

PROJECTION_MIN_SCORE = 45

EXCLUDED_CATEGORIES = [
    "SOCIAL_MEDIA",
    "BREACH_DATABASE",
    "DARK_WEB_MONITORING",
    "PASTE_SITE_MONITORS",
]
EXCLUDED_INFO_CATEGORIES = {"BREACH_DATABASE", "DARK_WEB", "SOCIAL_MEDIA"}

_excluded_keys = {key for category in EXCLUDED_CATEGORIES for key in BROKER_CATEGORIES[category]}


def is_excluded_from_projection(broker_key: str) -> bool:
    if broker_key in _excluded_keys:
        return True

    info = DATA_BROKER_DIRECTORY.get(broker_key)
    if not info:
        return True
    if info.category in EXCLUDED_INFO_CATEGORIES:
        return True
    if not info.is_removable:
        return True
    if info.removal_method == NOT_REMOVABLE and not info.opt_out_url and not info.privacy_email:
        return True
    return False


def get_category_projection_targets(source_key: str, user_has_address: bool) -> list[ProjectionTarget]:
    source_category = get_broker_category(source_key)
    if not source_category:
        return []

    targets = []
    for target_category, weight in CATEGORY_PROJECTION_RULES.get(source_category, []):
        if target_category == "PROPERTY_RECORDS" and not user_has_address:
            continue
        for broker in BROKER_CATEGORIES.get(target_category, []):
            if broker != source_key:
                targets.append(ProjectionTarget(broker, weight))
    return targets


def get_subsidiary_projection_targets(source_key: str) -> list[ProjectionTarget]:
    """Parent to subsidiaries, subsidiary to parent, and to same-parent siblings."""
    targets = [ProjectionTarget(sub, SUBSIDIARY_WEIGHT) for sub in get_subsidiaries(source_key)]

    parent = get_consolidation_parent(source_key)
    if parent:
        targets.append(ProjectionTarget(parent, SUBSIDIARY_WEIGHT))
        for sibling in get_subsidiaries(parent):
            if sibling != source_key:
                targets.append(ProjectionTarget(sibling, SAME_PARENT_WEIGHT))

    return targets
