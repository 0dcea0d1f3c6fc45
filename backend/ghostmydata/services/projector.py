"""Exposure projection - extends confirmed finds onto related, unscanned brokers.

Pure in-memory work over the directory and network graph; no HTTP.
"""

import logging
from dataclasses import dataclass

from brokers.base import (
    ConfidenceFactors,
    ConfidenceResult,
    ExposureType,
    MatchClassification,
    ScanInput,
    ScanResult,
    Severity,
)
from brokers.directory import BROKER_CATEGORIES, DATA_BROKER_DIRECTORY, get_broker_category
from brokers.network import (
    PROJECTION_MIN_SCORE,
    get_category_projection_targets,
    get_subsidiary_projection_targets,
    is_excluded_from_projection,
)

logger = logging.getLogger(__name__)

# Source results below this don't project
MIN_SOURCE_SCORE = 50

CATEGORY_EXPOSED_FIELDS = {
    "PEOPLE_SEARCH": ["name", "phone", "address", "age", "relatives"],
    "PHONE_LOOKUP": ["name", "phone"],
    "BACKGROUND_CHECK": ["name", "address", "phone", "email"],
    "PROPERTY_RECORDS": ["name", "address"],
    "COURT_RECORDS": ["name", "address"],
    "PROFESSIONAL_B2B": ["name", "email", "phone"],
    "MARKETING": ["name", "email", "address"],
}

HIGH_SEVERITY_BROKERS = {
    "SPOKEO", "WHITEPAGES", "BEENVERIFIED", "INTELIUS", "RADARIS",
    "TRUTHFINDER", "INSTANTCHECKMATE", "MYLIFE", "ZOOMINFO",
    "LEXISNEXIS", "ACXIOM", "EXPERIAN_MARKETING",
}


@dataclass
class ProjectionStats:
    confirmed_sources: int = 0
    projected_count: int = 0
    skipped_excluded: int = 0
    skipped_duplicate: int = 0
    skipped_low_score: int = 0


def severity_for_broker(broker_key: str) -> Severity:
    if broker_key in HIGH_SEVERITY_BROKERS:
        return Severity.HIGH
    if broker_key in BROKER_CATEGORIES["PROFESSIONAL_B2B"] or broker_key in BROKER_CATEGORIES["MARKETING"]:
        return Severity.MEDIUM
    return Severity.LOW


def project_exposures(results: list[ScanResult], profile: ScanInput) -> tuple[list[ScanResult], ProjectionStats]:
    """
    Project real scan results onto related brokers.

    Args:
        results: Results from real scanners
        profile: The scanned profile

    Returns:
        (projected results classified PROJECTED, stats)
    """
    stats = ProjectionStats()

    sources = [r for r in results if (r.confidence.score if r.confidence else 0) >= MIN_SOURCE_SCORE]
    stats.confirmed_sources = len(sources)
    if not sources:
        return [], stats

    # Brokers that real scanners already reported are never projected
    scanned = {r.source for r in results}
    user_has_address = bool(profile.addresses)
    projected: dict[str, ScanResult] = {}

    for source_result in sources:
        source_key = source_result.source
        source_score = source_result.score

        weights: dict[str, float] = {}
        targets = get_category_projection_targets(source_key, user_has_address)
        targets += get_subsidiary_projection_targets(source_key)
        for target in targets:
            weights[target.broker_key] = max(weights.get(target.broker_key, 0), target.weight)

        for target_key, weight in weights.items():
            if target_key in scanned:
                stats.skipped_duplicate += 1
                continue

            if is_excluded_from_projection(target_key):
                stats.skipped_excluded += 1
                continue

            info = DATA_BROKER_DIRECTORY[target_key]
            score = round(source_score * weight)
            if score < PROJECTION_MIN_SCORE:
                stats.skipped_low_score += 1
                continue

            existing = projected.get(target_key)
            if existing and existing.score >= score:
                stats.skipped_duplicate += 1
                continue

            source_url = info.opt_out_url or (f"mailto:{info.privacy_email}" if info.privacy_email else None)
            if not source_url:
                stats.skipped_excluded += 1
                continue

            confidence = ConfidenceResult(
                score=score,
                classification=MatchClassification.PROJECTED,
                factors=ConfidenceFactors(projection_source=source_key, projection_weight=weight),
                reasoning=[
                    f"PROJECTED: Based on confirmed exposure on {source_result.source_name} (score {source_score})",
                    f"Relationship weight: {weight} ({source_key} -> {target_key})",
                    f"Projected score: {source_score} x {weight} = {score}",
                ],
            )

            fields = CATEGORY_EXPOSED_FIELDS.get(get_broker_category(target_key) or "", ["name"])

            projected[target_key] = ScanResult(
                source=target_key,
                source_name=info.name,
                source_url=source_url,
                data_type=ExposureType.COMBINED_PROFILE,
                data_preview=(
                    f"Your information is likely available on {info.name} "
                    f"based on confirmed exposure on {source_result.source_name}"
                ),
                severity=severity_for_broker(target_key),
                raw_data={"exposedFields": [{"type": f} for f in fields], "projectedFrom": source_key},
                confidence=confidence,
            )

    stats.projected_count = len(projected)
    logger.info(
        "Projected %d exposures from %d confirmed sources (%d excluded, %d dedup, %d low-score)",
        stats.projected_count, stats.confirmed_sources,
        stats.skipped_excluded, stats.skipped_duplicate, stats.skipped_low_score,
    )
    return list(projected.values()), stats
