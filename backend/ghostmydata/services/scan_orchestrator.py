"""Scan orchestrator - runs the scanner fleet, projects, and persists exposures."""

import asyncio
import logging
import time
import uuid
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokers import list_scanners
from brokers.base import AUTO_PROCEED_THRESHOLD, BaseScanner, ScanInput, ScanResult
from brokers.broker_scanner import BaseBrokerScanner
from brokers.cluster import ClusterBrokerScanner
from brokers.directory import get_consolidation_parent, get_subsidiaries
from ghostmydata.config import settings
from ghostmydata.models.alert import Alert
from ghostmydata.models.enums import ExposureStatus, ScanStatus
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.scan import Scan
from ghostmydata.services.projector import ProjectionStats, project_exposures

logger = logging.getLogger(__name__)

# ScrapingBee allows 5 concurrent requests
BATCH_SIZE = 4
BATCH_DELAY = 1.0

# Cluster sites are different domains, so they can go wider
CLUSTER_BATCH_SIZE = 6
CLUSTER_BATCH_DELAY = 0.5

ERROR_MESSAGE_LIMIT = 500


@dataclass
class ScannerOutcome:
    """How one scanner fared during a scan."""
    scanner_name: str
    scanner_type: str  # STATIC_BROKER, CLUSTER_BROKER, OTHER
    status: str  # SUCCESS, FAILED, TIMEOUT, BLOCKED, EMPTY, SKIPPED
    response_time_ms: int = 0
    results_found: int = 0
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    http_status: Optional[int] = None
    proxy_used: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def classify_scanner_type(scanner: BaseScanner) -> str:
    if isinstance(scanner, ClusterBrokerScanner):
        return "CLUSTER_BROKER"
    if isinstance(scanner, BaseBrokerScanner):
        return "STATIC_BROKER"
    return "OTHER"


class ScanOrchestrator:
    """Runs scanners in rate-limited batches under a deadline."""

    def __init__(
        self,
        scanners: Optional[list[BaseScanner]] = None,
        deadline_seconds: Optional[float] = None,
    ):
        self.scanners = scanners if scanners is not None else list_scanners()
        self.deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.scan_deadline_seconds
        self.outcomes: list[ScannerOutcome] = []
        self.partial_results: list[ScanResult] = []
        self.projection_stats: Optional[ProjectionStats] = None
        self.failed_scanner_count = 0
        self._started_at = 0.0

    async def _run_scanner(self, scanner: BaseScanner, input: ScanInput) -> list[ScanResult]:
        scanner_type = classify_scanner_type(scanner)
        proxy_used = scanner.proxy_used if isinstance(scanner, BaseBrokerScanner) else None
        start = time.monotonic()

        if not await scanner.is_available():
            self.outcomes.append(ScannerOutcome(
                scanner_name=scanner.name,
                scanner_type=scanner_type,
                status="SKIPPED",
                proxy_used=proxy_used,
            ))
            return []

        try:
            results = await scanner.scan(input)
        except Exception as e:
            # Broker scanners swallow their own errors; anything else lands here
            error = BaseBrokerScanner.categorize_error(str(e))
            status = {"BOT_DETECTION": "BLOCKED", "TIMEOUT": "TIMEOUT"}.get(error.type, "FAILED")
            self.outcomes.append(ScannerOutcome(
                scanner_name=scanner.name,
                scanner_type=scanner_type,
                status=status,
                response_time_ms=int((time.monotonic() - start) * 1000),
                error_type=str(error.type),
                error_message=str(e)[:ERROR_MESSAGE_LIMIT],
                proxy_used=proxy_used,
            ))
            logger.warning("Scanner %s raised: %s", scanner.name, e)
            return []

        response_time_ms = int((time.monotonic() - start) * 1000)

        last_error = getattr(scanner, "last_error", None)
        if last_error and not results:
            status = {"BOT_DETECTION": "BLOCKED", "TIMEOUT": "TIMEOUT"}.get(last_error.type, "FAILED")
            self.outcomes.append(ScannerOutcome(
                scanner_name=scanner.name,
                scanner_type=scanner_type,
                status=status,
                response_time_ms=response_time_ms,
                error_type=str(last_error.type),
                error_message=last_error.message[:ERROR_MESSAGE_LIMIT],
                http_status=last_error.http_status,
                proxy_used=proxy_used,
            ))
            return results

        self.outcomes.append(ScannerOutcome(
            scanner_name=scanner.name,
            scanner_type=scanner_type,
            status="SUCCESS" if results else "EMPTY",
            response_time_ms=response_time_ms,
            results_found=len(results),
            proxy_used=proxy_used,
        ))
        return results

    async def _run_batches(
        self,
        scanners: list[BaseScanner],
        input: ScanInput,
        all_results: list[ScanResult],
        batch_size: int,
        delay: float,
    ):
        for i in range(0, len(scanners), batch_size):
            elapsed = time.monotonic() - self._started_at
            if elapsed >= self.deadline_seconds:
                for scanner in scanners[i:]:
                    self.outcomes.append(ScannerOutcome(
                        scanner_name=scanner.name,
                        scanner_type=classify_scanner_type(scanner),
                        status="TIMEOUT",
                        error_type="DEADLINE",
                        error_message=f"Scan deadline reached ({round(elapsed)}s)",
                    ))
                logger.warning("Scan deadline reached, %d scanners not started", len(scanners) - i)
                break

            batch = scanners[i:i + batch_size]
            batch_results = await asyncio.gather(
                *(self._run_scanner(scanner, input) for scanner in batch),
                return_exceptions=True,
            )
            for result in batch_results:
                if isinstance(result, BaseException):
                    self.failed_scanner_count += 1
                else:
                    all_results.extend(result)

            self.partial_results = list(all_results)

            if i + batch_size < len(scanners):
                await asyncio.sleep(delay)

    def _confirmed_parents(self, results: list[ScanResult]) -> set[str]:
        return {
            r.source for r in results
            if r.confidence and r.confidence.score >= AUTO_PROCEED_THRESHOLD and get_subsidiaries(r.source)
        }

    async def run(self, input: ScanInput) -> list[ScanResult]:
        """
        Run every scanner, then project confirmed results onto related brokers.

        Non-cluster scanners go first so that a confirmed parent can spare
        its cluster children a fetch.
        """
        self._started_at = time.monotonic()
        self.outcomes = []
        all_results: list[ScanResult] = []

        tier1 = [s for s in self.scanners if not isinstance(s, ClusterBrokerScanner)]
        cluster = [s for s in self.scanners if isinstance(s, ClusterBrokerScanner)]

        await self._run_batches(tier1, input, all_results, BATCH_SIZE, BATCH_DELAY)

        confirmed_parents = self._confirmed_parents(all_results)
        cluster_to_run = []
        for scanner in cluster:
            if get_consolidation_parent(scanner.source) in confirmed_parents:
                self.outcomes.append(ScannerOutcome(
                    scanner_name=scanner.name,
                    scanner_type=classify_scanner_type(scanner),
                    status="SKIPPED",
                ))
            else:
                cluster_to_run.append(scanner)

        skipped = len(cluster) - len(cluster_to_run)
        if skipped:
            logger.info(
                "Parent-skip: %d cluster scanners skipped (parents confirmed: %s)",
                skipped, ", ".join(sorted(confirmed_parents)),
            )

        if cluster_to_run:
            await self._run_batches(cluster_to_run, input, all_results, CLUSTER_BATCH_SIZE, CLUSTER_BATCH_DELAY)

        counts = Counter(o.status for o in self.outcomes)
        logger.info(
            "Scanner health: %s",
            ", ".join(f"{count} {status}" for status, count in counts.items()),
        )

        projected, self.projection_stats = project_exposures(all_results, input)
        all_results.extend(projected)

        return all_results


async def run_scan(
    db: AsyncSession,
    user_id: uuid.UUID,
    input: ScanInput,
    scan: Optional[Scan] = None,
    orchestrator: Optional[ScanOrchestrator] = None,
) -> Scan:
    """
    Run a full scan for a user and persist what it finds.

    Exposures are deduplicated by (user, source, data type): a repeat
    sighting refreshes last_seen_at and leaves status alone.
    """
    if scan is None:
        scan = Scan(user_id=user_id)
        db.add(scan)

    scan.status = ScanStatus.IN_PROGRESS
    scan.started_at = datetime.utcnow()
    await db.commit()

    orchestrator = orchestrator or ScanOrchestrator()

    try:
        results = await orchestrator.run(input)
    except Exception:
        logger.exception("Scan %s failed", scan.id)
        scan.status = ScanStatus.FAILED
        scan.outcomes = [o.to_dict() for o in orchestrator.outcomes]
        scan.completed_at = datetime.utcnow()
        await db.commit()
        raise

    now = datetime.utcnow()
    seen: dict[tuple[str, str], Exposure] = {}
    new_count = 0

    for result in results:
        key = (result.source, str(result.data_type))
        if key in seen:
            continue

        existing = (await db.execute(
            select(Exposure).where(
                Exposure.user_id == user_id,
                Exposure.source == result.source,
                Exposure.data_type == str(result.data_type),
            )
        )).scalars().first()

        if existing:
            existing.last_seen_at = now
            existing.scan_id = scan.id
            seen[key] = existing
            continue

        exposure = Exposure(
            user_id=user_id,
            scan_id=scan.id,
            source=result.source,
            source_name=result.source_name,
            source_url=result.source_url,
            data_type=str(result.data_type),
            data_preview=result.data_preview,
            severity=str(result.severity),
            status=ExposureStatus.ACTIVE,
            confidence_score=result.confidence.score if result.confidence else None,
            confidence_classification=str(result.confidence.classification) if result.confidence else None,
            raw_data=result.raw_data,
            first_found_at=now,
            last_seen_at=now,
        )
        db.add(exposure)
        seen[key] = exposure
        new_count += 1

    if new_count:
        db.add(Alert(
            user_id=user_id,
            alert_type="NEW_EXPOSURE",
            title="New Exposures Found",
            message=f"We found your information on {new_count} new source{'s' if new_count != 1 else ''}.",
        ))

    stats = orchestrator.projection_stats
    scan.status = ScanStatus.COMPLETED
    scan.sources_checked = len(orchestrator.scanners) + (stats.projected_count if stats else 0)
    scan.exposures_found = len(seen)
    scan.projected_count = stats.projected_count if stats else 0
    scan.outcomes = [o.to_dict() for o in orchestrator.outcomes]
    scan.completed_at = datetime.utcnow()
    await db.commit()

    logger.info(
        "Scan %s complete: %d exposures (%d new, %d projected)",
        scan.id, scan.exposures_found, new_count, scan.projected_count,
    )
    return scan
