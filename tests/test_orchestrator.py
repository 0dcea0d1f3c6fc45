from unittest.mock import patch

import pytest
from sqlalchemy import select

from brokers.base import (
    BaseScanner,
    ConfidenceFactors,
    ConfidenceResult,
    ExposureType,
    ScanInput,
    ScannerError,
    ScannerErrorType,
    ScanResult,
    Severity,
    classify,
)
from brokers.clusters import get_cluster_scanner
from ghostmydata.models import Alert, Exposure, Scan
from ghostmydata.models.enums import ExposureStatus, ScanStatus
from ghostmydata.services import scan_orchestrator
from ghostmydata.services.scan_orchestrator import ScanOrchestrator, run_scan

JANE = ScanInput(full_name="Jane Doe")


def scan_result(source: str, score: int = 90) -> ScanResult:
    return ScanResult(
        source=source,
        source_name=source.title(),
        data_type=ExposureType.COMBINED_PROFILE,
        severity=Severity.HIGH,
        source_url=f"https://{source.lower()}.com/jane",
        confidence=ConfidenceResult(score=score, classification=classify(score), factors=ConfidenceFactors()),
    )


class FakeScanner(BaseScanner):
    def __init__(self, source, results=None, error=None, raises=None, available=True):
        self.name = source.title()
        self.source = source
        self.results = results or []
        self.last_error = error
        self.raises = raises
        self.available = available
        self.calls = 0

    async def is_available(self):
        return self.available

    async def scan(self, input):
        self.calls += 1
        if self.raises:
            raise self.raises
        return list(self.results)


@pytest.fixture(autouse=True)
def no_batch_delay(monkeypatch):
    monkeypatch.setattr(scan_orchestrator, "BATCH_DELAY", 0)
    monkeypatch.setattr(scan_orchestrator, "CLUSTER_BATCH_DELAY", 0)


def outcome(orchestrator, name):
    return next(o for o in orchestrator.outcomes if o.scanner_name == name)


class TestOrchestrator:
    async def test_outcome_statuses(self):
        scanners = [
            FakeScanner("SPOKEO", results=[scan_result("SPOKEO")]),
            FakeScanner("WHITEPAGES"),
            FakeScanner("RADARIS", error=ScannerError(ScannerErrorType.BOT_DETECTION, "403", 403)),
            FakeScanner("BEENVERIFIED", raises=RuntimeError("Request timeout")),
            FakeScanner("TRUEPEOPLESEARCH", available=False),
        ]
        orchestrator = ScanOrchestrator(scanners)
        await orchestrator.run(JANE)

        assert outcome(orchestrator, "Spokeo").status == "SUCCESS"
        assert outcome(orchestrator, "Spokeo").results_found == 1
        assert outcome(orchestrator, "Whitepages").status == "EMPTY"
        radaris = outcome(orchestrator, "Radaris")
        assert radaris.status == "BLOCKED"
        assert radaris.http_status == 403
        assert outcome(orchestrator, "Beenverified").status == "TIMEOUT"
        assert outcome(orchestrator, "Truepeoplesearch").status == "SKIPPED"
        assert scanners[4].calls == 0

    async def test_results_include_projections(self):
        orchestrator = ScanOrchestrator([FakeScanner("SPOKEO", results=[scan_result("SPOKEO")])])
        results = await orchestrator.run(JANE)

        assert results[0].source == "SPOKEO"
        assert len(results) == 1 + orchestrator.projection_stats.projected_count
        assert orchestrator.projection_stats.projected_count > 0

    async def test_confirmed_parent_skips_cluster_children(self):
        child = get_cluster_scanner("CENTEDA")
        other = get_cluster_scanner("RECORDSFINDER")
        parent = FakeScanner("RADARIS", results=[scan_result("RADARIS", 85)])

        calls = []

        async def fake_scan(input):
            calls.append("RECORDSFINDER")
            return []

        other.scan = fake_scan

        orchestrator = ScanOrchestrator([child, other, parent])
        await orchestrator.run(JANE)

        assert outcome(orchestrator, "Centeda").status == "SKIPPED"
        assert calls == ["RECORDSFINDER"]

    async def test_unconfirmed_parent_does_not_skip(self):
        child = get_cluster_scanner("CENTEDA")
        ran = []

        async def fake_scan(input):
            ran.append(True)
            return []

        child.scan = fake_scan
        parent = FakeScanner("RADARIS", results=[scan_result("RADARIS", 70)])

        await ScanOrchestrator([child, parent]).run(JANE)
        assert ran == [True]

    async def test_deadline_marks_remaining_scanners(self):
        scanners = [FakeScanner(f"S{i}") for i in range(10)]
        orchestrator = ScanOrchestrator(scanners, deadline_seconds=0)
        await orchestrator.run(JANE)

        assert all(s.calls == 0 for s in scanners)
        assert all(o.status == "TIMEOUT" and o.error_type == "DEADLINE" for o in orchestrator.outcomes)
        assert len(orchestrator.outcomes) == 10


class TestRunScan:
    async def test_persists_exposures_and_alert(self, db, user):
        orchestrator = ScanOrchestrator([FakeScanner("SPOKEO", results=[scan_result("SPOKEO")])])
        scan = await run_scan(db, user.id, JANE, orchestrator=orchestrator)

        assert scan.status == ScanStatus.COMPLETED
        projected = orchestrator.projection_stats.projected_count
        assert scan.projected_count == projected
        assert scan.sources_checked == 1 + projected
        assert scan.exposures_found == 1 + projected
        assert scan.outcomes[0]["status"] == "SUCCESS"

        exposures = (await db.execute(select(Exposure).where(Exposure.user_id == user.id))).scalars().all()
        assert len(exposures) == 1 + projected
        spokeo = next(e for e in exposures if e.source == "SPOKEO")
        assert spokeo.status == ExposureStatus.ACTIVE
        assert spokeo.confidence_score == 90
        assert spokeo.confidence_classification == "CONFIRMED"

        alerts = (await db.execute(select(Alert).where(Alert.user_id == user.id))).scalars().all()
        assert [a.alert_type for a in alerts] == ["NEW_EXPOSURE"]

    async def test_rescan_refreshes_existing_exposure(self, db, user, make_exposure):
        existing = await make_exposure(user, "SPOKEO", status=ExposureStatus.REMOVAL_IN_PROGRESS)
        first_seen = existing.last_seen_at

        orchestrator = ScanOrchestrator([FakeScanner("SPOKEO", results=[scan_result("SPOKEO", 40)])])
        scan = await run_scan(db, user.id, JANE, orchestrator=orchestrator)

        exposures = (await db.execute(select(Exposure).where(Exposure.source == "SPOKEO"))).scalars().all()
        assert len(exposures) == 1
        assert exposures[0].status == ExposureStatus.REMOVAL_IN_PROGRESS
        assert exposures[0].scan_id == scan.id
        assert exposures[0].last_seen_at >= first_seen

        alerts = (await db.execute(select(Alert))).scalars().all()
        assert alerts == []

    async def test_failure_marks_scan_failed(self, db, user):
        orchestrator = ScanOrchestrator([])
        with patch.object(orchestrator, "run", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                await run_scan(db, user.id, JANE, orchestrator=orchestrator)

        scan = (await db.execute(select(Scan))).scalar_one()
        assert scan.status == ScanStatus.FAILED
        assert scan.completed_at is not None
