from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from brokers.base import (
    BaseScanner,
    ExposureType,
    ScannerError,
    ScannerErrorType,
    ScanResult,
    Severity,
)
from ghostmydata.models import Alert, PersonalProfile
from ghostmydata.models.enums import ExposureStatus, RemovalStatus
from ghostmydata.services import verification
from ghostmydata.services.verification import (
    calculate_verify_after_date,
    exposure_still_exists,
    get_removals_due_for_verification,
    get_retry_delay,
    run_verification_batch,
    verify_removal_request,
)


class FakeScanner(BaseScanner):
    def __init__(self, source, results=None, error=None, raises=None, available=True):
        self.source = source
        self.results = results or []
        self.last_error = error
        self.raises = raises
        self.available = available
        self.inputs = []

    async def is_available(self):
        return self.available

    async def scan(self, input):
        self.inputs.append(input)
        if self.raises:
            raise self.raises
        return list(self.results)


def found(source: str) -> ScanResult:
    return ScanResult(
        source=source,
        source_name=source.title(),
        data_type=ExposureType.COMBINED_PROFILE,
        severity=Severity.HIGH,
    )


def factory(scanner):
    return lambda source: scanner


@pytest.fixture
def digest():
    with patch.object(verification, "send_removal_status_digest", AsyncMock(return_value=True)) as mock:
        yield mock


@pytest.fixture
async def submitted(user, make_exposure, make_request):
    exposure = await make_exposure(user, "SPOKEO", "Spokeo", status=ExposureStatus.REMOVAL_IN_PROGRESS)
    request = await make_request(
        user, exposure,
        status=RemovalStatus.SUBMITTED,
        submitted_at=datetime.utcnow() - timedelta(days=8),
        verify_after=datetime.utcnow() - timedelta(days=1),
    )
    return exposure, request


class TestScheduling:
    def test_verify_after_uses_broker_delay(self):
        submitted_at = datetime(2026, 1, 1)
        assert calculate_verify_after_date("TRUEPEOPLESEARCH", submitted_at) == datetime(2026, 1, 4)
        assert calculate_verify_after_date("RADARIS", submitted_at) == datetime(2026, 1, 22)
        assert calculate_verify_after_date("SOMEBROKER", submitted_at) == datetime(2026, 1, 31)

    @pytest.mark.parametrize("source, attempt, expected", [
        ("SPOKEO", 0, 7),
        ("SPOKEO", 1, 14),
        ("RADARIS", 0, 21),
        ("TRUEPEOPLESEARCH", 5, 21),
        ("SOMEBROKER", 0, 21),
    ])
    def test_retry_delay(self, source, attempt, expected):
        assert get_retry_delay(source, attempt) == expected


async def test_exposure_still_exists(submitted):
    exposure, _ = submitted
    assert exposure_still_exists(exposure, [found("SPOKEO")])
    assert not exposure_still_exists(exposure, [found("RADARIS")])


class TestVerifyRemoval:
    async def test_gone_from_rescan_completes(self, db, submitted):
        exposure, request = submitted
        scanner = FakeScanner("SPOKEO")

        result = await verify_removal_request(db, request.id, factory(scanner))

        assert result.status == "COMPLETED"
        assert result.update_info["source_name"] == "Spokeo"
        assert scanner.inputs[0].full_name == "Jane Doe"
        await db.refresh(request)
        await db.refresh(exposure)
        assert request.status == RemovalStatus.COMPLETED
        assert request.verification_count == 1
        assert exposure.status == ExposureStatus.REMOVED
        alert = (await db.execute(select(Alert))).scalar_one()
        assert alert.alert_type == "REMOVAL_COMPLETED"
        assert alert.message == "Your data has been verified as removed from Spokeo."

    async def test_still_present_reschedules(self, db, submitted):
        _, request = submitted

        result = await verify_removal_request(db, request.id, factory(FakeScanner("SPOKEO", [found("SPOKEO")])))

        assert result.status == "PENDING"
        await db.refresh(request)
        assert request.status == RemovalStatus.SUBMITTED
        assert request.verification_count == 1
        assert request.notes == "Data still present. Attempt 1/3. Next check in 14 days."
        assert request.verify_after - request.last_verified_at == timedelta(days=14)

    async def test_still_present_on_last_attempt_fails(self, db, submitted):
        exposure, request = submitted
        request.verification_count = 2
        await db.commit()

        result = await verify_removal_request(db, request.id, factory(FakeScanner("SPOKEO", [found("SPOKEO")])))

        assert result.status == "FAILED"
        await db.refresh(request)
        await db.refresh(exposure)
        assert request.status == RemovalStatus.FAILED
        assert request.verification_count == 3
        assert request.last_error == "Data still found after multiple verification attempts"
        assert exposure.status == ExposureStatus.ACTIVE

    async def test_blocked_fetch_is_not_a_removal(self, db, submitted):
        _, request = submitted
        blocked = ScannerError(ScannerErrorType.BOT_DETECTION, "Access denied", 403)

        result = await verify_removal_request(db, request.id, factory(FakeScanner("SPOKEO", error=blocked)))

        assert result.status == "PENDING"
        assert result.message.startswith("Verification error")
        await db.refresh(request)
        assert request.status == RemovalStatus.SUBMITTED
        assert request.last_error == "BOT_DETECTION: Access denied"
        assert request.verify_after - request.last_verified_at == timedelta(days=7)

    async def test_scanner_exception_reschedules(self, db, submitted):
        _, request = submitted

        result = await verify_removal_request(
            db, request.id, factory(FakeScanner("SPOKEO", raises=RuntimeError("Request timeout"))),
        )

        assert result.status == "PENDING"
        await db.refresh(request)
        assert request.last_error == "Request timeout"

    async def test_unavailable_scanner(self, db, submitted):
        _, request = submitted
        result = await verify_removal_request(db, request.id, factory(FakeScanner("SPOKEO", available=False)))
        assert result.message == "Scanner not available"

    async def test_profile_without_identifiers(self, db, user, submitted):
        _, request = submitted
        profile = (await db.execute(select(PersonalProfile))).scalar_one()
        profile.full_name = None
        profile.emails = []
        profile.phones = []
        await db.commit()
        scanner = FakeScanner("SPOKEO")

        result = await verify_removal_request(db, request.id, factory(scanner))

        assert result.message == "Profile data unavailable for verification"
        assert scanner.inputs == []
        await db.refresh(request)
        assert request.notes == "Verification skipped - profile has no name, email or phone"

    async def test_unscannable_source_reschedules(self, db, submitted):
        exposure, request = submitted

        result = await verify_removal_request(db, request.id, factory(None))

        assert result.status == "PENDING"
        assert result.message == "Cannot verify automatically (SPOKEO), scheduled retry in 7 days"
        await db.refresh(request)
        assert request.verification_count == 1

    async def test_unscannable_source_completes_on_last_attempt(self, db, submitted):
        exposure, request = submitted
        request.verification_count = 2
        await db.commit()

        result = await verify_removal_request(db, request.id, factory(None))

        assert result.status == "COMPLETED"
        assert result.update_info["source"] == "SPOKEO"
        await db.refresh(request)
        await db.refresh(exposure)
        assert request.status == RemovalStatus.COMPLETED
        assert request.verification_count == 3
        assert exposure.status == ExposureStatus.REMOVED

    async def test_repeated_errors_hand_off_to_manual(self, db, submitted):
        exposure, request = submitted
        request.verification_count = 2
        await db.commit()

        result = await verify_removal_request(
            db, request.id, factory(FakeScanner("SPOKEO", raises=RuntimeError("Request timeout"))),
        )

        assert result.status == "FAILED"
        await db.refresh(request)
        await db.refresh(exposure)
        assert request.status == RemovalStatus.REQUIRES_MANUAL
        assert request.verification_count == 3
        assert request.notes == "Automatic verification failed 3 times - check manually"
        assert exposure.status == ExposureStatus.REMOVAL_PENDING


class TestBatch:
    async def test_due_requests(self, db, user, make_exposure, make_request, submitted):
        _, due = submitted
        later = await make_exposure(user, "RADARIS")
        await make_request(user, later, status=RemovalStatus.SUBMITTED,
                           verify_after=datetime.utcnow() + timedelta(days=3))
        done = await make_exposure(user, "WHITEPAGES")
        await make_request(user, done, status=RemovalStatus.COMPLETED,
                           verify_after=datetime.utcnow() - timedelta(days=3))

        assert await get_removals_due_for_verification(db) == [due.id]

    async def run_rounds(self, db, request, scanner_factory, rounds):
        statuses = []
        for _ in range(rounds):
            request.verify_after = datetime.utcnow() - timedelta(minutes=1)
            await db.commit()
            await run_verification_batch(db, scanner_factory=scanner_factory, delay=0)
            await db.refresh(request)
            statuses.append(request.status)
        return statuses

    async def test_unscannable_source_completes_through_batches(self, db, submitted, digest):
        exposure, request = submitted

        statuses = await self.run_rounds(db, request, lambda source: None, rounds=3)

        assert statuses == [RemovalStatus.SUBMITTED, RemovalStatus.SUBMITTED, RemovalStatus.COMPLETED]
        assert request.verification_count == 3
        await db.refresh(exposure)
        assert exposure.status == ExposureStatus.REMOVED
        assert digest.await_args.args[2]["completed"][0]["source"] == "SPOKEO"
        assert await get_removals_due_for_verification(db) == []

    async def test_erroring_scanner_stops_after_max_attempts(self, db, submitted, digest):
        _, request = submitted
        broken = FakeScanner("SPOKEO", raises=RuntimeError("Request timeout"))

        statuses = await self.run_rounds(db, request, factory(broken), rounds=4)

        assert statuses[:3] == [RemovalStatus.SUBMITTED, RemovalStatus.SUBMITTED, RemovalStatus.REQUIRES_MANUAL]
        assert statuses[3] == RemovalStatus.REQUIRES_MANUAL
        assert len(broken.inputs) == 3

    async def test_batch_sends_one_digest_per_user(self, db, user, make_exposure, make_request, submitted, digest):
        radaris = await make_exposure(user, "RADARIS", "Radaris")
        await make_request(user, radaris, status=RemovalStatus.SUBMITTED,
                           verify_after=datetime.utcnow() - timedelta(days=2), verification_count=2)

        scanners = {"SPOKEO": FakeScanner("SPOKEO"), "RADARIS": FakeScanner("RADARIS", [found("RADARIS")])}
        stats = await run_verification_batch(db, scanner_factory=scanners.get, delay=0)

        assert stats["processed"] == 2
        assert stats["completed"] == 1
        assert stats["failed"] == 1
        assert stats["emails_sent"] == 1
        email, name, updates = digest.await_args.args
        assert email == "jane@example.com"
        assert [u["source"] for u in updates["completed"]] == ["SPOKEO"]
        assert [u["source"] for u in updates["failed"]] == ["RADARIS"]

    async def test_deadline_stops_the_batch(self, db, submitted, digest):
        stats = await run_verification_batch(db, deadline=1.0, scanner_factory=lambda s: None, delay=0)
        assert stats["time_boxed"]
        assert stats["processed"] == 0
        digest.assert_not_awaited()
