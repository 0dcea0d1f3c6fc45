import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from ghostmydata.api.routes import scans
from ghostmydata.config import settings
from ghostmydata.db.database import get_db
from ghostmydata.main import app
from ghostmydata.models import Alert, Scan, User
from ghostmydata.models.enums import ExposureStatus, RemovalStatus, ScanStatus
from ghostmydata.services import removal

API = settings.api_prefix


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def sent():
    result = {"success": True, "message": "Opt-out email sent"}
    with patch.object(removal, "send_ccpa_removal_request", AsyncMock(return_value=result)) as ccpa, \
            patch.object(removal, "send_removal_status_digest", AsyncMock(return_value=True)):
        yield ccpa


async def test_health(client):
    assert (await client.get("/health")).json() == {"status": "healthy"}
    assert (await client.get("/")).json()["status"] == "running"


class TestCurrentUser:
    async def test_missing_header(self, client):
        response = await client.get(f"{API}/exposures/")
        assert response.status_code == 401

    async def test_malformed_header(self, client):
        response = await client.get(f"{API}/exposures/", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 401

    async def test_unknown_user(self, client):
        response = await client.get(f"{API}/exposures/", headers={"X-User-Id": str(uuid.uuid4())})
        assert response.status_code == 404

    async def test_inactive_user(self, client, db, user, headers):
        user.is_active = False
        await db.commit()
        response = await client.get(f"{API}/exposures/", headers=headers)
        assert response.status_code == 404


class TestScans:
    async def test_requires_a_profile(self, client, db):
        bare = User(email="bare@example.com")
        db.add(bare)
        await db.commit()

        response = await client.post(f"{API}/scans/", headers={"X-User-Id": str(bare.id)})
        assert response.status_code == 400

    async def test_start_scan_queues_background_run(self, client, headers, user, monkeypatch):
        queued = []

        async def fake_background_scan(scan_id, user_id):
            queued.append((scan_id, user_id))

        monkeypatch.setattr(scans, "run_background_scan", fake_background_scan)

        response = await client.post(f"{API}/scans/", headers=headers)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == ScanStatus.PENDING
        assert queued == [(uuid.UUID(body["id"]), user.id)]

        listed = (await client.get(f"{API}/scans/", headers=headers)).json()
        assert [s["id"] for s in listed] == [body["id"]]

    async def test_one_scan_at_a_time(self, client, db, user, headers):
        db.add(Scan(user_id=user.id, status=ScanStatus.IN_PROGRESS))
        await db.commit()

        response = await client.post(f"{API}/scans/", headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "A scan is already in progress"

    async def test_other_users_scan(self, client, headers):
        response = await client.get(f"{API}/scans/{uuid.uuid4()}", headers=headers)
        assert response.status_code == 404


class TestExposures:
    async def test_list_and_filter(self, client, headers, user, make_exposure):
        await make_exposure(user, "SPOKEO", "Spokeo")
        await make_exposure(user, "RADARIS", "Radaris", status=ExposureStatus.REMOVED)

        everything = (await client.get(f"{API}/exposures/", headers=headers)).json()
        active = (await client.get(f"{API}/exposures/", headers=headers, params={"status": "ACTIVE"})).json()

        assert {e["source"] for e in everything} == {"SPOKEO", "RADARIS"}
        assert [e["source"] for e in active] == ["SPOKEO"]

    async def test_whitelist_toggle(self, client, headers, user, make_exposure):
        exposure = await make_exposure(user, "SPOKEO", "Spokeo")
        url = f"{API}/exposures/{exposure.id}/whitelist"

        on = (await client.patch(url, headers=headers, json={"is_whitelisted": True})).json()
        assert on["is_whitelisted"] and on["status"] == ExposureStatus.WHITELISTED

        off = (await client.patch(url, headers=headers, json={"is_whitelisted": False})).json()
        assert not off["is_whitelisted"] and off["status"] == ExposureStatus.ACTIVE

    async def test_whitelist_unknown_exposure(self, client, headers):
        response = await client.patch(
            f"{API}/exposures/{uuid.uuid4()}/whitelist", headers=headers, json={"is_whitelisted": True},
        )
        assert response.status_code == 404


class TestRemovals:
    async def test_create_executes_immediately(self, client, headers, user, make_exposure, sent):
        exposure = await make_exposure(user, "SPOKEO", "Spokeo")

        response = await client.post(f"{API}/removals/", headers=headers, json={"exposure_id": str(exposure.id)})

        assert response.status_code == 200
        assert response.json()["message"] == "CCPA/GDPR removal request sent to Spokeo"
        sent.assert_awaited_once()

        listed = (await client.get(f"{API}/removals/", headers=headers)).json()
        assert listed[0]["status"] == RemovalStatus.SUBMITTED
        assert listed[0]["opt_out_url"] == "https://www.spokeo.com/optout"

        again = await client.post(f"{API}/removals/", headers=headers, json={"exposure_id": str(exposure.id)})
        assert again.status_code == 400

    async def test_stats(self, client, headers, user, make_exposure, make_request):
        await make_request(user, await make_exposure(user, "SPOKEO"), status=RemovalStatus.SUBMITTED)
        await make_request(user, await make_exposure(user, "RADARIS"), status=RemovalStatus.FAILED)

        stats = (await client.get(f"{API}/removals/stats", headers=headers)).json()
        assert stats["total"] == 2
        assert stats["submitted"] == 1
        assert stats["failed"] == 1

    async def test_automation_stats_are_per_user(self, client, db, headers, user, make_exposure, make_request):
        other = User(email="other@example.com")
        db.add(other)
        await db.commit()
        await make_request(user, await make_exposure(user, "SPOKEO"), status=RemovalStatus.SUBMITTED)
        await make_request(other, await make_exposure(other, "RADARIS"), status=RemovalStatus.PENDING)

        stats = (await client.get(f"{API}/removals/automation", headers=headers)).json()

        assert stats["total_removals"] == 1
        assert stats["automation_rate"] == 100

    async def test_retry_requires_failure(self, client, headers, user, make_exposure, make_request):
        request = await make_request(user, await make_exposure(user, "SPOKEO"))

        response = await client.post(f"{API}/removals/{request.id}/retry", headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot retry - status is PENDING"

    async def test_execute_rejects_submitted(self, client, headers, user, make_exposure, make_request):
        request = await make_request(user, await make_exposure(user, "SPOKEO"), status=RemovalStatus.SUBMITTED)
        response = await client.post(f"{API}/removals/{request.id}/execute", headers=headers)
        assert response.status_code == 400

    async def test_complete(self, client, headers, user, make_exposure, make_request, sent):
        request = await make_request(user, await make_exposure(user, "SPOKEO", "Spokeo"),
                                     status=RemovalStatus.SUBMITTED)

        response = await client.post(f"{API}/removals/{request.id}/complete", headers=headers)
        assert response.json() == {"success": True, "consolidated_count": 0}

        detail = (await client.get(f"{API}/removals/{request.id}", headers=headers)).json()
        assert detail["status"] == RemovalStatus.COMPLETED

    async def test_someone_elses_request(self, client, db, user, make_exposure, make_request):
        other = User(email="other@example.com")
        db.add(other)
        await db.commit()
        request = await make_request(user, await make_exposure(user, "SPOKEO"))

        response = await client.get(f"{API}/removals/{request.id}", headers={"X-User-Id": str(other.id)})
        assert response.status_code == 404

    async def test_bulk_preview(self, client, headers, user, make_exposure):
        await make_exposure(user, "RADARIS", "Radaris")
        await make_exposure(user, "CENTEDA", "Centeda")

        preview = (await client.get(f"{API}/removals/bulk", headers=headers)).json()
        assert preview["actions_needed"] == 1
        assert preview["actions_saved"] == 1

    async def test_bulk_with_nothing_pending(self, client, headers):
        response = await client.post(f"{API}/removals/bulk", headers=headers, json={"mode": "all_pending"})
        assert response.json()["message"] == "No pending exposures to process"

    async def test_bulk_rejects_unknown_mode(self, client, headers):
        response = await client.post(f"{API}/removals/bulk", headers=headers, json={"mode": "everything"})
        assert response.status_code == 422

    async def test_bulk_quota_exhausted(self, client, headers, monkeypatch):
        monkeypatch.setattr(settings, "daily_email_limit", 0)

        response = await client.post(f"{API}/removals/bulk", headers=headers, json={})

        assert response.status_code == 429
        assert response.json()["detail"]["quota_status"]["remaining"] == 0


class TestBrokers:
    async def test_list(self, client):
        brokers = (await client.get(f"{API}/brokers/", params={"limit": 500})).json()
        keys = {b["key"] for b in brokers}
        assert {"SPOKEO", "RECORDSFINDER", "CENTEDA"} <= keys

    async def test_category(self, client):
        phone = (await client.get(f"{API}/brokers/", params={"category": "PHONE_LOOKUP"})).json()
        assert {b["key"] for b in phone} == {"ANYWHO", "NUWBER", "USPHONEBOOK", "ADDRESSES_COM"}
        assert (await client.get(f"{API}/brokers/", params={"category": "NOPE"})).status_code == 404

    async def test_detail(self, client):
        detail = (await client.get(f"{API}/brokers/radaris")).json()
        assert detail["key"] == "RADARIS"
        assert detail["category"] == "PEOPLE_SEARCH"
        assert "CENTEDA" in detail["subsidiaries"]
        assert detail["scannable"]
        assert detail["instructions"].startswith("To remove your data from Radaris:")

    async def test_unknown_broker(self, client):
        assert (await client.get(f"{API}/brokers/NOPE")).status_code == 404


class TestAlerts:
    async def test_list_read_and_stats(self, client, db, headers, user):
        first = Alert(user_id=user.id, alert_type="NEW_EXPOSURE", title="New exposures")
        second = Alert(user_id=user.id, alert_type="REMOVAL_COMPLETED", title="Removed")
        db.add_all([first, second])
        await db.commit()

        assert len((await client.get(f"{API}/alerts/", headers=headers)).json()) == 2

        await client.post(f"{API}/alerts/{first.id}/read", headers=headers)
        unread = (await client.get(f"{API}/alerts/", headers=headers, params={"unread_only": True})).json()
        assert [a["alert_type"] for a in unread] == ["REMOVAL_COMPLETED"]

        stats = (await client.get(f"{API}/alerts/stats", headers=headers)).json()
        assert stats == {"total": 2, "unread": 1, "by_type": {"REMOVAL_COMPLETED": 1}}

        assert (await client.post(f"{API}/alerts/read-all", headers=headers)).json() == {
            "status": "all_read", "count": 1,
        }

    async def test_unknown_alert(self, client, headers):
        response = await client.post(f"{API}/alerts/{uuid.uuid4()}/read", headers=headers)
        assert response.status_code == 404
