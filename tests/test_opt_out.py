import zlib

import pytest
import resend

from ghostmydata.config import settings
from ghostmydata.services.email import (
    send_bulk_removal_summary,
    send_email,
    send_removal_failure_alert,
    send_removal_status_digest,
)
from ghostmydata.services.opt_out import (
    attempt_automated_opt_out,
    generate_opt_out_email,
    send_ccpa_removal_request,
)


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(params):
        sent.append(params)
        return {"id": "email_123"}

    monkeypatch.setattr(settings, "resend_api_key", "re_test")
    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return sent


class TestOptOutEmail:
    def test_includes_identifying_details(self):
        body = generate_opt_out_email(
            broker_name="People Search Co",
            full_name="Jane Doe",
            user_email="Jane@Example.com",
            data_types=["Full Name", "Phone Number"],
            profile_url="https://peoplesearch.co/jane-doe",
            date_of_birth="1985-03-14",
            phone_numbers=["(312) 555-0142"],
            addresses=[{"street": "12 Oak Street", "city": "Chicago", "state": "IL", "zip_code": "60601"}],
        )

        assert "- Full Name: Jane Doe" in body
        assert "- Data Types to Remove: Full Name, Phone Number" in body
        assert "- Date of Birth: 1985-03-14" in body
        assert "- Phone Number(s): (312) 555-0142" in body
        assert "- 12 Oak Street, Chicago, IL 60601" in body
        assert "Profile URL found on your site: https://peoplesearch.co/jane-doe" in body
        assert "Cal. Civ. Code § 1798.105" in body

    def test_reference_id_is_stable(self):
        reference = zlib.crc32(b"jane@example.com") % 100000
        for user_email in ("Jane@Example.com", "jane@example.com"):
            body = generate_opt_out_email("People Search Co", "Jane Doe", user_email)
            assert f"Reference ID: PEOPLE_SEARCH_CO-{reference:05d}" in body

    def test_optional_sections_are_left_out(self):
        body = generate_opt_out_email("Spokeo", "Jane Doe", "jane@example.com")
        assert "Date of Birth" not in body
        assert "Addresses associated" not in body
        assert "Profile URL" not in body


class TestCcpaRequest:
    async def test_without_api_key(self):
        result = await send_ccpa_removal_request("privacy@spokeo.com", "Jane Doe", "jane@example.com", ["Full Name"])
        assert not result["success"]
        assert result["error"] == "RESEND_API_KEY missing"

    async def test_sends_with_reply_to_user(self, outbox):
        result = await send_ccpa_removal_request(
            to_email="privacy@spokeo.com",
            from_name="Jane Doe",
            from_email="jane@example.com",
            data_types=["Combined Personal Profile"],
            source_url="https://www.spokeo.com/Jane-Doe",
            broker_name="Spokeo",
        )

        assert result == {
            "success": True,
            "message": "Opt-out email sent to privacy@spokeo.com",
            "email_id": "email_123",
            "sent_to": "privacy@spokeo.com",
        }
        params = outbox[0]
        assert params["to"] == ["privacy@spokeo.com"]
        assert params["reply_to"] == "jane@example.com"
        assert params["subject"] == "Data Deletion Request - CCPA/GDPR - Jane Doe"
        assert "https://www.spokeo.com/Jane-Doe" in params["text"]

    async def test_mailto_source_is_not_a_profile_url(self, outbox):
        await send_ccpa_removal_request(
            "privacy@spokeo.com", "Jane Doe", "jane@example.com", [], source_url="mailto:privacy@spokeo.com",
        )
        assert "Profile URL" not in outbox[0]["text"]

    async def test_provider_error(self, monkeypatch):
        def failing_send(params):
            raise RuntimeError("domain not verified")

        monkeypatch.setattr(settings, "resend_api_key", "re_test")
        monkeypatch.setattr(resend.Emails, "send", failing_send)

        result = await send_ccpa_removal_request("privacy@spokeo.com", "Jane Doe", "jane@example.com", [])
        assert not result["success"]
        assert result["error"] == "domain not verified"


class TestFormAutomation:
    async def test_disabled(self):
        result = await attempt_automated_opt_out("TRUEPEOPLESEARCH", {"full_name": "Jane Doe"})
        assert result == {"success": False, "message": "Form automation is disabled"}

    async def test_scanner_without_form(self, monkeypatch):
        monkeypatch.setattr(settings, "form_automation_enabled", True)
        result = await attempt_automated_opt_out("RECORDSFINDER", {"full_name": "Jane Doe"})
        assert result["message"] == "No form automation available for RECORDSFINDER"

    async def test_captcha_form_needs_manual(self, monkeypatch):
        monkeypatch.setattr(settings, "form_automation_enabled", True)
        result = await attempt_automated_opt_out("SPOKEO", {"profile_url": "https://www.spokeo.com/Jane-Doe"})
        assert not result["success"]
        assert result["message"] == "Spokeo requires CAPTCHA - manual submission needed"


class TestNotifications:
    async def test_send_email_without_key_is_a_no_op(self, monkeypatch):
        def unexpected(params):
            raise AssertionError("should not send")

        monkeypatch.setattr(resend.Emails, "send", unexpected)
        assert await send_email("jane@example.com", "Hi", "<p>hi</p>")

    async def test_send_email_failure(self, monkeypatch):
        def failing_send(params):
            raise RuntimeError("rate limited")

        monkeypatch.setattr(settings, "resend_api_key", "re_test")
        monkeypatch.setattr(resend.Emails, "send", failing_send)
        assert not await send_email("jane@example.com", "Hi", "<p>hi</p>")

    async def test_empty_digest_is_not_sent(self, outbox):
        assert not await send_removal_status_digest("jane@example.com", "Jane", {"completed": [], "failed": []})
        assert outbox == []

    async def test_digest_sections(self, outbox):
        sent = await send_removal_status_digest("jane@example.com", "Jane", {
            "completed": [{"source_name": "Spokeo", "source": "SPOKEO", "data_type": "NAME"}],
            "failed": [{"source_name": "Radaris", "source": "RADARIS", "data_type": "NAME"}],
        })

        assert sent
        params = outbox[0]
        assert params["subject"] == f"Removal Update: 2 changes - {settings.app_name}"
        assert "Removed (1)" in params["html"]
        assert "Needs attention (1)" in params["html"]
        assert "Removal requests sent" not in params["html"]

    async def test_bulk_summary_truncates_long_lists(self, outbox):
        sources = [f"Site {i}" for i in range(25)]
        await send_bulk_removal_summary("jane@example.com", "Jane", {"sources": sources, "success_count": 25})
        assert "<li>Site 19</li>" in outbox[0]["html"]
        assert "<li>Site 20</li>" not in outbox[0]["html"]
        assert "...and 5 more" in outbox[0]["html"]

    async def test_failure_alert(self, outbox):
        await send_removal_failure_alert("jane@example.com", "Jane", "Radaris", 5, "bounced")
        assert outbox[0]["subject"] == f"Action Needed: Radaris - {settings.app_name}"
        assert "bounced" in outbox[0]["html"]
