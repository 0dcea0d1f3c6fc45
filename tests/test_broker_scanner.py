from unittest.mock import AsyncMock, patch

import pytest

from brokers.base import Address, ScanInput, ScannerErrorType, Severity
from brokers.beenverified import BeenVerifiedScanner
from brokers.broker_scanner import BaseBrokerScanner, BrokerSearchResult
from brokers.fastpeoplesearch import FastPeopleSearchScanner
from brokers.radaris import RadarisScanner
from brokers.spokeo import SpokeoScanner
from brokers.truepeoplesearch import TruePeopleSearchScanner
from brokers.whitepages import WhitePagesScanner
from ghostmydata.services.scraping import ScrapeResult

RESULT_PAGE = """
<html><body>
<div class="card-summary">
  <a href="/find/person/abc123">Jane Doe</a>
  <span class="content-value location">Chicago, IL</span>
  <div>Age 39</div>
  <div>current address on file</div>
  <div>(312) 555-0142</div>
  <div>2 possible relatives</div>
</div>
</body></html>
"""


@pytest.fixture
def jane():
    return ScanInput(
        full_name="Jane Doe",
        phones=["312-555-0142"],
        addresses=[Address(city="Chicago", state="IL")],
    )


@pytest.fixture
def scanner():
    scanner = TruePeopleSearchScanner()
    scanner.config.rate_limit.delay_ms = 0
    return scanner


def ok(html: str) -> ScrapeResult:
    return ScrapeResult(success=True, html=html, status_code=200)


def failed(status: int, error: str = "failed") -> ScrapeResult:
    return ScrapeResult(success=False, html="", status_code=status, error=error)


class TestSearchUrls:
    def test_spokeo(self, jane):
        assert SpokeoScanner().build_search_url(jane) == "https://www.spokeo.com/Jane-Doe/Illinois"

    def test_spokeo_state_names(self):
        assert SpokeoScanner.full_state_name("NY") == "New-York"
        assert SpokeoScanner.full_state_name("new york") == "New-York"

    def test_whitepages(self, jane):
        assert WhitePagesScanner().build_search_url(jane) == "https://www.whitepages.com/name/jane-doe/chicago-IL"

    def test_beenverified(self, jane):
        assert BeenVerifiedScanner().build_search_url(jane) == "https://www.beenverified.com/people/jane-doe/il"

    def test_radaris(self, jane):
        assert RadarisScanner().build_search_url(jane) == "https://radaris.com/p/Jane/Doe/"

    def test_fastpeoplesearch(self, jane):
        url = FastPeopleSearchScanner().build_search_url(jane)
        assert url == "https://www.fastpeoplesearch.com/name/jane-doe_chicago-il"

    def test_truepeoplesearch(self, jane):
        url = TruePeopleSearchScanner().build_search_url(jane)
        assert url == "https://www.truepeoplesearch.com/results?name=Jane%20Doe&citystatezip=Chicago%2C%20IL"

    def test_truepeoplesearch_partial_location(self):
        scanner = TruePeopleSearchScanner()
        state_only = scanner.build_search_url(ScanInput(full_name="Jane Doe", addresses=[Address(state="IL")]))
        no_location = scanner.build_search_url(ScanInput(full_name="Jane Doe", addresses=[Address(street="12 Oak St")]))
        assert state_only == "https://www.truepeoplesearch.com/results?name=Jane%20Doe&citystatezip=IL"
        assert no_location == "https://www.truepeoplesearch.com/results?name=Jane%20Doe"

    def test_name_required(self):
        for cls in (SpokeoScanner, WhitePagesScanner, BeenVerifiedScanner, RadarisScanner, FastPeopleSearchScanner):
            assert cls().build_search_url(ScanInput(full_name="Jane")) is None
        assert TruePeopleSearchScanner().build_search_url(ScanInput()) is None


class TestScan:
    async def test_match_becomes_exposure(self, scanner, jane):
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=ok(RESULT_PAGE))):
            results = await scanner.scan(jane)

        assert len(results) == 1
        result = results[0]
        assert result.source == "TRUEPEOPLESEARCH"
        assert result.source_url == "https://www.truepeoplesearch.com/find/person/abc123"
        assert result.data_preview == "J*** D** | Chicago, IL | Age: 39"
        assert result.severity == Severity.CRITICAL
        assert result.confidence.factors.location_match == 30
        assert result.raw_data["optOutUrl"] == "https://www.truepeoplesearch.com/removal"
        assert {"type": "phone", "count": 1} in result.raw_data["exposedFields"]
        assert scanner.last_error is None

    async def test_no_results_page(self, scanner, jane):
        page = "<html>No results found</html>"
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=ok(page))):
            assert await scanner.scan(jane) == []
        assert scanner.last_error is None

    async def test_low_confidence_is_rejected(self, scanner, jane):
        page = '<div class="card-summary"><span class="location">Austin, TX</span></div>'
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=ok(page))):
            assert await scanner.scan(jane) == []

    async def test_unsearchable_input_skips_fetch(self, scanner):
        fetch = AsyncMock()
        with patch("brokers.broker_scanner.scrape_url", fetch):
            assert await scanner.scan(ScanInput(emails=["jane@example.com"])) == []
        fetch.assert_not_called()

    async def test_403_retries_with_stealth_proxy(self, scanner, jane):
        fetch = AsyncMock(side_effect=[failed(403), ok(RESULT_PAGE)])
        with patch("brokers.broker_scanner.scrape_url", fetch):
            results = await scanner.scan(jane)

        assert len(results) == 1
        assert fetch.await_count == 2
        first_options = fetch.await_args_list[0].args[1]
        retry_options = fetch.await_args_list[1].args[1]
        assert first_options.premium_proxy and not first_options.stealth_proxy
        assert retry_options.stealth_proxy

    async def test_403_twice_is_bot_detection(self, scanner, jane):
        fetch = AsyncMock(side_effect=[failed(403), failed(403, "still blocked")])
        with patch("brokers.broker_scanner.scrape_url", fetch):
            assert await scanner.scan(jane) == []

        assert scanner.last_error.type == ScannerErrorType.BOT_DETECTION
        assert scanner.last_error.http_status == 403
        assert scanner.last_error.message == "still blocked"

    async def test_rate_limited(self, scanner, jane):
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=failed(429))):
            await scanner.scan(jane)
        assert scanner.last_error.type == ScannerErrorType.BOT_DETECTION
        assert scanner.last_error.http_status == 429

    async def test_server_error_is_network(self, scanner, jane):
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=failed(502))):
            await scanner.scan(jane)
        assert scanner.last_error.type == ScannerErrorType.NETWORK

    async def test_raised_error_is_categorized(self, scanner, jane):
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(side_effect=RuntimeError("Request timeout"))):
            assert await scanner.scan(jane) == []
        assert scanner.last_error.type == ScannerErrorType.TIMEOUT

    async def test_last_error_resets_between_scans(self, scanner, jane):
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=failed(502))):
            await scanner.scan(jane)
        with patch("brokers.broker_scanner.scrape_url", AsyncMock(return_value=ok(RESULT_PAGE))):
            await scanner.scan(jane)
        assert scanner.last_error is None


class TestHelpers:
    @pytest.mark.parametrize("message, expected", [
        ("HTTP 403 Forbidden", ScannerErrorType.BOT_DETECTION),
        ("Access Denied", ScannerErrorType.BOT_DETECTION),
        ("connect ETIMEDOUT", ScannerErrorType.TIMEOUT),
        ("Connection refused", ScannerErrorType.NETWORK),
        ("something odd", ScannerErrorType.UNKNOWN),
    ])
    def test_categorize_error(self, message, expected):
        assert BaseBrokerScanner.categorize_error(message).type == expected

    def test_profile_severity(self):
        severity = TruePeopleSearchScanner().calculate_profile_severity
        assert severity(BrokerSearchResult()) == Severity.LOW
        assert severity(BrokerSearchResult(phones=["x"])) == Severity.MEDIUM
        assert severity(BrokerSearchResult(addresses=["x"], phones=["x"])) == Severity.HIGH
        assert severity(BrokerSearchResult(addresses=["x"], phones=["x"], emails=["x"])) == Severity.CRITICAL

    def test_relative_count_is_capped(self, jane):
        page = '<div class="card-summary">Jane Doe</div><div>987654321 possible relatives</div>'
        result = TruePeopleSearchScanner().parse_search_results(page, jane)
        assert len(result.relatives) == 10

    def test_format_name_for_url(self):
        assert BaseBrokerScanner.format_name_for_url("Jane  O'Doe") == "jane-odoe"

    def test_format_state_for_url(self):
        assert BaseBrokerScanner.format_state_for_url("Illinois") == "il"
        assert BaseBrokerScanner.format_state_for_url("IL") == "il"

    def test_extract_matches_dedupes(self):
        html = "<b>a1</b><b>b2</b><b>a1</b>"
        assert BaseBrokerScanner.extract_matches(html, r"<b>([^<]+)</b>") == ["a1", "b2"]

    def test_extract_between(self):
        assert BaseBrokerScanner.extract_between("<h1> Jane </h1>", "<h1>", "</h1>") == "Jane"
        assert BaseBrokerScanner.extract_between("<h1>Jane", "<h1>", "</h1>") is None

    async def test_spokeo_opt_out_needs_manual_captcha(self):
        result = await SpokeoScanner().submit_opt_out("https://www.spokeo.com/Jane-Doe/p1", {})
        assert not result["success"]
        assert "CAPTCHA" in result["error"]
