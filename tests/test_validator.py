from datetime import date

from brokers.base import Address, MatchClassification, ScanInput, classify, mask_data, ExposureType
from brokers.validator import (
    ExtractedData,
    calculate_age,
    levenshtein_distance,
    normalize_phone,
    normalize_state,
    normalize_street,
    profile_validator,
)


def make_profile(**overrides) -> ScanInput:
    fields = dict(
        full_name="Jane Doe",
        emails=["jane@example.com"],
        phones=["(312) 555-0142"],
        addresses=[Address(street="12 Oak Street", city="Chicago", state="IL")],
        date_of_birth="1985-03-14",
    )
    fields.update(overrides)
    return ScanInput(**fields)


class TestNormalizers:
    def test_phone_keeps_last_ten_digits(self):
        assert normalize_phone("+1 (312) 555-0142") == "3125550142"

    def test_state_name_becomes_abbreviation(self):
        assert normalize_state("illinois") == "IL"
        assert normalize_state("il") == "IL"

    def test_street_abbreviations(self):
        assert normalize_street("12 Oak Street, Apartment 4") == "12 oak st apt 4"

    def test_levenshtein(self):
        assert levenshtein_distance("jane doe", "jane doe") == 0
        assert levenshtein_distance("jane doe", "jan doe") == 1
        assert levenshtein_distance("", "abc") == 3

    def test_calculate_age_before_birthday(self):
        assert calculate_age("1985-03-14", today=date(2024, 3, 13)) == 38
        assert calculate_age("1985-03-14", today=date(2024, 3, 14)) == 39

    def test_calculate_age_invalid(self):
        assert calculate_age("not a date") is None


class TestClassify:
    def test_thresholds(self):
        assert classify(100) == MatchClassification.CONFIRMED
        assert classify(80) == MatchClassification.CONFIRMED
        assert classify(60) == MatchClassification.LIKELY
        assert classify(40) == MatchClassification.POSSIBLE
        assert classify(20) == MatchClassification.UNLIKELY
        assert classify(19) == MatchClassification.REJECTED


class TestTier1:
    def test_name_and_email_confirms(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Jane Doe", emails=["JANE@example.com"]),
            "SPOKEO",
        )
        assert result.score == 100
        assert result.classification == MatchClassification.CONFIRMED
        assert "exact email" in result.reasoning[0]

    def test_name_and_phone_confirms(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Jane Doe", phones=["312-555-0142"]),
            "SPOKEO",
        )
        assert result.score == 100
        assert result.factors.data_correlation == 10

    def test_name_and_full_address_confirms(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Jane Doe", street="12 Oak St", city="Chicago", state="Illinois"),
            "SPOKEO",
        )
        assert result.score == 100
        assert result.factors.location_match == 30

    def test_email_only_profile(self):
        result = profile_validator.validate(
            make_profile(full_name=None),
            ExtractedData(emails=["jane@example.com"]),
            "HAVEIBEENPWNED",
        )
        assert result.score == 100
        assert result.factors.name_match == 0

    def test_identifier_without_name_match_falls_through(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Robert Smith", emails=["jane@example.com"]),
            "SPOKEO",
        )
        assert result.score < 100


class TestTier2:
    def test_name_location_age(self):
        result = profile_validator.validate(
            make_profile(date_of_birth=None),
            ExtractedData(name="Jane Doe", city="Chicago", state="IL"),
            "SPOKEO",
        )
        assert result.factors.name_match == 35
        assert result.factors.location_match == 30
        assert result.score == 65
        assert result.classification == MatchClassification.LIKELY

    def test_people_search_needs_one_factor(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Jane Doe"),
            "SPOKEO",
        )
        assert result.score == 35

    def test_other_sources_need_two_factors(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Jane Doe"),
            "LINKEDIN",
        )
        assert result.score == 19
        assert any("capped" in line for line in result.reasoning)

    def test_alias_scores_below_exact_name(self):
        result = profile_validator.validate(
            make_profile(aliases=["Janie Smith"]),
            ExtractedData(name="Janie Smith"),
            "SPOKEO",
        )
        assert result.factors.name_match == 28

    def test_state_only_location(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Jane Doe", city="Springfield", state="IL"),
            "SPOKEO",
        )
        assert result.factors.location_match == 18

    def test_mismatch_scores_zero(self):
        result = profile_validator.validate(
            make_profile(),
            ExtractedData(name="Robert Smith", city="Austin", state="TX"),
            "SPOKEO",
        )
        assert result.score == 0
        assert result.classification == MatchClassification.REJECTED


class TestMaskData:
    def test_email(self):
        assert mask_data("jane@example.com", ExposureType.EMAIL) == "j**e@example.com"

    def test_phone(self):
        assert mask_data("(312) 555-0142", ExposureType.PHONE) == "******0142"

    def test_name(self):
        assert mask_data("Jane Doe", ExposureType.NAME) == "J*** D**"

    def test_address_keeps_last_two_parts(self):
        assert mask_data("12 Oak Street Chicago IL", ExposureType.ADDRESS) == "** O** S***** Chicago IL"

    def test_empty(self):
        assert mask_data("", ExposureType.EMAIL) == ""
