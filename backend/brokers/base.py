"""Base types shared by every scanner."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Optional


class Severity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ExposureType(StrEnum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    NAME = "NAME"
    ADDRESS = "ADDRESS"
    DOB = "DOB"
    SSN = "SSN"
    PHOTO = "PHOTO"
    USERNAME = "USERNAME"
    FINANCIAL = "FINANCIAL"
    COMBINED_PROFILE = "COMBINED_PROFILE"


class MatchClassification(StrEnum):
    CONFIRMED = "CONFIRMED"
    LIKELY = "LIKELY"
    POSSIBLE = "POSSIBLE"
    UNLIKELY = "UNLIKELY"
    REJECTED = "REJECTED"
    PROJECTED = "PROJECTED"


class ScannerErrorType(StrEnum):
    BOT_DETECTION = "BOT_DETECTION"
    NETWORK = "NETWORK"
    PARSE = "PARSE"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


# Confidence thresholds
AUTO_PROCEED_THRESHOLD = 80
MANUAL_REVIEW_THRESHOLD = 40
REJECT_THRESHOLD = 20

SEVERITY_ORDER = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


@dataclass
class Address:
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "US"


@dataclass
class ScanInput:
    """Everything a scanner may search by."""
    full_name: Optional[str] = None
    aliases: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    addresses: list[Address] = field(default_factory=list)
    date_of_birth: Optional[str] = None
    usernames: list[str] = field(default_factory=list)


@dataclass
class ConfidenceFactors:
    name_match: int = 0
    location_match: int = 0
    age_match: int = 0
    data_correlation: int = 0
    source_reliability: int = 0
    projection_source: Optional[str] = None
    projection_weight: Optional[float] = None


@dataclass
class ConfidenceResult:
    score: int
    classification: MatchClassification
    factors: ConfidenceFactors
    reasoning: list[str] = field(default_factory=list)
    validated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ScanResult:
    """A single exposure produced by a scanner."""
    source: str
    source_name: str
    data_type: ExposureType
    severity: Severity
    source_url: Optional[str] = None
    data_preview: Optional[str] = None
    raw_data: dict = field(default_factory=dict)
    confidence: Optional[ConfidenceResult] = None

    @property
    def score(self) -> int:
        return self.confidence.score if self.confidence else 100


@dataclass
class ScannerError:
    """Categorised failure of the last scan."""
    type: ScannerErrorType
    message: str
    http_status: Optional[int] = None


def classify(score: int) -> MatchClassification:
    """Map a 0-100 confidence score to its classification."""
    if score >= AUTO_PROCEED_THRESHOLD:
        return MatchClassification.CONFIRMED
    if score >= 60:
        return MatchClassification.LIKELY
    if score >= MANUAL_REVIEW_THRESHOLD:
        return MatchClassification.POSSIBLE
    if score >= REJECT_THRESHOLD:
        return MatchClassification.UNLIKELY
    return MatchClassification.REJECTED


def mask_data(value: str, data_type: ExposureType | str) -> str:
    """Mask personal data for previews shown to the user."""
    if not value:
        return ""

    if data_type == ExposureType.EMAIL:
        local, _, domain = value.partition("@")
        if not domain:
            return "****"
        if len(local) <= 2:
            masked_local = "*" * len(local)
        else:
            masked_local = local[0] + "*" * (len(local) - 2) + local[-1]
        return f"{masked_local}@{domain}"

    if data_type == ExposureType.PHONE:
        digits = re.sub(r"\D", "", value)
        return "*" * max(len(digits) - 4, 0) + digits[-4:]

    if data_type == ExposureType.SSN:
        return "***-**-" + value[-4:]

    if data_type == ExposureType.NAME:
        return " ".join(
            "*" if len(part) <= 1 else part[0] + "*" * (len(part) - 1)
            for part in value.split(" ")
        )

    if data_type == ExposureType.ADDRESS:
        parts = value.split(" ")
        if len(parts) <= 2:
            return "*" * len(value)
        masked = []
        for index, part in enumerate(parts):
            if index == 0:
                masked.append("*" * len(part))
            elif index >= len(parts) - 2:
                masked.append(part)
            else:
                masked.append(part[:1] + "*" * max(0, len(part) - 1))
        return " ".join(masked)

    if len(value) <= 4:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


class BaseScanner(ABC):
    """Base class for every scanner (broker sites, breach sources, social)."""

    name: str = "Base"
    source: str = "UNKNOWN"

    async def is_available(self) -> bool:
        """Whether the scanner can run with the current configuration."""
        return True

    def calculate_severity(self, data_types: list[ExposureType]) -> Severity:
        if any(t in (ExposureType.SSN, ExposureType.FINANCIAL) for t in data_types):
            return Severity.CRITICAL
        if any(t in (ExposureType.COMBINED_PROFILE, ExposureType.DOB, ExposureType.ADDRESS) for t in data_types):
            return Severity.HIGH
        if any(t in (ExposureType.PHONE, ExposureType.EMAIL) for t in data_types):
            return Severity.MEDIUM
        return Severity.LOW

    @abstractmethod
    async def scan(self, input: ScanInput) -> list[ScanResult]:
        """
        Search the source for the person described by input.

        Returns:
            list of ScanResult, empty when nothing was found
        """
        pass
