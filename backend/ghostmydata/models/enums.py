"""Status and method enums stored on exposures and removal requests."""

from enum import StrEnum


class ExposureStatus(StrEnum):
    ACTIVE = "ACTIVE"
    REMOVAL_PENDING = "REMOVAL_PENDING"
    REMOVAL_IN_PROGRESS = "REMOVAL_IN_PROGRESS"
    REMOVED = "REMOVED"
    WHITELISTED = "WHITELISTED"
    MONITORING = "MONITORING"


class RemovalStatus(StrEnum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REQUIRES_MANUAL = "REQUIRES_MANUAL"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    BLOCKED = "BLOCKED"


class RemovalMethod(StrEnum):
    AUTO_FORM = "AUTO_FORM"
    AUTO_EMAIL = "AUTO_EMAIL"
    API = "API"
    MANUAL_GUIDE = "MANUAL_GUIDE"


class ScanStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Request status -> exposure status applied whenever a request changes state
REMOVAL_TO_EXPOSURE_STATUS = {
    RemovalStatus.SUBMITTED: ExposureStatus.REMOVAL_IN_PROGRESS,
    RemovalStatus.IN_PROGRESS: ExposureStatus.REMOVAL_IN_PROGRESS,
    RemovalStatus.COMPLETED: ExposureStatus.REMOVED,
    RemovalStatus.FAILED: ExposureStatus.ACTIVE,
    RemovalStatus.REQUIRES_MANUAL: ExposureStatus.REMOVAL_PENDING,
    RemovalStatus.ACKNOWLEDGED: ExposureStatus.MONITORING,
}
