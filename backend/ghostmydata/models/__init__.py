"""Database models."""

from ghostmydata.models.user import User, PersonalProfile
from ghostmydata.models.scan import Scan
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.request import RemovalRequest
from ghostmydata.models.alert import Alert

__all__ = [
    "User",
    "PersonalProfile",
    "Scan",
    "Exposure",
    "RemovalRequest",
    "Alert",
]
