from charmclaim.models.abuse_event import AbuseEvent
from charmclaim.models.challenge import ClaimChallenge
from charmclaim.models.ownership import Ownership
from charmclaim.models.physical_unit import UNIT_AVAILABLE, UNIT_CLAIMED, PhysicalUnit

__all__ = [
    "AbuseEvent",
    "ClaimChallenge",
    "Ownership",
    "PhysicalUnit",
    "UNIT_AVAILABLE",
    "UNIT_CLAIMED",
]
