from .types import InvitationStatus, DeliveryState, JobKind
from .invitations import InvitationRecord, DeliveryJob, DeadLetterEntry
from .organization import Organization

__all__ = [
    "InvitationStatus",
    "DeliveryState",
    "JobKind",
    "InvitationRecord",
    "DeliveryJob",
    "DeadLetterEntry",
    "Organization",
]
