import json
from datetime import datetime
from typing import Dict, Optional
from sqlmodel import SQLModel
from .types import InvitationStatus, JobKind


class InvitationRecord(SQLModel):
    token: str
    email: str
    organization_id: str
    status: InvitationStatus = InvitationStatus.PENDING
    expiry: datetime

    def to_hash(self) -> Dict[str, str]:
        """Field layout stored under ``invitation:<token>``."""
        return {
            "email": self.email,
            "organizationId": self.organization_id,
            "status": self.status.value,
            "expiry": self.expiry.isoformat(),
        }

    @classmethod
    def from_hash(cls, token: str, data: Dict[str, str]) -> "InvitationRecord":
        return cls(
            token=token,
            email=data["email"],
            organization_id=data["organizationId"],
            status=InvitationStatus(data["status"]),
            expiry=datetime.fromisoformat(data["expiry"]),
        )


class DeliveryJob(SQLModel):
    recipient: str
    subject: str
    content: str
    enqueued_at: datetime
    token: Optional[str] = None
    kind: JobKind = JobKind.INVITATION

    def to_payload(self) -> str:
        return json.dumps({
            "recipient": self.recipient,
            "subject": self.subject,
            "content": self.content,
            "enqueuedAt": self.enqueued_at.isoformat(),
            "token": self.token,
            "kind": self.kind.value,
        })

    @classmethod
    def from_payload(cls, payload: str) -> "DeliveryJob":
        data = json.loads(payload)
        return cls(
            recipient=data["recipient"],
            subject=data.get("subject", ""),
            content=data["content"],
            enqueued_at=datetime.fromisoformat(data["enqueuedAt"]),
            token=data.get("token"),
            kind=JobKind(data.get("kind", JobKind.INVITATION.value)),
        )


class DeadLetterEntry(SQLModel):
    job: DeliveryJob
    reason: str
    attempts: int
    failed_at: datetime

    def to_payload(self) -> str:
        return json.dumps({
            "job": json.loads(self.job.to_payload()),
            "reason": self.reason,
            "attempts": self.attempts,
            "failedAt": self.failed_at.isoformat(),
        })

    @classmethod
    def from_payload(cls, payload: str) -> "DeadLetterEntry":
        data = json.loads(payload)
        return cls(
            job=DeliveryJob.from_payload(json.dumps(data["job"])),
            reason=data["reason"],
            attempts=data["attempts"],
            failed_at=datetime.fromisoformat(data["failedAt"]),
        )
