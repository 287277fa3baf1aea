from datetime import datetime
from sqlmodel import SQLModel
from ..models.types import InvitationStatus


class InvitationCreate(SQLModel):
    email: str


class InvitationResponse(SQLModel):
    email: str
    organization_id: str
    status: InvitationStatus
    expires_at: datetime
