"""
    Invitation API

    - `POST /organizations/{org_id}/invitations`
    - Issues an invitation and queues its email
    - 400 on invalid email or unknown organization
    - 500 when the email template could not be rendered
    - 503 when the invitation could not be stored (safe to retry)
    - 502 when the invitation was stored but its email was not queued

    - `GET /invitations/{token}`
    - Returns the pending invitation, 404 otherwise

    - `POST /invitations/{token}/accept`
    - Consumes a pending invitation, 404 otherwise

    - `POST /invitations/{token}/resend`
    - Re-queues the email of a pending invitation
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status

from ..core import exceptions
from ..core.dependencies import get_invitation_service
from ..models.invitations import InvitationRecord
from ..schemas.invitations import InvitationCreate, InvitationResponse
from ..services.invitation_service import InvitationService

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_FOUND = "Invitation not found"


def to_response(record: InvitationRecord) -> InvitationResponse:
    return InvitationResponse(
        email=record.email,
        organization_id=record.organization_id,
        status=record.status,
        expires_at=record.expiry,
    )


@router.post(
    "/organizations/{org_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_invitation(
    org_id: int,
    invitation_data: InvitationCreate,
    service: InvitationService = Depends(get_invitation_service),
):
    try:
        record = service.issue_invitation(invitation_data.email, org_id)
    except exceptions.ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except exceptions.RenderError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Invitation email could not be rendered"
        )
    except exceptions.CacheWriteError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Invitation could not be stored, please retry"
        )
    except exceptions.QueuePushError as e:
        logger.warning(f"Invitation for organization {org_id} needs a manual resend (token {e.token})")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Invitation created but its email could not be queued; resend required"
        )
    return to_response(record)


@router.get("/invitations/{token}", response_model=InvitationResponse)
def get_invitation(token: str, service: InvitationService = Depends(get_invitation_service)):
    record = service.lookup_invitation(token)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return to_response(record)


@router.post("/invitations/{token}/accept", response_model=InvitationResponse)
def accept_invitation(token: str, service: InvitationService = Depends(get_invitation_service)):
    record = service.accept_invitation(token)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return to_response(record)


@router.post(
    "/invitations/{token}/resend",
    response_model=InvitationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def resend_invitation(token: str, service: InvitationService = Depends(get_invitation_service)):
    try:
        record = service.resend_invitation(token)
    except exceptions.ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except exceptions.RenderError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Invitation email could not be rendered"
        )
    except exceptions.QueuePushError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Invitation email could not be queued"
        )
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return to_response(record)
