import logging
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Union

from jinja2 import TemplateError

from ..core import tokens
from ..core.exceptions import (
    CacheBackendError,
    CacheWriteError,
    QueueBackendError,
    QueuePushError,
    RenderError,
    ValidationError,
)
from ..core.template_engine import TemplateRenderer
from ..models.invitations import DeliveryJob, InvitationRecord
from ..models.types import InvitationStatus, JobKind
from .delivery_queue import DeliveryQueue
from .invitation_cache import DEFAULT_INVITATION_TTL, InvitationCache, utcnow

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

INVITATION_TEMPLATE = "invitation-email"
VERIFICATION_TEMPLATE = "verification-email"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class InvitationService:
    """
    Issues invitations and hands their emails to the delivery queue.

    Issuance never waits on the mail transport: the rendered email is pushed
    onto the queue and delivered by ``EmailDispatcher`` workers. The cache
    write always happens before the push, so no email is ever sent for an
    invitation the acceptance flow cannot find.
    """

    def __init__(
        self,
        cache: InvitationCache,
        queue: DeliveryQueue,
        renderer: TemplateRenderer,
        directory,
        base_url: str,
        ttl: timedelta = DEFAULT_INVITATION_TTL,
        token_length: int = 32,
        verification_expire_hours: int = 24,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.queue = queue
        self.renderer = renderer
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        self.ttl = ttl
        self.token_length = token_length
        self.verification_expire_hours = verification_expire_hours
        self.clock = clock

    def _validate_email(self, email: Optional[str]) -> str:
        normalized = normalize_email(email)
        if not normalized:
            raise ValidationError("Recipient email cannot be empty")
        if not EMAIL_PATTERN.match(normalized):
            raise ValidationError(f"Invalid email address: {email}")
        return normalized

    def _render(self, template_name: str, variables: Dict[str, Any]) -> str:
        try:
            return self.renderer.render(template_name, variables)
        except TemplateError as e:
            logger.error(f"Failed to render {template_name}: {e}")
            raise RenderError(f"Failed to render email template {template_name}") from e

    def invitation_link(self, token: str) -> str:
        return f"{self.base_url}/invitations/{token}/accept"

    def _invitation_job(self, record: InvitationRecord, organization_name: str) -> DeliveryJob:
        content = self._render(INVITATION_TEMPLATE, {
            "organizationName": organization_name,
            "invitationLink": self.invitation_link(record.token),
            "expiryDate": record.expiry.date().isoformat(),
        })
        return DeliveryJob(
            recipient=record.email,
            subject=f"Invitation to join {organization_name}",
            content=content,
            enqueued_at=self.clock(),
            token=record.token,
            kind=JobKind.INVITATION,
        )

    def _enqueue(self, job: DeliveryJob) -> None:
        try:
            self.queue.push(job)
        except QueueBackendError as e:
            logger.error(f"Failed to queue invitation email for {job.recipient}: {e}")
            raise QueuePushError("Failed to queue invitation email", token=job.token) from e

    def issue_invitation(self, email: str, organization_id: Union[int, str]) -> InvitationRecord:
        """
        Create an invitation and queue its email.

        Args:
            email: Address of the person being invited
            organization_id: Organization the invitation grants access to

        Returns:
            The cached InvitationRecord, status PENDING

        Raises:
            ValidationError: If the email is implausible or the organization is unknown
            RenderError: If the email template could not be rendered; nothing was cached
            CacheWriteError: If the record could not be cached; nothing was enqueued
            QueuePushError: If the record was cached but its email could not be queued
        """
        email = self._validate_email(email)
        organization_name = self.directory.find_organization_name(organization_id)
        if organization_name is None:
            raise ValidationError(f"Organization not found with id: {organization_id}")

        record = InvitationRecord(
            token=tokens.generate_code(self.token_length),
            email=email,
            organization_id=str(organization_id),
            status=InvitationStatus.PENDING,
            expiry=self.clock() + self.ttl,
        )
        job = self._invitation_job(record, organization_name)

        try:
            self.cache.put(record.token, record, self.ttl)
        except CacheBackendError as e:
            raise CacheWriteError("Failed to process invitation") from e

        self._enqueue(job)
        logger.info(f"Invitation email queued for {email}")
        return record

    def lookup_invitation(self, token: str) -> Optional[InvitationRecord]:
        return self.cache.get(token)

    def accept_invitation(self, token: str) -> Optional[InvitationRecord]:
        """Consume a pending invitation. Returns None for unknown, expired or used tokens."""
        record = self.cache.take(token, InvitationStatus.PENDING)
        if record is None:
            return None
        logger.info(f"Invitation accepted by {record.email}")
        return record.model_copy(update={"status": InvitationStatus.ACCEPTED})

    def resend_invitation(self, token: str) -> Optional[InvitationRecord]:
        record = self.cache.get(token)
        if record is None or record.status != InvitationStatus.PENDING:
            return None
        organization_name = self.directory.find_organization_name(record.organization_id)
        if organization_name is None:
            raise ValidationError(f"Organization not found with id: {record.organization_id}")
        self._enqueue(self._invitation_job(record, organization_name))
        logger.info(f"Invitation email re-queued for {record.email}")
        return record

    def send_verification_code(self, email: str, code: str) -> None:
        email = self._validate_email(email)
        content = self._render(VERIFICATION_TEMPLATE, {
            "code": code,
            "expireHours": self.verification_expire_hours,
        })
        job = DeliveryJob(
            recipient=email,
            subject="Verify your OrgFlow account",
            content=content,
            enqueued_at=self.clock(),
            kind=JobKind.VERIFICATION,
        )
        try:
            self.queue.push(job)
        except QueueBackendError as e:
            logger.error(f"Failed to queue verification email for {email}: {e}")
            raise QueuePushError("Failed to queue verification email") from e
        logger.info(f"Verification email queued for {email}")

    @staticmethod
    def generate_verification_code() -> str:
        return tokens.generate_verification_code()

    @staticmethod
    def hash_verification_code(code: str) -> str:
        return tokens.hash_code(code)
