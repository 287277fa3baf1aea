from datetime import timedelta
from functools import lru_cache

from .config import get_settings
from .database import engine
from .template_engine import TemplateRenderer
from ..services.delivery_queue import RedisDeliveryQueue
from ..services.email_dispatcher import EmailDispatcher
from ..services.invitation_cache import RedisInvitationCache
from ..services.invitation_service import InvitationService
from ..services.mail_transport import get_mail_transport
from ..services.organization_directory import OrganizationDirectory
from ..services.redis_service import get_redis_service


@lru_cache
def get_invitation_cache() -> RedisInvitationCache:
    return RedisInvitationCache(get_redis_service().redis)


@lru_cache
def get_delivery_queue() -> RedisDeliveryQueue:
    return RedisDeliveryQueue(get_redis_service().redis)


@lru_cache
def get_invitation_service() -> InvitationService:
    settings = get_settings()
    return InvitationService(
        cache=get_invitation_cache(),
        queue=get_delivery_queue(),
        renderer=TemplateRenderer(settings.TEMPLATES_DIR or None),
        directory=OrganizationDirectory(engine),
        base_url=settings.INVITATION_BASE_URL,
        ttl=timedelta(days=settings.INVITATION_TTL_DAYS),
        token_length=settings.INVITATION_TOKEN_LENGTH,
        verification_expire_hours=settings.VERIFICATION_CODE_EXPIRE_HOUR,
    )


@lru_cache
def get_email_dispatcher() -> EmailDispatcher:
    settings = get_settings()
    return EmailDispatcher(
        queue=get_delivery_queue(),
        cache=get_invitation_cache(),
        transport=get_mail_transport(),
        from_email=settings.MAIL_FROM,
        workers=settings.DISPATCHER_WORKERS,
        max_attempts=settings.DELIVERY_MAX_ATTEMPTS,
        backoff_base=settings.DELIVERY_BACKOFF_BASE_SECONDS,
        backoff_max=settings.DELIVERY_BACKOFF_MAX_SECONDS,
        pop_timeout=settings.DELIVERY_POP_TIMEOUT_SECONDS,
    )
