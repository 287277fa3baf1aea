"""
Pytest configuration and fixtures for OrgFlow tests.

Provides a controllable clock, in-memory cache/queue backends, a fake
organization directory and a recording mail transport.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from orgflow.core.exceptions import PermanentSendError, TransientSendError
from orgflow.core.template_engine import TemplateRenderer
from orgflow.services.delivery_queue import MemoryDeliveryQueue
from orgflow.services.email_dispatcher import EmailDispatcher
from orgflow.services.invitation_cache import MemoryInvitationCache
from orgflow.services.invitation_service import InvitationService

BASE_URL = "https://orgflow.test/api"
FROM_EMAIL = "no-reply@orgflow.test"


class Clock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDirectory:
    def __init__(self, organizations: Dict[int, str]):
        self.organizations = organizations

    def find_organization_name(self, organization_id) -> Optional[str]:
        try:
            return self.organizations.get(int(organization_id))
        except (TypeError, ValueError):
            return None

    def organization_exists(self, organization_id) -> bool:
        return self.find_organization_name(organization_id) is not None


class FakeTransport:
    """
    Records sent mail. ``failures`` maps a recipient to the errors raised on
    its successive attempts before a send succeeds.
    """

    def __init__(self):
        self.sent: List[dict] = []
        self.attempts: List[str] = []
        self.failures: Dict[str, List[Exception]] = {}
        self._lock = threading.Lock()

    def send(self, to_email, subject, html_content, from_email):
        with self._lock:
            self.attempts.append(to_email)
            pending = self.failures.get(to_email)
            if pending:
                raise pending.pop(0)
            self.sent.append({
                "to": to_email,
                "subject": subject,
                "html": html_content,
                "from": from_email,
            })

    def recipients(self) -> List[str]:
        with self._lock:
            return [m["to"] for m in self.sent]


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache(clock):
    return MemoryInvitationCache(clock=clock)


@pytest.fixture
def queue(clock):
    return MemoryDeliveryQueue(clock=clock)


@pytest.fixture
def directory():
    return FakeDirectory({42: "Acme Corp", 7: "Globex"})


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def service(cache, queue, renderer, directory, clock):
    return InvitationService(
        cache=cache,
        queue=queue,
        renderer=renderer,
        directory=directory,
        base_url=BASE_URL,
        clock=clock,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def dispatcher(queue, cache, transport, sleeps):
    return EmailDispatcher(
        queue=queue,
        cache=cache,
        transport=transport,
        from_email=FROM_EMAIL,
        workers=1,
        max_attempts=3,
        backoff_base=0.5,
        backoff_max=4.0,
        pop_timeout=0.05,
        sleep=sleeps.append,
    )


@pytest.fixture
def transient():
    return lambda: TransientSendError("connection timed out")


@pytest.fixture
def permanent():
    return lambda: PermanentSendError("550 mailbox unavailable")
