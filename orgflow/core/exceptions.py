"""
Error types raised by the invitation pipeline.

Caller-facing errors (raised synchronously by ``InvitationService``):
    - ValidationError: bad email or unknown organization, never retried
    - RenderError: the email template failed; nothing was cached or enqueued
    - CacheWriteError: issuance aborted before anything was enqueued
    - QueuePushError: invitation is cached but its email was not enqueued

Dispatcher-side errors (raised by mail transports, handled by the dispatcher):
    - TransientSendError: retried with backoff
    - PermanentSendError: dead-lettered, invitation marked FAILED

Backend errors are raised by cache and queue adapters and translated by
the service into the caller-facing types above.
"""
from typing import Optional


class InvitationError(Exception):
    """Base class for errors surfaced by invitation issuance."""


class ValidationError(InvitationError):
    pass


class RenderError(InvitationError):
    pass


class CacheWriteError(InvitationError):
    pass


class QueuePushError(InvitationError):
    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.token = token


class SendError(Exception):
    pass


class TransientSendError(SendError):
    pass


class PermanentSendError(SendError):
    pass


class CacheBackendError(Exception):
    pass


class QueueBackendError(Exception):
    pass
