"""
Background workers that drain the delivery queue.

Each job goes QUEUED -> SENDING -> SENT | FAILED. A job is only removed from
the durable queue once it reaches a terminal state, which gives
at-least-once delivery: a worker that dies mid-send leaves the job in the
processing list and ``start()`` puts it back on the queue.

Transient (and unclassified) transport failures are retried in place with
exponential, jittered backoff up to ``max_attempts``. Permanent failures and exhausted
retries go to the dead-letter sink and the invitation is marked FAILED.
"""
import logging
import random
import threading
import time
from typing import Callable, List, Optional

from ..core.exceptions import (
    CacheBackendError,
    PermanentSendError,
    QueueBackendError,
    TransientSendError,
)
from ..models.types import DeliveryState, InvitationStatus
from .delivery_queue import Delivery, DeliveryQueue
from .invitation_cache import InvitationCache

logger = logging.getLogger(__name__)


class EmailDispatcher:

    def __init__(
        self,
        queue: DeliveryQueue,
        cache: InvitationCache,
        transport,
        from_email: str,
        workers: int = 1,
        max_attempts: int = 5,
        backoff_base: float = 1.0,
        backoff_max: float = 60.0,
        pop_timeout: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.queue = queue
        self.cache = cache
        self.transport = transport
        self.from_email = from_email
        self.workers = workers
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.pop_timeout = pop_timeout
        self.sleep = sleep
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self.queue.requeue_unacked()
        self._threads = [
            threading.Thread(target=self._run, name=f"email-dispatcher-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Email dispatcher started with {self.workers} worker(s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Email dispatcher stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                delivery = self.queue.pop(timeout=self.pop_timeout)
            except QueueBackendError as e:
                logger.error(f"Failed to pop from delivery queue: {e}")
                self._stop.wait(self.pop_timeout)
                continue
            if delivery is None:
                continue
            try:
                self.process(delivery)
            except Exception:
                # left unacknowledged; requeued on the next start
                logger.exception(f"Unexpected error delivering email to {delivery.job.recipient}")

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), capped and jittered."""
        delay = min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))
        return delay / 2 + random.uniform(0, delay / 2)

    def process(self, delivery: Delivery) -> DeliveryState:
        job = delivery.job
        logger.debug(f"{DeliveryState.SENDING.value} email to {job.recipient}")

        attempt = 0
        while True:
            attempt += 1
            try:
                self.transport.send(job.recipient, job.subject, job.content, self.from_email)
            except PermanentSendError as e:
                return self._fail(delivery, str(e), attempt)
            except Exception as e:
                # unclassified errors get the same bounded retries as transient ones
                if not isinstance(e, TransientSendError):
                    logger.exception(f"Unclassified error sending to {job.recipient}")
                if attempt >= self.max_attempts:
                    return self._fail(delivery, f"Retries exhausted: {e}", attempt)
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Transient failure sending to {job.recipient} "
                    f"(attempt {attempt}/{self.max_attempts}), retrying in {delay:.2f}s: {e}"
                )
                self.sleep(delay)
                continue

            self.queue.ack(delivery)
            logger.info(f"Email to {job.recipient} {DeliveryState.SENT.value} after {attempt} attempt(s)")
            return DeliveryState.SENT

    def _fail(self, delivery: Delivery, reason: str, attempts: int) -> DeliveryState:
        job = delivery.job
        self.queue.dead_letter(delivery, reason, attempts)
        logger.error(f"Email to {job.recipient} moved to dead-letter sink: {reason}")
        if job.token:
            try:
                self.cache.set_status(job.token, InvitationStatus.FAILED)
            except CacheBackendError as e:
                logger.error(f"Failed to mark invitation for {job.recipient} as FAILED: {e}")
        return DeliveryState.FAILED
