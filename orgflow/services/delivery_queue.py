"""
Durable FIFO of outbound email jobs.

Popping a job moves it atomically from ``invitation:queue`` to
``invitation:queue:processing``; it only leaves the processing list once it
is acknowledged (sent) or dead-lettered. Anything still in the processing
list when the dispatcher starts was never acknowledged and goes back to the
head of the queue, so a crash mid-send re-delivers the job.
"""
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, List, NamedTuple, Optional

import redis

from ..core.exceptions import QueueBackendError
from ..models.invitations import DeadLetterEntry, DeliveryJob

logger = logging.getLogger(__name__)

INVITATION_QUEUE_KEY = "invitation:queue"
PROCESSING_KEY = "invitation:queue:processing"
DEAD_LETTER_KEY = "invitation:dead-letter"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Delivery(NamedTuple):
    job: DeliveryJob
    # payload exactly as stored, used to acknowledge the job
    receipt: str


class DeliveryQueue:
    """Interface shared by the queue backends."""

    def push(self, job: DeliveryJob) -> None:
        raise NotImplementedError

    def pop(self, timeout: Optional[float] = None) -> Optional[Delivery]:
        """Block until a job is available, or return None once timeout elapses."""
        raise NotImplementedError

    def ack(self, delivery: Delivery) -> None:
        raise NotImplementedError

    def dead_letter(self, delivery: Delivery, reason: str, attempts: int) -> DeadLetterEntry:
        raise NotImplementedError

    def requeue_unacked(self) -> int:
        raise NotImplementedError

    def pending(self) -> List[DeliveryJob]:
        raise NotImplementedError

    def dead_letters(self) -> List[DeadLetterEntry]:
        raise NotImplementedError


class RedisDeliveryQueue(DeliveryQueue):

    def __init__(
        self,
        client: redis.Redis,
        queue_key: str = INVITATION_QUEUE_KEY,
        processing_key: str = PROCESSING_KEY,
        dead_letter_key: str = DEAD_LETTER_KEY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.redis = client
        self.queue_key = queue_key
        self.processing_key = processing_key
        self.dead_letter_key = dead_letter_key
        self.clock = clock

    def push(self, job: DeliveryJob) -> None:
        try:
            self.redis.rpush(self.queue_key, job.to_payload())
        except redis.RedisError as e:
            raise QueueBackendError(str(e)) from e

    def pop(self, timeout: Optional[float] = None) -> Optional[Delivery]:
        try:
            if timeout == 0:
                payload = self.redis.lmove(self.queue_key, self.processing_key, src="LEFT", dest="RIGHT")
            else:
                # BLMOVE treats 0 as "wait forever"
                payload = self.redis.blmove(
                    self.queue_key, self.processing_key, timeout or 0, src="LEFT", dest="RIGHT"
                )
        except redis.RedisError as e:
            raise QueueBackendError(str(e)) from e
        if payload is None:
            return None
        return Delivery(DeliveryJob.from_payload(payload), payload)

    def ack(self, delivery: Delivery) -> None:
        try:
            self.redis.lrem(self.processing_key, 1, delivery.receipt)
        except redis.RedisError as e:
            raise QueueBackendError(str(e)) from e

    def dead_letter(self, delivery: Delivery, reason: str, attempts: int) -> DeadLetterEntry:
        entry = DeadLetterEntry(job=delivery.job, reason=reason, attempts=attempts, failed_at=self.clock())
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.rpush(self.dead_letter_key, entry.to_payload())
            pipe.lrem(self.processing_key, 1, delivery.receipt)
            pipe.execute()
        except redis.RedisError as e:
            raise QueueBackendError(str(e)) from e
        return entry

    def requeue_unacked(self) -> int:
        moved = 0
        try:
            # newest first onto the head, so the oldest ends up in front
            while self.redis.lmove(self.processing_key, self.queue_key, src="RIGHT", dest="LEFT"):
                moved += 1
        except redis.RedisError as e:
            raise QueueBackendError(str(e)) from e
        if moved:
            logger.warning(f"Requeued {moved} unacknowledged email job(s)")
        return moved

    def _lrange(self, key: str) -> List[str]:
        try:
            return self.redis.lrange(key, 0, -1)
        except redis.RedisError as e:
            raise QueueBackendError(str(e)) from e

    def pending(self) -> List[DeliveryJob]:
        return [DeliveryJob.from_payload(p) for p in self._lrange(self.queue_key)]

    def dead_letters(self) -> List[DeadLetterEntry]:
        return [DeadLetterEntry.from_payload(p) for p in self._lrange(self.dead_letter_key)]


class MemoryDeliveryQueue(DeliveryQueue):
    """In-process backend for development and tests. Not durable."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._queue = deque()
        self._processing: List[str] = []
        self._dead: List[str] = []
        self._cond = threading.Condition()

    def push(self, job: DeliveryJob) -> None:
        with self._cond:
            self._queue.append(job.to_payload())
            self._cond.notify()

    def pop(self, timeout: Optional[float] = None) -> Optional[Delivery]:
        with self._cond:
            if not self._cond.wait_for(lambda: self._queue, timeout):
                return None
            payload = self._queue.popleft()
            self._processing.append(payload)
        return Delivery(DeliveryJob.from_payload(payload), payload)

    def ack(self, delivery: Delivery) -> None:
        with self._cond:
            self._processing.remove(delivery.receipt)

    def dead_letter(self, delivery: Delivery, reason: str, attempts: int) -> DeadLetterEntry:
        entry = DeadLetterEntry(job=delivery.job, reason=reason, attempts=attempts, failed_at=self.clock())
        with self._cond:
            self._dead.append(entry.to_payload())
            self._processing.remove(delivery.receipt)
        return entry

    def requeue_unacked(self) -> int:
        with self._cond:
            moved = len(self._processing)
            self._queue.extendleft(reversed(self._processing))
            self._processing.clear()
            self._cond.notify_all()
        return moved

    def in_flight(self) -> int:
        with self._cond:
            return len(self._processing)

    def pending(self) -> List[DeliveryJob]:
        with self._cond:
            return [DeliveryJob.from_payload(p) for p in self._queue]

    def dead_letters(self) -> List[DeadLetterEntry]:
        with self._cond:
            return [DeadLetterEntry.from_payload(p) for p in self._dead]
