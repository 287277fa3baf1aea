"""
Tests for orgflow.services.delivery_queue.
"""

import threading
from unittest.mock import MagicMock

import pytest
import redis

from orgflow.core.exceptions import QueueBackendError
from orgflow.models.invitations import DeliveryJob
from orgflow.services.delivery_queue import (
    DEAD_LETTER_KEY,
    INVITATION_QUEUE_KEY,
    PROCESSING_KEY,
    Delivery,
    RedisDeliveryQueue,
)


@pytest.fixture
def make_job(clock):
    def _make(recipient="a@b.com", token="tok"):
        return DeliveryJob(
            recipient=recipient,
            subject="Invitation to join Acme Corp",
            content="<p>hi</p>",
            enqueued_at=clock(),
            token=token,
        )
    return _make


class TestMemoryDeliveryQueue:

    def test_fifo_order(self, queue, make_job):
        for i in range(3):
            queue.push(make_job(recipient=f"user{i}@b.com"))

        popped = [queue.pop(timeout=0).job.recipient for _ in range(3)]

        assert popped == ["user0@b.com", "user1@b.com", "user2@b.com"]

    def test_pop_times_out_when_empty(self, queue):
        assert queue.pop(timeout=0.01) is None

    def test_pop_blocks_until_push(self, queue, make_job):
        result = {}

        def consumer():
            result["delivery"] = queue.pop(timeout=5)

        thread = threading.Thread(target=consumer)
        thread.start()
        queue.push(make_job())
        thread.join(5)

        assert result["delivery"].job.recipient == "a@b.com"

    def test_popped_job_stays_in_flight_until_ack(self, queue, make_job):
        queue.push(make_job())
        delivery = queue.pop(timeout=0)

        assert queue.in_flight() == 1
        queue.ack(delivery)
        assert queue.in_flight() == 0
        assert queue.pending() == []

    def test_requeue_unacked_restores_order_at_head(self, queue, make_job):
        for i in range(3):
            queue.push(make_job(recipient=f"user{i}@b.com"))
        queue.pop(timeout=0)
        queue.pop(timeout=0)

        assert queue.requeue_unacked() == 2
        assert [j.recipient for j in queue.pending()] == ["user0@b.com", "user1@b.com", "user2@b.com"]
        assert queue.in_flight() == 0

    def test_dead_letter(self, queue, make_job):
        queue.push(make_job())
        delivery = queue.pop(timeout=0)

        entry = queue.dead_letter(delivery, "550 mailbox unavailable", attempts=1)

        assert queue.in_flight() == 0
        assert queue.dead_letters() == [entry]
        assert entry.job.recipient == "a@b.com"


class TestRedisDeliveryQueue:

    @pytest.fixture
    def client(self):
        return MagicMock()

    def test_push_appends_to_queue(self, client, make_job):
        job = make_job()

        RedisDeliveryQueue(client).push(job)

        client.rpush.assert_called_once_with(INVITATION_QUEUE_KEY, job.to_payload())

    def test_push_backend_error(self, client, make_job):
        client.rpush.side_effect = redis.ConnectionError("down")

        with pytest.raises(QueueBackendError):
            RedisDeliveryQueue(client).push(make_job())

    def test_pop_moves_job_to_processing(self, client, make_job):
        payload = make_job().to_payload()
        client.blmove.return_value = payload

        delivery = RedisDeliveryQueue(client).pop(timeout=5)

        client.blmove.assert_called_once_with(
            INVITATION_QUEUE_KEY, PROCESSING_KEY, 5, src="LEFT", dest="RIGHT"
        )
        assert delivery.receipt == payload
        assert delivery.job.recipient == "a@b.com"

    def test_pop_timeout(self, client):
        client.blmove.return_value = None

        assert RedisDeliveryQueue(client).pop(timeout=1) is None

    def test_ack_removes_from_processing(self, client, make_job):
        job = make_job()
        delivery = Delivery(job, job.to_payload())

        RedisDeliveryQueue(client).ack(delivery)

        client.lrem.assert_called_once_with(PROCESSING_KEY, 1, delivery.receipt)

    def test_dead_letter_is_atomic(self, client, make_job):
        job = make_job()
        delivery = Delivery(job, job.to_payload())
        pipe = client.pipeline.return_value

        entry = RedisDeliveryQueue(client).dead_letter(delivery, "bounced", attempts=2)

        pipe.rpush.assert_called_once_with(DEAD_LETTER_KEY, entry.to_payload())
        pipe.lrem.assert_called_once_with(PROCESSING_KEY, 1, delivery.receipt)
        pipe.execute.assert_called_once()

    def test_requeue_unacked(self, client):
        client.lmove.side_effect = ["p2", "p1", None]

        moved = RedisDeliveryQueue(client).requeue_unacked()

        assert moved == 2
        client.lmove.assert_called_with(PROCESSING_KEY, INVITATION_QUEUE_KEY, src="RIGHT", dest="LEFT")

    def test_listing_backend_error(self, client):
        client.lrange.side_effect = redis.ConnectionError("down")
        queue = RedisDeliveryQueue(client)

        with pytest.raises(QueueBackendError):
            queue.pending()
        with pytest.raises(QueueBackendError):
            queue.dead_letters()
