"""Redis list transport for vacancy matching triggers.

Producers LPUSH a JSON envelope onto the queue; the worker BRPOPs it. The
envelope carries a delivery counter so failed runs can be redelivered a
bounded number of times before being parked on the poison queue.

Message body format (base64 of JSON): ``{"vacancyId": 42}``
"""

import base64
import binascii
import json
import logging
import uuid
from datetime import UTC, datetime

import redis
from pydantic import BaseModel, Field

from talentmatch.config import MATCHING_QUEUE_NAME, QUEUE_MAX_DEQUEUE_COUNT, REDIS_URL
from talentmatch.errors import InvalidQueueMessageError, QueueConfigurationError

logger = logging.getLogger(__name__)


class QueueMessage(BaseModel):
    """Envelope stored in the Redis list."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    body: str
    dequeue_count: int = 0
    enqueued_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


def encode_message(vacancy_id: int) -> str:
    """Encode a vacancy ID as a base64 message body."""
    payload = json.dumps({"vacancyId": vacancy_id})
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_message(body: str) -> int:
    """Decode a message body into a vacancy ID.

    Accepts base64-encoded JSON as well as plain JSON.

    Raises:
        InvalidQueueMessageError: If the body has no integer vacancyId.
    """
    text = body.strip()
    if not text.startswith("{"):
        try:
            text = base64.b64decode(text, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise InvalidQueueMessageError(f"Message body is not base64 JSON: {e}") from e

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidQueueMessageError(f"Message body is not valid JSON: {e}") from e

    vacancy_id = payload.get("vacancyId") if isinstance(payload, dict) else None
    if isinstance(vacancy_id, bool) or not isinstance(vacancy_id, int):
        raise InvalidQueueMessageError(f"Message has no integer vacancyId: {payload!r}")

    return vacancy_id


class MatchingQueue:
    """Vacancy matching queue backed by a Redis list."""

    def __init__(self, client: redis.Redis, queue_name: str = MATCHING_QUEUE_NAME):
        self.client = client
        self.queue_name = queue_name

    @classmethod
    def from_config(cls) -> "MatchingQueue":
        """Create a queue from REDIS_URL.

        Raises:
            QueueConfigurationError: If REDIS_URL is not set.
        """
        if not REDIS_URL:
            raise QueueConfigurationError("REDIS_URL environment variable is not set")
        return cls(redis.Redis.from_url(REDIS_URL, decode_responses=True))

    @property
    def poison_queue_name(self) -> str:
        return f"{self.queue_name}-poison"

    def enqueue(self, vacancy_id: int) -> str:
        """Push a matching trigger for a vacancy.

        Returns:
            The message ID.

        Raises:
            QueueConfigurationError: If Redis cannot be reached.
        """
        message = QueueMessage(body=encode_message(vacancy_id))
        try:
            self.client.lpush(self.queue_name, message.model_dump_json())
        except redis.RedisError as e:
            raise QueueConfigurationError(f"Failed to enqueue vacancy {vacancy_id}: {e}") from e

        logger.info(f"Queued matching for vacancy {vacancy_id} (message {message.id})")
        return message.id

    def receive(self, timeout: int) -> QueueMessage | None:
        """Block up to ``timeout`` seconds for the next message.

        The returned message already counts this delivery. An envelope that
        is not valid JSON is passed through as a raw body so the consumer
        can reject it.
        """
        item = self.client.brpop([self.queue_name], timeout=timeout)
        if item is None:
            return None

        _, raw = item
        try:
            message = QueueMessage.model_validate_json(raw)
        except ValueError:
            logger.warning("Received message with unreadable envelope")
            message = QueueMessage(id="unknown", body=raw)

        message.dequeue_count += 1
        return message

    def requeue(self, message: QueueMessage) -> bool:
        """Put a failed message back, or park it once it has been tried too often.

        Returns:
            True if the message was requeued, False if it went to the poison queue.
        """
        payload = message.model_dump_json()
        if message.dequeue_count >= QUEUE_MAX_DEQUEUE_COUNT:
            self.client.lpush(self.poison_queue_name, payload)
            logger.error(
                f"Message {message.id} moved to {self.poison_queue_name} "
                f"after {message.dequeue_count} attempts"
            )
            return False

        self.client.lpush(self.queue_name, payload)
        logger.info(f"Message {message.id} requeued (attempt {message.dequeue_count})")
        return True

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
