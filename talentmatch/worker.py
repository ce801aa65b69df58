"""Queue consumer entrypoint for vacancy matching runs.

Pops matching triggers from the Redis queue one at a time and runs the full
matching pipeline for each:

1. DECODE: Read the vacancy ID from the message body
2. MATCH: Retrieve, evaluate and persist results for the vacancy
3. ACK or RETRY: Drop the message on success or fatal errors, requeue otherwise

Usage: `python -m talentmatch.worker` or `talentmatch worker`
"""

import logging
import sys
import time
from enum import Enum

import redis

from talentmatch.config import QUEUE_POLL_TIMEOUT
from talentmatch.db.connection import Datastore, init_tables
from talentmatch.errors import InvalidQueueMessageError, VacancyNotFoundError
from talentmatch.services.match_service import run_vacancy_matching
from talentmatch.services.queue_service import MatchingQueue, QueueMessage, decode_message

logger = logging.getLogger(__name__)


class MessageOutcome(str, Enum):
    COMPLETED = "completed"
    DROPPED = "dropped"
    REQUEUED = "requeued"
    POISONED = "poisoned"


def process_message(message: QueueMessage, store: Datastore, queue: MatchingQueue) -> MessageOutcome:
    """Handle one queue message.

    Invalid messages and unknown vacancies are dropped. Any other failure
    is retried through the queue until the delivery limit is reached.
    """
    try:
        vacancy_id = decode_message(message.body)
    except InvalidQueueMessageError as e:
        logger.error(f"Dropping message {message.id}: {e}")
        return MessageOutcome.DROPPED

    logger.info(f"Processing vacancy {vacancy_id} (message {message.id}, attempt {message.dequeue_count})")

    try:
        summary = run_vacancy_matching(vacancy_id, store)
    except VacancyNotFoundError as e:
        logger.error(f"Dropping message {message.id}: {e}")
        return MessageOutcome.DROPPED
    except Exception as e:
        logger.exception(f"Matching for vacancy {vacancy_id} failed: {e}")
        try:
            requeued = queue.requeue(message)
        except redis.RedisError as redis_error:
            logger.error(f"Failed to requeue message {message.id}, body lost: {message.body!r} ({redis_error})")
            return MessageOutcome.DROPPED
        return MessageOutcome.REQUEUED if requeued else MessageOutcome.POISONED

    logger.info(
        f"Vacancy {vacancy_id} done: {summary.candidates_evaluated} evaluated, "
        f"{summary.results_stored} stored, {summary.fallback_count} fallbacks"
    )
    return MessageOutcome.COMPLETED


def run_worker(
    store: Datastore,
    queue: MatchingQueue,
    poll_timeout: int = QUEUE_POLL_TIMEOUT,
    max_messages: int | None = None,
) -> int:
    """Consume messages until interrupted or ``max_messages`` are handled.

    Redis errors while polling are logged and retried after ``poll_timeout``
    seconds, so a brief outage does not stop the consumer.

    Returns:
        Number of messages handled.
    """
    handled = 0
    while max_messages is None or handled < max_messages:
        try:
            message = queue.receive(timeout=poll_timeout)
        except redis.RedisError as e:
            logger.error(f"Queue receive failed, retrying in {poll_timeout}s: {e}")
            time.sleep(poll_timeout)
            continue
        if message is None:
            continue
        process_message(message, store, queue)
        handled += 1
    return handled


def main() -> int:
    """Worker process entrypoint.

    Returns:
        Exit code (0 for clean shutdown, 1 for failure).
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting TalentMatch matching worker")

    try:
        queue = MatchingQueue.from_config()
        with Datastore.from_config() as store:
            init_tables(store)
            logger.info(f"Listening on queue '{queue.queue_name}'")
            run_worker(store, queue)
    except KeyboardInterrupt:
        logger.info("Worker stopped")
        return 0
    except Exception as e:
        logger.exception(f"Worker failed with error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
