"""Activity feed notifications for matching runs.

Notifications are informational. A missing endpoint or a failed request is
logged and never affects the run that sent it.
"""

import logging
from typing import Any

import requests

from talentmatch.config import ACTIVITY_LOG_TIMEOUT, ACTIVITY_LOG_URL

logger = logging.getLogger(__name__)


def notify_activity(
    activity_type: str,
    title: str,
    description: str,
    status: str,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Post an activity entry to the activity feed.

    Args:
        activity_type: Feed category, e.g. 'matching' or 'error'.
        title: Short headline.
        description: One-line human readable description.
        status: 'completed', 'processing', 'pending' or 'failed'.
        metadata: Extra structured fields.

    Returns:
        True if the entry was accepted, False otherwise.
    """
    if not ACTIVITY_LOG_URL:
        logger.debug(f"Activity log not configured, skipping '{title}'")
        return False

    payload = {
        "type": activity_type,
        "title": title,
        "description": description,
        "status": status,
        "metadata": metadata or {},
    }

    try:
        response = requests.post(ACTIVITY_LOG_URL, json=payload, timeout=ACTIVITY_LOG_TIMEOUT)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.warning(f"Failed to send activity '{title}': {e}")
        return False

    return True
