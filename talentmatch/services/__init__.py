"""Service layer for TalentMatch operations."""

from talentmatch.services.activity_log import notify_activity
from talentmatch.services.match_service import (
    get_live_matches,
    request_match_refresh,
    run_vacancy_matching,
)
from talentmatch.services.queue_service import MatchingQueue

__all__ = [
    "notify_activity",
    "MatchingQueue",
    "get_live_matches",
    "request_match_refresh",
    "run_vacancy_matching",
]
