"""Match service for running the vacancy-to-candidates matching pipeline.

This service handles:
- The full matching run for one vacancy (retrieve, evaluate, persist)
- The synchronous live view (retrieve only, nothing persisted)
- Refresh requests that clear stored results and queue a new run

A run replaces the vacancy's stored result set wholesale. Runs for the same
vacancy are expected to be serialized by the queue consumer.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from talentmatch.config import (
    ESTIMATED_COMPLETION_TIME,
    EVALUATION_VERSION,
    MAX_EVALUATION_WORKERS,
    VACANCY_MATCH_TOP_K,
)
from talentmatch.db.connection import Datastore
from talentmatch.db.match_results import delete_match_results, replace_match_results
from talentmatch.db.vacancies import get_vacancy
from talentmatch.embeddings import embed_text
from talentmatch.errors import TransientStoreContentionError, VacancyNotFoundError
from talentmatch.matching.evaluator import evaluate_candidate
from talentmatch.matching.query_builder import build_search_query
from talentmatch.matching.retriever import search_candidates
from talentmatch.schemas.candidate import RetrievedCandidate
from talentmatch.schemas.match import (
    EvaluationStatus,
    LiveMatchView,
    MatchEvaluation,
    MatchResult,
    MatchRunState,
    MatchRunSummary,
    RefreshTicket,
)
from talentmatch.schemas.vacancy import Requirement, Vacancy
from talentmatch.services.activity_log import notify_activity
from talentmatch.services.queue_service import MatchingQueue

logger = logging.getLogger(__name__)


def _transition(summary: MatchRunSummary, state: MatchRunState) -> None:
    summary.state = state
    summary.state_history.append(state)
    logger.info(f"Vacancy {summary.vacancy_id}: {state.value}")


def _load_vacancy(store: Datastore, vacancy_id: int) -> Vacancy:
    vacancy = get_vacancy(store, vacancy_id)
    if vacancy is None:
        raise VacancyNotFoundError(vacancy_id)
    return vacancy


def dedupe_candidates(candidates: list[RetrievedCandidate]) -> list[RetrievedCandidate]:
    """Collapse repeated candidate IDs, keeping the highest-scored entry.

    Order follows the first appearance of each ID.
    """
    best: dict[int, RetrievedCandidate] = {}
    for candidate in candidates:
        user_id = candidate.profile.user_id
        current = best.get(user_id)
        if current is None or candidate.score > current.score:
            best[user_id] = candidate
    return list(best.values())


def evaluate_candidates(
    candidates: list[RetrievedCandidate],
    requirements: list[Requirement],
) -> dict[int, MatchEvaluation]:
    """Evaluate all candidates concurrently.

    Every candidate gets an evaluation; failures inside the evaluator are
    already converted to fallbacks.

    Returns:
        Dict mapping user ID to its MatchEvaluation.
    """
    if not candidates:
        return {}

    evaluations: dict[int, MatchEvaluation] = {}
    max_workers = min(len(candidates), MAX_EVALUATION_WORKERS)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(evaluate_candidate, candidate, requirements): candidate.profile.user_id
            for candidate in candidates
        }
        for future in as_completed(futures):
            evaluations[futures[future]] = future.result()

    return evaluations


def _build_result(vacancy_id: int, candidate: RetrievedCandidate, evaluation: MatchEvaluation) -> MatchResult:
    return MatchResult(
        vacancy_id=vacancy_id,
        user_id=candidate.profile.user_id,
        score=candidate.score,
        overall_score=evaluation.overall_score,
        matched_requirements=evaluation.matched_requirements,
        missing_requirements=evaluation.missing_requirements,
        reasoning=evaluation.reasoning,
        requirement_breakdown=evaluation.requirement_breakdown,
        evaluation_version=EVALUATION_VERSION,
    )


def _notify_completed(summary: MatchRunSummary) -> None:
    notify_activity(
        "matching",
        "Vacancy Matching Completed",
        f'Evaluated {summary.candidates_evaluated} candidates for vacancy "{summary.vacancy_title}"',
        "completed",
        {
            "vacancyId": summary.vacancy_id,
            "vacancyTitle": summary.vacancy_title,
            "candidatesEvaluated": summary.candidates_evaluated,
            "resultsStored": summary.results_stored,
        },
    )


def _notify_failed(summary: MatchRunSummary, error: Exception) -> None:
    if isinstance(error, TransientStoreContentionError):
        notify_activity(
            "matching",
            "Vacancy Matching Queued for Retry",
            f"Matching paused due to concurrent access and will be retried (Vacancy ID: {summary.vacancy_id})",
            "pending",
            {"vacancyId": summary.vacancy_id, "retryReason": "connection_closed", "willRetry": True},
        )
        return

    notify_activity(
        "error",
        "Vacancy Matching Failed",
        f"Failed to match candidates: {error}",
        "failed",
        {"error": str(error)},
    )


def run_vacancy_matching(vacancy_id: int, store: Datastore) -> MatchRunSummary:
    """Run the full matching pipeline for one vacancy.

    Steps:
    1. Load the vacancy and its requirements
    2. Build the search text and embed it
    3. Retrieve the top candidates through hybrid search
    4. Evaluate every candidate against the requirements (concurrently)
    5. Replace the vacancy's stored result set

    Args:
        vacancy_id: Vacancy to match.
        store: Open Datastore.

    Returns:
        MatchRunSummary of the completed run.

    Raises:
        VacancyNotFoundError: If the vacancy does not exist.
        ServiceUnavailableError: If embedding or search is unavailable.
        TransientStoreContentionError: If the store connection is lost.
    """
    summary = MatchRunSummary(vacancy_id=vacancy_id)
    logger.info(f"Starting matching run for vacancy {vacancy_id}")

    try:
        vacancy = _load_vacancy(store, vacancy_id)
        summary.vacancy_title = vacancy.title
        _transition(summary, MatchRunState.VACANCY_LOADED)
        logger.info(f"Vacancy '{vacancy.title}' has {len(vacancy.requirements)} requirements")

        search_query = build_search_query(vacancy)
        summary.search_query = search_query
        _transition(summary, MatchRunState.QUERY_BUILT)

        vector = embed_text(search_query)
        _transition(summary, MatchRunState.EMBEDDED)

        candidates = dedupe_candidates(
            search_candidates(vector, keyword_text=search_query, top_k=VACANCY_MATCH_TOP_K)
        )
        summary.candidates_retrieved = len(candidates)
        _transition(summary, MatchRunState.RETRIEVED)
        logger.info(f"Retrieved {len(candidates)} candidates for vacancy {vacancy_id}")

        _transition(summary, MatchRunState.EVALUATING)
        evaluations = evaluate_candidates(candidates, vacancy.requirements)
        results = [
            _build_result(vacancy_id, candidate, evaluations[candidate.profile.user_id])
            for candidate in candidates
        ]
        summary.candidates_evaluated = len(results)
        summary.fallback_count = sum(
            1 for e in evaluations.values() if e.status == EvaluationStatus.FALLBACK
        )
        if summary.fallback_count:
            logger.warning(f"{summary.fallback_count} candidates scored by similarity fallback")

        summary.results_stored = replace_match_results(store, vacancy_id, results)
        _transition(summary, MatchRunState.PERSISTED)
        logger.info(f"Stored {summary.results_stored}/{len(results)} results for vacancy {vacancy_id}")

    except Exception as e:
        summary.error = str(e)
        _transition(summary, MatchRunState.FAILED)
        logger.error(f"Matching run for vacancy {vacancy_id} failed: {e}")
        _notify_failed(summary, e)
        raise

    _notify_completed(summary)
    _transition(summary, MatchRunState.COMPLETED)
    return summary


def get_live_matches(
    vacancy_id: int,
    store: Datastore,
    top_k: int = VACANCY_MATCH_TOP_K,
) -> LiveMatchView:
    """Rank candidates for a vacancy without evaluating or storing anything.

    Raises:
        VacancyNotFoundError: If the vacancy does not exist.
        ServiceUnavailableError: If embedding or search is unavailable.
    """
    vacancy = _load_vacancy(store, vacancy_id)
    search_query = build_search_query(vacancy)
    vector = embed_text(search_query)
    candidates = search_candidates(vector, keyword_text=search_query, top_k=top_k)

    return LiveMatchView(vacancy=vacancy, candidates=candidates, search_query=search_query)


def request_match_refresh(vacancy_id: int, store: Datastore, queue: MatchingQueue) -> RefreshTicket:
    """Clear a vacancy's stored results and queue a new matching run.

    Results are cleared before the trigger is queued, so a worker that picks
    the message up at once cannot have its fresh results deleted. If queuing
    fails the vacancy stays without stored results until the next refresh.

    Raises:
        VacancyNotFoundError: If the vacancy does not exist.
        QueueConfigurationError: If the trigger cannot be queued.
    """
    vacancy = _load_vacancy(store, vacancy_id)

    deleted = delete_match_results(store, vacancy_id)
    logger.info(f"Cleared {deleted} stored results for vacancy {vacancy_id}")

    queue.enqueue(vacancy_id)
    logger.info(f"Queued re-evaluation for vacancy {vacancy_id}: {vacancy.title}")

    notify_activity(
        "matching",
        "Vacancy Match Refresh Requested",
        f'Re-evaluating candidates for vacancy "{vacancy.title}"',
        "processing",
        {"vacancyId": vacancy_id, "vacancyTitle": vacancy.title},
    )

    return RefreshTicket(vacancy_id=vacancy_id, estimated_completion_time=ESTIMATED_COMPLETION_TIME)
