"""Tests for the vacancy matching pipeline."""

from unittest.mock import MagicMock, patch

import pytest

from talentmatch.db.match_results import count_match_results, get_match_results, insert_match_result
from talentmatch.db.vacancies import insert_vacancy
from talentmatch.errors import (
    QueueConfigurationError,
    ServiceUnavailableError,
    TransientStoreContentionError,
    VacancyNotFoundError,
)
from talentmatch.matching.evaluator import FALLBACK_REASONING, LLMEvaluationOutput, LLMRequirementVerdict
from talentmatch.schemas.match import MatchResult, MatchRunState
from talentmatch.services.match_service import (
    dedupe_candidates,
    get_live_matches,
    request_match_refresh,
    run_vacancy_matching,
)
from tests.test_utils import make_test_candidate, make_test_requirement


@pytest.fixture
def vacancy_id(temp_db):
    return insert_vacancy(
        temp_db,
        title="Frontend Developer",
        description="Build UIs",
        requirements=[make_test_requirement("React"), make_test_requirement("AWS", is_required=False)],
    )


@pytest.fixture
def mock_pipeline():
    """Patch embedding, search and notifications of the match service."""
    with patch("talentmatch.services.match_service.embed_text", return_value=[0.1] * 384) as mock_embed, patch(
        "talentmatch.services.match_service.search_candidates", return_value=[]
    ) as mock_search, patch("talentmatch.services.match_service.notify_activity") as mock_notify:
        yield {"embed": mock_embed, "search": mock_search, "notify": mock_notify}


def _llm_output(score, react_matched=True):
    return LLMEvaluationOutput(
        overall_score=score,
        reasoning="Evaluated",
        requirement_breakdown=[
            LLMRequirementVerdict(requirement="React", matched=react_matched, evidence="skills"),
            LLMRequirementVerdict(requirement="AWS", matched=False, evidence="not found"),
        ],
    )


class TestRunVacancyMatching:
    def test_zero_candidates_completes_with_no_rows(self, temp_db, vacancy_id, mock_pipeline):
        insert_match_result(
            temp_db,
            MatchResult(vacancy_id=vacancy_id, user_id=99, score=0.5, overall_score=50, evaluation_version=1),
        )

        summary = run_vacancy_matching(vacancy_id, temp_db)

        assert summary.state == MatchRunState.COMPLETED
        assert summary.state_history == [
            MatchRunState.QUEUED,
            MatchRunState.VACANCY_LOADED,
            MatchRunState.QUERY_BUILT,
            MatchRunState.EMBEDDED,
            MatchRunState.RETRIEVED,
            MatchRunState.EVALUATING,
            MatchRunState.PERSISTED,
            MatchRunState.COMPLETED,
        ]
        assert count_match_results(temp_db, vacancy_id) == 0

    def test_one_failing_evaluation_uses_fallback(self, temp_db, vacancy_id, mock_pipeline):
        mock_pipeline["search"].return_value = [
            make_test_candidate(1, score=0.9, skills=["React"]),
            make_test_candidate(2, score=0.8, skills=["React"]),
            make_test_candidate(3, score=0.7, skills=["Vue"]),
        ]

        def fake_chain(profile, requirements):
            if profile.user_id == 2:
                raise RuntimeError("LLM timeout")
            return _llm_output(85 if profile.user_id == 1 else 20, react_matched=profile.user_id == 1)

        with patch("talentmatch.matching.evaluator._invoke_evaluation_chain", side_effect=fake_chain):
            summary = run_vacancy_matching(vacancy_id, temp_db)

        assert summary.candidates_evaluated == 3
        assert summary.results_stored == 3
        assert summary.fallback_count == 1

        results = {r.user_id: r for r in get_match_results(temp_db, vacancy_id)}
        assert len(results) == 3
        assert results[2].reasoning == FALLBACK_REASONING
        assert results[2].overall_score == 80
        assert results[1].overall_score == 85
        assert results[1].matched_requirements == ["React"]
        assert results[3].missing_requirements == ["React", "AWS"]
        assert all(len(r.requirement_breakdown) == 2 for r in results.values())
        assert all(r.evaluation_version == 1 for r in results.values())

    def test_search_uses_query_and_top_k(self, temp_db, vacancy_id, mock_pipeline):
        summary = run_vacancy_matching(vacancy_id, temp_db)

        mock_pipeline["embed"].assert_called_once_with(summary.search_query)
        kwargs = mock_pipeline["search"].call_args.kwargs
        assert kwargs["keyword_text"] == summary.search_query
        assert kwargs["top_k"] == 20
        assert summary.search_query.startswith("Job Title: Frontend Developer")

    def test_rerun_is_idempotent(self, temp_db, vacancy_id, mock_pipeline):
        mock_pipeline["search"].return_value = [
            make_test_candidate(1, score=0.9),
            make_test_candidate(2, score=0.6),
        ]

        with patch("talentmatch.matching.evaluator._invoke_evaluation_chain", return_value=_llm_output(70)):
            run_vacancy_matching(vacancy_id, temp_db)
            first = get_match_results(temp_db, vacancy_id)
            run_vacancy_matching(vacancy_id, temp_db)
            second = get_match_results(temp_db, vacancy_id)

        def strip(results):
            return [r.model_dump(exclude={"last_evaluated_at"}) for r in results]

        assert strip(first) == strip(second)

    def test_duplicate_candidates_collapsed(self, temp_db, vacancy_id, mock_pipeline):
        mock_pipeline["search"].return_value = [
            make_test_candidate(1, score=0.5),
            make_test_candidate(1, score=0.9),
        ]

        with patch("talentmatch.matching.evaluator._invoke_evaluation_chain", return_value=_llm_output(70)):
            summary = run_vacancy_matching(vacancy_id, temp_db)

        assert summary.results_stored == 1
        assert get_match_results(temp_db, vacancy_id)[0].score == pytest.approx(0.9)

    def test_completion_notification(self, temp_db, vacancy_id, mock_pipeline):
        run_vacancy_matching(vacancy_id, temp_db)

        args = mock_pipeline["notify"].call_args[0]
        assert args[0] == "matching"
        assert args[1] == "Vacancy Matching Completed"
        assert args[2] == 'Evaluated 0 candidates for vacancy "Frontend Developer"'
        assert args[3] == "completed"
        assert args[4]["vacancyId"] == vacancy_id
        assert args[4]["resultsStored"] == 0

    def test_missing_vacancy(self, temp_db, mock_pipeline):
        with pytest.raises(VacancyNotFoundError):
            run_vacancy_matching(12345, temp_db)

        mock_pipeline["embed"].assert_not_called()
        args = mock_pipeline["notify"].call_args[0]
        assert args[0] == "error"
        assert args[3] == "failed"

    def test_embedding_failure_aborts(self, temp_db, vacancy_id, mock_pipeline):
        insert_match_result(
            temp_db,
            MatchResult(vacancy_id=vacancy_id, user_id=5, score=0.5, overall_score=50, evaluation_version=1),
        )
        mock_pipeline["embed"].side_effect = ServiceUnavailableError("model unavailable")

        with pytest.raises(ServiceUnavailableError):
            run_vacancy_matching(vacancy_id, temp_db)

        mock_pipeline["search"].assert_not_called()
        assert count_match_results(temp_db, vacancy_id) == 1
        assert mock_pipeline["notify"].call_args[0][1] == "Vacancy Matching Failed"

    def test_store_contention_notifies_retry(self, temp_db, vacancy_id, mock_pipeline):
        with patch(
            "talentmatch.services.match_service.replace_match_results",
            side_effect=TransientStoreContentionError("connection already closed"),
        ):
            with pytest.raises(TransientStoreContentionError):
                run_vacancy_matching(vacancy_id, temp_db)

        args = mock_pipeline["notify"].call_args[0]
        assert args[1] == "Vacancy Matching Queued for Retry"
        assert args[3] == "pending"
        assert args[4]["willRetry"] is True


class TestDedupeCandidates:
    def test_keeps_highest_score_in_first_seen_order(self):
        candidates = [
            make_test_candidate(2, score=0.4),
            make_test_candidate(1, score=0.8),
            make_test_candidate(2, score=0.6),
        ]

        result = dedupe_candidates(candidates)

        assert [(c.profile.user_id, c.score) for c in result] == [(2, 0.6), (1, 0.8)]


class TestGetLiveMatches:
    def test_returns_ranked_candidates_without_storing(self, temp_db, vacancy_id, mock_pipeline):
        mock_pipeline["search"].return_value = [make_test_candidate(1, score=0.9)]

        view = get_live_matches(vacancy_id, temp_db, top_k=5)

        assert view.vacancy.id == vacancy_id
        assert [c.profile.user_id for c in view.candidates] == [1]
        assert mock_pipeline["search"].call_args.kwargs["top_k"] == 5
        assert count_match_results(temp_db, vacancy_id) == 0
        mock_pipeline["notify"].assert_not_called()

    def test_missing_vacancy(self, temp_db, mock_pipeline):
        with pytest.raises(VacancyNotFoundError):
            get_live_matches(404, temp_db)


class TestRequestMatchRefresh:
    def test_clears_results_and_enqueues(self, temp_db, vacancy_id, mock_pipeline):
        insert_match_result(
            temp_db,
            MatchResult(vacancy_id=vacancy_id, user_id=5, score=0.5, overall_score=50, evaluation_version=1),
        )
        queue = MagicMock()

        ticket = request_match_refresh(vacancy_id, temp_db, queue)

        queue.enqueue.assert_called_once_with(vacancy_id)
        assert ticket.vacancy_id == vacancy_id
        assert ticket.estimated_completion_time == "10-15 seconds"
        assert count_match_results(temp_db, vacancy_id) == 0
        args = mock_pipeline["notify"].call_args[0]
        assert args[1] == "Vacancy Match Refresh Requested"
        assert args[3] == "processing"

    def test_missing_vacancy_does_not_enqueue(self, temp_db, mock_pipeline):
        queue = MagicMock()

        with pytest.raises(VacancyNotFoundError):
            request_match_refresh(404, temp_db, queue)

        queue.enqueue.assert_not_called()

    def test_queue_failure_propagates_after_clearing(self, temp_db, vacancy_id, mock_pipeline):
        insert_match_result(
            temp_db,
            MatchResult(vacancy_id=vacancy_id, user_id=5, score=0.5, overall_score=50, evaluation_version=1),
        )
        queue = MagicMock()
        queue.enqueue.side_effect = QueueConfigurationError("redis down")

        with pytest.raises(QueueConfigurationError):
            request_match_refresh(vacancy_id, temp_db, queue)

        assert count_match_results(temp_db, vacancy_id) == 0
        mock_pipeline["notify"].assert_not_called()
