"""Tests for hybrid candidate retrieval."""

from unittest.mock import patch

import numpy as np
import pytest

from talentmatch.errors import SearchConfigurationError, ServiceUnavailableError
from talentmatch.matching.retriever import (
    check_search_configured,
    compute_keyword_score,
    fuse_scores,
    is_search_configured,
    search_candidates,
)
from talentmatch.schemas.candidate import CandidateProfile


def _match(user_id, score, **metadata):
    return {"id": str(user_id), "score": score, "metadata": {"name": f"User {user_id}", **metadata}}


class TestKeywordScore:
    def test_overlapping_text_scores_higher(self):
        profile = CandidateProfile(user_id=1, skills=["React", "TypeScript"])
        other = CandidateProfile(user_id=2, skills=["Cobol"])

        query = "Technology: React, TypeScript"
        assert compute_keyword_score(query, profile) > compute_keyword_score(query, other)

    def test_empty_profile_scores_zero(self):
        assert compute_keyword_score("React", CandidateProfile(user_id=1)) == 0.0

    def test_single_skill_profile_covers_part_of_query(self):
        sparse = CandidateProfile(user_id=1, skills=["React"])
        rich = CandidateProfile(user_id=2, skills=["React", "TypeScript", "AWS", "Docker", "Kubernetes"])

        query = "Technology: React, TypeScript, AWS"
        assert compute_keyword_score(query, sparse) == pytest.approx(0.25)
        assert compute_keyword_score(query, rich) == pytest.approx(0.75)

    def test_punctuation_ignored(self):
        profile = CandidateProfile(user_id=1, skills=["node.js"])
        assert compute_keyword_score("Node.js", profile) == pytest.approx(1.0)


class TestFuseScores:
    def test_weighted_and_clipped(self):
        fused = fuse_scores(np.array([1.2, 0.5]), np.array([1.0, 0.0]), alpha=0.5)
        assert fused[0] == pytest.approx(1.0)
        assert fused[1] == pytest.approx(0.25)


class TestSearchCandidates:
    def test_dense_only_keeps_provider_order(self):
        matches = [_match(1, 0.9), _match(2, 0.7), _match(3, 0.4)]

        with patch("talentmatch.matching.retriever._query_index", return_value=matches) as mock_query:
            results = search_candidates([0.1] * 384, top_k=2)

        mock_query.assert_called_once_with([0.1] * 384, 2)
        assert [r.profile.user_id for r in results] == [1, 2]
        assert results[0].score == pytest.approx(0.9)

    def test_keyword_text_widens_pool_and_reranks(self):
        matches = [
            _match(1, 0.80, skills=["Cobol"]),
            _match(2, 0.79, skills=["React", "TypeScript"]),
        ]

        with patch("talentmatch.matching.retriever._query_index", return_value=matches) as mock_query:
            results = search_candidates([0.1] * 384, keyword_text="React TypeScript", top_k=2)

        assert mock_query.call_args[0][1] == 4
        assert results[0].profile.user_id == 2

    def test_fuller_match_outranks_single_skill_profile(self):
        matches = [
            _match(1, 0.76, skills=["React"]),
            _match(2, 0.80, skills=["React", "TypeScript", "AWS", "Docker", "Kubernetes"]),
        ]

        with patch("talentmatch.matching.retriever._query_index", return_value=matches):
            results = search_candidates([0.1] * 384, keyword_text="Technology: React, TypeScript, AWS", top_k=2)

        assert [r.profile.user_id for r in results] == [2, 1]
        assert results[0].score == pytest.approx(0.8 * 0.80 + 0.2 * 0.75)

    def test_empty_index(self):
        with patch("talentmatch.matching.retriever._query_index", return_value=[]):
            assert search_candidates([0.1] * 384, keyword_text="React") == []

    def test_skips_invalid_documents(self):
        matches = [{"id": "not-a-number", "score": 0.9, "metadata": {}}, _match(2, 0.5)]

        with patch("talentmatch.matching.retriever._query_index", return_value=matches):
            results = search_candidates([0.1] * 384)

        assert [r.profile.user_id for r in results] == [2]

    def test_comma_separated_metadata_lists(self):
        matches = [_match(5, 0.6, skills="React, Node.js", tools=None)]

        with patch("talentmatch.matching.retriever._query_index", return_value=matches):
            results = search_candidates([0.1] * 384)

        assert results[0].profile.skills == ["React", "Node.js"]
        assert results[0].profile.tools == []

    def test_index_failure_propagates(self):
        with patch(
            "talentmatch.matching.retriever._query_index",
            side_effect=ServiceUnavailableError("down"),
        ):
            with pytest.raises(ServiceUnavailableError):
                search_candidates([0.1] * 384)


class TestSearchConfiguration:
    def test_pinecone_without_key(self):
        with patch("talentmatch.matching.retriever.VECTOR_BACKEND", "pinecone"), patch(
            "talentmatch.embeddings.pinecone_client.PINECONE_API_KEY", None
        ):
            with pytest.raises(SearchConfigurationError):
                check_search_configured()
            assert is_search_configured() is False

    def test_chroma_needs_no_credentials(self):
        with patch("talentmatch.matching.retriever.VECTOR_BACKEND", "chroma"):
            assert is_search_configured() is True

    def test_unknown_backend(self):
        with patch("talentmatch.matching.retriever.VECTOR_BACKEND", "elastic"):
            assert is_search_configured() is False
