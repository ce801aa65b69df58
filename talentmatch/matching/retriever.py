"""Hybrid candidate retrieval: dense vector search fused with keyword relevance."""

import logging
from typing import Any

import numpy as np
from pydantic import ValidationError
from rapidfuzz import fuzz, process, utils

from talentmatch.config import (
    HYBRID_ALPHA,
    HYBRID_CANDIDATE_POOL,
    VACANCY_MATCH_TOP_K,
    VECTOR_BACKEND,
)
from talentmatch.embeddings import chroma_client, pinecone_client
from talentmatch.errors import SearchConfigurationError
from talentmatch.schemas.candidate import CandidateProfile, RetrievedCandidate

logger = logging.getLogger(__name__)

# Minimum fuzz.ratio for a profile term to count as covering a query term
KEYWORD_MATCH_CUTOFF = 85


def check_search_configured() -> None:
    """Check that the configured profile index can be used.

    Raises:
        SearchConfigurationError: If the backend is unknown or lacks credentials.
    """
    if VECTOR_BACKEND == "pinecone":
        pinecone_client.check_pinecone_configured()
    elif VECTOR_BACKEND != "chroma":
        raise SearchConfigurationError(f"Unknown VECTOR_BACKEND: {VECTOR_BACKEND}")


def is_search_configured() -> bool:
    try:
        check_search_configured()
    except SearchConfigurationError:
        return False
    return True


def _query_index(vector: list[float], top_k: int) -> list[dict[str, Any]]:
    if VECTOR_BACKEND == "pinecone":
        return pinecone_client.query_similar(vector, top_k=top_k)
    return chroma_client.query_similar(vector, top_k=top_k)


def _to_profile(match: dict[str, Any]) -> CandidateProfile | None:
    data = {"userId": match["id"], **match["metadata"]}
    try:
        return CandidateProfile(**data)
    except ValidationError as e:
        logger.warning(f"Skipping index document {match['id']}: invalid profile ({e.error_count()} errors)")
        return None


def _terms(text: str) -> list[str]:
    return list(dict.fromkeys(utils.default_process(text).split()))


def compute_keyword_score(keyword_text: str, profile: CandidateProfile) -> float:
    """Share of the query terms covered by the profile (0-1).

    Each query term counts with its best fuzzy match among the profile terms,
    so a profile listing one of several requested skills only covers that part
    of the query, however short the profile is.
    """
    query_terms = _terms(keyword_text or "")
    profile_terms = _terms(profile.searchable_text())
    if not query_terms or not profile_terms:
        return 0.0

    covered = 0.0
    for term in query_terms:
        best = process.extractOne(term, profile_terms, scorer=fuzz.ratio, score_cutoff=KEYWORD_MATCH_CUTOFF)
        if best is not None:
            covered += best[1]
    return covered / (100.0 * len(query_terms))


def fuse_scores(
    dense_scores: np.ndarray,
    keyword_scores: np.ndarray,
    alpha: float = HYBRID_ALPHA,
) -> np.ndarray:
    """Weighted fusion of dense and keyword scores, clipped to 0-1."""
    fused = alpha * np.clip(dense_scores, 0.0, 1.0) + (1 - alpha) * keyword_scores
    return np.clip(fused, 0.0, 1.0)


def search_candidates(
    vector: list[float],
    keyword_text: str | None = None,
    top_k: int = VACANCY_MATCH_TOP_K,
) -> list[RetrievedCandidate]:
    """Retrieve candidate profiles ranked by relevance.

    Without keyword text the provider's dense ranking is returned as is.
    With keyword text a wider dense pool is fetched and re-ranked by the
    fused score. Ties keep the provider's order.

    Args:
        vector: Query embedding.
        keyword_text: Optional text for keyword relevance.
        top_k: Maximum number of candidates to return.

    Returns:
        Up to ``top_k`` RetrievedCandidate objects, best first. May be empty.

    Raises:
        ServiceUnavailableError: If the index cannot be queried.
    """
    pool_size = top_k * HYBRID_CANDIDATE_POOL if keyword_text else top_k
    matches = _query_index(vector, pool_size)

    profiles: list[CandidateProfile] = []
    dense: list[float] = []
    for match in matches:
        profile = _to_profile(match)
        if profile is not None:
            profiles.append(profile)
            dense.append(float(match["score"] or 0.0))

    if not profiles:
        logger.info("Candidate search returned no results")
        return []

    dense_scores = np.array(dense)
    if keyword_text:
        keyword_scores = np.array([compute_keyword_score(keyword_text, p) for p in profiles])
        scores = fuse_scores(dense_scores, keyword_scores)
    else:
        scores = np.clip(dense_scores, 0.0, 1.0)

    order = np.argsort(-scores, kind="stable")[:top_k]
    results = [RetrievedCandidate(profile=profiles[i], score=float(scores[i])) for i in order]

    logger.info(f"Candidate search returned {len(results)} of {len(matches)} neighbours")
    return results
