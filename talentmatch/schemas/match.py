from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from talentmatch.schemas.candidate import RetrievedCandidate
from talentmatch.schemas.vacancy import Vacancy


class RequirementMatch(BaseModel):
    """Evaluator verdict for a single requirement."""

    model_config = ConfigDict(populate_by_name=True)

    requirement: str = Field(description="Requirement value")
    type: str = Field(description="Requirement type")
    matched: bool = Field(description="Whether the candidate satisfies the requirement")
    evidence: str = Field(default="", description="Why it matched or why it is missing")
    is_required: bool = Field(alias="isRequired", description="Whether the requirement is mandatory")
    priority: int = Field(ge=1, le=3, description="1=High, 2=Medium, 3=Low")


class EvaluationStatus(str, Enum):
    """How a MatchEvaluation was produced."""

    EVALUATED = "evaluated"
    FALLBACK = "fallback"
    NO_REQUIREMENTS = "no_requirements"


class MatchEvaluation(BaseModel):
    """Structured judgment of one candidate against one vacancy."""

    status: EvaluationStatus = Field(description="Which path produced this evaluation")
    overall_score: int = Field(ge=0, le=100, description="Overall match score (0-100)")
    matched_requirements: list[str] = Field(default_factory=list)
    missing_requirements: list[str] = Field(default_factory=list)
    reasoning: str = Field(default="", description="Short justification of the score")
    requirement_breakdown: list[RequirementMatch] = Field(default_factory=list)


class MatchResult(BaseModel):
    """One persisted row of the Result Store."""

    vacancy_id: int = Field(description="Vacancy (assignment) identifier")
    user_id: int = Field(description="Candidate identifier")
    score: float = Field(description="Raw similarity score from retrieval (0-1)")
    overall_score: float = Field(description="Evaluator score (0-100)")
    matched_requirements: list[str] = Field(default_factory=list)
    missing_requirements: list[str] = Field(default_factory=list)
    reasoning: str = Field(default="")
    requirement_breakdown: list[RequirementMatch] = Field(default_factory=list)
    evaluation_version: int = Field(description="Prompt/schema version that produced the row")
    last_evaluated_at: datetime | None = Field(default=None)


class MatchRunState(str, Enum):
    """States of a single vacancy matching run."""

    QUEUED = "queued"
    VACANCY_LOADED = "vacancy_loaded"
    QUERY_BUILT = "query_built"
    EMBEDDED = "embedded"
    RETRIEVED = "retrieved"
    EVALUATING = "evaluating"
    PERSISTED = "persisted"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchRunSummary(BaseModel):
    """Outcome of a vacancy matching run."""

    vacancy_id: int
    state: MatchRunState = MatchRunState.QUEUED
    state_history: list[MatchRunState] = Field(default_factory=lambda: [MatchRunState.QUEUED])
    vacancy_title: str | None = None
    search_query: str = ""
    candidates_retrieved: int = 0
    candidates_evaluated: int = 0
    fallback_count: int = 0
    results_stored: int = 0
    error: str | None = None


class LiveMatchView(BaseModel):
    """Ranked candidates returned by the synchronous match view."""

    vacancy: Vacancy
    candidates: list[RetrievedCandidate]
    search_query: str


class RefreshTicket(BaseModel):
    """Acknowledgement returned when a match refresh is queued."""

    vacancy_id: int
    estimated_completion_time: str
