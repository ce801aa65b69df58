"""LLM-based evaluation of a candidate against a vacancy's requirements.

Skill names vary and some skills imply others, so matching is done by an
LLM reasoning over the profile rather than by exact string comparison. The
evaluator always produces a MatchEvaluation: a reasoning failure degrades to
a deterministic similarity-based fallback instead of raising.
"""

import logging
import re

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ConfigDict, Field

from talentmatch.config import PROJECTS_MAX_CHARS
from talentmatch.schemas.candidate import CandidateProfile, RetrievedCandidate
from talentmatch.schemas.match import EvaluationStatus, MatchEvaluation, RequirementMatch
from talentmatch.schemas.vacancy import Requirement, RequirementPriority
from talentmatch.utils import get_llm

logger = logging.getLogger(__name__)

FALLBACK_REASONING = "LLM evaluation failed, using vector similarity score as fallback"
FALLBACK_EVIDENCE = "Evaluation failed"
NOT_ASSESSED_EVIDENCE = "Not assessed by evaluator"
NO_REQUIREMENTS_REASONING = "Vacancy has no requirements, using vector similarity score"

EVALUATION_PROMPT = """\
You are a technical recruiter evaluating if a candidate matches a job vacancy's requirements.

IMPORTANT: Be smart about implied skills and technology relationships:
- Frontend frameworks (React, Vue, Angular, Svelte) imply JavaScript/TypeScript, HTML, CSS, DOM and browser APIs
- Backend frameworks (Express, NestJS, Django, Flask, Spring) imply their base language, REST APIs, HTTP and databases
- Mobile frameworks (React Native, Flutter) imply their base framework plus mobile-specific knowledge
- Full-stack roles imply both frontend and backend fundamentals
- Senior and lead roles imply the fundamentals of their specialty even if not explicitly listed
- Related technologies: Next.js and Gatsby imply React; Nuxt implies Vue; Angular Material implies Angular

When evaluating:
1. A candidate listing "React" knows JavaScript, HTML and CSS even if not listed
2. A candidate listing "Node.js + Express" knows REST APIs and backend fundamentals
3. A "Senior Frontend Developer" knows HTML/CSS/JS fundamentals
4. Use common sense about technology stacks and their prerequisites
5. Still require explicit evidence for specialized tools (Docker, Kubernetes, specific databases)

Be reasonable, not overly strict. Technology names vary (React.js = React = ReactJS).

CANDIDATE PROFILE:
- Name: {name}
- Years of Experience: {years_of_experience}
- Seniority: {seniority}
- Location: {location}
- Skills: {skills}
- Tools: {tools}
- Certifications: {certifications}
- Preferred Roles: {preferred_roles}
- Projects: {projects}

REQUIRED REQUIREMENTS (must match for a high score):
{required_requirements}

NICE-TO-HAVE REQUIREMENTS (bonus points):
{optional_requirements}

SCORING GUIDELINES:
- Missing required requirements should significantly lower the score
- Each matched required requirement is worth more than an optional one
- Consider priority levels (1=High weighs more than 3=Low)
- Overall score must be between 0 and 100
- Return one requirementBreakdown entry for EVERY requirement listed above, using the requirement text exactly as written

{format_instructions}\
"""


class LLMRequirementVerdict(BaseModel):
    """One breakdown entry as returned by the LLM."""

    model_config = ConfigDict(populate_by_name=True)

    requirement: str = Field(description="Requirement text exactly as listed")
    type: str = Field(default="", description="Requirement type")
    matched: bool = Field(description="Whether the candidate satisfies the requirement")
    evidence: str = Field(default="", description="Where/how it was found or why it is missing")
    is_required: bool | None = Field(default=None, alias="isRequired")
    priority: int | None = Field(default=None, description="1, 2 or 3")


class LLMEvaluationOutput(BaseModel):
    """Intermediate schema for LLM evaluation output.

    Normalised onto the canonical requirement list by
    ``normalize_evaluation`` before it is used anywhere else.
    """

    model_config = ConfigDict(populate_by_name=True)

    overall_score: float = Field(alias="overallScore", description="Overall match score 0-100")
    matched_requirements: list[str] = Field(default_factory=list, alias="matchedRequirements")
    missing_requirements: list[str] = Field(default_factory=list, alias="missingRequirements")
    reasoning: str = Field(default="No reasoning provided", description="Brief explanation of the score")
    requirement_breakdown: list[LLMRequirementVerdict] = Field(
        default_factory=list,
        alias="requirementBreakdown",
    )


def _requirement_key(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip().casefold()


def similarity_to_score(similarity: float) -> int:
    """Convert a 0-1 similarity into a 0-100 score."""
    return max(0, min(100, round(similarity * 100)))


def _format_requirements(requirements: list[Requirement], marker: str) -> str:
    if not requirements:
        return "- None"
    return "\n".join(
        f"- {marker} {r.value} ({r.requirement_type.value}, "
        f"Priority: {RequirementPriority(r.priority).label})"
        for r in requirements
    )


def _format_list(values: list[str]) -> str:
    return ", ".join(values) if values else "None listed"


def _format_years(years: float | None) -> str:
    if years is None:
        return "Not specified"
    return f"{years:g}"


def _truncate_projects(projects: str | None) -> str:
    if not projects:
        return "None listed"
    return projects[:PROJECTS_MAX_CHARS]


def build_prompt_inputs(candidate: CandidateProfile, requirements: list[Requirement]) -> dict[str, str]:
    """Build the template variables for the evaluation prompt."""
    required = [r for r in requirements if r.is_required]
    optional = [r for r in requirements if not r.is_required]

    return {
        "name": candidate.name,
        "years_of_experience": _format_years(candidate.years_of_experience),
        "seniority": candidate.seniority or "Not specified",
        "location": candidate.location or "Not specified",
        "skills": _format_list(candidate.skills),
        "tools": _format_list(candidate.tools),
        "certifications": _format_list(candidate.certifications),
        "preferred_roles": _format_list(candidate.preferred_roles),
        "projects": _truncate_projects(candidate.projects),
        "required_requirements": _format_requirements(required, "★"),
        "optional_requirements": _format_requirements(optional, "☆"),
    }


def _invoke_evaluation_chain(
    candidate: CandidateProfile,
    requirements: list[Requirement],
) -> LLMEvaluationOutput:
    """Run the prompt | llm | parser chain.

    Raises:
        ValueError: If the LLM returns nothing.
    """
    llm = get_llm()
    parser = PydanticOutputParser(pydantic_object=LLMEvaluationOutput)

    prompt = ChatPromptTemplate.from_template(EVALUATION_PROMPT)
    chain = prompt | llm | parser

    result = chain.invoke({
        **build_prompt_inputs(candidate, requirements),
        "format_instructions": parser.get_format_instructions(),
    })

    if result is None:
        raise ValueError("LLM failed to evaluate candidate")

    return result


def normalize_evaluation(
    output: LLMEvaluationOutput,
    requirements: list[Requirement],
) -> MatchEvaluation:
    """Map raw LLM output onto the canonical requirement list.

    The breakdown gets exactly one entry per requirement, in requirement
    order, with type/isRequired/priority taken from the requirement itself.
    Verdicts are looked up by case-insensitive requirement text; a
    requirement without a verdict counts as matched only if the LLM listed
    it under matchedRequirements. Verdicts for unknown requirements are
    dropped. Matched and missing lists are derived from the breakdown.
    """
    verdicts: dict[str, LLMRequirementVerdict] = {}
    for verdict in output.requirement_breakdown:
        verdicts.setdefault(_requirement_key(verdict.requirement), verdict)

    listed_as_matched = {_requirement_key(value) for value in output.matched_requirements}

    breakdown = []
    for requirement in requirements:
        key = _requirement_key(requirement.value)
        verdict = verdicts.get(key)
        if verdict is not None:
            matched, evidence = verdict.matched, verdict.evidence
        elif key in listed_as_matched:
            matched, evidence = True, "Listed as matched by evaluator"
        else:
            matched, evidence = False, NOT_ASSESSED_EVIDENCE

        breakdown.append(
            RequirementMatch(
                requirement=requirement.value,
                type=requirement.requirement_type.value,
                matched=matched,
                evidence=evidence,
                is_required=requirement.is_required,
                priority=int(requirement.priority),
            )
        )

    matched_values = list(dict.fromkeys(b.requirement for b in breakdown if b.matched))
    missing_values = list(dict.fromkeys(b.requirement for b in breakdown if not b.matched))

    return MatchEvaluation(
        status=EvaluationStatus.EVALUATED,
        overall_score=max(0, min(100, round(output.overall_score))),
        matched_requirements=matched_values,
        missing_requirements=missing_values,
        reasoning=output.reasoning,
        requirement_breakdown=breakdown,
    )


def build_fallback_evaluation(similarity: float, requirements: list[Requirement]) -> MatchEvaluation:
    """Deterministic evaluation used when the LLM call fails."""
    return MatchEvaluation(
        status=EvaluationStatus.FALLBACK,
        overall_score=similarity_to_score(similarity),
        matched_requirements=[],
        missing_requirements=list(dict.fromkeys(r.value for r in requirements)),
        reasoning=FALLBACK_REASONING,
        requirement_breakdown=[
            RequirementMatch(
                requirement=r.value,
                type=r.requirement_type.value,
                matched=False,
                evidence=FALLBACK_EVIDENCE,
                is_required=r.is_required,
                priority=int(r.priority),
            )
            for r in requirements
        ],
    )


def evaluate_candidate(
    candidate: RetrievedCandidate,
    requirements: list[Requirement],
) -> MatchEvaluation:
    """Evaluate one retrieved candidate against the vacancy's requirements.

    Never raises: any LLM or parsing failure is logged and replaced by the
    similarity fallback, so one bad candidate cannot abort a batch.

    Args:
        candidate: Retrieved candidate with its similarity score.
        requirements: Full requirement list (required and optional).

    Returns:
        MatchEvaluation tagged with how it was produced.
    """
    if not requirements:
        return MatchEvaluation(
            status=EvaluationStatus.NO_REQUIREMENTS,
            overall_score=similarity_to_score(candidate.score),
            reasoning=NO_REQUIREMENTS_REASONING,
        )

    try:
        output = _invoke_evaluation_chain(candidate.profile, requirements)
        return normalize_evaluation(output, requirements)
    except Exception as e:
        logger.error(f"Error evaluating candidate {candidate.profile.user_id}: {e}")
        return build_fallback_evaluation(candidate.score, requirements)
