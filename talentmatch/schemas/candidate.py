from pydantic import BaseModel, ConfigDict, Field, field_validator


class CandidateProfile(BaseModel):
    """Read-only candidate document from the profile search index.

    The index stores camelCase field names; both spellings are accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId", description="Candidate (user) identifier")
    name: str = Field(default="Unknown", description="Candidate name")
    email: str | None = Field(default=None, description="Contact email")
    seniority: str | None = Field(default=None, description="Seniority level, e.g. 'Senior'")
    years_of_experience: float | None = Field(
        default=None,
        alias="yearsOfExperience",
        description="Total years of professional experience",
    )
    location: str | None = Field(default=None, description="Candidate location")
    summary: str | None = Field(default=None, description="Free-text profile summary")
    skills: list[str] = Field(default_factory=list, description="Skills")
    tools: list[str] = Field(default_factory=list, description="Tools and frameworks")
    certifications: list[str] = Field(default_factory=list, description="Certifications")
    preferred_roles: list[str] = Field(
        default_factory=list,
        alias="preferredRoles",
        description="Roles the candidate prefers",
    )
    languages_spoken: list[str] = Field(
        default_factory=list,
        alias="languagesSpoken",
        description="Spoken languages",
    )
    projects: str | None = Field(default=None, description="Project narrative text")

    @field_validator(
        "skills", "tools", "certifications", "preferred_roles", "languages_spoken",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    def searchable_text(self) -> str:
        """Text used for keyword relevance in hybrid search."""
        parts = [
            " ".join(self.skills),
            " ".join(self.tools),
            " ".join(self.certifications),
            " ".join(self.preferred_roles),
            self.seniority or "",
            self.summary or "",
        ]
        return " ".join(part for part in parts if part)


class RetrievedCandidate(BaseModel):
    """A candidate profile with its relevance score for one query."""

    profile: CandidateProfile = Field(description="The retrieved candidate profile")
    score: float = Field(ge=0.0, le=1.0, description="Fused relevance score (0-1)")
