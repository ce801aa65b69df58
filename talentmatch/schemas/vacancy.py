from datetime import date
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


class RequirementType(str, Enum):
    """Closed set of requirement categories."""

    TECHNOLOGY = "Technology"
    ROLE = "Role"
    EXPERIENCE = "Experience"
    LANGUAGE = "Language"
    CERTIFICATION = "Certification"
    SOFT_SKILL = "Soft Skill"

    @classmethod
    def _missing_(cls, value):
        """Allow case-insensitive lookup for values stored by hand or by an LLM."""
        if isinstance(value, str):
            value_lower = value.strip().lower().replace("_", " ")
            for member in cls:
                if member.value.lower() == value_lower:
                    return member
        return None


class RequirementPriority(IntEnum):
    """Requirement priority. Lower values weigh more."""

    HIGH = 1
    MEDIUM = 2
    LOW = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


class Requirement(BaseModel):
    """A single typed, prioritized criterion attached to a vacancy."""

    model_config = ConfigDict(populate_by_name=True)

    requirement_type: RequirementType = Field(alias="type", description="Requirement category")
    value: str = Field(description="Free-text requirement value, e.g. 'React' or '5+ years'")
    is_required: bool = Field(
        default=True,
        alias="isRequired",
        description="Whether the requirement is mandatory",
    )
    priority: RequirementPriority = Field(
        default=RequirementPriority.MEDIUM,
        description="1=High, 2=Medium, 3=Low",
    )


class Vacancy(BaseModel):
    """A job opening that candidates are matched against."""

    id: int = Field(description="Vacancy identifier")
    title: str | None = Field(default=None, description="Job title")
    description: str | None = Field(default=None, description="Free-text job description")
    client: str | None = Field(default=None, description="Client or organization name")
    location: str | None = Field(default=None, description="Work location")
    duration: str | None = Field(default=None, description="Assignment duration")
    is_remote: bool | None = Field(default=None, description="Whether remote work is possible")
    start_date: date | None = Field(default=None, description="Planned start date")
    budget: str | None = Field(default=None, description="Budget or rate")
    requirements: list[Requirement] = Field(
        default_factory=list,
        description="Requirements ordered by priority, required first",
    )


class VacancyDraft(BaseModel):
    """Vacancy as read from an import file, before it has an ID."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    description: str | None = None
    client: str | None = None
    location: str | None = None
    duration: str | None = None
    is_remote: bool | None = Field(default=None, alias="isRemote")
    start_date: date | None = Field(default=None, alias="startDate")
    budget: str | None = None
    requirements: list[Requirement] = Field(default_factory=list)
