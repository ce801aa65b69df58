"""Search text construction for vacancy matching."""

from talentmatch.schemas.vacancy import Requirement, Vacancy


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def group_requirements_by_type(requirements: list[Requirement]) -> dict[str, list[str]]:
    """Group requirement values by type, keeping first-seen order of types and values."""
    groups: dict[str, list[str]] = {}
    for requirement in requirements:
        groups.setdefault(requirement.requirement_type.value, []).append(requirement.value)
    return groups


def build_search_query(vacancy: Vacancy, requirements: list[Requirement] | None = None) -> str:
    """Build the text used for embedding and keyword search.

    Empty fields are omitted entirely. The same inputs always produce the
    same text.

    Args:
        vacancy: Vacancy to describe.
        requirements: Requirements in display order. Defaults to the
            vacancy's own requirements.

    Returns:
        Newline-joined query text.
    """
    if requirements is None:
        requirements = vacancy.requirements

    parts = []
    if _present(vacancy.title):
        parts.append(f"Job Title: {vacancy.title}")
    if _present(vacancy.description):
        parts.append(f"Description: {vacancy.description}")
    if _present(vacancy.client):
        parts.append(f"Client: {vacancy.client}")

    for requirement_type, values in group_requirements_by_type(requirements).items():
        parts.append(f"{requirement_type}: {', '.join(values)}")

    return "\n".join(parts)
