"""Vacancy and requirement database operations.

Vacancies are owned by the vacancy-management side of the application; the
matching engine only reads them. ``insert_vacancy`` exists for imports and
local development.
"""

import json
import logging
from datetime import date
from pathlib import Path

from talentmatch.db.connection import Datastore
from talentmatch.schemas.vacancy import Requirement, Vacancy, VacancyDraft

logger = logging.getLogger(__name__)


def get_requirements(store: Datastore, vacancy_id: int) -> list[Requirement]:
    """Load requirements for a vacancy.

    Ordered by priority ascending, required first. The order only affects
    the informational query text, not scoring.

    Args:
        store: Datastore handle.
        vacancy_id: Vacancy identifier.

    Returns:
        List of Requirement objects (possibly empty).
    """
    with store.connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        cursor.execute(
            f"""
            SELECT requirement_type, requirement_value, is_required, priority
            FROM vacancy_requirements
            WHERE vacancy_id = {ph}
            ORDER BY priority ASC, is_required DESC, id ASC
            """,
            (vacancy_id,),
        )
        rows = cursor.fetchall()

    return [
        Requirement(
            requirement_type=row["requirement_type"],
            value=row["requirement_value"],
            is_required=bool(row["is_required"]),
            priority=row["priority"],
        )
        for row in rows
    ]


def get_vacancy(store: Datastore, vacancy_id: int) -> Vacancy | None:
    """Load a vacancy together with its requirements.

    Args:
        store: Datastore handle.
        vacancy_id: Vacancy identifier.

    Returns:
        Vacancy if found, None otherwise.
    """
    with store.connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        cursor.execute(
            f"""
            SELECT id, title, description, client, location, duration,
                   is_remote, start_date, budget
            FROM vacancies
            WHERE id = {ph}
            """,
            (vacancy_id,),
        )
        row = cursor.fetchone()

    if row is None:
        return None

    return Vacancy(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        client=row["client"],
        location=row["location"],
        duration=row["duration"],
        is_remote=None if row["is_remote"] is None else bool(row["is_remote"]),
        start_date=row["start_date"],
        budget=row["budget"],
        requirements=get_requirements(store, vacancy_id),
    )


def get_vacancy_title(store: Datastore, vacancy_id: int) -> str | None:
    """Return the vacancy title, or None if the vacancy does not exist.

    An existing vacancy without a title yields an empty string.
    """
    with store.connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        cursor.execute(f"SELECT title FROM vacancies WHERE id = {ph}", (vacancy_id,))
        row = cursor.fetchone()

    if row is None:
        return None
    return row["title"] or ""


def insert_vacancy(
    store: Datastore,
    title: str | None,
    description: str | None = None,
    client: str | None = None,
    location: str | None = None,
    duration: str | None = None,
    is_remote: bool | None = None,
    start_date: date | None = None,
    budget: str | None = None,
    requirements: list[Requirement] | None = None,
) -> int:
    """Insert a vacancy and its requirements.

    Returns:
        The new vacancy ID.
    """
    with store.connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        params = (
            title,
            description,
            client,
            location,
            duration,
            is_remote,
            start_date.isoformat() if start_date and not db.is_postgres else start_date,
            budget,
        )
        insert_sql = f"""
            INSERT INTO vacancies (
                title, description, client, location, duration,
                is_remote, start_date, budget
            ) VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})
        """

        if db.is_postgres:
            cursor.execute(insert_sql + " RETURNING id", params)
            vacancy_id = cursor.fetchone()[0]
        else:
            cursor.execute(insert_sql, params)
            vacancy_id = cursor.lastrowid

        for requirement in requirements or []:
            cursor.execute(
                f"""
                INSERT INTO vacancy_requirements (
                    vacancy_id, requirement_type, requirement_value, is_required, priority
                ) VALUES ({ph}, {ph}, {ph}, {ph}, {ph})
                """,
                (
                    vacancy_id,
                    requirement.requirement_type.value,
                    requirement.value,
                    requirement.is_required,
                    int(requirement.priority),
                ),
            )

        db.commit()

    return vacancy_id


def load_vacancies_from_file(store: Datastore, file_path: Path) -> list[int]:
    """Load vacancies from a JSON file and insert them with their requirements.

    The file holds a list of vacancy objects with camelCase keys, e.g.
    ``{"title": "...", "isRemote": true, "requirements": [{"type": "Technology",
    "value": "React", "isRequired": true, "priority": 1}]}``.

    Args:
        store: Datastore handle.
        file_path: Path to the JSON file.

    Returns:
        IDs of the inserted vacancies, in file order.
    """
    with open(file_path) as f:
        vacancies_data = json.load(f)

    drafts = [VacancyDraft(**v) for v in vacancies_data]
    vacancy_ids = [
        insert_vacancy(
            store,
            title=draft.title,
            description=draft.description,
            client=draft.client,
            location=draft.location,
            duration=draft.duration,
            is_remote=draft.is_remote,
            start_date=draft.start_date,
            budget=draft.budget,
            requirements=draft.requirements,
        )
        for draft in drafts
    ]

    logger.info(f"Loaded {len(vacancy_ids)} vacancies from {file_path}")
    return vacancy_ids
