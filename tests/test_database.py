"""Tests for SQLite database operations."""

import json
from datetime import date
from unittest.mock import patch

import pytest

from talentmatch.db.connection import is_transient_store_error
from talentmatch.db.match_results import (
    count_match_results,
    delete_match_results,
    get_match_results,
    insert_match_result,
    replace_match_results,
)
from talentmatch.db.vacancies import (
    get_requirements,
    get_vacancy,
    get_vacancy_title,
    insert_vacancy,
    load_vacancies_from_file,
)
from talentmatch.errors import PersistenceRowError, TransientStoreContentionError
from talentmatch.schemas.match import MatchResult, RequirementMatch
from talentmatch.schemas.vacancy import RequirementPriority, RequirementType
from tests.test_utils import make_test_requirement


def _result(vacancy_id, user_id, overall_score=50.0, breakdown=None):
    return MatchResult(
        vacancy_id=vacancy_id,
        user_id=user_id,
        score=0.75,
        overall_score=overall_score,
        matched_requirements=["React"],
        missing_requirements=["AWS"],
        reasoning="Solid frontend profile",
        requirement_breakdown=breakdown or [],
        evaluation_version=1,
    )


class TestInitTables:
    def test_creates_database(self, temp_db):
        assert temp_db.sqlite_path.exists()


class TestVacancies:
    def test_insert_and_get(self, temp_db):
        vacancy_id = insert_vacancy(
            temp_db,
            title="Frontend Developer",
            description="Build UIs",
            client="Acme",
            is_remote=True,
            start_date=date(2025, 3, 1),
            requirements=[make_test_requirement("React")],
        )

        vacancy = get_vacancy(temp_db, vacancy_id)

        assert vacancy.id == vacancy_id
        assert vacancy.title == "Frontend Developer"
        assert vacancy.is_remote is True
        assert vacancy.start_date == date(2025, 3, 1)
        assert [r.value for r in vacancy.requirements] == ["React"]

    def test_missing_vacancy(self, temp_db):
        assert get_vacancy(temp_db, 999) is None
        assert get_vacancy_title(temp_db, 999) is None

    def test_untitled_vacancy_title(self, temp_db):
        vacancy_id = insert_vacancy(temp_db, title=None)
        assert get_vacancy_title(temp_db, vacancy_id) == ""

    def test_requirements_ordered_by_priority_then_required(self, temp_db):
        vacancy_id = insert_vacancy(
            temp_db,
            title="Dev",
            requirements=[
                make_test_requirement("AWS", is_required=False, priority=RequirementPriority.LOW),
                make_test_requirement("Docker", is_required=False, priority=RequirementPriority.HIGH),
                make_test_requirement("React", is_required=True, priority=RequirementPriority.HIGH),
                make_test_requirement("Dutch", RequirementType.LANGUAGE, True, RequirementPriority.MEDIUM),
            ],
        )

        requirements = get_requirements(temp_db, vacancy_id)

        assert [r.value for r in requirements] == ["React", "Docker", "Dutch", "AWS"]
        assert requirements[2].requirement_type == RequirementType.LANGUAGE

    def test_load_from_file(self, temp_db, tmp_path):
        file_path = tmp_path / "vacancies.json"
        file_path.write_text(json.dumps([
            {
                "title": "Backend Developer",
                "isRemote": False,
                "startDate": "2025-01-15",
                "requirements": [
                    {"type": "technology", "value": "Python", "isRequired": True, "priority": 1},
                    {"type": "Soft Skill", "value": "Communication", "isRequired": False, "priority": 3},
                ],
            },
            {"title": "Tester"},
        ]))

        vacancy_ids = load_vacancies_from_file(temp_db, file_path)

        assert len(vacancy_ids) == 2
        vacancy = get_vacancy(temp_db, vacancy_ids[0])
        assert vacancy.start_date == date(2025, 1, 15)
        assert vacancy.requirements[1].requirement_type == RequirementType.SOFT_SKILL
        assert get_vacancy(temp_db, vacancy_ids[1]).requirements == []


class TestMatchResults:
    def test_insert_and_get(self, temp_db):
        breakdown = [
            RequirementMatch(
                requirement="React",
                type="Technology",
                matched=True,
                evidence="Skills list",
                is_required=True,
                priority=1,
            )
        ]
        insert_match_result(temp_db, _result(1, 10, breakdown=breakdown))

        results = get_match_results(temp_db, 1)

        assert len(results) == 1
        assert results[0].user_id == 10
        assert results[0].matched_requirements == ["React"]
        assert results[0].requirement_breakdown[0].is_required is True
        assert results[0].evaluation_version == 1
        assert results[0].last_evaluated_at is not None

    def test_breakdown_stored_with_camel_case_keys(self, temp_db):
        breakdown = [RequirementMatch(requirement="AWS", type="Technology", matched=False, is_required=False, priority=3)]
        insert_match_result(temp_db, _result(1, 10, breakdown=breakdown))

        with temp_db.connection() as db:
            cursor = db.cursor()
            cursor.execute("SELECT requirement_breakdown FROM match_results")
            stored = json.loads(cursor.fetchone()[0])

        assert stored[0]["isRequired"] is False

    def test_ordered_by_overall_score(self, temp_db):
        for user_id, score in [(1, 40.0), (2, 90.0), (3, 65.0)]:
            insert_match_result(temp_db, _result(1, user_id, overall_score=score))

        results = get_match_results(temp_db, 1)
        assert [r.user_id for r in results] == [2, 3, 1]
        assert [r.user_id for r in get_match_results(temp_db, 1, limit=2)] == [2, 3]

    def test_duplicate_row_raises_row_error(self, temp_db):
        insert_match_result(temp_db, _result(1, 10))
        with pytest.raises(PersistenceRowError):
            insert_match_result(temp_db, _result(1, 10))

    def test_replace_deletes_previous_set(self, temp_db):
        replace_match_results(temp_db, 1, [_result(1, 1), _result(1, 2)])
        insert_match_result(temp_db, _result(2, 1))

        stored = replace_match_results(temp_db, 1, [_result(1, 3)])

        assert stored == 1
        assert [r.user_id for r in get_match_results(temp_db, 1)] == [3]
        assert count_match_results(temp_db, 2) == 1

    def test_replace_skips_failing_rows(self, temp_db):
        stored = replace_match_results(temp_db, 1, [_result(1, 1), _result(1, 1), _result(1, 2)])

        assert stored == 2
        assert count_match_results(temp_db, 1) == 2

    def test_replace_aborts_on_contention(self, temp_db):
        with patch(
            "talentmatch.db.match_results.insert_match_result",
            side_effect=TransientStoreContentionError("pool exhausted"),
        ):
            with pytest.raises(TransientStoreContentionError):
                replace_match_results(temp_db, 1, [_result(1, 1)])

    def test_replace_with_empty_set(self, temp_db):
        insert_match_result(temp_db, _result(1, 1))
        assert replace_match_results(temp_db, 1, []) == 0
        assert count_match_results(temp_db, 1) == 0

    def test_delete_returns_count(self, temp_db):
        insert_match_result(temp_db, _result(1, 1))
        insert_match_result(temp_db, _result(1, 2))
        assert delete_match_results(temp_db, 1) == 2
        assert delete_match_results(temp_db, 1) == 0


class TestTransientErrors:
    def test_classification(self):
        import sqlite3

        from psycopg2.pool import PoolError

        assert is_transient_store_error(PoolError("exhausted"))
        assert is_transient_store_error(sqlite3.OperationalError("database is locked"))
        assert not is_transient_store_error(sqlite3.OperationalError("no such table: x"))
        assert not is_transient_store_error(ValueError("bad"))
