"""Result Store: persisted match results per vacancy.

The result set for a vacancy is always replaced wholesale: delete every row
for the vacancy, then insert the new rows one by one. There is no partial
update. A failing row is logged and skipped; a closed or exhausted
connection aborts the replace so the run can be redelivered.
"""

import json
import logging
from datetime import UTC, datetime

from talentmatch.db.connection import Datastore, is_transient_store_error
from talentmatch.errors import PersistenceRowError, TransientStoreContentionError
from talentmatch.schemas.match import MatchResult, RequirementMatch

logger = logging.getLogger(__name__)


def delete_match_results(store: Datastore, vacancy_id: int) -> int:
    """Delete all stored results for a vacancy.

    Returns:
        Number of rows deleted.
    """
    with store.connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.execute(f"DELETE FROM match_results WHERE assignment_id = {ph}", (vacancy_id,))
        deleted = cursor.rowcount
        db.commit()

    return max(deleted, 0)


def _row_params(result: MatchResult) -> tuple:
    breakdown = [entry.model_dump(by_alias=True) for entry in result.requirement_breakdown]
    return (
        result.vacancy_id,
        result.user_id,
        result.score,
        result.overall_score,
        json.dumps(result.matched_requirements),
        json.dumps(result.missing_requirements),
        result.reasoning,
        json.dumps(breakdown),
        result.evaluation_version,
    )


def _insert_row(db, result: MatchResult) -> None:
    cursor = db.cursor()
    ph = db.placeholder
    columns = """
        assignment_id, user_id, score, overall_score,
        matched_requirements, missing_requirements, reasoning,
        requirement_breakdown, evaluation_version, last_evaluated_at
    """
    if db.is_postgres:
        cursor.execute(
            f"""
            INSERT INTO match_results ({columns})
            VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, NOW())
            """,
            _row_params(result),
        )
    else:
        cursor.execute(
            f"""
            INSERT INTO match_results ({columns})
            VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})
            """,
            _row_params(result) + (datetime.now(UTC).isoformat(),),
        )


def insert_match_result(store: Datastore, result: MatchResult) -> None:
    """Insert a single result row.

    Raises:
        TransientStoreContentionError: On pool exhaustion or closed connections.
        PersistenceRowError: On any other insert failure.
    """
    try:
        with store.connection() as db:
            _insert_row(db, result)
            db.commit()
    except TransientStoreContentionError:
        raise
    except Exception as e:
        if is_transient_store_error(e):
            raise TransientStoreContentionError(str(e)) from e
        raise PersistenceRowError(result.vacancy_id, result.user_id, e) from e


def replace_match_results(store: Datastore, vacancy_id: int, results: list[MatchResult]) -> int:
    """Replace the whole result set of a vacancy.

    Deletes the existing rows, then inserts each new row in its own
    transaction. Not atomic: readers may briefly see an empty set.

    Args:
        store: Datastore handle.
        vacancy_id: Vacancy whose results are replaced.
        results: New rows; all must belong to ``vacancy_id``.

    Returns:
        Number of rows stored.

    Raises:
        TransientStoreContentionError: If the store connection is lost.
    """
    deleted = delete_match_results(store, vacancy_id)
    logger.info(f"Deleted {deleted} stale results for vacancy {vacancy_id}")

    stored = 0
    for result in results:
        try:
            insert_match_result(store, result)
            stored += 1
        except PersistenceRowError as e:
            logger.error(str(e))

    return stored


def _load_json_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return json.loads(value) if value else []
    return value


def get_match_results(store: Datastore, vacancy_id: int, limit: int | None = None) -> list[MatchResult]:
    """Retrieve stored results for a vacancy, best first.

    Args:
        store: Datastore handle.
        vacancy_id: Vacancy identifier.
        limit: Optional maximum number of rows.

    Returns:
        List of MatchResult objects ordered by overall score descending.
    """
    with store.connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        query = f"""
            SELECT * FROM match_results
            WHERE assignment_id = {ph}
            ORDER BY overall_score DESC, user_id ASC
        """
        params: tuple = (vacancy_id,)
        if limit is not None:
            query += f" LIMIT {ph}"
            params = (vacancy_id, limit)
        cursor.execute(query, params)
        rows = cursor.fetchall()

    results = []
    for row in rows:
        breakdown = [RequirementMatch(**entry) for entry in _load_json_list(row["requirement_breakdown"])]
        results.append(
            MatchResult(
                vacancy_id=row["assignment_id"],
                user_id=row["user_id"],
                score=float(row["score"] or 0.0),
                overall_score=float(row["overall_score"] or 0.0),
                matched_requirements=_load_json_list(row["matched_requirements"]),
                missing_requirements=_load_json_list(row["missing_requirements"]),
                reasoning=row["reasoning"] or "",
                requirement_breakdown=breakdown,
                evaluation_version=row["evaluation_version"],
                last_evaluated_at=row["last_evaluated_at"],
            )
        )

    return results


def count_match_results(store: Datastore, vacancy_id: int) -> int:
    """Return the number of stored results for a vacancy."""
    with store.connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.execute(f"SELECT COUNT(*) FROM match_results WHERE assignment_id = {ph}", (vacancy_id,))
        row = cursor.fetchone()

    return int(row[0])
