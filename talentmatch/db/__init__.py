"""Database access: datastore handle, vacancies and the Result Store."""

from talentmatch.db.connection import Datastore, init_tables
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

__all__ = [
    "Datastore",
    "init_tables",
    "get_vacancy",
    "get_vacancy_title",
    "get_requirements",
    "insert_vacancy",
    "load_vacancies_from_file",
    "delete_match_results",
    "insert_match_result",
    "replace_match_results",
    "get_match_results",
    "count_match_results",
]
