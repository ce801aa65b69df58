"""Error kinds raised by the matching engine.

Fatal errors (vacancy not found) abort a run without retry. Service and
store contention errors abort a run and rely on queue redelivery. Row
failures are logged by the Result Store and never propagate.
"""


class MatchingError(Exception):
    """Base class for matching engine errors."""


class VacancyNotFoundError(MatchingError):
    """Raised when a vacancy ID does not exist."""

    def __init__(self, vacancy_id: int):
        super().__init__(f"Vacancy not found: {vacancy_id}")
        self.vacancy_id = vacancy_id


class ServiceUnavailableError(MatchingError):
    """Raised when the embedding, search or reasoning provider cannot be used."""


class SearchConfigurationError(ServiceUnavailableError):
    """Raised when the candidate search index is not configured."""


class TransientStoreContentionError(MatchingError):
    """Raised when the connection pool is exhausted or a connection was closed."""


class PersistenceRowError(MatchingError):
    """Raised when a single match result row cannot be written."""

    def __init__(self, vacancy_id: int, user_id: int, cause: Exception):
        super().__init__(f"Failed to store result for user {user_id} (vacancy {vacancy_id}): {cause}")
        self.vacancy_id = vacancy_id
        self.user_id = user_id


class QueueConfigurationError(MatchingError):
    """Raised when the matching queue is not configured or unreachable."""


class InvalidQueueMessageError(MatchingError):
    """Raised when a queue message cannot be decoded into a vacancy ID."""
