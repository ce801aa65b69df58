"""Pinecone client for the cloud candidate profile index.

The index is populated by the CV indexing pipeline; this module only
queries it. Each vector's metadata holds the candidate profile fields.
"""

from typing import Any

from pinecone import Pinecone

from talentmatch.config import PINECONE_API_KEY, PINECONE_INDEX
from talentmatch.errors import SearchConfigurationError, ServiceUnavailableError

_client: Pinecone | None = None
_index: Any | None = None


def check_pinecone_configured() -> None:
    """Raise SearchConfigurationError if no Pinecone API key is set."""
    if not PINECONE_API_KEY:
        raise SearchConfigurationError("PINECONE_API_KEY environment variable is not set")


def _get_client() -> Pinecone:
    """Lazy load Pinecone client."""
    global _client
    if _client is None:
        check_pinecone_configured()
        _client = Pinecone(api_key=PINECONE_API_KEY)
    return _client


def _get_index() -> Any:
    """Lazy load the Pinecone index. The index must already exist."""
    global _index
    if _index is None:
        client = _get_client()

        existing_indexes = [idx.name for idx in client.list_indexes()]
        if PINECONE_INDEX not in existing_indexes:
            raise SearchConfigurationError(f"Pinecone index '{PINECONE_INDEX}' does not exist")

        _index = client.Index(PINECONE_INDEX)
    return _index


def query_similar(
    vector: list[float],
    top_k: int = 10,
) -> list[dict[str, Any]]:
    """Query for similar vectors.

    Args:
        vector: Query embedding vector.
        top_k: Number of results to return.

    Returns:
        List of matches with id, score, and metadata, best first.

    Raises:
        ServiceUnavailableError: If the index cannot be queried.
    """
    try:
        index = _get_index()
        results = index.query(
            vector=vector,
            top_k=top_k,
            include_metadata=True,
        )
    except ServiceUnavailableError:
        raise
    except Exception as e:
        raise ServiceUnavailableError(f"Pinecone query failed: {e}") from e

    return [
        {
            "id": match.id,
            "score": match.score,
            "metadata": match.metadata or {},
        }
        for match in results.matches
    ]
