"""ChromaDB client for the local candidate profile index (development only)."""

from typing import Any

from talentmatch.config import CHROMA_COLLECTION, CHROMA_PATH, DATA_DIR
from talentmatch.errors import ServiceUnavailableError

_chroma_client = None
_collection = None


def _get_collection():
    """Lazy load the ChromaDB collection (cosine space)."""
    import chromadb  # Import here to avoid loading in cloud mode

    global _chroma_client, _collection
    if _collection is None:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        _chroma_client = chromadb.PersistentClient(path=str(CHROMA_PATH))
        _collection = _chroma_client.get_or_create_collection(
            name=CHROMA_COLLECTION,
            metadata={"hnsw:space": "cosine"},
        )
    return _collection


def query_similar(vector: list[float], top_k: int = 10) -> list[dict[str, Any]]:
    """Query for similar vectors.

    Chroma returns cosine distances; they are converted to similarities.

    Returns:
        List of matches with id, score, and metadata, best first.

    Raises:
        ServiceUnavailableError: If the collection cannot be queried.
    """
    try:
        collection = _get_collection()
        if collection.count() == 0:
            return []
        results = collection.query(
            query_embeddings=[vector],
            n_results=min(top_k, collection.count()),
            include=["metadatas", "distances"],
        )
    except Exception as e:
        raise ServiceUnavailableError(f"ChromaDB query failed: {e}") from e

    ids = results["ids"][0]
    metadatas = results["metadatas"][0]
    distances = results["distances"][0]

    return [
        {"id": uid, "score": 1.0 - distance, "metadata": metadata or {}}
        for uid, metadata, distance in zip(ids, metadatas, distances)
    ]
