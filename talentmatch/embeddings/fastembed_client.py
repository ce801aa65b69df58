"""FastEmbed client for ONNX-based text embeddings.

The query vector must have the same dimensionality as the candidate profile
index (``EMBEDDING_DIMENSION``).
"""

import logging

from fastembed import TextEmbedding

from talentmatch.config import EMBEDDING_DIMENSION, EMBEDDING_MODEL
from talentmatch.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

_model: TextEmbedding | None = None


def _get_model() -> TextEmbedding:
    """Lazy load fastembed model.

    The model is loaded once and cached for subsequent calls.
    fastembed automatically downloads and caches the ONNX model.
    """
    global _model
    if _model is None:
        _model = TextEmbedding(EMBEDDING_MODEL)
    return _model


def embed_text(text: str) -> list[float]:
    """Generate embedding for a single text string.

    Args:
        text: Text to embed.

    Returns:
        Embedding vector as list of floats.

    Raises:
        ServiceUnavailableError: If the model cannot be loaded or run, or
            returns a vector of the wrong dimensionality.
    """
    try:
        model = _get_model()
        embeddings = list(model.embed([text]))
    except Exception as e:
        logger.error(f"Embedding model {EMBEDDING_MODEL} failed: {e}")
        raise ServiceUnavailableError(f"Embedding service unavailable: {e}") from e

    vector = embeddings[0].tolist()
    if len(vector) != EMBEDDING_DIMENSION:
        raise ServiceUnavailableError(
            f"Embedding dimension mismatch: model returned {len(vector)}, "
            f"index expects {EMBEDDING_DIMENSION}"
        )
    return vector
