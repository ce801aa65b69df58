"""Embeddings module with ONNX-based fastembed and the candidate profile index clients."""

from talentmatch.embeddings.fastembed_client import embed_text

__all__ = [
    "embed_text",
]
