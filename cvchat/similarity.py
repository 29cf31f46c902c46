"""Vector similarity scoring."""

from collections.abc import Iterable, Sequence

import numpy as np

from .errors import InvalidInputError
from .models import KnowledgeEntry


def _as_vector(value: object, name: str) -> np.ndarray:
    if isinstance(value, str | bytes) or not isinstance(value, Sequence | np.ndarray):
        msg = f"{name} must be a numeric sequence, got {type(value).__name__}"
        raise InvalidInputError(msg)
    try:
        vector = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        msg = f"{name} must contain only numbers"
        raise InvalidInputError(msg) from exc
    if vector.ndim != 1:
        msg = f"{name} must be one-dimensional, got shape {vector.shape}"
        raise InvalidInputError(msg)
    return vector


def cosine_similarity(
    vector_a: Sequence[float] | np.ndarray, vector_b: Sequence[float] | np.ndarray
) -> float:
    """Cosine similarity between two equal-length numeric vectors.

    Args:
        vector_a: First vector.
        vector_b: Second vector.

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero magnitude.

    Raises:
        InvalidInputError: If an argument is not a numeric sequence or the
            lengths differ.
    """
    a = _as_vector(vector_a, "vector_a")
    b = _as_vector(vector_b, "vector_b")
    if a.shape != b.shape:
        msg = f"Vector lengths differ: {a.shape[0]} != {b.shape[0]}"
        raise InvalidInputError(msg)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def rank_by_similarity(
    query_vector: Sequence[float] | np.ndarray,
    entries: Iterable[KnowledgeEntry],
) -> list[tuple[KnowledgeEntry, float]]:
    """Score entries against a query vector, highest first.

    Entries without a vector score 0.0. Ties keep their input order.

    Returns:
        List of (entry, similarity) pairs sorted by similarity.
    """
    scored = [
        (entry, cosine_similarity(query_vector, entry.vector))
        if entry.vector is not None
        else (entry, 0.0)
        for entry in entries
    ]
    return sorted(scored, key=lambda pair: pair[1], reverse=True)
