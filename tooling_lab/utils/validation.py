"""Input validation utilities for tool arguments."""

from typing import Any, Dict, List, Optional, Sequence

DEFAULT_TOP_K = 5
MIN_TOP_K = 1
MAX_TOP_K = 20


class ValidationError(Exception):
    """Malformed tool input, rejected before any backend call."""
    pass


def validate_texts(texts: Sequence[str]) -> List[str]:
    """Validate a non-empty list of non-empty strings."""
    if not isinstance(texts, (list, tuple)):
        raise ValidationError("texts must be a list of strings")

    if not texts:
        raise ValidationError("texts cannot be empty")

    for i, text in enumerate(texts):
        if not isinstance(text, str):
            raise ValidationError(f"Text at index {i} must be a string")
        if not text:
            raise ValidationError(f"Text at index {i} cannot be empty")

    return list(texts)


def validate_search_query(query: str) -> str:
    """Validate search query format."""
    if not isinstance(query, str):
        raise ValidationError("Search query must be a string")

    if not query:
        raise ValidationError("Search query cannot be empty")

    return query


def validate_metadata_filter(where: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Validate the shape of a metadata filter; its content is left to the store."""
    if where is None:
        return None

    if not isinstance(where, dict):
        raise ValidationError("where must be an object")

    return where


def clamp_top_k(
    top_k: Optional[int],
    default: int = DEFAULT_TOP_K,
    maximum: int = MAX_TOP_K,
) -> int:
    """
    Resolve the effective result count for a search.

    Absent values fall back to ``default``; everything else is clamped into
    ``[1, maximum]`` instead of being rejected.
    """
    if top_k is None:
        top_k = default

    if isinstance(top_k, bool) or not isinstance(top_k, int):
        raise ValidationError("topK must be an integer")

    return max(MIN_TOP_K, min(top_k, maximum))
