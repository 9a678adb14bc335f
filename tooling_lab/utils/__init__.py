"""Utility package for the tooling lab server."""

from .validation import (
    DEFAULT_TOP_K,
    MAX_TOP_K,
    MIN_TOP_K,
    ValidationError,
    clamp_top_k,
    validate_metadata_filter,
    validate_search_query,
    validate_texts,
)
from .http import (
    CUSTOM_CA_BUNDLE_PATH,
    build_auth_headers,
    create_http_client,
    get_ssl_verify,
)

__all__ = [
    # Validation utilities
    "DEFAULT_TOP_K",
    "MAX_TOP_K",
    "MIN_TOP_K",
    "ValidationError",
    "clamp_top_k",
    "validate_metadata_filter",
    "validate_search_query",
    "validate_texts",
    # HTTP utilities
    "CUSTOM_CA_BUNDLE_PATH",
    "build_auth_headers",
    "create_http_client",
    "get_ssl_verify",
]
