"""
Error taxonomy for the tooling lab server.

Input validation errors live in ``tooling_lab.utils.validation`` next to the
validators that raise them.
"""
from typing import Optional


class ToolingLabError(Exception):
    """Base exception for all tooling lab errors."""
    pass


class ConfigurationError(ToolingLabError):
    """
    Required configuration is missing or invalid.

    Raised at startup only; the process exits with a non-zero status.
    """
    pass


class BackendError(ToolingLabError):
    """
    Failure surfaced by the embedding or vector-store backend.

    Raised when:
    - The backend is unreachable or the request times out
    - The backend returns an error response (auth, malformed request)
    - The backend returns a response that cannot be interpreted
    - The vector store rejects a write or a query
    """

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.backend = backend
        self.status_code = status_code
