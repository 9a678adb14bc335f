"""HTTP client factory shared by the backend gateways."""

import os
from functools import lru_cache
from typing import Dict, Optional, Union

import httpx

# Corporate proxies often re-sign TLS; drop a CA bundle here to trust them
CUSTOM_CA_BUNDLE_PATH = "/etc/ssl/certs/ca-custom.pem"


@lru_cache(maxsize=1)
def get_ssl_verify() -> Union[str, bool]:
    """Return the custom CA bundle path when present, else default verification."""
    if os.path.exists(CUSTOM_CA_BUNDLE_PATH):
        return CUSTOM_CA_BUNDLE_PATH
    return True


def build_auth_headers(api_key: Optional[str], user_agent: Optional[str] = None) -> Dict[str, str]:
    """Bearer auth plus an optional User-Agent."""
    headers: Dict[str, str] = {}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    if user_agent:
        headers["User-Agent"] = user_agent
    return headers


def create_http_client(
    timeout: float = 30.0,
    api_key: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> httpx.AsyncClient:
    """
    Create the long-lived AsyncClient a gateway keeps for its lifetime.

    Args:
        timeout: Per-request timeout in seconds
        api_key: Sent as a bearer token on every request when given
        user_agent: Optional User-Agent header

    Returns:
        Configured AsyncClient; the caller owns it and must ``aclose()`` it
    """
    return httpx.AsyncClient(
        verify=get_ssl_verify(),
        timeout=httpx.Timeout(timeout),
        headers=build_auth_headers(api_key, user_agent),
    )
