"""Pool data API client.

Fetches the current pool list from the DEX data endpoint. The endpoint
returns ``{"pools": [...]}``; anything else fails the run.
"""

from __future__ import annotations

from typing import Any

import httpx

from ..observability.loguru_config import get_logger

__all__ = [
    "InvalidPoolResponseError",
    "PoolAPIClient",
    "PoolAPIError",
    "validate_pools_payload",
]

logger = get_logger("api")


class PoolAPIError(Exception):
    """Raised when the pool list cannot be fetched."""

    pass


class InvalidPoolResponseError(PoolAPIError):
    """Raised when the response lacks a ``pools`` array."""

    pass


def validate_pools_payload(payload: Any) -> list[dict[str, Any]]:
    """Extract the pool list from a decoded response body.

    Parameters
    ----------
    payload
        Decoded JSON body

    Returns
    -------
    list[dict]
        Pool objects; non-mapping elements are replaced by empty mappings so
        every field decodes as empty

    Raises
    ------
    InvalidPoolResponseError
        If the body is not an object with a list under ``pools``
    """
    if not isinstance(payload, dict):
        raise InvalidPoolResponseError("Invalid API response: expected a JSON object")

    pools = payload.get("pools")
    if not isinstance(pools, list):
        raise InvalidPoolResponseError("Invalid API response: 'pools' is missing or not an array")

    return [pool if isinstance(pool, dict) else {} for pool in pools]


class PoolAPIClient:
    """HTTP client for the pool list endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Parameters
        ----------
        url
            Endpoint returning the pool list
        timeout
            Request timeout in seconds
        transport
            Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def fetch_pools(self) -> list[dict[str, Any]]:
        """Fetch and validate the current pool list.

        Returns
        -------
        list[dict]
            Pool objects as returned by the API

        Raises
        ------
        PoolAPIError
            On network failure, timeout, HTTP error status or a non-JSON body
        InvalidPoolResponseError
            If the body has no ``pools`` array
        """
        logger.info(f"Fetching pool data from {self.url}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(self.url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            raise PoolAPIError(f"Pool API request timed out after {self.timeout}s") from e
        except (httpx.HTTPError, httpx.RequestError) as e:
            raise PoolAPIError(f"Pool API HTTP error: {e}") from e

        if response.status_code >= 400:
            raise PoolAPIError(f"Pool API error ({response.status_code}): {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as e:
            raise PoolAPIError("Failed to parse JSON") from e

        pools = validate_pools_payload(payload)
        logger.info(f"Found {len(pools)} pools")
        return pools
