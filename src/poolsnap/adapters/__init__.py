"""Adapters for external data sources."""

from .pool_api import InvalidPoolResponseError, PoolAPIClient, PoolAPIError, validate_pools_payload

__all__ = [
    "InvalidPoolResponseError",
    "PoolAPIClient",
    "PoolAPIError",
    "validate_pools_payload",
]
