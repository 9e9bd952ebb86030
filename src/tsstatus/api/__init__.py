"""API clients for the TeamSpeak ServerQuery interface."""

from tsstatus.api.query import (
    QueryClient,
    QueryConnectionError,
    QueryError,
    QueryTimeoutError,
)

__all__ = [
    "QueryClient",
    "QueryConnectionError",
    "QueryError",
    "QueryTimeoutError",
]
