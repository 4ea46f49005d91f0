"""
Exception taxonomy for the Pokedex core.

Upstream failures are split into "not found" (a named lookup that does not
exist, surfaced to users as an empty result) and "unavailable" (everything
else, propagated). Store connectivity problems never leave the store gateway.
"""

from typing import Optional


class PokedexError(Exception):
    """Base class for all Pokedex errors."""

    pass


class UpstreamError(PokedexError):
    """
    Raised when a PokeAPI request fails.

    Attributes:
        status: HTTP status code, or None for network level failures.
        endpoint: The endpoint that was requested.
    """

    def __init__(
        self, message: str, status: Optional[int] = None, endpoint: str = ""
    ) -> None:
        super().__init__(message)
        self.status = status
        self.endpoint = endpoint


class NotFoundError(UpstreamError):
    """Raised when PokeAPI answers 404 for a named resource."""

    def __init__(self, endpoint: str) -> None:
        super().__init__(
            f"PokeAPI resource not found: {endpoint}", status=404, endpoint=endpoint
        )


class UpstreamUnavailableError(UpstreamError):
    """Raised for 5xx answers, network errors, timeouts and malformed payloads."""

    pass


class StoreConnectivityError(PokedexError):
    """Raised when the durable store cannot be reached."""

    pass
