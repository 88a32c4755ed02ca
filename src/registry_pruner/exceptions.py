"""Exceptions raised by the registry pruner."""

from __future__ import annotations

__all__ = [
    "AuthProtocolError",
    "AuthServiceError",
    "ConfigurationError",
    "DecodeError",
    "NetworkError",
    "PrunerError",
    "RegistryError",
]


class PrunerError(Exception):
    """Base class for all registry pruner errors."""


class ConfigurationError(PrunerError):
    """The pruner configuration could not be loaded or is invalid."""


class RegistryError(PrunerError):
    """A request to the registry API failed.

    Parameters
    ----------
    message
        Human-readable description of the failure.
    method
        HTTP method of the failed request, if any.
    url
        URL of the failed request, if any.
    """

    def __init__(
        self, message: str, *, method: str | None = None, url: str | None = None
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url


class NetworkError(RegistryError):
    """Transport failure or non-success status from the registry."""

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        url: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message, method=method, url=url)
        self.status = status


class DecodeError(RegistryError):
    """The registry returned a body or header we could not interpret."""


class AuthProtocolError(RegistryError):
    """The authentication challenge was missing or unusable."""


class AuthServiceError(RegistryError):
    """The token service failed or did not return a token."""
