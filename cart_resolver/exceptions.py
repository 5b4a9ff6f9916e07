"""Exceptions raised by the resolution engine.

Only ResolverConfigurationError is meant to escape to callers; the rest are
raised by collaborators and contained per item by the resolution service.
"""


class ResolverError(Exception):
    """Base class for resolver errors."""


class ResolverConfigurationError(ResolverError):
    """The service was built without a usable collaborator."""


class CatalogSearchError(ResolverError):
    """The catalog search call failed (transport error or bad status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TieBreakerError(ResolverError):
    """The tie-breaker could not produce a decision."""


class TieBreakerUnavailable(TieBreakerError):
    """No tie-breaker backend is configured."""
