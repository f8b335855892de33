"""Service-level error taxonomy.

Services raise these; the fetch coordinator turns collaborator failures
into ``RemoteFetchError`` / ``MutationError`` values, and the route layer
maps them onto HTTP responses.
"""

from typing import Any


class ServiceError(Exception):
    """Base error carrying a human-readable message and an optional code."""

    default_code: str | None = None

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class RemoteFetchError(ServiceError):
    """The data collaborator failed to produce a view."""

    default_code = "fetch_failed"


class MutationError(ServiceError):
    """A write against the data service failed."""

    default_code = "mutation_failed"


class ValidationError(ServiceError):
    """Input rejected before it reached the data service."""

    default_code = "validation_failed"

    def __init__(self, errors: list[str], message: str = "Validation failed") -> None:
        super().__init__(message, details=errors)
        self.errors = errors


class NotFoundError(ServiceError):
    default_code = "not_found"
