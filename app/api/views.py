"""Response envelopes for cached views and HTTP mapping of service errors."""

from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel

from app.core.errors import (
    MutationError,
    NotFoundError,
    RemoteFetchError,
    ServiceError,
    ValidationError,
)
from app.services.coordinator import MutationResult, ViewResult


class ViewEnvelope(BaseModel):
    data: Any = None
    cached: bool
    cache_key: str
    cached_at: float | None = None
    expires_at: float | None = None


class MutationEnvelope(BaseModel):
    action: str
    outcome: Any = None
    view: ViewEnvelope | None = None
    view_error: dict | None = None


def http_error(error: ServiceError) -> HTTPException:
    """Map a service error onto the HTTP status the API reports for it."""
    if isinstance(error, ValidationError) or error.code == ValidationError.default_code:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, NotFoundError) or error.code == NotFoundError.default_code:
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (RemoteFetchError, MutationError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.to_dict())


def view_response(result: ViewResult) -> ViewEnvelope:
    if result.error is not None:
        raise http_error(result.error)
    return ViewEnvelope(
        data=result.data,
        cached=result.from_cache,
        cache_key=result.key,
        cached_at=result.cached_at,
        expires_at=result.expires_at,
    )


def mutation_response(result: MutationResult) -> MutationEnvelope:
    """Raise for a failed write; otherwise wrap the outcome and reloaded view.

    A reload that fails after a successful write is reported in
    ``view_error`` rather than as an HTTP error, since the write stands.
    """
    if result.error is not None:
        raise http_error(result.error)
    envelope = MutationEnvelope(action=result.action, outcome=result.outcome)
    if result.view is not None:
        if result.view.ok:
            envelope.view = view_response(result.view)
        else:
            envelope.view_error = result.view.error.to_dict()
    return envelope
