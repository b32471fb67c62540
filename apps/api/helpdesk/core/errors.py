"""Service-layer error taxonomy.

register_error_handlers maps these onto HTTP responses; the notify path catches them
and logs instead of failing the triggering request.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    """Base exception for service errors."""

    pass


class ValidationError(ServiceError):
    """Malformed input (empty content, unknown enum value)."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_detail(self) -> dict:
        return {"field": self.field, "message": self.message}


class NotFoundError(ServiceError):
    """Entity does not exist, or exists but is not visible to the requester."""

    pass


class ForbiddenError(ServiceError):
    """Authenticated but not allowed to act on this entity."""

    pass


class InfrastructureError(ServiceError):
    """Datastore or realtime layer unavailable."""

    pass


_STATUS_CODES: dict[type[ServiceError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    ForbiddenError: 403,
    InfrastructureError: 503,
}


def status_for(exc: ServiceError) -> int:
    """HTTP status for a service error (500 for unmapped subclasses)."""
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def register_error_handlers(app: FastAPI) -> None:
    """Translate service errors raised by route handlers into JSON responses."""

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        if isinstance(exc, ValidationError):
            detail = exc.to_detail()
        elif isinstance(exc, InfrastructureError):
            # Details are logged where the failure happened
            detail = "Service temporarily unavailable"
        else:
            detail = str(exc) or "Request failed"
        return JSONResponse(status_code=status_for(exc), content={"detail": detail})
