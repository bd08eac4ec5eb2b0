from __future__ import annotations

from dataclasses import dataclass


class ServiceError(Exception):
    """Raised by service functions; the app error handler turns it into a JSON response."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, *, payload: dict | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self) -> dict:
        return {"error": self.message, **self.payload}


class BadRequest(ServiceError):
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


def raise_for_errors(errors: list[ValidationError]) -> None:
    if errors:
        raise BadRequest(errors[0].message, payload={"errors": [{"field": e.field, "message": e.message} for e in errors]})
