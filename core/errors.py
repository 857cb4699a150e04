"""
core/errors.py -- Error taxonomy shared by every layer.

Domain code raises these; the HTTP boundary (api/main.py exception handler,
or a route that owns its own response shape) turns them into a status code
and a user-safe message. Persistence failures are not wrapped here: any
sqlalchemy.exc.SQLAlchemyError that escapes a store is mapped to a generic
500 by the API layer and logged server-side.
"""


class AppError(Exception):
    """Base class. status_code is the HTTP status the boundary should use."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(AppError):
    status_code = 400


class UnauthenticatedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class ImmutableSecretError(BadRequestError):
    """Raised on any attempt to read a write-once secret after creation."""
