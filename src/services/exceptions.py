"""Shared exceptions for service layer operations."""


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Carries the HTTP status the API layer renders it with and, optionally, the
    request field the error relates to. Routers never catch these; the exception
    handlers in api.main turn them into the response envelope.
    """

    status_code: int = 500

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised when input is well-formed but semantically invalid."""

    status_code = 400


class UnauthorizedError(ServiceError):
    """Raised when the caller is not authenticated or credentials are wrong."""

    status_code = 401


class ForbiddenError(ServiceError):
    """Raised when the caller may not perform the operation on the resource."""

    status_code = 403


class NotFoundError(ServiceError):
    """Raised when a resource does not exist or is not owned by the caller."""

    status_code = 404


class ConflictError(ServiceError):
    """Raised when an operation would violate a uniqueness invariant."""

    status_code = 409


class InternalError(ServiceError):
    """Raised when stored state violates an invariant the service relies on."""

    status_code = 500
