from fastapi import HTTPException, status


class HeatError(Exception):
    """Base exception for domain errors raised by the service layer"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class DomainValidationError(HeatError):
    """Input passed schema validation but breaks a domain rule"""
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(HeatError):
    """Credentials supplied with the request are wrong"""
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(HeatError):
    """Resource exists but belongs to someone else"""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(HeatError):
    """Entity not found"""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(HeatError):
    """Write conflicts with current state (duplicate key, finished story, ...)"""
    status_code = status.HTTP_409_CONFLICT


def to_http_exception(error: HeatError) -> HTTPException:
    """Translate a domain error into the HTTP error route handlers raise"""
    detail = error.message
    if error.details is not None:
        detail = {"error": error.message, "details": error.details}
    return HTTPException(status_code=error.status_code, detail=detail)
