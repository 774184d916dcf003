"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
Domain services raise these directly; the HTTP layer only maps them.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger("parcelmatch.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised when an input field is missing or malformed (bad coordinates, unknown status)."""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field}
        )
        self.field = field


class InvalidTransitionError(AppException):
    """Raised when a requested status change is not allowed from the current status."""

    def __init__(self, entity: str, current: str, requested: str, allowed: Iterable[str]):
        allowed = sorted(allowed)
        super().__init__(
            message=f"Invalid {entity} status transition from {current} to {requested}",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={
                "entity": entity,
                "current": current,
                "requested": requested,
                "allowed": allowed
            }
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed


class ConflictError(AppException):
    """
    Raised for benign race outcomes (duplicate match, state already changed).

    Surfaced to the caller as "no action taken", never as a fault.
    """

    def __init__(self, message: str, error_code: str = "ERR_CONFLICT_001", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
            details={"action_taken": False, **(details or {})}
        )


class ParcelAlreadyMatchedError(ConflictError):
    """Raised when a match is accepted for a parcel that is no longer pending."""

    def __init__(self, parcel_id: Any, current_status: str):
        super().__init__(
            message=f"Parcel {parcel_id} is no longer available (status: {current_status})",
            error_code="ERR_CONFLICT_002",
            details={"parcel_id": parcel_id, "current": current_status}
        )


class DependencyUnavailableError(AppException):
    """Raised when the store or the fee service cannot be reached."""

    def __init__(self, dependency: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"{dependency} is unavailable",
            error_code="ERR_DEPENDENCY_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"dependency": dependency}
        )


class RateLimitExceededError(AppException):
    """Raised when a user creates too many parcels or trips within the window."""

    def __init__(self, entity_kind: str, count: int, max_count: int, window_minutes: int):
        super().__init__(
            message=f"Too many {entity_kind} created in the last {window_minutes} minutes",
            error_code="ERR_RATE_LIMIT_001",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"count": count, "max": max_count, "window_minutes": window_minutes}
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if isinstance(exc, ConflictError):
        logger.info("No action taken: %s", exc.message, extra={"path": request.url.path})
    elif exc.status_code >= 500:
        logger.error("Request failed: %s", exc.message, extra={"path": request.url.path})

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
