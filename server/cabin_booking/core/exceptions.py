"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.title = title
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": status_code,
        }

        if detail:
            self.problem_details["detail"] = detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, when one is set."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "invalid_request"}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "code": "not_found",
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Booking engine exceptions

def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class BookingConflictError(ConflictError):
    """An inventory invariant would be violated by the requested booking."""

    def __init__(self, code: str, detail: str, retryable: bool = False, **resource: Any):
        super().__init__(
            detail=detail,
            conflicting_resource={key: _jsonable(value) for key, value in resource.items()} or None,
        )
        self.problem_details.update({
            "code": code,
            "retryable": retryable,
        })


class RoomUnavailableError(BookingConflictError):
    """A targeted room is already held or booked on one of the requested days."""

    def __init__(self, detail: str, **resource: Any):
        super().__init__("room_unavailable", detail, **resource)


class PropertyUnavailableError(BookingConflictError):
    """The property is taken by a booking of an incompatible mode."""

    def __init__(self, detail: str, **resource: Any):
        super().__init__("property_unavailable", detail, **resource)


class CapacityExceededError(BookingConflictError):
    """Not enough per-guest capacity left on one of the requested days."""

    def __init__(self, detail: str, **resource: Any):
        super().__init__("capacity_exceeded", detail, **resource)


class LockContentionError(BookingConflictError):
    """Another transaction holds an inventory row this booking needs."""

    def __init__(self, detail: str = "Inventory is being modified by another booking, try again", **resource: Any):
        super().__init__("lock_contention", detail, retryable=True, **resource)


class DuplicateReferenceError(BookingConflictError):
    """Another booking already uses the requested reference id."""

    def __init__(self, reference_id: str, retryable: bool = False):
        super().__init__(
            "duplicate_reference",
            f"Reference {reference_id} is already in use",
            retryable=retryable,
            reference_id=reference_id,
        )


class InvalidBookingStateError(ConflictError):
    """The booking is not in a state that allows the requested transition."""

    def __init__(self, booking_id: str, current_status: str, target_status: str):
        super().__init__(
            detail=f"Booking {booking_id} cannot move from {current_status} to {target_status}"
        )
        self.problem_details.update({
            "code": "invalid_status",
            "retryable": False,
            "booking_id": booking_id,
            "current_status": current_status,
            "target_status": target_status,
        })


class TransientDatabaseError(ProblemDetailsException):
    """The transaction was aborted for reasons unrelated to business rules."""

    def __init__(self, detail: str = "The transaction was aborted, retry the operation"):
        super().__init__(
            status_code=503,
            title="Transaction Aborted",
            detail=detail,
            type_uri="https://example.com/problems/transaction-aborted",
            extensions={"code": "transient_failure", "retryable": True},
            headers={"Retry-After": "1"},
        )


class RefundFailedError(ProblemDetailsException):
    """The payment collaborator rejected a refund."""

    def __init__(self, booking_id: str, payment_id: str, reason: str):
        super().__init__(
            status_code=502,
            title="Refund Failed",
            detail=f"Refund for booking {booking_id} failed: {reason}",
            type_uri="https://example.com/problems/refund-failed",
            extensions={
                "code": "refund_failed",
                "retryable": True,
                "booking_id": booking_id,
                "payment_id": payment_id,
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": str(uuid.uuid4()),
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
