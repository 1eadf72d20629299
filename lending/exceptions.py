from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.views import exception_handler

__all__ = [
    "LendingError",
    "QuotaExceeded",
    "InvalidStateTransition",
    "GuarantorConflict",
    "NotFound",
    "ValidationError",
    "lending_exception_handler",
]


class LendingError(APIException):
    """Domain error rendered with a structured payload instead of a bare detail."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Lending operation failed."
    default_code = "lending_error"

    def __init__(self, detail=None, code=None, **extra):
        super().__init__(detail=detail, code=code)
        self.extra = extra

    def as_dict(self) -> dict:
        payload = {"detail": str(self.detail), "code": self.default_code}
        payload.update(self.extra)
        return payload


class QuotaExceeded(LendingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Plan quota exceeded."
    default_code = "quota_exceeded"

    def __init__(self, resource: str, used: int, limit: int, detail=None):
        detail = detail or f"Plan limit reached for {resource} ({used}/{limit})."
        super().__init__(detail=detail, resource=resource, used=used, limit=limit)
        self.resource = resource
        self.used = used
        self.limit = limit


class InvalidStateTransition(LendingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Transition not allowed from the current state."
    default_code = "invalid_state_transition"

    def __init__(self, detail=None, current_state=None):
        super().__init__(detail=detail, current_state=current_state or {})
        self.current_state = current_state or {}


class GuarantorConflict(LendingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Guarantor conflict."
    default_code = "guarantor_conflict"


def lending_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, LendingError):
        response.data = exc.as_dict()
    return response
