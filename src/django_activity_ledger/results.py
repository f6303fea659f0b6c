"""Uniform result shape returned by every gate and service.

Transport adapters only need ``ServiceResult.as_dict()`` and
``ServiceResult.http_status``; no exception is used as control flow.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_PAYLOAD = "invalid_payload"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    INTERNAL_ERROR = "internal_error"


HTTP_STATUS_CODES = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_PAYLOAD: 422,
    ErrorKind.INVALID_TRANSITION: 422,
    ErrorKind.INTERNAL_ERROR: 500,
}


@dataclass(frozen=True)
class ServiceError:
    """Failure details.

    Attributes:
        kind: Taxonomy bucket, maps to a transport code
        code: Stable machine-readable reason (e.g. "duplicate_entry")
        message: Human-readable message, never contains internals
        fields: Names of the offending input fields, if any
    """

    kind: ErrorKind
    code: str
    message: str
    fields: tuple[str, ...] = ()

    def as_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "fields": list(self.fields),
        }


@dataclass(frozen=True)
class ServiceResult:
    """Result of a ledger operation."""

    success: bool
    data: Any = None
    error: Optional[ServiceError] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        code: str,
        message: str,
        fields=(),
    ) -> "ServiceResult":
        return cls(
            success=False,
            error=ServiceError(kind=kind, code=code, message=message, fields=tuple(fields)),
        )

    @property
    def failure(self) -> bool:
        return not self.success

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @property
    def http_status(self) -> int:
        if self.success:
            return 200
        return HTTP_STATUS_CODES[self.error.kind]

    def as_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error.as_dict()}


# Shorthand constructors used across services


def bad_request(code: str, message: str) -> ServiceResult:
    return ServiceResult.fail(ErrorKind.BAD_REQUEST, code, message)


def forbidden(message: str = "Forbidden", code: str = "forbidden") -> ServiceResult:
    return ServiceResult.fail(ErrorKind.FORBIDDEN, code, message)


def not_found(code: str, message: str) -> ServiceResult:
    return ServiceResult.fail(ErrorKind.NOT_FOUND, code, message)


def conflict(code: str, message: str) -> ServiceResult:
    return ServiceResult.fail(ErrorKind.CONFLICT, code, message)


def invalid_transition(code: str, message: str) -> ServiceResult:
    return ServiceResult.fail(ErrorKind.INVALID_TRANSITION, code, message)


def internal_error(code: str = "internal_error", message: str = "An unexpected error occurred") -> ServiceResult:
    return ServiceResult.fail(ErrorKind.INTERNAL_ERROR, code, message)


def invalid_payload(violations=None, code: str = "validation_failed", message: str = "") -> ServiceResult:
    """Build an InvalidPayload result from Validation Gate violations."""
    violations = list(violations or [])
    fields = tuple(dict.fromkeys(v.field for v in violations))
    if not message:
        message = "; ".join(v.message for v in violations) or "Invalid payload"
    return ServiceResult.fail(ErrorKind.INVALID_PAYLOAD, code, message, fields=fields)
