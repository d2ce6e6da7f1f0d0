"""
Domain errors raised by the staffing core.

Every error carries a user-facing message and an ``ErrorKind`` so that batch
operations and the HTTP layer can report failures without string matching.
"""

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    EXPIRED = "expired"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"


class StrikePlanError(Exception):
    kind: ClassVar[ErrorKind]

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(StrikePlanError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(StrikePlanError):
    kind = ErrorKind.INVALID_STATE


class ConflictError(StrikePlanError):
    kind = ErrorKind.CONFLICT


class ForbiddenError(StrikePlanError):
    kind = ErrorKind.FORBIDDEN


class ValidationFailedError(StrikePlanError):
    kind = ErrorKind.VALIDATION


class ClaimLinkError(StrikePlanError):
    """
    Rejected use of a claim link. Messages never name internal records.
    """

    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str, *, expired: bool = False) -> None:
        super().__init__(message)
        self.expired = expired

    @property
    def error_kind(self) -> ErrorKind:
        return ErrorKind.EXPIRED if self.expired else ErrorKind.UNAUTHORIZED


def kind_of(exc: StrikePlanError) -> ErrorKind:
    if isinstance(exc, ClaimLinkError):
        return exc.error_kind
    return exc.kind
