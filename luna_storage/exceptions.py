"""
Custom exceptions for luna-storage SDK.

Every error carries an :class:`ErrorKind` so callers can branch on
``err.kind`` instead of catching individual classes.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    INVALID_NAME = "InvalidName"
    NAME_CONFLICT = "NameConflict"
    NOT_FOUND = "NotFound"
    PRECONDITION_FAILED = "PreconditionFailed"
    BUCKET_NOT_EMPTY = "BucketNotEmpty"
    LENGTH_REQUIRED = "LengthRequired"
    SERVICE = "ServiceError"
    TRANSPORT = "TransportError"


class StorageError(Exception):
    """Base exception for all luna-storage errors."""

    kind: ErrorKind = ErrorKind.SERVICE

    def __init__(
        self,
        message: str,
        code: str = "",
        original: Exception = None,
        *,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.original = original
        self.status_code = status_code
        self.error_type = error_type
        self.request_id = request_id

    @property
    def error_code(self) -> str:
        return self.code

    def __str__(self):
        if self.code:
            return f"[{self.code}] {super().__str__()}"
        return super().__str__()


class ServiceError(StorageError):
    """The request reached the backend and was rejected."""

    kind = ErrorKind.SERVICE


class InvalidName(StorageError):
    """
    Raised when a bucket name or object key violates naming rules.

    Raised locally before any request is sent (``status_code`` is None), or
    for a backend ``InvalidBucketName`` response.
    """

    kind = ErrorKind.INVALID_NAME


class NameConflict(ServiceError):
    """Raised when a bucket name is already taken by another account."""

    kind = ErrorKind.NAME_CONFLICT


class NotFound(ServiceError):
    """Raised when the referenced bucket or object does not exist."""

    kind = ErrorKind.NOT_FOUND


class PreconditionFailed(ServiceError):
    """Raised when conditional retrieval criteria are not met."""

    kind = ErrorKind.PRECONDITION_FAILED


class BucketNotEmpty(ServiceError):
    """Raised when deleting a bucket that still holds objects."""

    kind = ErrorKind.BUCKET_NOT_EMPTY


class LengthRequired(StorageError):
    """Raised when an upload source has no determinable length."""

    kind = ErrorKind.LENGTH_REQUIRED


class TransportError(StorageError):
    """The request never completed (network, DNS, timeout, credentials)."""

    kind = ErrorKind.TRANSPORT

    @property
    def cause(self) -> Optional[Exception]:
        return self.original
