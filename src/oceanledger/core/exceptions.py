# SPDX-License-Identifier: MIT
# Copyright (c) 2026 OceanLedger Contributors

"""Custom exception hierarchy for OceanLedger.

Every ledger error is local and recoverable by the caller, with the
exception of identifier allocation failures (AllocationError), which abort
the operation before any state is written.
"""

from __future__ import annotations

from typing import Any


class OceanLedgerException(Exception):  # noqa: N818
    """Base exception for all OceanLedger errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(OceanLedgerException):
    """Exception for validation errors.

    Raised when:
    - Input validation fails
    - Required fields are missing
    - Field values are out of range
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidInputError(ValidationException):
    """Malformed or uninitialized ciphertext, or a missing required field.

    Always raised before any state mutation.
    """

    pass


class ConfigException(OceanLedgerException):
    """Exception for configuration errors."""

    def __init__(self, message: str, setting: str | None = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)
        self.setting = setting


class NotFoundError(OceanLedgerException):
    """Unknown measurement id, region, or request.

    Raised by read-only lookups; never accompanied by a side effect.
    """

    def __init__(self, resource_type: str, resource_id: Any):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": str(resource_id),
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(OceanLedgerException):
    """Exception for state conflicts (idempotency guards)."""

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class AlreadyRevealedError(ConflictError):
    """The target's reveal slot is already populated."""

    pass


class AlreadyFulfilledError(ConflictError):
    """A callback arrived for a request that is already Fulfilled."""

    pass


class RequestPendingError(ConflictError):
    """The target already has a Pending decryption request."""

    pass


class RequestClosedError(ConflictError):
    """A callback arrived for a request that was cancelled or expired."""

    pass


class UnknownRequestError(OceanLedgerException):
    """A callback references a request id that was never issued."""

    def __init__(self, request_id: str):
        super().__init__(f"Unknown decryption request: {request_id}", {"request_id": request_id})
        self.request_id = request_id


class InvalidProofError(OceanLedgerException):
    """The callback's proof failed verification.

    The request stays Pending so that a retry with a valid proof can succeed.
    """

    def __init__(self, request_id: str):
        super().__init__(f"Proof verification failed for request {request_id}", {"request_id": request_id})
        self.request_id = request_id


class InsufficientDataError(OceanLedgerException):
    """An aggregate was requested over fewer than two values."""

    def __init__(self, count: int, minimum: int = 2):
        super().__init__(
            f"At least {minimum} values are required, got {count}",
            {"count": count, "minimum": minimum},
        )
        self.count = count
        self.minimum = minimum


class AllocationError(OceanLedgerException):
    """Identifier allocation failed (counter space exhausted).

    Fatal for the operation in progress; no partial state is written.
    """

    pass
