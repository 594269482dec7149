from __future__ import annotations

from typing import Any

__all__ = [
    "BaseError",
    "BackendUnavailableError",
    "BadRequestError",
    "ConfigError",
    "ConflictError",
    "InternalError",
    "NotFoundError",
    "NotSortableError",
    "NotSupportedError",
    "PartialBatchError",
    "RequestTimeoutError",
    "TranslationError",
    "UnmappedFieldError",
    "UnsupportedOperatorError",
]


class BaseError(Exception):
    status_code: int = 500


class BadRequestError(BaseError):
    status_code = 400


class NotFoundError(BaseError):
    status_code = 404


class ConflictError(BaseError):
    status_code = 409


class NotSupportedError(BaseError):
    status_code = 415


class TranslationError(BadRequestError):
    """Query could not be translated into a native query.

    Attributes:
        reason: Human readable reason.
        field: Logical field the failure refers to, if any.
    """

    reason: str
    field: str | None

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        message = reason if field is None else f"{reason}: {field}"
        super().__init__(message)


class UnmappedFieldError(TranslationError):
    def __init__(self, field: str):
        super().__init__("Unmapped field", field)


class UnsupportedOperatorError(TranslationError):
    operator: str

    def __init__(self, field: str, operator: str):
        self.operator = operator
        super().__init__(f"Operator {operator!r} not allowed", field)


class NotSortableError(TranslationError):
    def __init__(self, field: str):
        super().__init__("Field is not sortable", field)


class PartialBatchError(BaseError):
    """Some operations of a batch failed.

    Attributes:
        outcomes: Outcome of every operation in the batch.
    """

    status_code = 207
    outcomes: list[Any]

    def __init__(self, outcomes: list[Any]):
        self.outcomes = outcomes
        failed = sum(1 for o in outcomes if not o.success)
        super().__init__(f"{failed} of {len(outcomes)} operations failed")


class BackendUnavailableError(BaseError):
    status_code = 503


class RequestTimeoutError(BackendUnavailableError):
    status_code = 504


class InternalError(BaseError):
    status_code = 500


class ConfigError(BaseError):
    status_code = 500
