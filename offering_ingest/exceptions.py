"""
Exception hierarchy for the offering ingestion pipeline.

Chunk-level extraction errors carry an error code and a retryable flag so the
retry coordinator can classify them without inspecting messages.
"""
from typing import Any, Optional

from offering_ingest.models.domain import ErrorCode


class OfferingIngestError(Exception):
    """
    Base exception class for all ingestion errors

    Attributes:
        message: Error message
        details: Additional error details
        original_exception: Original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        self.message = message
        self.details = details or {}
        self.original_exception = original_exception
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "original_exception": (
                str(self.original_exception) if self.original_exception else None
            ),
        }


class InputValidationError(OfferingIngestError):
    """Raised when the caller's input is rejected before any processing starts"""

    def __init__(self, field_errors: list[dict[str, str]]):
        self.field_errors = field_errors
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in field_errors)
        super().__init__(
            message=f"Validation failed: {summary}",
            details={"fields": field_errors},
        )

    @classmethod
    def single(cls, field: str, message: str) -> "InputValidationError":
        return cls([{"field": field, "message": message}])


class ConfigurationError(OfferingIngestError):
    """
    Exception raised for configuration-related errors

    Common causes:
    - Missing API key
    - Invalid configuration values
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_exception: Optional[Exception] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(
            message=message, details=details, original_exception=original_exception
        )


class RepositoryError(OfferingIngestError):
    """Base exception for record store operations"""


# ============================================================================
# Chunk-level extraction errors
# ============================================================================


class ExtractionError(OfferingIngestError):
    """
    Failure of a single extraction call.

    Subclasses set ``error_code`` and ``retryable``. Only the retry
    coordinator and the pipeline catch these; they never reach the caller
    except for a quota abort with nothing extracted.
    """

    error_code: ErrorCode = ErrorCode.SERVICE_ERROR
    retryable: bool = True

    def __init__(
        self,
        message: str,
        chunk_index: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ):
        details: dict[str, Any] = {"error_code": self.error_code.value}
        if chunk_index is not None:
            details["chunk_index"] = chunk_index
        super().__init__(
            message=message, details=details, original_exception=original_exception
        )


class ExtractionTimeoutError(ExtractionError):
    """The extraction call exceeded its hard timeout"""

    error_code = ErrorCode.TIMEOUT


class RateLimitError(ExtractionError):
    """HTTP 429 from the extraction service"""

    error_code = ErrorCode.RATE_LIMITED


class ServiceError(ExtractionError):
    """Any other non-success status from the extraction service"""

    error_code = ErrorCode.SERVICE_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        chunk_index: Optional[int] = None,
    ):
        super().__init__(message, chunk_index=chunk_index)
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


class TransportError(ExtractionError):
    """Network or transport failure before a response arrived"""

    error_code = ErrorCode.TRANSPORT_ERROR


class QuotaExhaustedError(ExtractionError):
    """
    HTTP 402 from the extraction service.

    Terminal: no retries and no further chunks. When raised out of the
    pipeline, ``summary`` holds the partial run summary.
    """

    error_code = ErrorCode.QUOTA_EXHAUSTED
    retryable = False

    def __init__(
        self,
        message: str = "Extraction quota exhausted",
        chunk_index: Optional[int] = None,
        summary: Optional[Any] = None,
    ):
        super().__init__(message, chunk_index=chunk_index)
        self.summary = summary


__all__ = [
    "OfferingIngestError",
    "InputValidationError",
    "ConfigurationError",
    "RepositoryError",
    "ExtractionError",
    "ExtractionTimeoutError",
    "RateLimitError",
    "ServiceError",
    "TransportError",
    "QuotaExhaustedError",
]
