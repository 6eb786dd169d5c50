"""
Custom exceptions for the migration pipeline with structured error context.

Every exception carries a context dictionary so the error sink can log
the failing stage, file or endpoint alongside the message.

Exception Hierarchy:
    MigrationException (base)
    ├── ExtractionError
    │   ├── CSVExtractionError
    │   │   └── CSVValidationError
    │   ├── SourceDatabaseError
    │   └── ResourceNotFoundError
    ├── DispatchError
    │   ├── GatewayError
    │   │   ├── CircuitOpenError
    │   │   └── AuthenticationError
    │   └── ArtifactWriteError
    ├── PipelineStateError
    │   ├── StageOrderError
    │   └── StateOwnershipError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class MigrationException(Exception):
    """
    Base exception for all migration errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (stage, file, url, ...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None,
            "retryable": isinstance(self, RetryableError)
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(MigrationException):
    """
    Marker for transient errors (timeouts, 5xx, dropped connections).

    The pipeline never retries on its own; a re-run by the operator is
    the recovery path. The marker tells the operator a re-run may succeed.
    """
    pass


class NonRetryableError(MigrationException):
    """
    Marker for permanent errors (bad CSV headers, missing credentials,
    missing files). Re-running without fixing the input fails again.
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(MigrationException):
    """Base exception for data acquisition failures."""
    pass


class CSVExtractionError(ExtractionError):
    """
    Exception raised when a CSV file cannot be read.

    Context should include:
        - file_path: Path to the CSV file
        - line_number: Line number where error occurred (if applicable)
    """
    pass


class CSVValidationError(NonRetryableError, CSVExtractionError):
    """
    Exception raised when the location CSV header is malformed.

    Context should include:
        - file_path: Path to the CSV file (if known)
        - columns: The offending header column(s)
    """
    pass


class SourceDatabaseError(RetryableError, ExtractionError):
    """
    Exception raised when a count or page query against the source fails.

    Context should include:
        - stage: Migration stage being polled
        - offset: Page offset (for page queries)
    """
    pass


class ResourceNotFoundError(NonRetryableError, ExtractionError):
    """Input file or directory does not exist."""
    pass


# ============================================================================
# Dispatch Errors
# ============================================================================

class DispatchError(MigrationException):
    """Base exception for outbound failures."""
    pass


class GatewayError(RetryableError, DispatchError):
    """
    Exception raised when a destination request fails.

    Context should include:
        - url: The endpoint that failed
        - method: HTTP method
        - status_code: HTTP status code (if applicable)
    """
    pass


class CircuitOpenError(GatewayError):
    """Call rejected because the circuit breaker is open."""
    pass


class AuthenticationError(NonRetryableError, DispatchError):
    """Credential missing, expired or rejected by the token endpoint."""
    pass


class ArtifactWriteError(NonRetryableError, DispatchError):
    """
    Exception raised when an intermediate CSV artifact cannot be written.

    Context should include:
        - file_path: Target artifact path
    """
    pass


# ============================================================================
# Pipeline State Errors
# ============================================================================

class PipelineStateError(MigrationException):
    """Base exception for orchestration invariant violations."""
    pass


class StageOrderError(PipelineStateError):
    """A stage counter was started twice or used before it was started."""
    pass


class StateOwnershipError(PipelineStateError):
    """A stage tried to write run state it does not own."""
    pass
