"""
Exception hierarchy for the underwriting pipeline.

Precondition errors are surfaced to the caller and never retried. I/O errors
are fatal for the current deal unless marked retryable.
"""
from typing import Any, Dict, Optional


class UnderwritingError(Exception):
    """Base exception for all pipeline errors."""

    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# ---------------------------------------------------------------------------
# Precondition errors
# ---------------------------------------------------------------------------

class PreconditionError(UnderwritingError):
    """An operation was called in a state that does not allow it."""


class AuditLogNotInitializedError(PreconditionError):
    """Append was attempted on a deal that has no audit log."""


class AuditLogExistsError(PreconditionError):
    """Initialize was attempted on a deal that already has an audit log."""


class UnknownStageError(PreconditionError):
    """A stage number or pipeline stage id is not recognised."""


class DealNotFoundError(PreconditionError):
    """The deal record required for an operation is missing."""


# ---------------------------------------------------------------------------
# I/O and concurrency errors
# ---------------------------------------------------------------------------

class PipelineIOError(UnderwritingError):
    """Persisted state could not be created or written."""


class LockTimeoutError(PipelineIOError):
    """The per-deal lock could not be acquired in time."""

    retryable = True


class AuditLogConflictError(UnderwritingError):
    """The audit log changed on disk during a read-modify-write cycle."""

    retryable = True
