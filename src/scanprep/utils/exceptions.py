"""
ScanPrep - Custom Exceptions Module

This module defines the error taxonomy shared by the image algorithms and
the processing backend.
"""


class ScanPrepError(Exception):
    """Base exception for all ScanPrep errors.

    All custom exceptions inherit from this class so callers can catch any
    ScanPrep-specific error in one place.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class InvalidArgumentError(ScanPrepError, ValueError):
    """Raised when a required image is missing or has an unsupported layout.

    Covers ``None`` where an image is required, dtypes other than uint8 and
    channel counts other than 1, 3 or 4. Raised before any pixel work.
    """

    def __init__(self, argument: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            argument: Name of the offending argument
            reason: Optional description of what is wrong with it
        """
        self.argument = argument
        self.reason = reason

        msg = f"Invalid argument '{argument}'"
        if reason:
            msg += f": {reason}"

        super().__init__(msg, details=f"argument={argument}")


class InvalidStateError(ScanPrepError, RuntimeError):
    """Raised when an operation needs image content but gets an empty image."""

    def __init__(self, operation: str, reason: str = "image is empty") -> None:
        """Initialize the exception.

        Args:
            operation: Name of the operation that could not run
            reason: Why the current state does not allow it
        """
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation}: {reason}")


class OperationCancelledError(ScanPrepError):
    """Raised when a cooperative cancellation request stops an operation.

    Kept apart from the other errors so callers can tell "I asked to stop"
    from "it broke". Algorithms never swallow it.
    """

    def __init__(self, stage: str | None = None) -> None:
        """Initialize the exception.

        Args:
            stage: Optional name of the stage that observed the request
        """
        self.stage = stage
        details = f"stage={stage}" if stage else None
        super().__init__("Processing cancelled by user", details=details)


class BackendUnavailableError(ScanPrepError):
    """Raised when the factory is asked for a backend that is not available."""

    def __init__(self, processor_type: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            processor_type: The requested backend kind
            reason: Optional reason why it cannot be created
        """
        self.processor_type = processor_type
        msg = f"Image processor backend '{processor_type}' is not available"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg, details=f"type={processor_type}")


class ImageLoadError(ScanPrepError):
    """Raised when an image file cannot be read or decoded."""

    def __init__(self, file_path: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            file_path: Path to the file that failed to load
            reason: Optional reason for the failure
        """
        self.file_path = file_path
        self.reason = reason
        msg = f"Cannot load image: {file_path}"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg, details=f"path={file_path}")


# Exception hierarchy summary:
#
# ScanPrepError (base)
# ├── InvalidArgumentError     (also ValueError)
# ├── InvalidStateError        (also RuntimeError)
# ├── OperationCancelledError
# ├── BackendUnavailableError
# └── ImageLoadError
