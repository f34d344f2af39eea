from __future__ import annotations

from typing import Any, Optional


class MixerPackError(Exception):
    """Base exception for all mixerpack errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs.pop("details", {})
        self.details.update(kwargs)
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ConfigurationError(MixerPackError):
    """Exception raised for configuration-related errors."""

    def __init__(
            self, message: str, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)
        self.config_key = config_key


class PipelineError(MixerPackError):
    """Base exception for failures of a packaging pipeline stage.

    The pipeline fills in ``stage`` with the name of the stage that raised
    the error before handing it back to the caller.
    """

    def __init__(self, message: str, stage: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage

    def __str__(self) -> str:
        """String representation."""
        if self.stage:
            return f"{self.message} (Stage: {self.stage})"
        return super().__str__()


class ManifestUnreadableError(PipelineError):
    """Exception raised when the manifest file cannot be read."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)
        self.path = path


class ManifestMalformedError(PipelineError):
    """Exception raised when the manifest file is not valid JSON."""

    def __init__(
            self,
            message: str,
            path: Optional[str] = None,
            line: Optional[int] = None,
            column: Optional[int] = None,
            **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        if line is not None:
            details["line"] = line
        if column is not None:
            details["column"] = column
        super().__init__(message, details=details, **kwargs)
        self.path = path
        self.line = line
        self.column = column


class ManifestInvalidError(PipelineError):
    """Exception raised when a manifest violates the manifest schema."""

    def __init__(
            self,
            message: str,
            field: Optional[str] = None,
            constraint: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        """Initialize a ManifestInvalidError.

        Args:
            message: A descriptive error message.
            field: Dotted location of the offending field.
            constraint: The constraint the field violated.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)
        self.field = field
        self.constraint = constraint


class ManifestWriteError(PipelineError):
    """Exception raised when a reconciled manifest cannot be written back."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)
        self.path = path


class MetadataInvalidError(PipelineError):
    """Exception raised when the project metadata file is unreadable or malformed."""

    def __init__(
            self,
            message: str,
            path: Optional[str] = None,
            field: Optional[str] = None,
            constraint: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        if field:
            details["field"] = field
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)
        self.path = path
        self.field = field
        self.constraint = constraint


class MissingTargetError(PipelineError):
    """Exception raised when a file referenced by the manifest does not exist."""

    def __init__(
            self, message: str, field: Optional[str] = None, path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a MissingTargetError.

        Args:
            message: A descriptive error message.
            field: Manifest field that references the missing file.
            path: The resolved filesystem path that was checked.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)
        self.field = field
        self.path = path


class PackagingToolError(PipelineError):
    """Exception raised when the external archiver fails."""

    def __init__(
            self,
            message: str,
            command: Optional[str] = None,
            returncode: Optional[int] = None,
            stderr: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if command:
            details["command"] = command
        if returncode is not None:
            details["returncode"] = returncode
        if stderr:
            details["stderr"] = stderr
        super().__init__(message, details=details, **kwargs)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class FinalizationError(PipelineError):
    """Exception raised when the archive cannot be turned into the final artifact."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)
        self.path = path
