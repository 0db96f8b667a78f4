"""Custom exception hierarchy for peerbench."""

from typing import Any, Dict, Optional


class ErrorCodes:
    """Machine readable codes attached to provider failures."""

    PROVIDER_UNAUTHORIZED = "PROVIDER_UNAUTHORIZED"
    PROVIDER_FORWARD_FAILED = "PROVIDER_FORWARD_FAILED"
    PROVIDER_MAX_RETRIES_REACHED = "PROVIDER_MAX_RETRIES_REACHED"
    PROVIDER_ABORTED = "PROVIDER_ABORTED"


class PeerBenchException(Exception):
    """Base exception for all peerbench errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return string representation with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ConfigurationError(PeerBenchException):
    """Raised when configuration is invalid or missing."""

    pass


class EnvVariableNeededError(ConfigurationError):
    """Raised when an operation needs an environment variable that is not set."""

    pass


class ValidationError(PeerBenchException):
    """Raised when input validation fails."""

    def __init__(
        self, message: str, field: Optional[str] = None, value: Any = None, context: Optional[Dict[str, Any]] = None
    ):
        """Initialize with validation details.

        Args:
            message: Error message
            field: Field that failed validation
            value: Invalid value
            context: Additional context
        """
        super().__init__(message, context)
        self.field = field
        self.value = value


class TaskSchemaError(ValidationError):
    """Raised when a Task file does not follow a known schema."""

    pass


class ProviderError(PeerBenchException):
    """Base class for Provider related errors."""

    pass


class ForwardError(ProviderError):
    """Raised when a prompt could not be forwarded to the model."""

    def __init__(
        self,
        message: str,
        code: str,
        started_at: Optional[int] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize with the failure kind.

        Args:
            message: Error message
            code: One of the ``ErrorCodes`` provider codes
            started_at: Epoch milliseconds when the failed call started
            cause: Underlying exception
            context: Additional context
        """
        super().__init__(message, context)
        self.code = code
        self.started_at = started_at
        self.cause = cause


class ScoringError(PeerBenchException):
    """Raised when scoring fails."""

    pass


class ScorerNotFoundError(ScoringError):
    """Raised when no Scorer can score a Response file."""

    pass


class ScorerNotEligibleError(ScoringError):
    """Raised when the chosen Scorer cannot score a Response file."""

    pass


class JudgeParsingError(ScoringError):
    """Raised when a judge response cannot be parsed."""

    def __init__(self, message: str, raw_response: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """Initialize with raw response.

        Args:
            message: Error message
            raw_response: Unparseable response text
            context: Additional context
        """
        super().__init__(message, context)
        self.raw_response = raw_response


class RepositoryError(PeerBenchException):
    """Base class for persistence errors."""

    pass


class ArtifactSaveError(RepositoryError):
    """Raised when an output artifact cannot be saved."""

    def __init__(self, message: str, file_path: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """Initialize with file information.

        Args:
            message: Error message
            file_path: Path where save failed
            context: Additional context
        """
        super().__init__(message, context)
        self.file_path = file_path


__all__ = [
    "ErrorCodes",
    "PeerBenchException",
    "ConfigurationError",
    "EnvVariableNeededError",
    "ValidationError",
    "TaskSchemaError",
    "ProviderError",
    "ForwardError",
    "ScoringError",
    "ScorerNotFoundError",
    "ScorerNotEligibleError",
    "JudgeParsingError",
    "RepositoryError",
    "ArtifactSaveError",
]
