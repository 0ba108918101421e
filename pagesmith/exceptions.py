"""Custom exception hierarchy for Pagesmith."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses and failure reports."""

    # Generation errors
    PROVIDER_ERROR = "PROVIDER_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    SECTION_GENERATION_FAILED = "SECTION_GENERATION_FAILED"

    # Collaborator errors
    GITHUB_API_ERROR = "GITHUB_API_ERROR"

    # Webhook errors
    WEBHOOK_VALIDATION_FAILED = "WEBHOOK_VALIDATION_FAILED"

    # Configuration
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Rate limiting
    RATE_LIMITED = "RATE_LIMITED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PagesmithError(Exception):
    """
    Base exception for all Pagesmith errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class ProviderError(PagesmithError):
    """The text-generation provider failed (rate limit, auth, connectivity).

    The client raises it as ``generate_text``; each pipeline stage re-raises
    it through ``in_stage`` with its own operation and project/section
    context, so the final report says which stage broke.
    Never retried inside the pipeline.
    """

    # context key -> how the message names it
    _NAMED_CONTEXT = (("project", "project"), ("section_type", "section"))

    def __init__(
        self,
        operation: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        self.reason = message
        self.context = context or {}
        where = ", ".join(
            f"{label} '{self.context[key]}'"
            for key, label in self._NAMED_CONTEXT
            if self.context.get(key)
        )
        super().__init__(
            f"{operation} failed for {where}: {message}" if where else f"{operation} failed: {message}",
            ErrorCode.PROVIDER_ERROR,
            status_code=502,
            details={"operation": operation, **self.context},
        )

    def in_stage(self, operation: str, **context: Any) -> "ProviderError":
        """The same provider failure, reported against the stage that hit it."""
        return ProviderError(operation, self.reason, {**self.context, **context})


class MalformedResponseError(PagesmithError):
    """The provider answered, but not in the shape the operation requires."""

    def __init__(self, operation: str, message: str, raw_preview: str = ""):
        self.operation = operation
        details: Dict[str, Any] = {"operation": operation}
        if raw_preview:
            details["raw_preview"] = raw_preview
        super().__init__(
            f"{operation} returned an unusable response: {message}",
            ErrorCode.MALFORMED_RESPONSE,
            status_code=502,
            details=details,
        )


class SectionGenerationError(PagesmithError):
    """A single section could not be turned into usable HTML."""

    def __init__(self, section_type: str, message: str):
        self.section_type = section_type
        super().__init__(
            f"Section '{section_type}' generation failed: {message}",
            ErrorCode.SECTION_GENERATION_FAILED,
            status_code=502,
            details={"section_type": section_type},
        )


class GitHubAPIError(PagesmithError):
    """GitHub REST API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: str = ""):
        self.http_status = status_code
        details: Dict[str, Any] = {"path": path}
        if status_code is not None:
            details["github_status"] = status_code
        super().__init__(
            message,
            ErrorCode.GITHUB_API_ERROR,
            status_code=502,
            details=details,
        )


class WebhookValidationError(PagesmithError):
    """Webhook signature or payload validation failed."""

    def __init__(self, message: str = "Invalid webhook signature", status_code: int = 401):
        super().__init__(
            message,
            ErrorCode.WEBHOOK_VALIDATION_FAILED,
            status_code=status_code,
        )


class ConfigurationError(PagesmithError):
    """Raised when service configuration is invalid for the environment."""

    def __init__(self, message: str):
        super().__init__(
            message,
            ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
        )
