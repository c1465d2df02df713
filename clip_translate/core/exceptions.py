"""
Exception hierarchy and provider error kinds for the page translator.

Provider calls never raise across the engine boundary: they return a
ProviderResult tagged with an ErrorKind. The exceptions below are used for
configuration problems, session misuse and for the few places that need to
carry an error kind through ``raise`` (provider internals, diagnostics).
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(Enum):
    """Closed set of error conditions a provider call can report."""
    RATE_LIMIT = "RATE_LIMIT"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    RETRYABLE = "RETRYABLE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_status(cls, status_code: int) -> 'ErrorKind':
        """Classify an HTTP status code."""
        if status_code == 429:
            return cls.RATE_LIMIT
        if status_code == 400:
            return cls.BAD_REQUEST
        if status_code in (401, 403):
            return cls.UNAUTHORIZED
        if status_code == 404:
            return cls.NOT_FOUND
        if status_code in (408, 409) or status_code >= 500:
            return cls.RETRYABLE
        return cls.UNKNOWN

    @property
    def is_hard(self) -> bool:
        """Errors that will not go away without a configuration change."""
        return self in (ErrorKind.UNAUTHORIZED, ErrorKind.NOT_FOUND)


class TranslationError(Exception):
    """Base exception for all translation-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context about the error
        recoverable: Whether the error can potentially be recovered from
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}: {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" (context: {context_str})"
        return base


# ============================================================================
# Provider errors
# ============================================================================

class ProviderError(TranslationError):
    """Raised inside a provider when a call fails.

    Attributes:
        kind: Classified error kind
        provider: Name of the provider that failed
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        provider: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if provider is not None:
            ctx['provider'] = provider
        super().__init__(message, ctx, recoverable=not kind.is_hard)
        self.kind = kind
        self.provider = provider


class ProviderRateLimitError(ProviderError):
    """Raised when a provider signals rate limiting.

    This is recoverable by waiting and retrying.
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if retry_after is not None:
            ctx['retry_after'] = retry_after
        super().__init__(message, ErrorKind.RATE_LIMIT, provider, ctx)
        self.retry_after = retry_after


class ProviderAuthenticationError(ProviderError):
    """Raised when the credential is missing or rejected.

    This is NOT recoverable without user intervention.
    """

    def __init__(self, message: str, provider: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorKind.UNAUTHORIZED, provider, context)


class ProviderResponseError(ProviderError):
    """Raised when a provider response is malformed or unparseable."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorKind.RETRYABLE, provider, context)


# ============================================================================
# Engine errors
# ============================================================================

class BatchValidationError(TranslationError):
    """Raised when a multiplexed reply cannot be mapped back onto its items.

    Attributes:
        expected_count: Number of items sent
        actual_count: Number of parts received
    """

    def __init__(
        self,
        message: str,
        expected_count: Optional[int] = None,
        actual_count: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if expected_count is not None:
            ctx['expected_count'] = expected_count
        if actual_count is not None:
            ctx['actual_count'] = actual_count
        super().__init__(message, ctx, recoverable=True)
        self.expected_count = expected_count
        self.actual_count = actual_count


class SessionError(TranslationError):
    """Raised when a session is used after it has been torn down."""
    pass


class ConfigurationError(TranslationError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)
