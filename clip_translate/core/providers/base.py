"""
Base classes and data structures for translation providers.

This module defines the abstract base class that every provider must
implement. Providers never raise across the engine boundary: ``call``
always returns a ProviderResult carrying either text or an ErrorKind.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from clip_translate.core.exceptions import (
    ErrorKind, ProviderError, ProviderRateLimitError, ProviderAuthenticationError
)


@dataclass
class ProviderResult:
    """Outcome of a single provider call."""
    text: Optional[str] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, text: str) -> 'ProviderResult':
        return cls(text=text)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "",
                status_code: Optional[int] = None) -> 'ProviderResult':
        return cls(error=kind, message=message, status_code=status_code)

    @classmethod
    def from_error(cls, error: ProviderError) -> 'ProviderResult':
        return cls.failure(error.kind, error.message, error.context.get('status_code'))


class TranslationProvider(ABC):
    """Abstract base class for translation providers"""

    name = "provider"

    def __init__(self, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the provider.

        Args:
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self._transport = transport
        self._client = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=20, max_connections=128),
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise the ProviderError matching a non-success status."""
        status = response.status_code
        if status < 400:
            return
        body = response.text[:300]
        context = {'status_code': status}
        kind = ErrorKind.from_status(status)
        if kind is ErrorKind.RATE_LIMIT:
            retry_after = response.headers.get('retry-after')
            try:
                retry_after = float(retry_after) if retry_after else None
            except ValueError:
                retry_after = None
            raise ProviderRateLimitError(f"HTTP {status}: rate limited", retry_after, self.name, context)
        if kind is ErrorKind.UNAUTHORIZED:
            raise ProviderAuthenticationError(f"HTTP {status}: {body}", self.name, context)
        raise ProviderError(f"HTTP {status}: {body}", kind, self.name, context)

    async def call(self, text: str, target_lang: str, source_lang: Optional[str] = None) -> ProviderResult:
        """
        Translate ``text`` into ``target_lang``.

        Args:
            text: Source text (may contain the sentinel separator)
            target_lang: Target language code
            source_lang: Source language code (derived from the target if omitted)

        Returns:
            ProviderResult with the translation or a classified error
        """
        try:
            return ProviderResult.success(await self._request(text, target_lang, source_lang))
        except ProviderError as e:
            return ProviderResult.from_error(e)
        except httpx.TimeoutException as e:
            return ProviderResult.failure(ErrorKind.RETRYABLE, f"{self.name} timeout: {e}")
        except httpx.HTTPError as e:
            return ProviderResult.failure(ErrorKind.RETRYABLE, f"{self.name} connection error: {e}")

    @abstractmethod
    async def _request(self, text: str, target_lang: str, source_lang: Optional[str]) -> str:
        """Perform the HTTP exchange and return the translated text.

        Raises:
            ProviderError: On any classified failure
        """
        pass
