"""
Provider arbiter.

Chooses and orders providers for each call according to the session
strategy and the cheap provider's circuit breaker, routes every call
through the matching concurrency limiter and classifies the result.

Strategies:
    mt_only    cheap provider only
    mt_first   cheap provider, premium only once the breaker has opened
    llm_first  premium first, cheap provider as fallback while its breaker is closed
    race       both at once, cheap result preferred when valid
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from clip_translate.core.exceptions import ErrorKind
from clip_translate.core.limiter import ConcurrencyLimiter
from clip_translate.core.providers.base import TranslationProvider, ProviderResult
from clip_translate.core.retry import CircuitBreaker
from clip_translate.core.scripts import normalize_text
from clip_translate.core.session import TranslationSession
from clip_translate.utils.unified_logger import LogType


class OutcomeKind(Enum):
    TRANSLATED = "translated"
    NULL = "null"
    RATE_LIMITED = "rate_limited"
    RETRYABLE = "retryable"


# Reasons attached to NULL outcomes
REASON_TIMEOUT = "timeout"
REASON_EMPTY = "empty"
REASON_WRONG_SCRIPT = "wrong_script"
REASON_ECHO = "echo"
REASON_ERROR = "error"
REASON_CIRCUIT_OPEN = "circuit_open"
REASON_INACTIVE = "inactive"
REASON_NO_PROVIDER = "no_provider"


@dataclass
class CallOutcome:
    """Classified result of one arbitrated call."""
    kind: OutcomeKind
    text: Optional[str] = None
    reason: Optional[str] = None
    provider: Optional[str] = None
    error: Optional[ErrorKind] = None

    @property
    def translated(self) -> bool:
        return self.kind is OutcomeKind.TRANSLATED

    @classmethod
    def null(cls, reason: str, provider: Optional[str] = None,
             error: Optional[ErrorKind] = None) -> 'CallOutcome':
        return cls(OutcomeKind.NULL, reason=reason, provider=provider, error=error)


class ProviderArbiter:
    """Per-call strategy and circuit-breaker logic."""

    def __init__(self, session: TranslationSession,
                 mt_provider: Optional[TranslationProvider],
                 premium_provider: Optional[TranslationProvider]):
        self.session = session
        self.mt_provider = mt_provider
        self.premium_provider = premium_provider

    @property
    def effective_strategy(self) -> str:
        strategy = self.session.strategy
        if strategy == "mt_first" and self.session.mt_breaker.is_open:
            return "llm_first"
        return strategy

    async def translate(self, text: str) -> CallOutcome:
        """Translate ``text`` using the current strategy."""
        session = self.session
        if not session.active:
            return CallOutcome.null(REASON_INACTIVE)

        strategy = self.effective_strategy

        if strategy == "mt_only":
            return await self._call_mt(text)

        if strategy == "race":
            return await self._race(text)

        if strategy == "llm_first":
            outcome = await self._call_premium(text)
            if outcome.kind in (OutcomeKind.TRANSLATED, OutcomeKind.RATE_LIMITED):
                return outcome
            if not session.active or not session.mt_breaker.can_attempt():
                return outcome
            fallback = await self._call_mt(text)
            return outcome if fallback.kind is OutcomeKind.NULL else fallback

        # mt_first
        outcome = await self._call_mt(text)
        if outcome.translated or not session.active:
            return outcome
        if session.mt_breaker.is_open:
            self.session.logger.info(
                f"Cheap provider disabled after {session.mt_breaker.failure_streak} consecutive failures; "
                f"escalating to premium provider")
            return await self._call_premium(text)
        return outcome

    async def _race(self, text: str) -> CallOutcome:
        """Issue both providers at once and prefer the cheap provider's result."""
        if self.session.mt_breaker.can_attempt():
            mt, premium = await asyncio.gather(self._call_mt(text), self._call_premium(text))
        else:
            mt = CallOutcome.null(REASON_CIRCUIT_OPEN, self._name(self.mt_provider))
            premium = await self._call_premium(text)

        if mt.translated:
            return mt
        if premium.translated:
            return premium
        if premium.kind is OutcomeKind.RATE_LIMITED:
            return premium
        return mt

    async def _call_mt(self, text: str) -> CallOutcome:
        breaker = self.session.mt_breaker
        if not breaker.can_attempt():
            return CallOutcome.null(REASON_CIRCUIT_OPEN, self._name(self.mt_provider))
        return await self._call(self.mt_provider, self.session.mt_limiter, breaker,
                                self.session.config.mt_timeout, text)

    async def _call_premium(self, text: str) -> CallOutcome:
        return await self._call(self.premium_provider, self.session.premium_limiter,
                                self.session.premium_breaker, self.session.config.premium_timeout, text)

    async def _call(self, provider: Optional[TranslationProvider], limiter: ConcurrencyLimiter,
                    breaker: CircuitBreaker, timeout: float, text: str) -> CallOutcome:
        """Run one provider call through its limiter and update its breaker."""
        session = self.session
        name = self._name(provider)
        if provider is None:
            return CallOutcome.null(REASON_NO_PROVIDER, name)

        ceiling = min(timeout, session.config.call_ceiling_timeout) if timeout else \
            session.config.call_ceiling_timeout
        items = text.count(session.config.sentinel) + 1
        session.metrics.record_call(name)
        session.logger.debug("", LogType.PROVIDER_REQUEST,
                             {'provider': name, 'items': items, 'chars': len(text)})
        start_time = time.time()

        async def invoke() -> ProviderResult:
            return await asyncio.wait_for(
                provider.call(text, session.target_language, session.direction.source_language),
                timeout=ceiling
            )

        try:
            result = await limiter.submit(invoke)
        except asyncio.TimeoutError:
            outcome = CallOutcome.null(REASON_TIMEOUT, name)
        except Exception as e:
            session.logger.debug(f"{name} call raised {e!r}", LogType.ERROR_DETAIL, {'details': repr(e)})
            outcome = CallOutcome.null(REASON_ERROR, name, ErrorKind.UNKNOWN)
        else:
            outcome = self._classify(result, name, text)

        if not session.active:
            return CallOutcome.null(REASON_INACTIVE, name)

        if outcome.translated:
            breaker.record_success()
        else:
            breaker.record_failure()
            session.metrics.record_failure(name)

        session.logger.debug("", LogType.PROVIDER_RESPONSE, {
            'provider': name,
            'outcome': outcome.kind.value if outcome.reason is None else f"{outcome.kind.value} ({outcome.reason})",
            'execution_time': time.time() - start_time,
        })
        return outcome

    def _classify(self, result: ProviderResult, name: str, source: str) -> CallOutcome:
        """Map a provider result onto the closed outcome set."""
        if result.ok:
            text = (result.text or "").strip()
            if not text:
                return CallOutcome.null(REASON_EMPTY, name)
            if not self.session.direction.has_target_evidence(text):
                return CallOutcome.null(REASON_WRONG_SCRIPT, name)
            if normalize_text(text) == normalize_text(source):
                return CallOutcome.null(REASON_ECHO, name)
            return CallOutcome(OutcomeKind.TRANSLATED, text=text, provider=name)

        kind = result.error
        if kind is ErrorKind.RATE_LIMIT:
            return CallOutcome(OutcomeKind.RATE_LIMITED, provider=name, error=kind)
        if kind is ErrorKind.RETRYABLE:
            return CallOutcome(OutcomeKind.RETRYABLE, provider=name, error=kind)
        if kind.is_hard:
            self.session.report_provider_error(name, kind.value, result.message or f"{name}: {kind.value}")
        return CallOutcome.null(REASON_ERROR, name, kind)

    @staticmethod
    def _name(provider: Optional[TranslationProvider]) -> str:
        return getattr(provider, "name", "none")
