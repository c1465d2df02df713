"""
Page translator controller.

Host-facing entry point: starts a translation session over a document,
restores it, reports provider health and reacts to scrolling and
navigation. Exactly one session can be active per controller.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Dict, Any

from clip_translate.config import (
    TranslatorConfig, SettingsStore, EnvSettings, normalize_strategy, DIAGNOSTIC_SAMPLE
)
from clip_translate.core.arbiter import ProviderArbiter
from clip_translate.core.batch_translator import BatchTranslator
from clip_translate.core.clock import Clock, AsyncioClock
from clip_translate.core.document import HtmlDocument, Layout, Viewport, DocumentOrderLayout
from clip_translate.core.events import EventBus, Event, EventType
from clip_translate.core.metrics import TranslationMetrics
from clip_translate.core.mutation_watcher import ChangeFeed, MutationWatcher
from clip_translate.core.providers.base import TranslationProvider, ProviderResult
from clip_translate.core.providers.google_mt import GoogleMTProvider
from clip_translate.core.providers.openai import OpenAICompatibleProvider
from clip_translate.core.exceptions import ErrorKind
from clip_translate.core.scripts import direction_for, normalize_language
from clip_translate.core.session import TranslationSession
from clip_translate.core.sweep import SweepLoop
from clip_translate.core.text_indexer import TextIndexer
from clip_translate.core.visibility import VisibilityScheduler
from clip_translate.utils.unified_logger import UnifiedLogger, LogType, get_logger


@dataclass
class ProviderDiagnostic:
    """Health of one provider as seen by ``diagnose_provider``."""
    provider: str
    reachable: bool
    latency: float = 0.0
    error_kind: Optional[str] = None
    message: str = ""
    breaker: Optional[Dict[str, Any]] = None


@dataclass
class DiagnosticReport:
    target_language: str
    strategy: str
    providers: List[ProviderDiagnostic] = field(default_factory=list)

    @property
    def any_reachable(self) -> bool:
        return any(p.reachable for p in self.providers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_language': self.target_language,
            'strategy': self.strategy,
            'providers': [vars(p) for p in self.providers],
        }


class PageTranslator:
    """Incremental page translation over a live document."""

    def __init__(self,
                 document: HtmlDocument,
                 mt_provider: Optional[TranslationProvider] = None,
                 premium_provider: Optional[TranslationProvider] = None,
                 settings: Optional[SettingsStore] = None,
                 config: Optional[TranslatorConfig] = None,
                 clock: Optional[Clock] = None,
                 layout: Optional[Layout] = None,
                 viewport: Optional[Viewport] = None,
                 event_bus: Optional[EventBus] = None,
                 logger: Optional[UnifiedLogger] = None,
                 url_source: Optional[Callable[[], str]] = None):
        """
        Args:
            document: Document to translate in place
            mt_provider: Cheap bulk provider (Google gtx by default)
            premium_provider: Premium provider; built from settings when omitted
            settings: Source of the strategy selector and premium credential
            config: Tunables (defaults from the environment)
            clock: Time source for every timer (asyncio loop by default)
            layout: Element geometry (document-order estimate by default)
            viewport: Visible window, updated through ``notify_scroll``
            event_bus: Bus the host listens on
            logger: Logger (global UnifiedLogger by default)
            url_source: Polled for navigation while a session is active
        """
        self.document = document
        self.config = config or TranslatorConfig()
        self.settings = settings if settings is not None else EnvSettings()
        self.clock = clock or AsyncioClock()
        self.layout = layout or DocumentOrderLayout(document.root)
        self.viewport = viewport or Viewport()
        self.events = event_bus or EventBus()
        self.logger = logger or get_logger()
        self.url_source = url_source
        self.change_feed = ChangeFeed()

        self.mt_provider = mt_provider or GoogleMTProvider(
            api_endpoint=self.config.mt_api_endpoint, timeout=self.config.mt_timeout)
        self._premium_override = premium_provider
        self.premium_provider: Optional[TranslationProvider] = premium_provider
        self._retired_providers: List[TranslationProvider] = []

        self.session: Optional[TranslationSession] = None
        self._last_session: Optional[TranslationSession] = None
        self._components: Dict[str, Any] = {}
        self._start_url: Optional[str] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.session is not None and self.session.active

    @property
    def stats(self) -> TranslationMetrics:
        if self.session is not None:
            return self.session.metrics
        if self._last_session is not None:
            return self._last_session.metrics
        return TranslationMetrics()

    @property
    def arbiter(self) -> Optional[ProviderArbiter]:
        return self._components.get('arbiter')

    @property
    def sweep(self) -> Optional[SweepLoop]:
        return self._components.get('sweep')

    @property
    def visibility(self) -> Optional[VisibilityScheduler]:
        return self._components.get('visibility')

    @property
    def watcher(self) -> Optional[MutationWatcher]:
        return self._components.get('watcher')

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _current_strategy(self) -> str:
        return normalize_strategy(self.settings.get('translate_strategy'))

    def _resolve_premium(self) -> TranslationProvider:
        if self._premium_override is not None:
            return self._premium_override
        api_key = self.settings.get('premium_api_key') or None
        provider = self.premium_provider
        if not isinstance(provider, OpenAICompatibleProvider) or provider.api_key != api_key:
            if provider is not None:
                # Credential changed
                self._retired_providers.append(provider)
            provider = OpenAICompatibleProvider(
                api_endpoint=self.config.premium_api_endpoint,
                model=self.config.premium_model,
                api_key=api_key,
                timeout=self.config.premium_timeout,
                separator=self.config.sentinel,
            )
        self.premium_provider = provider
        return provider

    async def start(self, target_lang: Optional[str] = None) -> bool:
        """
        Start translating the document.

        Returns:
            False if a session is already active (nothing is done), True otherwise
        """
        if self.active:
            self.logger.debug("start() ignored: a session is already active")
            return False

        target = normalize_language(target_lang or self.config.target_language)
        strategy = self._current_strategy()
        direction = direction_for(target)

        # Created before any await so a concurrent start() sees it
        session = TranslationSession(self.document, self.config, direction, strategy,
                                     self.clock, self.events, self.logger)
        self.session = session

        premium = self._resolve_premium()
        indexer = TextIndexer(direction, self.layout)
        arbiter = ProviderArbiter(session, self.mt_provider, premium)
        translator = BatchTranslator(session, arbiter)
        visibility = VisibilityScheduler(session, translator, self.layout, self.viewport)
        sweep = SweepLoop(session, visibility)
        visibility.sweep = sweep
        watcher = MutationWatcher(session, indexer, visibility)
        self._components = {
            'indexer': indexer,
            'arbiter': arbiter,
            'translator': translator,
            'visibility': visibility,
            'sweep': sweep,
            'watcher': watcher,
        }

        groups = [session.group_for(block) for block in indexer.index(self.document.body)]
        watcher.connect(self.change_feed)

        self._start_url = self.url_source() if self.url_source else self.document.url
        self.logger.info("", LogType.SESSION_START, {
            'target_lang': target,
            'strategy': strategy,
            'groups': len(groups),
            'nodes': session.metrics.nodes_indexed,
        })
        self.events.publish(Event(
            type=EventType.SESSION_STARTED,
            data={'target_language': target, 'strategy': strategy, 'groups': len(groups)},
            source="page_translator"
        ))

        session.spawn(visibility.run_initial_rounds(groups), "initial_rounds")
        visibility.arm_rush()
        sweep.start()
        if self.url_source is not None:
            session.schedule(self.config.url_poll_interval, self._poll_url)
        return True

    def restore(self) -> int:
        """
        Revert every translated node and tear the session down.

        Returns:
            Number of nodes restored
        """
        self.events.publish(Event(type=EventType.RESTORE_ACKNOWLEDGED, source="page_translator"))
        restored = self._teardown("restore")
        self.events.publish(Event(
            type=EventType.RESTORE_COMPLETE, data={'restored': restored}, source="page_translator"
        ))
        return restored

    def _teardown(self, reason: str) -> int:
        session = self.session
        if session is None or not session.active:
            return 0

        watcher = self._components.get('watcher')
        if watcher is not None:
            watcher.disconnect()
        visibility = self._components.get('visibility')
        if visibility is not None:
            visibility.disconnect()
        sweep = self._components.get('sweep')
        if sweep is not None:
            sweep.stop()

        restored = session.close(restore=True)
        self.logger.info(f"PAGE TRANSLATION ENDED ({reason})", LogType.SESSION_END,
                         {'stats': session.metrics.summary()})
        self._last_session = session
        self.session = None
        self._components = {}
        return restored

    def notify_scroll(self, scroll_x: float, scroll_y: float) -> None:
        """Host scrolled: update the viewport and wake late groups."""
        self.viewport.scroll_x = scroll_x
        self.viewport.scroll_y = scroll_y
        visibility = self.visibility
        if self.active and visibility is not None:
            visibility.on_viewport_change()

    def notify_url(self, url: str) -> bool:
        """
        Host reported its current URL.

        Returns:
            True if this was a navigation that tore the session down
        """
        if not self.active or url == self._start_url:
            return False
        self.logger.info(f"Navigation detected ({self._start_url} -> {url}); restoring page")
        self.restore()
        return True

    def _poll_url(self) -> None:
        session = self.session
        if session is None or not session.active or self.url_source is None:
            return
        if self.notify_url(self.url_source()):
            return
        session.schedule(self.config.url_poll_interval, self._poll_url)

    async def diagnose_provider(self, target_lang: Optional[str] = None) -> DiagnosticReport:
        """Probe both providers with a short sample; never raises."""
        target = normalize_language(target_lang or
                                    (self.session.target_language if self.session else self.config.target_language))
        direction = direction_for(target)
        report = DiagnosticReport(target_language=target, strategy=self._current_strategy())

        session = self.session
        mt_breaker = session.mt_breaker.snapshot() if session is not None else None
        premium_breaker = session.premium_breaker.snapshot() if session is not None else None

        for provider, breaker in ((self.mt_provider, mt_breaker),
                                  (self._resolve_premium(), premium_breaker)):
            start_time = time.time()
            try:
                result = await asyncio.wait_for(
                    provider.call(DIAGNOSTIC_SAMPLE, target, direction.source_language),
                    timeout=self.config.call_ceiling_timeout
                )
            except asyncio.TimeoutError:
                result = ProviderResult.failure(ErrorKind.RETRYABLE, "timed out")
            except Exception as e:
                result = ProviderResult.failure(ErrorKind.UNKNOWN, str(e))

            report.providers.append(ProviderDiagnostic(
                provider=provider.name,
                reachable=result.ok and bool((result.text or '').strip()),
                latency=time.time() - start_time,
                error_kind=result.error.value if result.error else None,
                message=result.message or (result.text or ''),
                breaker=breaker,
            ))
            if result.error is not None and result.error.is_hard:
                self.logger.warning(f"{provider.name}: {result.message}", LogType.ERROR_DETAIL,
                                    {'kind': result.error.value})
        return report

    async def wait_idle(self) -> None:
        """Await every task spawned by the current (or just torn down) session."""
        if self._last_session is not None:
            await self._last_session.wait_idle()
        if self.session is not None:
            await self.session.wait_idle()

    async def close(self) -> None:
        """Restore if needed and release provider HTTP clients."""
        if self.active:
            self.restore()
        await self.mt_provider.close()
        if self.premium_provider is not None:
            await self.premium_provider.close()
        for provider in self._retired_providers:
            await provider.close()
        self._retired_providers.clear()
