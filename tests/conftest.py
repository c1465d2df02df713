"""
Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and provides fake providers,
a virtual clock and a translator factory shared by the test modules.
"""

import sys
import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from clip_translate.config import TranslatorConfig, DictSettings, SENTINEL_SEPARATOR
from clip_translate.core.clock import ManualClock
from clip_translate.core.controller import PageTranslator
from clip_translate.core.document import HtmlDocument
from clip_translate.core.events import EventBus
from clip_translate.core.exceptions import ErrorKind
from clip_translate.core.providers.base import TranslationProvider, ProviderResult
from clip_translate.utils.unified_logger import UnifiedLogger, LogLevel


ZH = {
    "Hello world": "你好世界",
    "Welcome": "欢迎",
    "Hello": "你好",
    "brave": "勇敢",
    "new world": "新世界",
    "Goodbye friend": "再见朋友",
    "Read more": "阅读更多",
    "Latest news": "最新消息",
}


class FakeProvider(TranslationProvider):
    """In-memory provider.

    By default every sentinel-separated part is looked up in ``translations``
    (unknown parts come back unchanged). A ``responder`` replaces that logic
    entirely and may return a string or a ProviderResult.
    """

    def __init__(self, name: str = "google_mt",
                 translations: Optional[Dict[str, str]] = None,
                 responder: Optional[Callable[[str], Union[str, ProviderResult]]] = None,
                 separator: str = SENTINEL_SEPARATOR):
        super().__init__(timeout=1)
        self.name = name
        self.translations = dict(ZH if translations is None else translations)
        self.responder = responder
        self.separator = separator
        self.calls: List[str] = []

    def translate_parts(self, text: str) -> str:
        parts = text.split(self.separator)
        return self.separator.join(self.translations.get(p.strip(), p) for p in parts)

    async def call(self, text, target_lang, source_lang=None) -> ProviderResult:
        self.calls.append(text)
        await asyncio.sleep(0)
        if self.responder is not None:
            reply = self.responder(text)
            if isinstance(reply, ProviderResult):
                return reply
            return ProviderResult.success(reply)
        return ProviderResult.success(self.translate_parts(text))

    async def _request(self, text, target_lang, source_lang):
        raise NotImplementedError

    @property
    def call_count(self) -> int:
        return len(self.calls)


def failing(kind: ErrorKind, message: str = "fake failure") -> Callable[[str], ProviderResult]:
    """Responder that always fails with ``kind``."""
    return lambda text: ProviderResult.failure(kind, message)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def quiet_logger():
    """Logger that keeps entries in memory instead of printing."""
    entries = []
    logger = UnifiedLogger(console_output=False, enable_colors=False,
                           min_level=LogLevel.DEBUG, storage_callback=entries.append)
    logger.entries = entries
    return logger


@pytest.fixture
def event_bus():
    bus = EventBus()
    bus.enable_history()
    return bus


@pytest.fixture
def make_translator(clock, quiet_logger, event_bus):
    """Factory building a PageTranslator over an HTML string with fakes."""

    def factory(html: str,
                mt: Optional[TranslationProvider] = None,
                premium: Optional[TranslationProvider] = None,
                strategy: str = "mt_first",
                premium_api_key: str = "test-key",
                config: Optional[TranslatorConfig] = None,
                **kwargs) -> PageTranslator:
        document = HtmlDocument.from_string(html, url=kwargs.pop('url', None))
        settings = DictSettings({
            'translate_strategy': strategy,
            'premium_api_key': premium_api_key,
        })
        return PageTranslator(
            document,
            mt_provider=mt or FakeProvider("google_mt"),
            premium_provider=premium or FakeProvider("premium"),
            settings=settings,
            config=config or TranslatorConfig(target_language="zh-CN"),
            clock=clock,
            event_bus=event_bus,
            logger=quiet_logger,
            **kwargs
        )

    return factory


@pytest.fixture
def scenario_html():
    """Two translatable paragraphs and one purely numeric one."""
    return "<html><body><p>Hello world</p><p>Welcome</p><p>3</p></body></html>"


@pytest.fixture
def make_session(clock, quiet_logger, event_bus):
    """Factory building a bare TranslationSession over an HTML string."""
    from clip_translate.core.scripts import direction_for
    from clip_translate.core.session import TranslationSession

    def factory(html: str = "<html><body><p>Hello world</p></body></html>",
                strategy: str = "mt_first",
                target: str = "zh-CN",
                config: Optional[TranslatorConfig] = None) -> TranslationSession:
        document = HtmlDocument.from_string(html)
        return TranslationSession(document, config or TranslatorConfig(target_language=target),
                                  direction_for(target), strategy, clock, event_bus, quiet_logger)

    return factory
