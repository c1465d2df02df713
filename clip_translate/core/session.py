"""
Translation session state.

One TranslationSession owns every piece of mutable state of a page
translation: node records, block groups, the pending set, the lexicon, the
provider breakers and limiters, timers and spawned tasks. Restoring drops
the instance; continuations that resume after that see ``active == False``
and short-circuit.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Awaitable

from clip_translate.config import TranslatorConfig
from clip_translate.core.clock import Clock, TimerHandle
from clip_translate.core.document import HtmlDocument, TextNode, OFFSCREEN_TOP
from clip_translate.core.events import EventBus, create_first_content_event, create_provider_error_event
from clip_translate.core.exceptions import SessionError
from clip_translate.core.lexicon import Lexicon
from clip_translate.core.limiter import ConcurrencyLimiter
from clip_translate.core.metrics import TranslationMetrics
from clip_translate.core.retry import CircuitBreaker
from clip_translate.core.scripts import ScriptDirection, normalize_text
from clip_translate.core.text_indexer import IndexedBlock
from clip_translate.utils.unified_logger import UnifiedLogger, LogType, get_logger


class NodeStatus(Enum):
    UNTRANSLATED = "untranslated"
    PENDING = "pending"
    TRANSLATED = "translated"


@dataclass(eq=False)
class TranslatableNode:
    """A leaf text unit and everything the session knows about it."""
    node: TextNode
    block: object
    original: Optional[str] = None
    translated: Optional[str] = None
    status: NodeStatus = NodeStatus.UNTRANSLATED
    attempts: int = 0
    written: bool = False

    def capture_original(self) -> None:
        """Record the raw text once; later calls never overwrite it."""
        if self.original is None:
            self.original = self.node.read()

    @property
    def current_text(self) -> str:
        return self.node.read()


@dataclass(eq=False)
class BlockGroup:
    """Scheduling unit: a block container and its member nodes."""
    element: object
    nodes: List[TranslatableNode] = field(default_factory=list)
    claimed: bool = False
    top: float = OFFSCREEN_TOP


def _rewrap(raw: str, value: str) -> str:
    """Put ``value`` between the leading and trailing whitespace of ``raw``."""
    stripped = raw.strip()
    if not stripped:
        return value
    start = raw.find(stripped)
    return raw[:start] + value + raw[start + len(stripped):]


class TranslationSession:
    """State of one active page translation."""

    MT_PROVIDER = "mt"
    PREMIUM_PROVIDER = "premium"

    def __init__(self,
                 document: HtmlDocument,
                 config: TranslatorConfig,
                 direction: ScriptDirection,
                 strategy: str,
                 clock: Clock,
                 events: Optional[EventBus] = None,
                 logger: Optional[UnifiedLogger] = None):
        self.document = document
        self.config = config
        self.direction = direction
        self.target_language = direction.target_language
        self.strategy = strategy
        self.clock = clock
        self.events = events or EventBus()
        self.logger = logger or get_logger()

        self.active = True
        self.records: Dict[TextNode, TranslatableNode] = {}
        self.groups: Dict[object, BlockGroup] = {}
        self.pending: Set[TranslatableNode] = set()
        self.lexicon = Lexicon(direction)
        self.metrics = TranslationMetrics()

        self.sweep_delay = config.sweep_delay
        self.rush_deadline = 0.0

        self.mt_breaker = CircuitBreaker(self.MT_PROVIDER, config.failure_threshold)
        self.premium_breaker = CircuitBreaker(self.PREMIUM_PROVIDER, config.failure_threshold)
        self.mt_limiter = ConcurrencyLimiter(self.MT_PROVIDER, config.mt_concurrency)
        self.premium_limiter = ConcurrencyLimiter(self.PREMIUM_PROVIDER, config.premium_concurrency)

        self.first_reported = False
        self.hard_error_reported = False
        self._timers: Set[TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Node bookkeeping
    # ------------------------------------------------------------------

    def record_for(self, node: TextNode, block) -> TranslatableNode:
        rec = self.records.get(node)
        if rec is None:
            rec = TranslatableNode(node=node, block=block)
            rec.capture_original()
            self.records[node] = rec
        return rec

    def group_for(self, indexed: IndexedBlock) -> BlockGroup:
        """Get or create the group for an indexed block and merge its nodes."""
        group = self.groups.get(indexed.element)
        if group is None:
            group = BlockGroup(indexed.element, top=indexed.top)
            self.groups[indexed.element] = group
        for node in indexed.nodes:
            rec = self.record_for(node, indexed.element)
            if rec not in group.nodes:
                group.nodes.append(rec)
                self.metrics.nodes_indexed += 1
        return group

    def write_translation(self, rec: TranslatableNode, value: str) -> None:
        """Write ``value`` into the node, keeping its surrounding whitespace."""
        rec.node.write(_rewrap(rec.node.read(), value))
        rec.written = True

    def apply_translation(self, rec: TranslatableNode, value: str, source_text: str,
                          provider: str = "") -> bool:
        """
        Apply a translation obtained for ``source_text``.

        The node's text is re-checked first: if the host rewrote it while the
        call was in flight, the result is discarded.

        Returns:
            True if the node now shows the translation
        """
        if not self.active:
            return False
        value = (value or '').strip()
        if not value:
            return False
        if normalize_text(rec.node.read()) != normalize_text(source_text):
            return False
        self.write_translation(rec, value)
        rec.translated = value
        rec.status = NodeStatus.TRANSLATED
        self.pending.discard(rec)
        self.lexicon.store(source_text, value)
        self.metrics.nodes_translated += 1
        self.report_first_content(provider)
        return True

    def mark_pending(self, recs: Iterable[TranslatableNode]) -> None:
        for rec in recs:
            rec.status = NodeStatus.PENDING
            rec.attempts += 1
            self.pending.add(rec)

    def clear_pending(self, recs: Iterable[TranslatableNode]) -> None:
        """Return still-pending nodes to the untranslated state."""
        for rec in recs:
            if rec.status is NodeStatus.PENDING:
                rec.status = NodeStatus.UNTRANSLATED
            self.pending.discard(rec)

    def needs_work(self, rec: TranslatableNode) -> bool:
        """Untranslated and still in the document."""
        if rec.status is not NodeStatus.UNTRANSLATED:
            return False
        if not self.document.contains(rec.node.owner):
            return False
        return self.direction.is_eligible(rec.node.read())

    def is_exhausted(self, group: BlockGroup) -> bool:
        """
        Every node of ``group`` that needs work has used up its fast attempts.

        Exhausted groups are skipped by rush ticks and intersection rounds and
        left to the sweep loop, which keeps retrying them at its slowest pace.
        """
        waiting = [rec for rec in group.nodes if self.needs_work(rec)]
        return bool(waiting) and all(rec.attempts >= self.config.max_node_attempts for rec in waiting)

    def untranslated_groups(self, predicate: Optional[Callable[[BlockGroup], bool]] = None) -> List[BlockGroup]:
        """Unclaimed groups holding at least one node that needs work, by top."""
        found = []
        for group in self.groups.values():
            if group.claimed:
                continue
            if predicate is not None and not predicate(group):
                continue
            if any(self.needs_work(rec) for rec in group.nodes):
                found.append(group)
        return sorted(found, key=lambda g: g.top)

    # ------------------------------------------------------------------
    # Adaptive sweep delay
    # ------------------------------------------------------------------

    def note_rate_limit(self) -> None:
        """A provider signalled rate limiting: slow the sweep down."""
        self.metrics.rate_limit_events += 1
        self.sweep_delay = min(self.sweep_delay * self.config.sweep_backoff_factor,
                               self.config.sweep_max_delay)

    def reset_sweep_delay(self) -> None:
        self.sweep_delay = self.config.sweep_delay

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def report_first_content(self, provider: str) -> None:
        if self.first_reported or not self.active:
            return
        self.first_reported = True
        self.logger.debug(f"First content translated via {provider or 'lexicon'}")
        self.events.publish(create_first_content_event(provider, self.metrics.nodes_translated))

    def report_provider_error(self, provider: str, kind: str, message: str) -> None:
        """Surface a hard configuration error, at most once per session."""
        if self.hard_error_reported or not self.active:
            return
        self.hard_error_reported = True
        self.logger.error(message, LogType.ERROR_DETAIL, {'details': provider, 'kind': kind})
        self.events.publish(create_provider_error_event(provider, kind, message))

    # ------------------------------------------------------------------
    # Tasks and timers
    # ------------------------------------------------------------------

    def spawn(self, coro: Awaitable, name: str = "task") -> Optional[asyncio.Task]:
        """Run ``coro`` as a session task whose exceptions are logged, never raised."""
        if not self.active:
            coro.close()
            return None

        async def guarded():
            try:
                await coro
            except Exception as e:
                self.logger.debug(f"Session task '{name}' failed: {e!r}", LogType.ERROR_DETAIL,
                                  {'details': repr(e)})

        task = asyncio.ensure_future(guarded())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Arm a timer that is cancelled on close and ignored once inactive."""
        if not self.active:
            raise SessionError("cannot schedule on an inactive session",
                               {'target_language': self.target_language})
        holder = {}

        def fire():
            self._timers.discard(holder.get('handle'))
            if self.active:
                callback()

        handle = self.clock.call_later(delay, fire)
        holder['handle'] = handle
        self._timers.add(handle)
        return handle

    async def wait_idle(self) -> None:
        """Wait until every spawned task (including tasks they spawn) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self, restore: bool = True) -> int:
        """
        Deactivate the session and drop all state.

        Args:
            restore: Write every captured original back into the document

        Returns:
            Number of nodes restored
        """
        self.active = False
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()

        restored = 0
        if restore:
            for rec in self.records.values():
                if rec.written and rec.original is not None:
                    rec.node.write(rec.original)
                    restored += 1

        self.records.clear()
        self.groups.clear()
        self.pending.clear()
        self.lexicon.clear()
        self.mt_breaker.reset()
        self.premium_breaker.reset()
        self.metrics.finalize()
        return restored
