"""
Visibility scheduler.

Orders work by what the reader can see: near-viewport groups first, the
rest second, late groups only once they approach the viewport. Scrolling
arms "rush" mode, which keeps re-checking near-viewport leftovers on a
short timer for a bounded window.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

from clip_translate.core.batch_translator import BatchTranslator
from clip_translate.core.document import Layout, Viewport
from clip_translate.core.session import TranslationSession, BlockGroup
from clip_translate.utils.unified_logger import LogType


class VisibilityScheduler:
    """Near/far rounds, intersection watching and rush mode."""

    def __init__(self, session: TranslationSession, translator: BatchTranslator,
                 layout: Layout, viewport: Viewport):
        self.session = session
        self.translator = translator
        self.layout = layout
        self.viewport = viewport
        self.sweep = None
        self._observed: Dict[object, BlockGroup] = {}
        self._queued: List[BlockGroup] = []
        self._flush_handle = None
        self._rush_handle = None
        self._connected = True

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def is_near(self, group: BlockGroup, margin: Optional[float] = None) -> bool:
        if margin is None:
            margin = self.session.config.near_viewport_margin
        return self.viewport.is_near(self.layout.rect_of(group.element), margin)

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    async def run_round(self, groups: List[BlockGroup], label: str) -> None:
        """Translate ``groups`` concurrently; one failing group never aborts the others."""
        session = self.session
        groups = [g for g in groups if not g.claimed]
        if not groups or not session.active:
            return
        session.metrics.bulk_rounds += 1
        session.logger.debug(f"Round '{label}': {len(groups)} group(s)", LogType.ROUND,
                             {'label': label, 'groups': len(groups)})
        results = await asyncio.gather(*(self.translator.translate_group(g) for g in groups),
                                       return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                session.logger.debug(f"Group failed in round '{label}': {result!r}")

    async def run_initial_rounds(self, groups: List[BlockGroup]) -> None:
        """Near-viewport round, then the off-screen round, then watch the leftovers."""
        near = [g for g in groups if self.is_near(g)]
        far = [g for g in groups if not self.is_near(g)]
        await self.run_round(near, "near")
        if not self.session.active:
            return
        await self.run_round(far, "far")
        if self.session.active:
            self.observe(self.session.untranslated_groups())

    # ------------------------------------------------------------------
    # Intersection watching
    # ------------------------------------------------------------------

    def observe(self, groups: Iterable[BlockGroup]) -> None:
        if not self._connected:
            return
        for group in groups:
            self._observed[group.element] = group

    def unobserve(self, group: BlockGroup) -> None:
        self._observed.pop(group.element, None)

    @property
    def observed_count(self) -> int:
        return len(self._observed)

    def on_viewport_change(self) -> None:
        """Trigger observed groups entering the prefetch margin, then arm rush mode."""
        session = self.session
        if not session.active or not self._connected:
            return
        margin = session.config.prefetch_margin
        triggered = [g for g in list(self._observed.values()) if self.is_near(g, margin)]
        for group in triggered:
            self.unobserve(group)
        triggered = [g for g in triggered
                     if any(session.needs_work(r) for r in g.nodes) and not session.is_exhausted(g)]
        if triggered:
            session.spawn(self.run_round(triggered, "intersection"), "intersection_round")
        self.arm_rush()

    # ------------------------------------------------------------------
    # Rush mode
    # ------------------------------------------------------------------

    def arm_rush(self) -> None:
        """Extend the rush window and start ticking if not already."""
        session = self.session
        if not session.active or not self._connected:
            return
        session.rush_deadline = session.clock.now() + session.config.rush_window
        if self._rush_handle is None or self._rush_handle.cancelled():
            self._rush_handle = session.schedule(session.config.rush_initial_delay, self._rush_tick)

    def _rush_tick(self) -> None:
        session = self.session
        self._rush_handle = None
        if not session.active or not self._connected:
            return
        leftovers = session.untranslated_groups(lambda g: self.is_near(g) and not session.is_exhausted(g))
        if leftovers:
            session.spawn(self.run_round(leftovers, "rush"), "rush_round")
        if session.clock.now() < session.rush_deadline:
            self._rush_handle = session.schedule(session.config.rush_interval, self._rush_tick)

    # ------------------------------------------------------------------
    # Late content
    # ------------------------------------------------------------------

    def enqueue(self, groups: Iterable[BlockGroup]) -> None:
        """Queue groups found by the mutation watcher for the next round."""
        session = self.session
        if not session.active or not self._connected:
            return
        for group in groups:
            if group not in self._queued:
                self._queued.append(group)
        if self._flush_handle is None:
            self._flush_handle = session.schedule(0, self._flush)

    def _flush(self) -> None:
        session = self.session
        self._flush_handle = None
        queued, self._queued = self._queued, []
        if not session.active or not queued:
            return
        near = [g for g in queued if self.is_near(g)]
        far = [g for g in queued if not self.is_near(g)]
        if near:
            session.spawn(self.run_round(near, "mutation"), "mutation_round")
        self.observe(far)
        if self.sweep is not None:
            self.sweep.ensure_running()

    def disconnect(self) -> None:
        """Stop watching and cancel rush/flush timers."""
        self._connected = False
        self._observed.clear()
        self._queued.clear()
        for handle in (self._rush_handle, self._flush_handle):
            if handle is not None:
                handle.cancel()
        self._rush_handle = None
        self._flush_handle = None
