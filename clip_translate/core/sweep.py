"""
Sweep/retry loop.

Periodic reconciliation: rescans for nodes that are neither translated nor
pending and sends them through another bulk round. The loop stops by itself
once nothing is untranslated and nothing is pending.
"""

from clip_translate.core.events import Event, EventType
from clip_translate.core.session import TranslationSession
from clip_translate.utils.unified_logger import LogType


class SweepLoop:
    """Adaptive-delay rescans until the session is quiescent."""

    def __init__(self, session: TranslationSession, visibility):
        self.session = session
        self.visibility = visibility
        self.completed = False
        self._handle = None

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._handle.cancelled()

    def start(self) -> None:
        self._arm(self.session.config.sweep_initial_delay)

    def _arm(self, delay: float) -> None:
        if not self.session.active:
            return
        self.completed = False
        self._handle = self.session.schedule(delay, self._tick)

    def _tick(self) -> None:
        session = self.session
        self._handle = None
        if not session.active:
            return

        session.metrics.sweep_rounds += 1
        leftovers = session.untranslated_groups()
        if leftovers:
            # Only stubborn nodes left: keep retrying, at the slowest pace
            if all(session.is_exhausted(g) for g in leftovers):
                delay = session.config.sweep_max_delay
            else:
                delay = session.sweep_delay
            session.logger.debug(
                f"Sweep: {len(leftovers)} group(s) left, next pass in {delay:.1f}s",
                LogType.SWEEP, {'groups': len(leftovers), 'delay': delay})
            session.spawn(self.visibility.run_round(leftovers, "sweep"), "sweep_round")
            self._arm(delay)
            return

        if session.pending:
            self._arm(max(session.config.sweep_pending_delay, session.sweep_delay))
            return

        self.completed = True
        session.logger.debug("Sweep: nothing left to translate", LogType.SWEEP)
        session.events.publish(Event(
            type=EventType.SWEEP_COMPLETED,
            data={'translated': session.metrics.nodes_translated, 'rounds': session.metrics.sweep_rounds},
            source="sweep_loop"
        ))

    def ensure_running(self) -> None:
        """Re-arm after new work arrived (no-op while a pass is already scheduled)."""
        if not self.running and self.session.active:
            self._arm(self.session.sweep_delay)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
