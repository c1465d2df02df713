"""
Batch translator.

Translates one BlockGroup: lexicon hits are applied without any call, the
rest are joined with the sentinel separator into batches of up to
``batch_size`` texts, sent through the arbiter, split back and validated.
A batch that cannot be mapped back onto its items falls back to per-item
calls in the same round.
"""

import asyncio
import json
import random
import re
from typing import Callable, List, Optional, Sequence, Tuple

from clip_translate.core.arbiter import (
    ProviderArbiter, CallOutcome, OutcomeKind, REASON_ECHO, REASON_EMPTY, REASON_WRONG_SCRIPT
)
from clip_translate.core.exceptions import BatchValidationError
from clip_translate.core.retry import (
    RetryConfig, RETRYABLE_RETRY_CONFIG, calculate_delay, rate_limit_retry_config
)
from clip_translate.core.scripts import normalize_text
from clip_translate.core.session import TranslationSession, BlockGroup, TranslatableNode, NodeStatus
from clip_translate.utils.unified_logger import LogType

Item = Tuple[TranslatableNode, str]


def _tolerant_pattern(separator: str) -> re.Pattern:
    """Separator with optional whitespace between each of its characters."""
    return re.compile(r'\s*'.join(re.escape(ch) for ch in separator))


def _loose_pattern(separator: str) -> re.Pattern:
    """Separator with missing/extra bars and a space allowed for the underscore."""
    core = separator.strip('|')
    core_pattern = r'[_\s]'.join(re.escape(piece) for piece in core.split('_'))
    return re.compile(r'\|{0,4}\s*' + core_pattern + r'\s*\|{0,4}', re.I)


def split_parts(text: str, separator: str, expected: Optional[int] = None) -> List[str]:
    """
    Split a multiplexed reply back into its parts.

    Tries, in order: a JSON array of strings, an exact split after
    normalizing full-width bars, then two progressively looser separator
    patterns. The first variant yielding ``expected`` parts wins.

    Args:
        text: Reply text
        separator: Sentinel separator the request was joined with
        expected: Number of parts sent (None accepts the exact split)

    Returns:
        Stripped parts
    """
    stripped = (text or '').strip()
    if stripped.startswith('['):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list) and (expected is None or len(data) == expected):
            return [str(p).strip() for p in data]

    normalized = stripped.replace('｜', '|')
    parts = normalized.split(separator)
    if expected is None or len(parts) == expected:
        return [p.strip() for p in parts]

    for pattern in (_tolerant_pattern(separator), _loose_pattern(separator)):
        candidate = pattern.split(normalized)
        if len(candidate) == expected:
            return [p.strip() for p in candidate]

    return [p.strip() for p in parts]


class BatchTranslator:
    """Multiplexes a group's texts into batched provider calls."""

    def __init__(self, session: TranslationSession, arbiter: ProviderArbiter,
                 rng: Callable[[], float] = random.random):
        self.session = session
        self.arbiter = arbiter
        self.rng = rng
        self.rate_limit_config: RetryConfig = rate_limit_retry_config(
            session.config.rate_limit_max_attempts, session.config.sweep_max_delay
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def is_acceptable(self, part: str, source: str) -> bool:
        """A part worth writing: non-empty, and changed or in the target script."""
        part = (part or '').strip()
        if not part:
            return False
        return normalize_text(part) != normalize_text(source) or \
            self.session.direction.has_target_evidence(part)

    def validate(self, reply: str, sources: Sequence[str]) -> List[str]:
        """
        Split and validate a batch reply.

        Raises:
            BatchValidationError: Part count differs from the item count, or
                no part is both changed and in the target script
        """
        parts = split_parts(reply, self.session.config.sentinel, expected=len(sources))
        if len(parts) != len(sources):
            raise BatchValidationError("Batch reply part count mismatch",
                                       expected_count=len(sources), actual_count=len(parts))
        direction = self.session.direction
        if not any(normalize_text(p) != normalize_text(s) and direction.has_target_evidence(p)
                   for p, s in zip(parts, sources)):
            raise BatchValidationError("Batch reply echoed the source",
                                       expected_count=len(sources), actual_count=len(parts))
        return parts

    # ------------------------------------------------------------------
    # Group entry point
    # ------------------------------------------------------------------

    async def translate_group(self, group: BlockGroup) -> int:
        """
        Translate every node of ``group`` that still needs work.

        Returns:
            Number of nodes resolved from the lexicon
        """
        session = self.session
        if not session.active or group.claimed:
            return 0

        from_lexicon = 0
        items: List[Item] = []
        for rec in group.nodes:
            if not session.needs_work(rec):
                continue
            text = rec.node.read()
            hit = session.lexicon.lookup(text)
            if hit is not None and session.apply_translation(rec, hit, text, "lexicon"):
                session.metrics.lexicon_hits += 1
                from_lexicon += 1
                continue
            items.append((rec, text))

        if not items:
            return from_lexicon

        recs = [rec for rec, _ in items]
        session.mark_pending(recs)
        group.claimed = True
        size = session.config.batch_size
        try:
            chunks = [items[i:i + size] for i in range(0, len(items), size)]
            results = await asyncio.gather(*(self._translate_chunk(c) for c in chunks),
                                           return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    session.logger.debug(f"Batch failed: {result!r}", LogType.ERROR_DETAIL,
                                         {'details': repr(result)})
        finally:
            group.claimed = False
            if session.active:
                session.clear_pending(recs)
        return from_lexicon

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def _translate_chunk(self, items: List[Item]) -> None:
        session = self.session
        if not session.active:
            return
        if len(items) == 1:
            rec, text = items[0]
            await self._translate_item(rec, text)
            return

        sources = [text for _, text in items]
        session.metrics.batches_sent += 1
        outcome = await self.arbiter.translate(session.config.sentinel.join(sources))
        if not session.active:
            return

        if outcome.kind is OutcomeKind.TRANSLATED:
            try:
                parts = self.validate(outcome.text, sources)
            except BatchValidationError as e:
                session.metrics.batch_fallbacks += 1
                session.logger.debug(f"{e}; falling back to per-item calls")
                await self._per_item(items)
                return
            for (rec, source), part in zip(items, parts):
                if self.is_acceptable(part, source):
                    session.apply_translation(rec, part, source, outcome.provider)
            session.reset_sweep_delay()
            return

        if outcome.kind is OutcomeKind.RATE_LIMITED:
            session.note_rate_limit()
            await self._per_item(items, rate_limited=True)
            return

        if outcome.kind is OutcomeKind.RETRYABLE:
            await self._per_item(items)
            return

        if outcome.reason in (REASON_EMPTY, REASON_WRONG_SCRIPT, REASON_ECHO):
            session.metrics.batch_fallbacks += 1
            await self._per_item(items)
        # Other nulls: left for the sweep loop

    async def _per_item(self, items: List[Item], rate_limited: bool = False) -> None:
        results = await asyncio.gather(
            *(self._translate_item(rec, text, rate_limited) for rec, text in items),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                self.session.logger.debug(f"Item failed: {result!r}")

    # ------------------------------------------------------------------
    # Single items
    # ------------------------------------------------------------------

    def _still_current(self, rec: TranslatableNode, source: str) -> bool:
        return rec.status is NodeStatus.PENDING and \
            normalize_text(rec.node.read()) == normalize_text(source)

    async def _translate_item(self, rec: TranslatableNode, source: str,
                              rate_limited: bool = False) -> None:
        """Translate one node, with rate-limit backoff and one retryable retry."""
        session = self.session
        rate_limit_attempt = 0
        retryable_attempts = 0

        if rate_limited:
            rate_limit_attempt = 1
            await session.clock.sleep(self._rate_limit_delay(rate_limit_attempt))

        while session.active and self._still_current(rec, source):
            outcome: CallOutcome = await self.arbiter.translate(source)
            if not session.active:
                return

            if outcome.kind is OutcomeKind.TRANSLATED:
                if self.is_acceptable(outcome.text, source):
                    session.apply_translation(rec, outcome.text, source, outcome.provider)
                    session.reset_sweep_delay()
                return

            if outcome.kind is OutcomeKind.RATE_LIMITED:
                session.note_rate_limit()
                rate_limit_attempt += 1
                if rate_limit_attempt > self.rate_limit_config.max_attempts:
                    return
                await session.clock.sleep(self._rate_limit_delay(rate_limit_attempt))
                continue

            if outcome.kind is OutcomeKind.RETRYABLE and \
                    retryable_attempts < RETRYABLE_RETRY_CONFIG.max_attempts:
                retryable_attempts += 1
                continue

            return

    def _rate_limit_delay(self, attempt: int) -> float:
        return calculate_delay(attempt, self.rate_limit_config,
                               ceiling=self.session.sweep_delay, rng=self.rng)
