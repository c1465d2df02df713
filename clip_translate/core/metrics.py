"""Page translation metrics and statistics tracking."""

import time
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class TranslationMetrics:
    """Counters for one translation session.

    Tracks provider usage, fallbacks, lexicon reuse and sweep activity.
    """
    # === Provider calls ===
    provider_calls: Dict[str, int] = field(default_factory=dict)
    """Map of provider name -> calls started. Example: {"google_mt": 12, "premium": 1}"""
    provider_failures: Dict[str, int] = field(default_factory=dict)

    # === Nodes ===
    nodes_indexed: int = 0
    nodes_translated: int = 0
    lexicon_hits: int = 0
    reapplied: int = 0
    requeued: int = 0

    # === Batches ===
    batches_sent: int = 0
    batch_fallbacks: int = 0
    rate_limit_events: int = 0

    # === Rounds ===
    bulk_rounds: int = 0
    sweep_rounds: int = 0

    # === Timing ===
    start_time: float = field(default_factory=time.time)
    end_time: float = 0.0

    def record_call(self, provider: str) -> None:
        self.provider_calls[provider] = self.provider_calls.get(provider, 0) + 1

    def record_failure(self, provider: str) -> None:
        self.provider_failures[provider] = self.provider_failures.get(provider, 0) + 1

    def finalize(self) -> None:
        """Finalize metrics (call when the session ends)."""
        self.end_time = time.time()

    @property
    def total_calls(self) -> int:
        return sum(self.provider_calls.values())

    @property
    def total_time_seconds(self) -> float:
        end = self.end_time or time.time()
        return end - self.start_time

    def to_dict(self) -> Dict:
        """Convert metrics to dictionary for serialization."""
        return {
            "provider_calls": dict(self.provider_calls),
            "provider_failures": dict(self.provider_failures),
            "total_calls": self.total_calls,
            "nodes_indexed": self.nodes_indexed,
            "nodes_translated": self.nodes_translated,
            "lexicon_hits": self.lexicon_hits,
            "reapplied": self.reapplied,
            "requeued": self.requeued,
            "batches_sent": self.batches_sent,
            "batch_fallbacks": self.batch_fallbacks,
            "rate_limit_events": self.rate_limit_events,
            "bulk_rounds": self.bulk_rounds,
            "sweep_rounds": self.sweep_rounds,
            "total_time_seconds": self.total_time_seconds,
        }

    def summary(self) -> Dict[str, str]:
        """Short human-readable view used in the session-end log."""
        return {
            "Translated nodes": f"{self.nodes_translated}/{self.nodes_indexed}",
            "Provider calls": ", ".join(f"{k}={v}" for k, v in sorted(self.provider_calls.items())) or "none",
            "Batch fallbacks": str(self.batch_fallbacks),
            "Lexicon hits": str(self.lexicon_hits),
            "Rate-limit signals": str(self.rate_limit_events),
            "Sweep rounds": str(self.sweep_rounds),
        }
