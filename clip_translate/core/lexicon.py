"""
Session-scoped lexicon: normalized source text -> translation.
"""

from typing import Dict, Optional

from clip_translate.core.scripts import ScriptDirection, normalize_text


class Lexicon:
    """Instant reuse of translations already obtained in this session."""

    def __init__(self, direction: ScriptDirection):
        self.direction = direction
        self._entries: Dict[str, str] = {}
        self.hits = 0

    def lookup(self, source: str) -> Optional[str]:
        value = self._entries.get(normalize_text(source))
        if value is not None:
            self.hits += 1
        return value

    def store(self, source: str, translation: str) -> bool:
        """Store an entry if it is a real translation.

        Returns:
            True if the entry was stored
        """
        key = normalize_text(source)
        value = (translation or '').strip()
        if not key or not value:
            return False
        if value == key or not self.direction.has_target_evidence(value):
            return False
        self._entries[key] = value
        return True

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source: str) -> bool:
        return normalize_text(source) in self._entries
