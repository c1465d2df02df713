"""
Script evidence helpers.

Decides, for a configured target language, which writing system counts as
"source" evidence (text worth translating) and which counts as "target"
evidence (text that already looks translated).
"""
import re
from dataclasses import dataclass
from typing import Pattern

HAN_PATTERN = re.compile(r'[一-龥]')
LATIN_PATTERN = re.compile(r'[A-Za-z]')
KANA_PATTERN = re.compile(r'[぀-ヿ一-龥]')
HANGUL_PATTERN = re.compile(r'[가-힯ᄀ-ᇿ]')

# Digits, whitespace and the separators found in dates, times and prices
NUMERIC_ONLY_PATTERN = re.compile(r'^[\d\s.\-/:]+$')

_WHITESPACE = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    """Trim and collapse internal whitespace (lexicon key form)."""
    return _WHITESPACE.sub(' ', (text or '').strip())


def is_translatable_text(text: str) -> bool:
    """Filter empty, single-character and purely numeric/punctuation text."""
    s = (text or '').strip()
    if len(s) <= 1:
        return False
    if NUMERIC_ONLY_PATTERN.match(s):
        return False
    return True


def normalize_language(lang: str) -> str:
    """Map the short Chinese code to the regional one providers expect."""
    lang = (lang or '').strip()
    return 'zh-CN' if lang.lower() == 'zh' else lang


@dataclass(frozen=True)
class ScriptDirection:
    """Source/target script evidence for one translation direction."""
    target_language: str
    source_pattern: Pattern
    target_pattern: Pattern
    source_language: str

    def has_source_evidence(self, text: str) -> bool:
        return bool(self.source_pattern.search(text or ''))

    def has_target_evidence(self, text: str) -> bool:
        return bool(self.target_pattern.search(text or ''))

    def is_eligible(self, text: str) -> bool:
        """Text worth sending to a provider for this direction."""
        return is_translatable_text(text) and self.has_source_evidence(text)


def direction_for(target_language: str) -> ScriptDirection:
    """Build the script direction for a target language code."""
    lang = normalize_language(target_language)
    lower = lang.lower()
    if lower.startswith('zh'):
        return ScriptDirection(lang, LATIN_PATTERN, HAN_PATTERN, 'en')
    if lower.startswith('ja'):
        return ScriptDirection(lang, LATIN_PATTERN, KANA_PATTERN, 'en')
    if lower.startswith('ko'):
        return ScriptDirection(lang, LATIN_PATTERN, HANGUL_PATTERN, 'en')
    # Latin-script targets: translate Chinese content into them
    return ScriptDirection(lang, HAN_PATTERN, LATIN_PATTERN, 'zh-CN')
