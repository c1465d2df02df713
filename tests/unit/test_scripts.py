"""Unit tests for script evidence helpers and the session lexicon."""

import pytest

from clip_translate.core.lexicon import Lexicon
from clip_translate.core.scripts import (
    direction_for, is_translatable_text, normalize_language, normalize_text
)


class TestScripts:

    @pytest.mark.parametrize("text,expected", [
        ("", False),
        ("a", False),
        ("  b  ", False),
        ("42", False),
        ("3.14", False),
        ("2024/01/05 12:00", False),
        ("Hi", True),
        ("v2", True),
    ])
    def test_is_translatable_text(self, text, expected):
        assert is_translatable_text(text) is expected

    def test_normalize_text_collapses_whitespace(self):
        assert normalize_text("  Hello \n\t world ") == "Hello world"

    def test_normalize_language(self):
        assert normalize_language("zh") == "zh-CN"
        assert normalize_language("ZH") == "zh-CN"
        assert normalize_language("zh-TW") == "zh-TW"
        assert normalize_language("fr") == "fr"

    def test_chinese_direction(self):
        direction = direction_for("zh")
        assert direction.target_language == "zh-CN"
        assert direction.is_eligible("Hello")
        assert not direction.is_eligible("你好")
        assert direction.has_target_evidence("你好 Hello")

    def test_latin_direction(self):
        direction = direction_for("en")
        assert direction.source_language == "zh-CN"
        assert direction.is_eligible("你好")
        assert not direction.is_eligible("Hello")

    def test_japanese_and_korean_targets(self):
        assert direction_for("ja").has_target_evidence("こんにちは")
        assert direction_for("ko").has_target_evidence("안녕하세요")
        assert not direction_for("ko").has_target_evidence("Hello")


class TestLexicon:

    def test_store_and_lookup_normalized(self):
        lexicon = Lexicon(direction_for("zh-CN"))

        assert lexicon.store("  Hello   world ", "你好世界")
        assert lexicon.lookup("Hello world") == "你好世界"
        assert "Hello\nworld" in lexicon
        assert lexicon.hits == 1

    def test_rejects_echo_and_wrong_script(self):
        lexicon = Lexicon(direction_for("zh-CN"))

        assert not lexicon.store("Hello", "Hello")
        assert not lexicon.store("Hello", "Bonjour")
        assert not lexicon.store("Hello", "   ")
        assert len(lexicon) == 0
        assert lexicon.lookup("Hello") is None

    def test_clear(self):
        lexicon = Lexicon(direction_for("zh-CN"))
        lexicon.store("Hello", "你好")
        lexicon.lookup("Hello")

        lexicon.clear()

        assert len(lexicon) == 0
        assert lexicon.hits == 0
