"""Unit tests for sentinel batching, reply splitting and per-item fallback."""

import asyncio

import pytest

from clip_translate.config import TranslatorConfig, SENTINEL_SEPARATOR
from clip_translate.core.arbiter import ProviderArbiter
from clip_translate.core.batch_translator import BatchTranslator, split_parts
from clip_translate.core.exceptions import BatchValidationError, ErrorKind
from clip_translate.core.providers.base import ProviderResult
from clip_translate.core.session import NodeStatus
from clip_translate.core.text_indexer import TextIndexer
from tests.conftest import FakeProvider


SEP = SENTINEL_SEPARATOR
MIXED = "<html><body><p>Hello <b>brave</b> new world</p></body></html>"


def build(session, mt, premium=None):
    """Index the session document and return (translator, groups)."""
    indexer = TextIndexer(session.direction)
    groups = [session.group_for(block) for block in indexer.index(session.document.body)]
    return BatchTranslator(session, ProviderArbiter(session, mt, premium), rng=lambda: 0.0), groups


class TestSplitParts:

    def test_exact_separator(self):
        assert split_parts(f"你好{SEP}世界", SEP, expected=2) == ["你好", "世界"]

    def test_json_array(self):
        assert split_parts('["你好", "世界"]', SEP, expected=2) == ["你好", "世界"]

    def test_json_array_with_wrong_length_is_ignored(self):
        parts = split_parts('["你好"]', SEP, expected=2)
        assert len(parts) == 1

    def test_full_width_bars(self):
        reply = "你好｜｜｜CLIP_SEP｜｜｜世界"
        assert split_parts(reply, SEP, expected=2) == ["你好", "世界"]

    def test_spaced_separator(self):
        reply = "你好 | | | CLIP_SEP | | | 世界"
        assert split_parts(reply, SEP, expected=2) == ["你好", "世界"]

    def test_loose_separator(self):
        reply = "你好 || clip sep | 世界|CLIP_SEP|再见"
        assert split_parts(reply, SEP, expected=3) == ["你好", "世界", "再见"]

    def test_no_expectation_uses_exact_split(self):
        assert split_parts(f" a {SEP} b {SEP} c ", SEP) == ["a", "b", "c"]


class TestValidation:

    def test_count_mismatch_raises(self, make_session):
        translator, _ = build(make_session(), FakeProvider())
        with pytest.raises(BatchValidationError) as exc_info:
            translator.validate("你好", ["Hello", "World"])
        assert exc_info.value.expected_count == 2
        assert exc_info.value.actual_count == 1

    def test_full_echo_raises(self, make_session):
        translator, _ = build(make_session(), FakeProvider())
        with pytest.raises(BatchValidationError):
            translator.validate(f"Hello{SEP}World", ["Hello", "World"])

    def test_partial_echo_is_accepted(self, make_session):
        translator, _ = build(make_session(), FakeProvider())
        parts = translator.validate(f"你好{SEP}World", ["Hello", "World"])
        assert parts == ["你好", "World"]
        assert not translator.is_acceptable("World", "World")
        assert translator.is_acceptable("你好", "Hello")


class TestTranslateGroup:

    @pytest.mark.asyncio
    async def test_one_call_for_whole_block(self, make_session):
        session = make_session(MIXED)
        mt = FakeProvider()
        translator, groups = build(session, mt)

        assert len(groups) == 1 and len(groups[0].nodes) == 3
        await translator.translate_group(groups[0])

        assert mt.call_count == 1
        assert mt.calls[0] == SEP.join(["Hello ", "brave", " new world"])
        p = session.document.body[0]
        assert p.text == "你好 "
        assert p[0].text == "勇敢"
        assert p[0].tail == " 新世界"
        assert all(rec.status is NodeStatus.TRANSLATED for rec in groups[0].nodes)
        assert session.metrics.batches_sent == 1
        assert not groups[0].claimed

    @pytest.mark.asyncio
    async def test_wrong_count_falls_back_per_item(self, make_session):
        session = make_session(MIXED)
        plain = FakeProvider()

        def responder(text):
            if SEP in text:
                return "你好勇敢新世界"
            return plain.translate_parts(text)

        mt = FakeProvider(responder=responder)
        translator, groups = build(session, mt)

        await translator.translate_group(groups[0])

        assert mt.call_count == 4
        assert session.metrics.batch_fallbacks == 1
        assert all(rec.status is NodeStatus.TRANSLATED for rec in groups[0].nodes)

    @pytest.mark.asyncio
    async def test_batches_are_capped(self, make_session):
        config = TranslatorConfig(target_language="zh-CN", batch_size=2)
        session = make_session(MIXED, config=config)
        mt = FakeProvider()
        translator, groups = build(session, mt)

        await translator.translate_group(groups[0])

        assert mt.call_count == 2
        assert session.metrics.batches_sent == 1
        assert SEP not in mt.calls[1]

    @pytest.mark.asyncio
    async def test_lexicon_hits_skip_the_provider(self, make_session):
        session = make_session(MIXED)
        session.lexicon.store("Hello", "你好")
        mt = FakeProvider()
        translator, groups = build(session, mt)

        resolved = await translator.translate_group(groups[0])

        assert resolved == 1
        assert mt.call_count == 1
        assert mt.calls[0] == SEP.join(["brave", " new world"])
        assert session.metrics.lexicon_hits == 1

    @pytest.mark.asyncio
    async def test_failed_nodes_return_to_untranslated(self, make_session):
        session = make_session(MIXED)
        mt = FakeProvider(responder=lambda text: ProviderResult.failure(ErrorKind.BAD_REQUEST))
        translator, groups = build(session, mt)

        await translator.translate_group(groups[0])

        assert all(rec.status is NodeStatus.UNTRANSLATED for rec in groups[0].nodes)
        assert all(rec.attempts == 1 for rec in groups[0].nodes)
        assert not session.pending

    @pytest.mark.asyncio
    async def test_claimed_group_is_skipped(self, make_session):
        session = make_session(MIXED)
        mt = FakeProvider()
        translator, groups = build(session, mt)
        groups[0].claimed = True

        await translator.translate_group(groups[0])

        assert mt.call_count == 0

    @pytest.mark.asyncio
    async def test_text_changed_in_flight_is_discarded(self, make_session):
        session = make_session("<html><body><p>Hello world</p></body></html>")
        p = session.document.body[0]

        def responder(text):
            p.text = "Goodbye friend"
            return "你好世界"

        translator, groups = build(session, FakeProvider(responder=responder))
        await translator.translate_group(groups[0])

        assert p.text == "Goodbye friend"
        assert groups[0].nodes[0].status is NodeStatus.UNTRANSLATED


class TestRateLimitedBatch:

    @pytest.mark.asyncio
    async def test_rate_limited_batch_retries_items_after_backoff(self, make_session, clock):
        session = make_session(MIXED)
        plain = FakeProvider()

        def responder(text):
            if SEP in text:
                return ProviderResult.failure(ErrorKind.RATE_LIMIT, "slow down")
            return plain.translate_parts(text)

        mt = FakeProvider(responder=responder)
        translator, groups = build(session, mt)

        task = asyncio.ensure_future(translator.translate_group(groups[0]))
        await clock.settle()
        assert mt.call_count == 1
        assert session.sweep_delay == pytest.approx(12.0)

        # rng is pinned to 0, so the first backoff is exactly 2s
        await clock.advance(2)
        await task

        assert mt.call_count == 4
        assert all(rec.status is NodeStatus.TRANSLATED for rec in groups[0].nodes)
        assert session.sweep_delay == pytest.approx(8.0)
        assert session.metrics.rate_limit_events == 1
