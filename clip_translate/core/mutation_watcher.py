"""
Mutation watcher and change feed.

The host (or a test) pushes ChangeBatch objects into a ChangeFeed; the
watcher reapplies translations the host reverted and queues new content.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from lxml import etree

from clip_translate.core.document import TextNode
from clip_translate.core.scripts import normalize_text
from clip_translate.core.session import TranslationSession, TranslatableNode, NodeStatus, BlockGroup
from clip_translate.core.text_indexer import TextIndexer, IndexedBlock
from clip_translate.utils.unified_logger import LogType


@dataclass
class ChangeBatch:
    """One batch of document changes.

    Attributes:
        added: Elements (subtrees) or text slots that appeared
        changed: Text slots whose content changed
    """
    added: List[Union[etree._Element, TextNode]] = field(default_factory=list)
    changed: List[TextNode] = field(default_factory=list)


class ChangeFeed:
    """Synchronous fan-out of ChangeBatch notifications."""

    def __init__(self):
        self._subscribers: List[Callable[[ChangeBatch], None]] = []

    def subscribe(self, callback: Callable[[ChangeBatch], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def push(self, batch: ChangeBatch) -> None:
        for callback in list(self._subscribers):
            callback(batch)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        self._subscribers.clear()


class MutationWatcher:
    """Keeps translations in place and picks up new content."""

    def __init__(self, session: TranslationSession, indexer: TextIndexer, visibility):
        self.session = session
        self.indexer = indexer
        self.visibility = visibility
        self._unsubscribe: Optional[Callable[[], None]] = None

    def connect(self, feed: ChangeFeed) -> None:
        self.disconnect()
        self._unsubscribe = feed.subscribe(self.handle)

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def connected(self) -> bool:
        return self._unsubscribe is not None

    def handle(self, batch: ChangeBatch) -> None:
        session = self.session
        if not session.active:
            return
        queued: List[BlockGroup] = []
        try:
            for node in batch.changed:
                group = self._on_changed(node)
                if group is not None and group not in queued:
                    queued.append(group)
            for item in batch.added:
                for group in self._on_added(item):
                    if group not in queued:
                        queued.append(group)
        except Exception as e:
            # One bad change notification must not stop later ones
            session.logger.debug(f"Change batch failed: {e!r}", LogType.ERROR_DETAIL, {'details': repr(e)})
        if queued:
            self.visibility.enqueue(queued)

    # ------------------------------------------------------------------

    def _on_added(self, item) -> List[BlockGroup]:
        if isinstance(item, TextNode):
            indexed = self.indexer.index_node(item)
            blocks = [indexed] if indexed is not None else []
        else:
            blocks = self.indexer.index(item, check_ancestors=True)
        groups = []
        for indexed in blocks:
            group = self._absorb(indexed)
            if group is not None:
                groups.append(group)
        return groups

    def _absorb(self, indexed: IndexedBlock) -> Optional[BlockGroup]:
        """Merge new nodes into their group; lexicon hits apply instantly."""
        session = self.session
        group = session.group_for(indexed)
        needs_round = False
        for node in indexed.nodes:
            rec = session.records[node]
            if self._try_lexicon(rec):
                continue
            if session.needs_work(rec):
                needs_round = True
        return group if needs_round else None

    def _try_lexicon(self, rec: TranslatableNode) -> bool:
        session = self.session
        if rec.status is not NodeStatus.UNTRANSLATED:
            return False
        text = rec.node.read()
        hit = session.lexicon.lookup(text)
        if hit is not None and session.apply_translation(rec, hit, text, "lexicon"):
            session.metrics.lexicon_hits += 1
            return True
        return False

    def _on_changed(self, node: TextNode) -> Optional[BlockGroup]:
        session = self.session
        rec = session.records.get(node)
        if rec is None:
            indexed = self.indexer.index_node(node)
            return self._absorb(indexed) if indexed is not None else None

        # In flight: the batch completion re-validates the text itself
        if rec.status is NodeStatus.PENDING:
            return None

        text = node.read()
        if rec.status is NodeStatus.TRANSLATED:
            current = normalize_text(text)
            if current == normalize_text(rec.translated):
                return None
            if current == normalize_text(rec.original):
                session.write_translation(rec, rec.translated)
                session.metrics.reapplied += 1
                return None
            # Host replaced the content with something new
            rec.status = NodeStatus.UNTRANSLATED
            rec.translated = None
            rec.attempts = 0
            session.metrics.requeued += 1

        if self._try_lexicon(rec):
            return None
        if not self.indexer.is_eligible(text):
            return None
        if rec.attempts >= session.config.max_node_attempts:
            # New text starts a fresh attempt count
            rec.attempts = 0
        return session.groups.get(rec.block)
