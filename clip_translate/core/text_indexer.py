"""
Text node indexer.

Walks a document (or an added subtree) once and collects the leaf text
slots worth translating, grouped by their nearest block-level ancestor.
"""

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Dict

from lxml import etree

from clip_translate.core.document import (
    TextNode, Layout, SLOT_TEXT, SLOT_TAIL, OFFSCREEN_TOP
)
from clip_translate.core.scripts import ScriptDirection

EXCLUDED_TAGS = frozenset({
    'script', 'style', 'noscript', 'code', 'pre', 'svg', 'textarea', 'input',
    'select', 'option', 'button', 'meta', 'link', 'audio', 'video', 'img',
    'iframe', 'canvas', 'template', 'head', 'title',
})

BLOCK_TAGS = frozenset({
    'p', 'div', 'article', 'section', 'li', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'main', 'aside', 'blockquote', 'td', 'th', 'dd', 'dt', 'caption',
    'figcaption', 'header', 'footer', 'nav', 'table', 'ul', 'ol', 'body',
})

_DISPLAY_NONE = re.compile(r'display\s*:\s*none', re.I)
_VISIBILITY_HIDDEN = re.compile(r'visibility\s*:\s*hidden', re.I)
_CODE_CLASS = re.compile(r'code|hljs', re.I)


def _tag_name(element) -> Optional[str]:
    tag = element.tag
    if not isinstance(tag, str):
        # Comments and processing instructions
        return None
    return etree.QName(tag).localname.lower() if '}' in tag else tag.lower()


@dataclass
class IndexedBlock:
    """A block container and the eligible text slots found under it."""
    element: etree._Element
    nodes: List[TextNode] = field(default_factory=list)
    top: float = OFFSCREEN_TOP


class TextIndexer:
    """Enumerates translatable text units for one script direction."""

    def __init__(self, direction: ScriptDirection, layout: Optional[Layout] = None):
        self.direction = direction
        self.layout = layout

    def is_excluded(self, element) -> bool:
        """True if ``element`` itself starts a region that is never translated."""
        tag = _tag_name(element)
        if tag is None:
            return True
        if tag in EXCLUDED_TAGS:
            return True
        editable = element.get('contenteditable')
        if editable is not None and editable.strip().lower() != 'false':
            return True
        if element.get('hidden') is not None:
            return True
        if (element.get('aria-hidden') or '').strip().lower() == 'true':
            return True
        style = element.get('style') or ''
        if _DISPLAY_NONE.search(style) or _VISIBILITY_HIDDEN.search(style):
            return True
        if _CODE_CLASS.search(element.get('class') or ''):
            return True
        return False

    def is_within_excluded(self, element) -> bool:
        """True if ``element`` or any ancestor is excluded."""
        while element is not None:
            if self.is_excluded(element):
                return True
            element = element.getparent()
        return False

    def is_eligible(self, text: str) -> bool:
        return self.direction.is_eligible(text)

    def iter_text_nodes(self, root) -> Iterator[TextNode]:
        """Yield every text slot under ``root`` outside excluded regions.

        The tail of ``root`` itself is not part of its subtree and is skipped.
        """
        if self.is_excluded(root):
            return
        if root.text:
            yield TextNode(root, SLOT_TEXT)
        for child in root:
            if _tag_name(child) is not None:
                yield from self.iter_text_nodes(child)
            if child.tail:
                yield TextNode(child, SLOT_TAIL)

    def block_of(self, node: TextNode):
        """Nearest block-level ancestor of the node's owner, else the owner."""
        owner = node.owner
        element = owner
        while element is not None:
            if _tag_name(element) in BLOCK_TAGS:
                return element
            element = element.getparent()
        return owner

    def _top_of(self, element) -> float:
        if self.layout is None:
            return OFFSCREEN_TOP
        rect = self.layout.rect_of(element)
        return rect.top if rect is not None else OFFSCREEN_TOP

    def index(self, root, check_ancestors: bool = False) -> List[IndexedBlock]:
        """
        Collect eligible text slots under ``root`` grouped by block.

        Args:
            root: Element to walk
            check_ancestors: Also reject ``root`` when an ancestor is excluded
                (used for content added after the initial walk)

        Returns:
            Blocks ordered by layout top, document order breaking ties
        """
        if root is None:
            return []
        if check_ancestors and self.is_within_excluded(root):
            return []

        blocks: Dict[etree._Element, IndexedBlock] = {}
        order: List[IndexedBlock] = []
        for node in self.iter_text_nodes(root):
            if not self.is_eligible(node.read()):
                continue
            block_el = self.block_of(node)
            if block_el is None:
                continue
            block = blocks.get(block_el)
            if block is None:
                block = IndexedBlock(block_el, top=self._top_of(block_el))
                blocks[block_el] = block
                order.append(block)
            block.nodes.append(node)

        # sorted() is stable, so document order survives equal tops
        return sorted(order, key=lambda b: b.top)

    def index_node(self, node: TextNode) -> Optional[IndexedBlock]:
        """Index a single changed text slot (None if not eligible)."""
        owner = node.owner
        if owner is None or self.is_within_excluded(owner):
            return None
        if not self.is_eligible(node.read()):
            return None
        block_el = self.block_of(node)
        return IndexedBlock(block_el, [node], top=self._top_of(block_el))
