"""
Live document model backed by lxml.

A translatable leaf is a TextNode: an (element, slot) pair where the slot
is either the element's leading ``text`` or the ``tail`` that follows it
inside its parent. Geometry is injected through a Layout so the same
engine can be driven by a real renderer, by measured rectangles, or by a
document-order estimate for static files.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Protocol, Union

import lxml.html
from lxml import etree

SLOT_TEXT = "text"
SLOT_TAIL = "tail"

# Position used for elements the layout cannot place
OFFSCREEN_TOP = 1e9


class TextNode:
    """Handle on one text slot of the document."""

    __slots__ = ('element', 'slot')

    def __init__(self, element: etree._Element, slot: str = SLOT_TEXT):
        if slot not in (SLOT_TEXT, SLOT_TAIL):
            raise ValueError(f"unknown text slot: {slot}")
        self.element = element
        self.slot = slot

    @property
    def owner(self) -> Optional[etree._Element]:
        """Element whose content this text belongs to."""
        if self.slot == SLOT_TEXT:
            return self.element
        return self.element.getparent()

    def read(self) -> str:
        return getattr(self.element, self.slot) or ''

    def write(self, value: str) -> None:
        setattr(self.element, self.slot, value)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TextNode):
            return NotImplemented
        return self.element is other.element and self.slot == other.slot

    def __hash__(self) -> int:
        return hash((id(self.element), self.slot))

    def __repr__(self) -> str:
        preview = self.read().strip()
        if len(preview) > 40:
            preview = preview[:40] + "..."
        return f"TextNode(<{self.element.tag}>.{self.slot}, '{preview}')"


@dataclass
class Rect:
    """Axis-aligned box in document coordinates (pixels)."""
    top: float
    left: float
    bottom: float
    right: float

    @classmethod
    def from_xywh(cls, x: float, y: float, width: float, height: float) -> 'Rect':
        return cls(top=y, left=x, bottom=y + height, right=x + width)


@dataclass
class Viewport:
    """Visible window onto the document."""
    width: float = 1280
    height: float = 800
    scroll_x: float = 0
    scroll_y: float = 0

    def is_near(self, rect: Optional[Rect], margin: float) -> bool:
        """True if ``rect`` lies within ``margin`` pixels of the visible area."""
        if rect is None:
            return False
        top = rect.top - self.scroll_y
        bottom = rect.bottom - self.scroll_y
        left = rect.left - self.scroll_x
        right = rect.right - self.scroll_x
        return (bottom >= -margin and top <= self.height + margin
                and right >= -margin and left <= self.width + margin)


class Layout(Protocol):
    """Geometry provider: document-coordinate box of an element, if rendered."""

    def rect_of(self, element: etree._Element) -> Optional[Rect]:
        ...


class MappingLayout:
    """Layout from explicitly measured rectangles."""

    def __init__(self, rects: Optional[Dict[etree._Element, Rect]] = None):
        self._rects: Dict[etree._Element, Rect] = dict(rects or {})

    def set(self, element: etree._Element, rect: Rect) -> None:
        self._rects[element] = rect

    def rect_of(self, element: etree._Element) -> Optional[Rect]:
        return self._rects.get(element)


class DocumentOrderLayout:
    """Estimated layout: every element gets one row, in document order."""

    def __init__(self, root: etree._Element, row_height: float = 40, width: float = 1280):
        self.root = root
        self.row_height = row_height
        self.width = width
        self._rows: Dict[etree._Element, int] = {}

    def _reindex(self) -> None:
        self._rows = {el: i for i, el in enumerate(self.root.iter()) if isinstance(el.tag, str)}

    def rect_of(self, element: etree._Element) -> Optional[Rect]:
        row = self._rows.get(element)
        if row is None:
            # Unknown element: the tree changed since the last index
            self._reindex()
            row = self._rows.get(element)
            if row is None:
                return None
        top = row * self.row_height
        return Rect(top=top, left=0, bottom=top + self.row_height, right=self.width)


class HtmlDocument:
    """The live document a translator session works on."""

    def __init__(self, root: etree._Element, url: Optional[str] = None):
        self.root = root
        self.url = url

    @classmethod
    def from_string(cls, html: str, url: Optional[str] = None) -> 'HtmlDocument':
        return cls(lxml.html.document_fromstring(html), url=url)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'HtmlDocument':
        path = Path(path)
        return cls(lxml.html.parse(str(path)).getroot(), url=path.resolve().as_uri())

    @property
    def body(self) -> etree._Element:
        body = self.root.find('body')
        return body if body is not None else self.root

    def contains(self, element: Optional[etree._Element]) -> bool:
        """True while ``element`` is still attached under this document."""
        while element is not None:
            if element is self.root:
                return True
            element = element.getparent()
        return False

    def to_string(self) -> str:
        return lxml.html.tostring(self.root, encoding='unicode', doctype='<!DOCTYPE html>')
