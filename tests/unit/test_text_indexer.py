"""Unit tests for text node enumeration, exclusions and block grouping."""

from clip_translate.core.document import HtmlDocument, MappingLayout, Rect, TextNode, SLOT_TAIL, SLOT_TEXT
from clip_translate.core.scripts import direction_for
from clip_translate.core.text_indexer import TextIndexer


def index(html, target="zh-CN", layout=None):
    document = HtmlDocument.from_string(html)
    indexer = TextIndexer(direction_for(target), layout)
    return document, indexer, indexer.index(document.body)


def texts(blocks):
    return [[node.read() for node in block.nodes] for block in blocks]


class TestExclusions:

    def test_code_script_and_form_controls_are_skipped(self):
        _, _, blocks = index(
            "<html><body>"
            "<p>Visible text</p>"
            "<pre>Preformatted text</pre>"
            "<p><code>some_code()</code> explained here</p>"
            "<script>var hidden = 'text';</script>"
            "<textarea>Typed text</textarea>"
            "<button>Click here</button>"
            "</body></html>"
        )
        assert texts(blocks) == [["Visible text"], [" explained here"]]

    def test_hidden_and_editable_regions_are_skipped(self):
        _, _, blocks = index(
            "<html><body>"
            "<div hidden><p>Hidden attribute</p></div>"
            "<div aria-hidden='true'><p>Aria hidden</p></div>"
            "<div style='display: none'><p>Display none</p></div>"
            "<div style='visibility:hidden'><p>Invisible</p></div>"
            "<div contenteditable='true'><p>Editable</p></div>"
            "<div contenteditable='false'><p>Not editable</p></div>"
            "<div class='hljs language-python'>Highlighted code</div>"
            "</body></html>"
        )
        assert texts(blocks) == [["Not editable"]]

    def test_links_are_translated(self):
        _, _, blocks = index("<html><body><p><a href='/x'>Read more</a></p></body></html>")
        assert texts(blocks) == [["Read more"]]

    def test_added_subtree_inside_excluded_region(self):
        document = HtmlDocument.from_string(
            "<html><body><pre><span>Inside pre</span></pre></body></html>")
        indexer = TextIndexer(direction_for("zh-CN"))
        span = document.body[0][0]

        assert indexer.index(span) != []
        assert indexer.index(span, check_ancestors=True) == []


class TestEligibility:

    def test_numeric_and_single_character_text_is_skipped(self):
        _, _, blocks = index(
            "<html><body><p>3</p><p>2024-01-05</p><p>12:30</p><p>x</p><p>Ok then</p></body></html>")
        assert texts(blocks) == [["Ok then"]]

    def test_chinese_target_skips_chinese_text(self):
        _, _, blocks = index("<html><body><p>已经是中文</p><p>English text</p></body></html>")
        assert texts(blocks) == [["English text"]]

    def test_latin_target_picks_chinese_text(self):
        _, _, blocks = index("<html><body><p>你好世界</p><p>English text</p></body></html>", target="en")
        assert texts(blocks) == [["你好世界"]]

    def test_mixed_text_is_eligible(self):
        _, _, blocks = index("<html><body><p>使用 Python 编程</p></body></html>")
        assert texts(blocks) == [["使用 Python 编程"]]


class TestGrouping:

    def test_inline_nodes_share_their_block(self):
        document, indexer, blocks = index(
            "<html><body><p>Hello <b>brave</b> new world</p><li>List item</li></body></html>")

        assert len(blocks) == 2
        p = document.body[0]
        assert blocks[0].element is p
        assert [n.slot for n in blocks[0].nodes] == [SLOT_TEXT, SLOT_TEXT, SLOT_TAIL]
        assert blocks[0].nodes[2].owner is p

    def test_root_tail_is_not_indexed(self):
        document = HtmlDocument.from_string(
            "<html><body><div><span>Inner text</span> trailing words</div></body></html>")
        indexer = TextIndexer(direction_for("zh-CN"))
        span = document.body[0][0]

        nodes = list(indexer.iter_text_nodes(span))
        assert [n.read() for n in nodes] == ["Inner text"]

    def test_blocks_are_ordered_by_layout_top(self):
        document = HtmlDocument.from_string(
            "<html><body><p>First paragraph</p><p>Second paragraph</p><p>Third paragraph</p></body></html>")
        first, second, third = document.body
        layout = MappingLayout({
            first: Rect.from_xywh(0, 900, 100, 20),
            second: Rect.from_xywh(0, 10, 100, 20),
        })
        indexer = TextIndexer(direction_for("zh-CN"), layout)

        blocks = indexer.index(document.body)

        assert [b.element for b in blocks] == [second, first, third]

    def test_index_node_for_changed_text(self):
        document = HtmlDocument.from_string("<html><body><p>Old text</p><pre>Code text</pre></body></html>")
        indexer = TextIndexer(direction_for("zh-CN"))
        p, pre = document.body

        block = indexer.index_node(TextNode(p))
        assert block.element is p
        assert indexer.index_node(TextNode(pre)) is None
