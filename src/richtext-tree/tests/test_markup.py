"""Tests for the markup grammar (parse and serialize)."""

from textwrap import dedent

import pytest

from richtext_tree.markup import (
    MAX_NESTING,
    MarkupError,
    list_marker,
    parse_markdown,
    serialize_blocks,
    serialize_node,
)
from richtext_tree.nodes import Document, Node, NodeType


class TestParseBlocks:
    """Tests for parsing individual block kinds."""

    def test_heading_and_paragraph(self):
        """Test heading level and paragraph text are parsed."""
        blocks = parse_markdown("## Title\n\nHello world")

        assert [b.type for b in blocks] == [NodeType.HEADING, NodeType.PARAGRAPH]
        assert blocks[0].attrs["level"] == 2
        assert blocks[0].text == "Title"
        assert blocks[1].text == "Hello world"

    def test_multiline_paragraph(self):
        """Test consecutive lines form one paragraph."""
        blocks = parse_markdown("first line\nsecond line")

        assert len(blocks) == 1
        assert blocks[0].text == "first line\nsecond line"

    def test_blank_input(self):
        """Test blank text yields no blocks."""
        assert parse_markdown("") == []
        assert parse_markdown("\n  \n") == []

    def test_bullet_list(self):
        """Test bullet items become list_item children with paragraphs."""
        blocks = parse_markdown("- one\n- two")

        assert len(blocks) == 1
        bullet = blocks[0]
        assert bullet.type == NodeType.BULLET_LIST
        assert [item.type for item in bullet.children] == [NodeType.LIST_ITEM] * 2
        assert bullet.children[1].children[0].text == "two"

    def test_ordered_list_start(self):
        """Test ordered list remembers a non-default start number."""
        blocks = parse_markdown("3. a\n4. b")

        assert blocks[0].type == NodeType.ORDERED_LIST
        assert blocks[0].attrs["start"] == 3
        assert serialize_node(blocks[0]) == "3. a\n4. b"

    def test_checkbox_list(self):
        """Test checkbox items keep their checked state."""
        blocks = parse_markdown("- [x] done\n- [ ] todo")

        checklist = blocks[0]
        assert checklist.type == NodeType.CHECKBOX_LIST
        assert [item.type for item in checklist.children] == [NodeType.CHECKBOX_ITEM] * 2
        assert checklist.children[0].attrs["checked"] is True
        assert checklist.children[1].attrs["checked"] is False

    def test_different_list_kinds_split(self):
        """Test a change of marker kind starts a new list."""
        blocks = parse_markdown("- bullet\n1. ordered")

        assert [b.type for b in blocks] == [NodeType.BULLET_LIST, NodeType.ORDERED_LIST]

    def test_nested_list(self):
        """Test indented items nest under their parent item."""
        blocks = parse_markdown("- parent\n  - child")

        item = blocks[0].children[0]
        assert item.children[0].text == "parent"
        assert item.children[1].type == NodeType.BULLET_LIST
        assert item.children[1].children[0].children[0].text == "child"

    def test_code_fence(self):
        """Test fenced code keeps language and body verbatim."""
        blocks = parse_markdown("```python\ndef f():\n    return 1\n```")

        assert blocks[0].type == NodeType.CODE_FENCE
        assert blocks[0].attrs["language"] == "python"
        assert blocks[0].text == "def f():\n    return 1"

    def test_math_block(self):
        """Test $$ fenced and single-line math."""
        blocks = parse_markdown("$$\nE = mc^2\n$$\n\n$$a+b$$")

        assert [b.type for b in blocks] == [NodeType.MATH_BLOCK, NodeType.MATH_BLOCK]
        assert blocks[0].text == "E = mc^2"
        assert blocks[1].text == "a+b"

    def test_image(self):
        """Test image alt, src and title."""
        blocks = parse_markdown('![Logo](logo.png "Company logo")')

        assert blocks[0].type == NodeType.IMAGE
        assert blocks[0].attrs == {"src": "logo.png", "alt": "Logo", "title": "Company logo"}

    def test_media_blocks(self):
        """Test video, attachment and embed directives."""
        blocks = parse_markdown("@video[Demo](v.mp4)\n\n@file[Report](r.pdf)\n\n@embed[](https://example.com)")

        assert [b.type for b in blocks] == [NodeType.VIDEO, NodeType.ATTACHMENT, NodeType.EMBED]
        assert blocks[0].attrs["title"] == "Demo"
        assert blocks[1].attrs["href"] == "r.pdf"
        assert "title" not in blocks[2].attrs

    def test_table(self):
        """Test table rows skip the separator line."""
        blocks = parse_markdown("| a | b |\n| --- | --- |\n| 1 | 2 |")

        assert blocks[0].type == NodeType.TABLE
        assert blocks[0].attrs["rows"] == [["a", "b"], ["1", "2"]]

    def test_notice(self):
        """Test notice style and inner blocks."""
        blocks = parse_markdown(":::warning\nCareful\n:::")

        assert blocks[0].type == NodeType.NOTICE
        assert blocks[0].attrs["style"] == "warning"
        assert blocks[0].children[0].text == "Careful"

    def test_blockquote(self):
        """Test quote lines are parsed as child blocks."""
        blocks = parse_markdown("> quoted\n> text")

        assert blocks[0].type == NodeType.BLOCKQUOTE
        assert blocks[0].children[0].text == "quoted\ntext"

    def test_nesting_within_limit(self):
        """Test quotes nested up to the limit still parse."""
        blocks = parse_markdown(">" * MAX_NESTING + " deep")

        node = blocks[0]
        for _ in range(MAX_NESTING - 1):
            node = node.children[0]
        assert node.children[0].text == "deep"

    def test_excessive_nesting_rejected(self):
        """Test pathologically nested content fails with MarkupError."""
        with pytest.raises(MarkupError, match="nested deeper"):
            parse_markdown(">" * 400 + " x")

    def test_deep_list_nesting_rejected(self):
        """Test deeply indented lists hit the same limit."""
        text = "\n".join("  " * level + "- item" for level in range(MAX_NESTING + 2))

        with pytest.raises(MarkupError):
            parse_markdown(text)

    def test_hr_and_toc(self):
        """Test horizontal rule and table of contents markers."""
        blocks = parse_markdown("---\n\n[[toc]]")

        assert [b.type for b in blocks] == [NodeType.HR, NodeType.TABLE_OF_CONTENTS]

    def test_list_interrupts_paragraph(self):
        """Test a list line directly after text starts a list."""
        blocks = parse_markdown("Shopping:\n- milk")

        assert [b.type for b in blocks] == [NodeType.PARAGRAPH, NodeType.BULLET_LIST]


class TestBlockIds:
    """Tests for {#id} identity lines."""

    def test_id_lines_attach_to_blocks(self):
        """Test id lines attach to the preceding block at each level."""
        text = "Hello\n{#blk_a}\n\n- one\n  {#blk_p}\n{#blk_L}"

        blocks = parse_markdown(text)

        assert blocks[0].block_id == "blk_a"
        assert blocks[1].block_id == "blk_L"
        assert blocks[1].children[0].children[0].block_id == "blk_p"

    def test_ids_survive_render_cycle(self):
        """Test render(include_ids=True) then parse keeps identities."""
        text = "Hello\n{#blk_a}\n\n- one\n  {#blk_p}\n{#blk_L}"

        doc = Document.parse(text)

        assert doc.render(include_ids=True) == text
        assert doc.render() == "Hello\n\n- one"

    def test_orphan_id_line_ignored(self):
        """Test an id line with no block before it is dropped."""
        blocks = parse_markdown("{#blk_x}\n\nText")

        assert len(blocks) == 1
        assert blocks[0].block_id is None


class TestSerialize:
    """Tests for serialization back to markup."""

    def test_round_trip(self):
        """Test parse then render reproduces the source."""
        text = dedent("""\
            # Title

            Intro paragraph

            - one
            - two
              - nested

            1. first
            2. second

            - [x] done
            - [ ] todo

            ```python
            x = 1
            ```

            $$
            a^2
            $$

            | a | b |
            | --- | --- |
            | 1 | 2 |

            ![Alt](img.png "T")

            @video[Demo](v.mp4)

            :::info
            Note
            :::

            > quote

            ---

            [[toc]]""")

        assert Document.parse(text).render() == text

    def test_list_item_with_two_paragraphs(self):
        """Test multi-paragraph items indent continuation lines."""
        item = Node(NodeType.LIST_ITEM, children=[
            Node(NodeType.PARAGRAPH, text="first"),
            Node(NodeType.PARAGRAPH, text="second"),
        ])
        bullet = Node(NodeType.BULLET_LIST, children=[item])

        rendered = serialize_node(bullet)

        assert rendered == "- first\n\n  second"
        assert parse_markdown(rendered)[0].children[0].children[1].text == "second"

    def test_serialize_blocks_joins_with_blank_line(self):
        """Test top-level blocks are separated by a blank line."""
        blocks = [Node(NodeType.PARAGRAPH, text="a"), Node(NodeType.HR)]

        assert serialize_blocks(blocks) == "a\n\n---"

    @pytest.mark.parametrize("list_type,attrs,index,expected", [
        (NodeType.BULLET_LIST, {}, 0, "- "),
        (NodeType.ORDERED_LIST, {}, 2, "3. "),
        (NodeType.CHECKBOX_LIST, {"checked": True}, 0, "- [x] "),
        (NodeType.CHECKBOX_LIST, {"checked": False}, 0, "- [ ] "),
    ])
    def test_list_marker(self, list_type, attrs, index, expected):
        """Test visual list markers per list type."""
        item = Node(list_type.item_type, attrs=attrs)

        assert list_marker(list_type, item, index) == expected
