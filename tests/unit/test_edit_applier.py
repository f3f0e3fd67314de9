"""Unit tests for edit resolution and application."""

import pytest
from richtext_tree import Document, Node, NodeType, Transaction

from blockwise.models.edits import EditAction, EditProposal
from blockwise.services.block_ids import install
from blockwise.services.edit_applier import (
    apply_edit,
    normalize_address,
    resolve_address,
    strip_list_marker,
)
from blockwise.services.exceptions import (
    BlockNotFoundError,
    InvalidEditError,
    ListItemNotFoundError,
    NonEditableBlockError,
)
from blockwise.services.segmenter import segment


def edit(block_id, action, replace_with="", target=None):
    return EditProposal(
        block_id=block_id,
        action=action,
        replace_with=replace_with,
        target_block_id=target,
    )


@pytest.fixture
def document(sample_document):
    install(sample_document)
    return sample_document


def item_texts(list_node):
    return [item.children[0].text for item in list_node.children]


class TestResolveAddress:
    """Test address resolution against the live tree."""

    def test_top_level_block(self, document):
        """Test a plain ID resolves to the top-level block."""
        target = resolve_address(document, "blk_a")

        assert target.node.text == "Hello"
        assert not target.is_item

    def test_list_item(self, document):
        """Test a composite address resolves to the N-th item."""
        target = resolve_address(document, "blk_L_item1")

        assert target.is_item
        assert target.item_index == 1
        assert target.list_node.block_id == "blk_L"
        assert target.node.children[0].text == "two"

    def test_unknown_block(self, document):
        """Test an unknown ID raises BlockNotFoundError."""
        with pytest.raises(BlockNotFoundError) as exc_info:
            resolve_address(document, "blk_missing")

        assert exc_info.value.code == "block_not_found"

    def test_unknown_list_parent(self, document):
        """Test a composite address with an unknown parent raises BlockNotFoundError."""
        with pytest.raises(BlockNotFoundError):
            resolve_address(document, "blk_gone_item0")

    def test_item_out_of_range(self, document):
        """Test an index past the end raises ListItemNotFoundError."""
        with pytest.raises(ListItemNotFoundError) as exc_info:
            resolve_address(document, "blk_L_item5")

        assert exc_info.value.item_index == 5

    def test_item_of_non_list(self, document):
        """Test an item address on a paragraph raises ListItemNotFoundError."""
        with pytest.raises(ListItemNotFoundError):
            resolve_address(document, "blk_a_item0")

    def test_id_that_looks_composite(self):
        """Test a block whose own ID ends in _itemN is still found directly."""
        document = Document(blocks=[Node(NodeType.PARAGRAPH, "x", {"block_id": "blk_item2"})])

        assert resolve_address(document, "blk_item2").node.text == "x"

    def test_nested_ids_not_addressable(self, document):
        """Test IDs of blocks inside list items are not top-level addresses."""
        nested_id = document.find_top_level("blk_L").children[0].children[0].block_id

        with pytest.raises(BlockNotFoundError):
            resolve_address(document, nested_id)

    @pytest.mark.parametrize("raw,expected", [
        ("blk_a", "blk_a"),
        (" [ID:blk_a] ", "blk_a"),
        ("[ITEM:blk_L_item0]", "blk_L_item0"),
        ("LIST:blk_L", "blk_L"),
    ])
    def test_normalize_address(self, raw, expected):
        """Test decoration echoed by the model is stripped."""
        assert normalize_address(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("- item", "item"),
        ("* item", "item"),
        ("3. item", "item"),
        ("- [x] item", "item"),
        ("- [ ] item", "item"),
        ("item", "item"),
    ])
    def test_strip_list_marker(self, raw, expected):
        """Test one leading list marker is removed."""
        assert strip_list_marker(raw) == expected


class TestReplace:
    """Test the replace action."""

    def test_replace_splits_into_blocks(self, document):
        """Test replacing one paragraph with two keeps the ID on the first."""
        apply_edit(document, edit("blk_a", EditAction.REPLACE, "Hi\n\nWorld"))

        assert document.blocks[1].text == "Hi"
        assert document.blocks[1].block_id == "blk_a"
        assert document.blocks[2].text == "World"
        assert document.blocks[2].block_id not in (None, "blk_a")

    def test_replace_can_change_type(self, document):
        """Test a paragraph can become a heading."""
        apply_edit(document, edit("blk_a", EditAction.REPLACE, "## Hello"))

        assert document.blocks[1].type == NodeType.HEADING
        assert document.blocks[1].block_id == "blk_a"

    def test_replace_list_item_keeps_attributes(self):
        """Test item replacement changes content only and strips echoed markers."""
        document = Document.parse("- [x] done\n- [ ] todo")
        install(document)
        list_id = document.blocks[0].block_id

        apply_edit(document, edit(f"{list_id}_item0", EditAction.REPLACE, "- [ ] finished"))

        first = document.blocks[0].children[0]
        assert first.type == NodeType.CHECKBOX_ITEM
        assert first.attrs["checked"] is True
        assert first.children[0].text == "finished"

    def test_replace_strips_echoed_address(self, document):
        """Test an address marker copied into the content is dropped."""
        apply_edit(document, edit("blk_a", EditAction.REPLACE, "[ID:blk_a] Hi"))

        assert document.blocks[1].text == "Hi"

    def test_replace_empty_rejected(self, document):
        """Test empty replacement text is invalid."""
        with pytest.raises(InvalidEditError):
            apply_edit(document, edit("blk_a", EditAction.REPLACE, "   "))

        assert document.blocks[1].text == "Hello"

    def test_replace_too_deeply_nested_rejected(self, document):
        """Test runaway nesting in model content fails as an invalid edit."""
        with pytest.raises(InvalidEditError, match="nested deeper") as exc_info:
            apply_edit(document, edit("blk_a", EditAction.REPLACE, ">" * 400 + " x"))

        assert exc_info.value.code == "invalid_edit"
        assert document.blocks[1].text == "Hello"

    def test_replace_non_editable_rejected(self, document):
        """Test non-editable blocks cannot be rewritten."""
        with pytest.raises(NonEditableBlockError) as exc_info:
            apply_edit(document, edit("blk_img", EditAction.REPLACE, "text"))

        assert exc_info.value.block_type == "image"

    def test_replace_block_containing_media_rejected(self):
        """Test a quote holding an image cannot be rewritten wholesale."""
        document = Document(blocks=[
            Node(NodeType.BLOCKQUOTE, attrs={"block_id": "blk_q"}, children=[
                Node(NodeType.IMAGE, attrs={"src": "a.png"}),
            ]),
        ])

        with pytest.raises(NonEditableBlockError):
            apply_edit(document, edit("blk_q", EditAction.REPLACE, "> text"))


class TestDelete:
    """Test the delete action."""

    def test_delete_block(self, document):
        """Test a top-level block is removed."""
        apply_edit(document, edit("blk_a", EditAction.DELETE))

        assert document.find_top_level("blk_a") is None

    def test_delete_item_readdresses_rest(self, document):
        """Test deleting item 0 shifts the remaining item to item0."""
        apply_edit(document, edit("blk_L_item0", EditAction.DELETE))

        text = segment(document).text
        assert "[ITEM:blk_L_item0] - two" in text
        assert "blk_L_item1" not in text

    def test_delete_only_item_removes_list(self, document):
        """Test the list disappears with its last item."""
        apply_edit(document, edit("blk_L_item0", EditAction.DELETE))
        apply_edit(document, edit("blk_L_item0", EditAction.DELETE))

        assert document.find_top_level("blk_L") is None

    def test_delete_non_editable_allowed(self, document):
        """Test media can be deleted."""
        apply_edit(document, edit("blk_img", EditAction.DELETE))

        assert document.find_top_level("blk_img") is None

    def test_delete_twice_fails_cleanly(self, document):
        """Test a second delete of the same block reports BlockNotFoundError."""
        apply_edit(document, edit("blk_a", EditAction.DELETE))
        version = document.version

        with pytest.raises(BlockNotFoundError):
            apply_edit(document, edit("blk_a", EditAction.DELETE))

        assert document.version == version


class TestInsertAfter:
    """Test the insertAfter action."""

    def test_insert_after_block(self, document):
        """Test new blocks land right after the target with fresh IDs."""
        apply_edit(document, edit("blk_a", EditAction.INSERT_AFTER, "New one\n\nNew two"))

        assert [b.text for b in document.blocks[1:4]] == ["Hello", "New one", "New two"]
        assert document.blocks[2].block_id
        assert document.blocks[3].block_id

    def test_insert_after_item(self, document):
        """Test a single new item is added after the target item."""
        apply_edit(document, edit("blk_L_item0", EditAction.INSERT_AFTER, "- one and a half"))

        assert item_texts(document.find_top_level("blk_L")) == ["one", "one and a half", "two"]

    def test_insert_several_items(self, document):
        """Test content written as a list becomes one item per entry."""
        apply_edit(document, edit("blk_L_item1", EditAction.INSERT_AFTER, "- three\n- four"))

        assert item_texts(document.find_top_level("blk_L")) == ["one", "two", "three", "four"]

    def test_insert_into_checklist_unchecked(self):
        """Test new checkbox items start unchecked."""
        document = Document.parse("- [x] done")
        install(document)
        list_id = document.blocks[0].block_id

        apply_edit(document, edit(f"{list_id}_item0", EditAction.INSERT_AFTER, "next"))

        new_item = document.blocks[0].children[1]
        assert new_item.type == NodeType.CHECKBOX_ITEM
        assert new_item.attrs["checked"] is False

    def test_insert_after_non_editable_rejected(self, document):
        """Test insertAfter on media is refused."""
        with pytest.raises(NonEditableBlockError):
            apply_edit(document, edit("blk_img", EditAction.INSERT_AFTER, "caption"))

    def test_model_supplied_ids_ignored(self, document):
        """Test {#id} lines in model content do not claim existing IDs."""
        apply_edit(document, edit("blk_a", EditAction.INSERT_AFTER, "Copy\n{#blk_h}"))

        assert document.blocks[0].block_id == "blk_h"
        assert document.blocks[2].block_id != "blk_h"


class TestMoveAfter:
    """Test the moveAfter action."""

    def test_move_block(self, document):
        """Test a block moves after another, keeping its ID."""
        apply_edit(document, edit("blk_h", EditAction.MOVE_AFTER, target="blk_L"))

        assert [b.block_id for b in document.blocks] == ["blk_a", "blk_L", "blk_h", "blk_img"]

    def test_move_non_editable(self, document):
        """Test media can be moved."""
        apply_edit(document, edit("blk_img", EditAction.MOVE_AFTER, target="blk_h"))

        assert document.blocks[1].block_id == "blk_img"

    def test_move_item_within_list(self, document):
        """Test items can be reordered."""
        apply_edit(document, edit("blk_L_item0", EditAction.MOVE_AFTER, target="blk_L_item1"))

        assert item_texts(document.find_top_level("blk_L")) == ["two", "one"]

    def test_move_item_out_of_list(self, document):
        """Test an item moved after a block is wrapped in a new list."""
        apply_edit(document, edit("blk_L_item1", EditAction.MOVE_AFTER, target="blk_h"))

        moved = document.blocks[1]
        assert moved.type == NodeType.BULLET_LIST
        assert moved.block_id not in (None, "blk_L")
        assert item_texts(moved) == ["two"]
        assert item_texts(document.find_top_level("blk_L")) == ["one"]

    def test_move_after_self_rejected(self, document):
        """Test moving a block after itself is invalid."""
        with pytest.raises(InvalidEditError):
            apply_edit(document, edit("blk_a", EditAction.MOVE_AFTER, target="blk_a"))

    def test_move_block_between_items_rejected(self, document):
        """Test a top-level block cannot be placed among list items."""
        with pytest.raises(InvalidEditError):
            apply_edit(document, edit("blk_a", EditAction.MOVE_AFTER, target="blk_L_item0"))

    def test_move_to_missing_target(self, document):
        """Test an unknown anchor raises BlockNotFoundError and changes nothing."""
        version = document.version

        with pytest.raises(BlockNotFoundError):
            apply_edit(document, edit("blk_a", EditAction.MOVE_AFTER, target="blk_nope"))

        assert document.version == version


class TestLiveResolution:
    """Test edits resolve against the tree as it is at application time."""

    def test_concurrent_delete_fails_edit(self, document):
        """Test a target removed by another writer fails with BlockNotFoundError."""
        snapshot = segment(document)
        assert "blk_a" in snapshot.addresses()

        document.apply(Transaction().delete(document.find_top_level("blk_a")))

        with pytest.raises(BlockNotFoundError):
            apply_edit(document, edit("blk_a", EditAction.REPLACE, "late"))

    def test_concurrent_insert_does_not_shift_target(self, document):
        """Test a block inserted before the target does not redirect the edit."""
        heading = document.find_top_level("blk_h")
        document.apply(Transaction().insert_after(heading, [Node(NodeType.PARAGRAPH, "remote")]))

        apply_edit(document, edit("blk_a", EditAction.REPLACE, "Hi"))

        assert document.blocks[1].text == "remote"
        assert document.find_top_level("blk_a").text == "Hi"
