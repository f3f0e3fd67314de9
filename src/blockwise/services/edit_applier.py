"""Resolve edit addresses against the live tree and apply them.

Addresses are resolved at application time, never against the snapshot
the model saw, so an edit whose target was deleted in the meantime fails
with BlockNotFoundError instead of touching a neighbouring block. Every
edit becomes exactly one transaction; resolution errors raise before any
transaction exists.
"""

import re
from dataclasses import dataclass
from typing import Optional

from richtext_tree import (
    BLOCK_ID_ATTR,
    Document,
    MarkupError,
    MutationResult,
    Node,
    NodeType,
    Transaction,
    TransactionError,
    parse_markdown,
)

from blockwise.models.blocks import is_editable
from blockwise.models.edits import EditAction, EditProposal
from blockwise.services.exceptions import (
    BlockNotFoundError,
    InvalidEditError,
    ListItemNotFoundError,
    NonEditableBlockError,
)

COMPOSITE_ADDRESS = re.compile(r"^(?P<parent>.+)_item(?P<index>\d+)$")

_ADDRESS_PREFIX = re.compile(r"^(?:ID|LIST|ITEM):\s*")

# Address markers the model sometimes echoes at the start of content
_LEADING_MARKER = re.compile(r"^\s*\[(?:ID|LIST|ITEM):[^\]]+\]\s*")

# Checkbox first, it also matches the bullet pattern
_LIST_MARKERS = (
    re.compile(r"^[-*]\s*\[[ xX]\]\s*"),
    re.compile(r"^\d+\.\s+"),
    re.compile(r"^[-*]\s+"),
)


@dataclass
class ResolvedTarget:
    """Live node an address points at.

    Attributes:
        address: Normalized address
        node: Top-level block, or the list item node
        list_node: Owning list when the address is a list item
        item_index: Position of the item in its list
    """

    address: str
    node: Node
    list_node: Optional[Node] = None
    item_index: Optional[int] = None

    @property
    def is_item(self) -> bool:
        return self.list_node is not None


def normalize_address(address: str) -> str:
    """
    Undo decoration the model may add around an address.

    Example:
        >>> normalize_address("[ITEM:blk_a_item0]")
        "blk_a_item0"
    """
    value = address.strip().strip("[]").strip()
    return _ADDRESS_PREFIX.sub("", value).strip()


def strip_list_marker(text: str) -> str:
    """Remove one leading list marker ("1. ", "- ", "- [ ] ") from text."""
    stripped = text.lstrip()
    for pattern in _LIST_MARKERS:
        if pattern.match(stripped):
            return pattern.sub("", stripped, count=1)
    return stripped


def resolve_address(document: Document, address: str) -> ResolvedTarget:
    """
    Find the live node for an address.

    Composite "{parent}_item{N}" addresses resolve to the N-th item of the
    top-level list with that block ID; anything else must be the block ID
    of a top-level block.

    Raises:
        BlockNotFoundError: No top-level block carries the ID
        ListItemNotFoundError: The list has no item N
    """
    normalized = normalize_address(address)

    match = COMPOSITE_ADDRESS.match(normalized)
    if match:
        parent_id = match.group("parent")
        item_index = int(match.group("index"))
        parent = document.find_top_level(parent_id)
        if parent is None:
            direct = document.find_top_level(normalized)
            if direct is not None:
                return ResolvedTarget(normalized, direct)
            raise BlockNotFoundError(parent_id)
        if not parent.type.is_list or item_index >= len(parent.children):
            raise ListItemNotFoundError(normalized, item_index)
        return ResolvedTarget(normalized, parent.children[item_index], parent, item_index)

    node = document.find_top_level(normalized)
    if node is None:
        raise BlockNotFoundError(normalized)
    return ResolvedTarget(normalized, node)


def _parse_content(text: str, address: str) -> list[Node]:
    """Parse model content; identities are never taken from the model."""
    try:
        nodes = parse_markdown(_LEADING_MARKER.sub("", text))
    except MarkupError as e:
        raise InvalidEditError(address, str(e)) from e
    for node in nodes:
        for descendant in node.walk():
            descendant.attrs.pop(BLOCK_ID_ATTR, None)
    return nodes


def _contains_non_editable(node: Node) -> bool:
    return any(not is_editable(descendant.type) for descendant in node.walk())


def _check_editable(target: ResolvedTarget, edit: EditProposal) -> None:
    if edit.action in (EditAction.DELETE, EditAction.MOVE_AFTER):
        return
    node = target.node
    if not is_editable(node.type):
        raise NonEditableBlockError(target.address, node.type.value)
    if edit.action == EditAction.REPLACE and _contains_non_editable(node):
        blocked = next(d for d in node.walk() if not is_editable(d.type))
        raise NonEditableBlockError(target.address, blocked.type.value)


def _new_item(list_type: NodeType, children: list[Node], checked: bool = False) -> Node:
    item_type = list_type.item_type
    attrs = {"checked": checked} if item_type == NodeType.CHECKBOX_ITEM else {}
    return Node(item_type, attrs=attrs, children=children)


def _new_items(list_node: Node, text: str, address: str) -> list[Node]:
    parsed = _parse_content(text, address)
    if len(parsed) == 1 and parsed[0].type.is_list:
        # Several items written as a list: one new item each
        items = [
            _new_item(list_node.type, item.children, bool(item.attrs.get("checked")))
            for item in parsed[0].children
            if item.children
        ]
        if not items:
            _invalid_empty(address)
        return items

    children = _parse_content(strip_list_marker(_LEADING_MARKER.sub("", text)), address)
    if not children:
        _invalid_empty(address)
    return [_new_item(list_node.type, children)]


def _invalid_empty(address: str):
    raise InvalidEditError(address, "Edit content is empty")


def _delete(target: ResolvedTarget) -> Transaction:
    if target.is_item and len(target.list_node.children) == 1:
        return Transaction().delete(target.list_node)
    return Transaction().delete(target.node)


def _replace(target: ResolvedTarget, edit: EditProposal) -> Transaction:
    if target.is_item:
        content = strip_list_marker(_LEADING_MARKER.sub("", edit.replace_with))
        children = _parse_content(content, target.address)
        if not children:
            _invalid_empty(target.address)
        return Transaction().replace_children(target.node, children)

    nodes = _parse_content(edit.replace_with, target.address)
    if not nodes:
        _invalid_empty(target.address)
    nodes[0].attrs[BLOCK_ID_ATTR] = target.node.block_id
    return Transaction().replace(target.node, nodes)


def _insert_after(target: ResolvedTarget, edit: EditProposal) -> Transaction:
    if target.is_item:
        items = _new_items(target.list_node, edit.replace_with, target.address)
        return Transaction().insert_after(target.node, items)

    nodes = _parse_content(edit.replace_with, target.address)
    if not nodes:
        _invalid_empty(target.address)
    return Transaction().insert_after(target.node, nodes)


def _move_after(document: Document, source: ResolvedTarget, edit: EditProposal) -> Transaction:
    anchor = resolve_address(document, edit.target_block_id or "")

    if anchor.node is source.node:
        raise InvalidEditError(source.address, "Cannot move a block after itself")

    if not source.is_item:
        if anchor.is_item:
            raise InvalidEditError(source.address, "Cannot move a block between list items")
        return Transaction().move_after(source.node, anchor.node)

    source_list = source.list_node
    emptied = len(source_list.children) == 1

    if anchor.is_item:
        if anchor.node.type != source.node.type:
            raise InvalidEditError(source.address, "Incompatible list types")
        transaction = Transaction().move_after(source.node, anchor.node)
        if emptied and anchor.list_node is not source_list:
            transaction.delete(source_list)
        return transaction

    # Item leaves its list: wrap it in a new list of the same kind
    attrs = {key: value for key, value in source_list.attrs.items() if key not in (BLOCK_ID_ATTR, "start")}
    wrapper = Node(source_list.type, attrs=attrs, children=[source.node])
    transaction = Transaction().insert_after(anchor.node, [wrapper])
    transaction.delete(source_list if emptied else source.node)
    return transaction


def build_transaction(document: Document, edit: EditProposal) -> Transaction:
    """
    Resolve an edit and express it as one transaction.

    Raises:
        BlockNotFoundError, ListItemNotFoundError: Unresolvable address
        NonEditableBlockError: Content rewrite of a non-editable block
        InvalidEditError: Empty content or impossible move
    """
    target = resolve_address(document, edit.block_id)
    _check_editable(target, edit)

    action = edit.action
    if action == EditAction.DELETE:
        return _delete(target)
    if action == EditAction.REPLACE:
        return _replace(target, edit)
    if action == EditAction.INSERT_AFTER:
        return _insert_after(target, edit)
    if action == EditAction.MOVE_AFTER:
        return _move_after(document, target, edit)

    raise InvalidEditError(target.address, f"Unsupported action: {action}")


def apply_edit(document: Document, edit: EditProposal) -> MutationResult:
    """
    Apply one edit to the live document, all or nothing.

    Returns:
        MutationResult of the applied transaction

    Raises:
        EditError: Any resolution or application failure; the document is
                   left unchanged
    """
    transaction = build_transaction(document, edit)
    try:
        return document.apply(transaction)
    except TransactionError as e:
        raise InvalidEditError(edit.block_id, e.message) from e
