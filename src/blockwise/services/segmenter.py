"""Document segmentation: address-annotated text for model consumption.

Segmenting is read-only. Callers make sure IDs are fresh (see
block_ids.ensure_block_ids) right before segmenting, so the addresses the
model sees are unique at that moment.
"""

import copy
import re

from richtext_tree import Document, Node, NodeType, list_marker, serialize_node

from blockwise.models.blocks import (
    LIST_KINDS,
    BlockDescriptor,
    ListItemDescriptor,
    Segmentation,
    is_editable,
    item_address,
)

# Address markers removed by clean_document_content()
_ID_MARKER = re.compile(r"\[ID:[^\]]+\]\s*")
_LIST_MARKER = re.compile(r"\[LIST:[^\]]+\][^\n]*\n")
_ITEM_MARKER = re.compile(r"\[ITEM:[^\]]+\][ \t]*(?:- \[[ xX]\] ?|\d+\. ?|- ?)?")
_NON_EDITABLE_MARKER = re.compile(r"\[NON-EDITABLE:[^\]]+\]\s*")

MATH_PREVIEW_CHARS = 50


def describe_block(node: Node) -> str:
    """
    Short human-readable stand-in for a non-editable block.

    Example:
        >>> describe_block(Node(NodeType.TABLE, attrs={"rows": [["a"], ["b"]]}))
        "[Table with 2 rows]"
    """
    attrs = node.attrs
    node_type = node.type

    if node_type == NodeType.IMAGE:
        return f"[Image: {attrs.get('alt') or attrs.get('title') or 'no description'}]"
    if node_type == NodeType.VIDEO:
        return f"[Video: {attrs.get('title') or 'embedded video'}]"
    if node_type == NodeType.ATTACHMENT:
        return f"[Attachment: {attrs.get('title') or attrs.get('href') or 'file'}]"
    if node_type == NodeType.EMBED:
        return f"[Embed: {attrs.get('href') or 'embedded content'}]"
    if node_type == NodeType.TABLE:
        return f"[Table with {len(attrs.get('rows', []))} rows]"
    if node_type == NodeType.TABLE_OF_CONTENTS:
        return "[Table of Contents]"
    if node_type == NodeType.MATH_BLOCK:
        preview = node.text[:MATH_PREVIEW_CHARS]
        if len(node.text) > MATH_PREVIEW_CHARS:
            preview += "..."
        return f"[Math: {preview}]"
    return f"[{node_type.value}]"


def render_content(node: Node) -> str:
    """
    Markdown for an editable block, with nested non-editable blocks
    replaced by their descriptions.
    """
    if not any(not is_editable(child.type) for child in node.walk()):
        return serialize_node(node)
    return serialize_node(_with_descriptions(copy.deepcopy(node)))


def _with_descriptions(node: Node) -> Node:
    node.children = [
        _with_descriptions(child) if is_editable(child.type)
        else Node(NodeType.PARAGRAPH, text=describe_block(child))
        for child in node.children
    ]
    return node


def _item_content(item: Node) -> str:
    return "\n\n".join(render_content(child) for child in item.children)


def segment(document: Document) -> Segmentation:
    """
    Serialize the document into descriptors and annotated text.

    Output lines (entries separated by a blank line):
        [ID:<id>] <markdown>
        [ID:<id>] [NON-EDITABLE:<type>] <description>
        [LIST:<id>] (<listType> list with N items)
          [ITEM:<id>_item<k>] <marker><content>

    Args:
        document: Document whose addressable blocks already carry IDs

    Returns:
        Segmentation with block descriptors and annotated text
    """
    descriptors: list[BlockDescriptor] = []
    entries: list[str] = []

    for index, node in enumerate(document.blocks):
        block_id = node.block_id or f"temp_{index}"

        if node.type.is_list:
            list_type = LIST_KINDS[node.type]
            start = node.attrs.get("start", 1)
            items = []
            lines = [f"[LIST:{block_id}] ({list_type.value} list with {len(node.children)} items)"]
            for item_index, item in enumerate(node.children):
                address = item_address(block_id, item_index)
                content = _item_content(item)
                marker = list_marker(node.type, item, item_index, start)
                lines.append(f"  [ITEM:{address}] {marker}{content}".rstrip())
                items.append(ListItemDescriptor(
                    address=address,
                    parent_block_id=block_id,
                    item_index=item_index,
                    list_type=list_type,
                    content=content,
                    checked=bool(item.attrs.get("checked")) if node.type == NodeType.CHECKBOX_LIST else None,
                ))
            entries.append("\n".join(lines))
            descriptors.append(BlockDescriptor(
                block_id=block_id,
                type=node.type,
                editable=True,
                content="\n".join(lines[1:]),
                index=index,
                items=items,
            ))
            continue

        if not is_editable(node.type):
            description = describe_block(node)
            entries.append(f"[ID:{block_id}] [NON-EDITABLE:{node.type.value}] {description}")
            descriptors.append(BlockDescriptor(
                block_id=block_id,
                type=node.type,
                editable=False,
                content=description,
                index=index,
            ))
            continue

        content = render_content(node)
        if not content.strip():
            continue
        entries.append(f"[ID:{block_id}] {content}")
        descriptors.append(BlockDescriptor(
            block_id=block_id,
            type=node.type,
            editable=True,
            content=content,
            index=index,
        ))

    return Segmentation(blocks=descriptors, text="\n\n".join(entries))


def clean_document_content(text: str) -> str:
    """
    Strip address markers from annotated text.

    List headers disappear, items become "• " bullets and the
    NON-EDITABLE tags are dropped, leaving readable document text.
    """
    cleaned = _ID_MARKER.sub("", text)
    cleaned = _LIST_MARKER.sub("", cleaned)
    cleaned = _ITEM_MARKER.sub("• ", cleaned)
    cleaned = _NON_EDITABLE_MARKER.sub("", cleaned)
    return cleaned.strip()
