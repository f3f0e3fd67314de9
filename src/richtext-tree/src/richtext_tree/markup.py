"""Markdown-like markup grammar for block trees.

Supported blocks (one construct per line group, blank lines separate):

    paragraph text            # heading (1-6 #)        > quote
    ```lang ... ```           $$ ... $$ (math)         :::style ... ::: (notice)
    - bullet                  1. ordered               - [ ] / - [x] checkbox
    | a | b | (table)         ![alt](src "title")      ---
    @video[title](src)        @file[title](href)       @embed[title](href)
    [[toc]]

List item continuation lines are indented by two spaces. A line of the
form {#id} directly after a block records that block's block_id, so
identities survive a render/parse cycle.
"""

import re
from typing import Optional

from richtext_tree.nodes import BLOCK_ID_ATTR, Node, NodeType

ID_LINE = re.compile(r"^\{#([A-Za-z0-9_-]+)\}$")
FENCE = re.compile(r"^```\s*([\w+#.-]*)\s*$")
HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
HR = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")
IMAGE = re.compile(r'^!\[([^\]]*)\]\((\S*?)(?:\s+"([^"]*)")?\)$')
MEDIA = re.compile(r"^@(video|file|embed)\[([^\]]*)\]\((\S*?)\)$")
NOTICE_OPEN = re.compile(r"^:::\s*(\w+)\s*$")
CHECKBOX_ITEM = re.compile(r"^[-*+]\s+\[([ xX])\](?:\s+(.*))?$")
BULLET_ITEM = re.compile(r"^[-*+](?:\s+(.*))?$")
ORDERED_ITEM = re.compile(r"^(\d+)[.)](?:\s+(.*))?$")
TABLE_SEPARATOR_CELL = re.compile(r"^:?-+:?$")

MEDIA_TYPES = {
    "video": NodeType.VIDEO,
    "file": NodeType.ATTACHMENT,
    "embed": NodeType.EMBED,
}

MEDIA_KEYWORDS = {node_type: keyword for keyword, node_type in MEDIA_TYPES.items()}

# Continuation indent for list items
INDENT = "  "

# Deepest container nesting (quotes, notices, list items) accepted by the parser
MAX_NESTING = 32


class MarkupError(ValueError):
    """Raised when markup cannot be turned into a block tree."""


def parse_markdown(text: str) -> list[Node]:
    """Parse markup text into a list of top-level block nodes.

    Args:
        text: Source text

    Returns:
        Parsed blocks (empty list for blank input)

    Raises:
        MarkupError: Containers nested deeper than MAX_NESTING
    """
    return _Parser(text).parse()


def serialize_blocks(blocks: list[Node], include_ids: bool = False) -> str:
    """Serialize blocks, separated by blank lines."""
    return "\n\n".join(serialize_node(block, include_ids=include_ids) for block in blocks)


def serialize_node(node: Node, include_ids: bool = False) -> str:
    """Serialize one block (and its children) to markup text.

    Args:
        node: Block to serialize
        include_ids: Append a {#id} line for blocks that carry a block_id

    Returns:
        Markup text
    """
    body = _serialize(node, include_ids)
    if include_ids and node.block_id:
        return f"{body}\n{{#{node.block_id}}}"
    return body


def list_marker(list_type: NodeType, item: Node, index: int, start: int = 1) -> str:
    """Visual marker for the index-th item of a list, including trailing space."""
    if list_type == NodeType.ORDERED_LIST:
        return f"{start + index}. "
    if list_type == NodeType.CHECKBOX_LIST:
        return "- [x] " if item.attrs.get("checked") else "- [ ] "
    return "- "


def _serialize(node: Node, include_ids: bool) -> str:
    node_type = node.type

    if node_type == NodeType.PARAGRAPH:
        return node.text
    if node_type == NodeType.HEADING:
        return "#" * node.attrs.get("level", 1) + " " + node.text
    if node_type == NodeType.BLOCKQUOTE:
        inner = serialize_blocks(node.children, include_ids)
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))
    if node_type == NodeType.CODE_FENCE:
        return f"```{node.attrs.get('language', '')}\n{node.text}\n```"
    if node_type == NodeType.MATH_BLOCK:
        return f"$$\n{node.text}\n$$"
    if node_type.is_list:
        return _serialize_list(node, include_ids)
    if node_type.is_list_item:
        return _serialize_item_children(node.children, include_ids)
    if node_type == NodeType.TABLE:
        return _serialize_table(node.attrs.get("rows", []))
    if node_type == NodeType.IMAGE:
        title = node.attrs.get("title")
        suffix = f' "{title}"' if title else ""
        return f"![{node.attrs.get('alt', '')}]({node.attrs.get('src', '')}{suffix})"
    if node_type in MEDIA_KEYWORDS:
        keyword = MEDIA_KEYWORDS[node_type]
        return f"@{keyword}[{node.attrs.get('title', '')}]({node.attrs.get('href', '')})"
    if node_type == NodeType.NOTICE:
        inner = serialize_blocks(node.children, include_ids)
        return f":::{node.attrs.get('style', 'info')}\n{inner}\n:::"
    if node_type == NodeType.HR:
        return "---"
    if node_type == NodeType.TABLE_OF_CONTENTS:
        return "[[toc]]"

    raise ValueError(f"Unsupported node type: {node_type}")


def _serialize_list(node: Node, include_ids: bool) -> str:
    start = node.attrs.get("start", 1)
    rendered = []
    for index, item in enumerate(node.children):
        marker = list_marker(node.type, item, index, start)
        lines = _serialize_item_children(item.children, include_ids).split("\n")
        first = (marker + lines[0]).rstrip()
        rest = [INDENT + line if line else "" for line in lines[1:]]
        rendered.append("\n".join([first, *rest]))
    return "\n".join(rendered)


def _serialize_item_children(children: list[Node], include_ids: bool) -> str:
    # A nested list follows its lead block without a blank line
    parts = []
    for index, child in enumerate(children):
        if index:
            parts.append("\n" if child.type.is_list else "\n\n")
        parts.append(serialize_node(child, include_ids=include_ids))
    return "".join(parts)


def _serialize_table(rows: list[list[str]]) -> str:
    if not rows:
        return "| |"
    width = max(len(row) for row in rows)
    padded = [row + [""] * (width - len(row)) for row in rows]
    lines = ["| " + " | ".join(padded[0]) + " |", "| " + " | ".join(["---"] * width) + " |"]
    lines.extend("| " + " | ".join(row) + " |" for row in padded[1:])
    return "\n".join(lines)


def _list_item(line: str) -> Optional[tuple[NodeType, str, dict]]:
    """Classify a line as a list item.

    Returns:
        (list type, first content line, item attrs) or None
    """
    stripped = line.strip()
    match = CHECKBOX_ITEM.match(stripped)
    if match:
        return NodeType.CHECKBOX_LIST, match.group(2) or "", {"checked": match.group(1).lower() == "x"}
    if HR.match(stripped):
        return None
    match = BULLET_ITEM.match(stripped)
    if match:
        return NodeType.BULLET_LIST, match.group(1) or "", {}
    match = ORDERED_ITEM.match(stripped)
    if match:
        return NodeType.ORDERED_LIST, match.group(2) or "", {"number": int(match.group(1))}
    return None


def _starts_block(stripped: str) -> bool:
    return bool(
        FENCE.match(stripped)
        or HEADING.match(stripped)
        or HR.match(stripped)
        or stripped.startswith((">", "|", "$$"))
        or NOTICE_OPEN.match(stripped)
        or IMAGE.match(stripped)
        or MEDIA.match(stripped)
        or stripped.lower() == "[[toc]]"
        or _list_item(stripped) is not None
    )


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _dedent(line: str) -> str:
    return line[len(INDENT):] if line.startswith(INDENT) else line.lstrip(" ")


class _Parser:
    """Line-oriented recursive block parser."""

    def __init__(self, text: str, depth: int = 0):
        if depth > MAX_NESTING:
            raise MarkupError(f"Blocks nested deeper than {MAX_NESTING} levels")
        self.lines = text.replace("\r\n", "\n").split("\n")
        self.pos = 0
        self.depth = depth

    def _nested(self, text: str) -> list[Node]:
        return _Parser(text, self.depth + 1).parse()

    def parse(self) -> list[Node]:
        blocks: list[Node] = []
        while self.pos < len(self.lines):
            if not self.lines[self.pos].strip():
                self.pos += 1
                continue
            node = self._block()
            if node is None:
                continue
            self._attach_id(node)
            blocks.append(node)
        return blocks

    def _attach_id(self, node: Node) -> None:
        if self.pos >= len(self.lines):
            return
        match = ID_LINE.match(self.lines[self.pos].strip())
        if match:
            node.attrs[BLOCK_ID_ATTR] = match.group(1)
            self.pos += 1

    def _collect_until(self, closing: str) -> list[str]:
        """Collect lines up to (and consume) a closing line."""
        body = []
        while self.pos < len(self.lines) and self.lines[self.pos].strip() != closing:
            body.append(self.lines[self.pos])
            self.pos += 1
        self.pos += 1
        return body

    def _block(self) -> Optional[Node]:
        stripped = self.lines[self.pos].strip()

        if ID_LINE.match(stripped):
            # Orphan id line with no block before it
            self.pos += 1
            return None

        match = FENCE.match(stripped)
        if match:
            self.pos += 1
            body = self._collect_until("```")
            attrs = {"language": match.group(1)} if match.group(1) else {}
            return Node(NodeType.CODE_FENCE, text="\n".join(body), attrs=attrs)

        if stripped.startswith("$$"):
            self.pos += 1
            if len(stripped) > 4 and stripped.endswith("$$"):
                return Node(NodeType.MATH_BLOCK, text=stripped[2:-2].strip())
            body = self._collect_until("$$")
            return Node(NodeType.MATH_BLOCK, text="\n".join(body))

        match = NOTICE_OPEN.match(stripped)
        if match:
            self.pos += 1
            body = self._collect_until(":::")
            return Node(
                NodeType.NOTICE,
                attrs={"style": match.group(1)},
                children=self._nested("\n".join(body)),
            )

        if stripped.lower() == "[[toc]]":
            self.pos += 1
            return Node(NodeType.TABLE_OF_CONTENTS)

        if HR.match(stripped):
            self.pos += 1
            return Node(NodeType.HR)

        match = HEADING.match(stripped)
        if match:
            self.pos += 1
            return Node(NodeType.HEADING, text=match.group(2).strip(), attrs={"level": len(match.group(1))})

        if stripped.startswith(">"):
            return self._blockquote()

        match = IMAGE.match(stripped)
        if match:
            self.pos += 1
            attrs = {"src": match.group(2), "alt": match.group(1)}
            if match.group(3):
                attrs["title"] = match.group(3)
            return Node(NodeType.IMAGE, attrs=attrs)

        match = MEDIA.match(stripped)
        if match:
            self.pos += 1
            attrs = {"href": match.group(3)}
            if match.group(2):
                attrs["title"] = match.group(2)
            return Node(MEDIA_TYPES[match.group(1)], attrs=attrs)

        if stripped.startswith("|"):
            return self._table()

        item = _list_item(stripped)
        if item is not None:
            return self._list(item[0])

        return self._paragraph()

    def _blockquote(self) -> Node:
        inner = []
        while self.pos < len(self.lines):
            stripped = self.lines[self.pos].strip()
            if not stripped.startswith(">"):
                break
            content = stripped[1:]
            inner.append(content[1:] if content.startswith(" ") else content)
            self.pos += 1
        return Node(NodeType.BLOCKQUOTE, children=self._nested("\n".join(inner)))

    def _table(self) -> Node:
        rows = []
        while self.pos < len(self.lines):
            stripped = self.lines[self.pos].strip()
            if not stripped.startswith("|"):
                break
            self.pos += 1
            cells = [cell.strip() for cell in stripped.strip("|").split("|")]
            if all(TABLE_SEPARATOR_CELL.match(cell) for cell in cells if cell):
                continue
            rows.append(cells)
        return Node(NodeType.TABLE, attrs={"rows": rows})

    def _list(self, list_type: NodeType) -> Node:
        items: list[Node] = []
        attrs: dict = {}

        while self.pos < len(self.lines):
            item = _list_item(self.lines[self.pos])
            if item is None or item[0] != list_type:
                break
            _, first, item_attrs = item
            self.pos += 1

            number = item_attrs.pop("number", None)
            if not items and number is not None and number != 1:
                attrs["start"] = number

            body = [first]
            while self.pos < len(self.lines):
                line = self.lines[self.pos]
                if line.strip():
                    if _indent(line) < len(INDENT):
                        break
                    body.append(_dedent(line))
                    self.pos += 1
                    continue
                # Blank line: the item continues only if indented text follows
                ahead = self._next_nonblank(self.pos)
                if ahead is None or _indent(self.lines[ahead]) < len(INDENT):
                    break
                body.extend([""] * (ahead - self.pos))
                self.pos = ahead

            items.append(Node(
                list_type.item_type,
                attrs=item_attrs,
                children=self._nested("\n".join(body)),
            ))

            # Loose lists: blank lines between items of the same list
            ahead = self._next_nonblank(self.pos)
            if ahead is None:
                break
            following = _list_item(self.lines[ahead])
            if following is None or following[0] != list_type or _indent(self.lines[ahead]) >= len(INDENT):
                break
            self.pos = ahead

        return Node(list_type, attrs=attrs, children=items)

    def _paragraph(self) -> Node:
        lines = [self.lines[self.pos].strip()]
        self.pos += 1
        while self.pos < len(self.lines):
            stripped = self.lines[self.pos].strip()
            if not stripped or ID_LINE.match(stripped) or _starts_block(stripped):
                break
            lines.append(stripped)
            self.pos += 1
        return Node(NodeType.PARAGRAPH, text="\n".join(lines))

    def _next_nonblank(self, start: int) -> Optional[int]:
        index = start
        while index < len(self.lines):
            if self.lines[index].strip():
                return index
            index += 1
        return None
