"""Block tree model for rich-text documents.

A document is an ordered list of top-level block nodes. Container blocks
(lists, list items, quotes, notices) hold child blocks; leaf blocks carry
their inline content as a markdown-ish text string.
"""

import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from richtext_tree.transaction import Transaction, TransactionError, locate


class NodeType(str, Enum):
    """Closed set of block kinds understood by the tree."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BLOCKQUOTE = "blockquote"
    CODE_FENCE = "code_fence"
    MATH_BLOCK = "math_block"
    BULLET_LIST = "bullet_list"
    ORDERED_LIST = "ordered_list"
    CHECKBOX_LIST = "checkbox_list"
    LIST_ITEM = "list_item"
    CHECKBOX_ITEM = "checkbox_item"
    TABLE = "table"
    IMAGE = "image"
    VIDEO = "video"
    ATTACHMENT = "attachment"
    EMBED = "embed"
    NOTICE = "notice"
    HR = "hr"
    TABLE_OF_CONTENTS = "table_of_contents"

    @property
    def is_list(self) -> bool:
        return self in LIST_TYPES

    @property
    def is_list_item(self) -> bool:
        return self in (NodeType.LIST_ITEM, NodeType.CHECKBOX_ITEM)

    @property
    def item_type(self) -> "NodeType":
        """Item node type that belongs in a list of this type."""
        if self == NodeType.CHECKBOX_LIST:
            return NodeType.CHECKBOX_ITEM
        if self in (NodeType.BULLET_LIST, NodeType.ORDERED_LIST):
            return NodeType.LIST_ITEM
        raise ValueError(f"{self.value} is not a list type")


LIST_TYPES = frozenset({
    NodeType.BULLET_LIST,
    NodeType.ORDERED_LIST,
    NodeType.CHECKBOX_LIST,
})

# Attribute key holding a block's identity
BLOCK_ID_ATTR = "block_id"


@dataclass
class Node:
    """Single block in the tree.

    Attributes:
        type: Block kind
        text: Inline content for leaf blocks (paragraph text, code, math)
        attrs: Kind-specific attributes (heading level, checked state,
               image src, table rows, block_id, ...)
        children: Child blocks for container kinds
    """

    type: NodeType
    text: str = ""
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list["Node"] = field(default_factory=list)

    @property
    def block_id(self) -> Optional[str]:
        return self.attrs.get(BLOCK_ID_ATTR) or None

    def walk(self) -> Iterator["Node"]:
        """Yield this node and all of its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.text:
            data["text"] = self.text
        if self.attrs:
            data["attrs"] = copy.deepcopy(self.attrs)
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        return cls(
            type=NodeType(data["type"]),
            text=data.get("text", ""),
            attrs=dict(data.get("attrs", {})),
            children=[cls.from_dict(child) for child in data.get("children", [])],
        )


@dataclass
class MutationResult:
    """Outcome of one applied transaction.

    Attributes:
        version: Document version after the mutation
        steps: Number of steps applied, including appended ones
        appended: Number of transactions appended by hooks
    """

    version: int
    steps: int
    appended: int = 0


# Listener receives the document and the result of the mutation
MutationListener = Callable[["Document", MutationResult], None]

# Hook inspects the post-mutation state and may return a follow-up transaction
AppendHook = Callable[["Document"], Optional[Transaction]]


@dataclass
class Document:
    """Mutable block tree with atomic, observable mutations.

    All structural changes go through apply(). A transaction is applied to
    a private copy of the tree and swapped in only when every step
    succeeded, so a failing step never leaves a half-applied document.
    """

    blocks: list[Node] = field(default_factory=list)
    version: int = 0
    _listeners: list[MutationListener] = field(default_factory=list, repr=False, compare=False)
    _append_hooks: list[AppendHook] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def parse(cls, markdown: str) -> "Document":
        """Parse markdown text into a document.

        Args:
            markdown: Source text in the tree's markup grammar

        Returns:
            New Document
        """
        from richtext_tree.markup import parse_markdown

        return cls(blocks=parse_markdown(markdown))

    def render(self, include_ids: bool = False) -> str:
        """Serialize the document back to markdown.

        Args:
            include_ids: Emit {#id} lines so block identities survive a
                         save/load cycle

        Returns:
            Markdown text
        """
        from richtext_tree.markup import serialize_blocks

        return serialize_blocks(self.blocks, include_ids=include_ids)

    def to_json(self) -> str:
        return json.dumps(
            {"version": self.version, "blocks": [block.to_dict() for block in self.blocks]},
            indent=2,
        )

    @classmethod
    def from_json(cls, text: str) -> "Document":
        data = json.loads(text)
        return cls(
            blocks=[Node.from_dict(block) for block in data.get("blocks", [])],
            version=data.get("version", 0),
        )

    def descendants(self) -> Iterator[Node]:
        """Yield every node of the tree in document order."""
        for block in self.blocks:
            yield from block.walk()

    def find_top_level(self, block_id: str) -> Optional[Node]:
        """Find a top-level block by its block_id."""
        for block in self.blocks:
            if block.block_id == block_id:
                return block
        return None

    def find_by_id(self, block_id: str) -> Optional[Node]:
        """Find a block by its block_id at any depth."""
        for node in self.descendants():
            if node.block_id == block_id:
                return node
        return None

    def locate(self, node: Node) -> Optional[tuple[Optional[Node], int]]:
        """Find where a node lives in the tree.

        Returns:
            (parent, index) where parent is None for top-level blocks, or
            None if the node is not part of this document
        """
        found = locate(self.blocks, node)
        if found is None:
            return None
        parent, _, index = found
        return parent, index

    def snapshot(self) -> "Document":
        """Detached deep copy, without listeners or hooks."""
        return Document(blocks=copy.deepcopy(self.blocks), version=self.version)

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """Register a listener called after every successful mutation.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_append_hook(self, hook: AppendHook) -> None:
        """Register a hook run inside every apply() before the swap.

        The hook sees the mutated tree and may return a transaction whose
        steps are applied in the same atomic mutation.
        """
        self._append_hooks.append(hook)

    def apply(self, transaction: Transaction) -> MutationResult:
        """Apply a transaction atomically.

        Args:
            transaction: Steps referencing nodes of this document

        Returns:
            MutationResult describing the new state

        Raises:
            TransactionError: If any step cannot be applied; the document
                              is left untouched
        """
        memo: dict[int, Any] = {}
        working = copy.deepcopy(self.blocks, memo)

        for step in transaction.steps:
            step.remap(memo).apply(working)

        steps = len(transaction.steps)
        appended = 0
        view = Document(blocks=working)
        for hook in self._append_hooks:
            follow_up = hook(view)
            if follow_up is None or not follow_up.steps:
                continue
            for step in follow_up.steps:
                step.apply(working)
            steps += len(follow_up.steps)
            appended += 1

        self.blocks = working
        self.version += 1
        result = MutationResult(version=self.version, steps=steps, appended=appended)

        for listener in list(self._listeners):
            listener(self, result)

        return result


__all__ = [
    "BLOCK_ID_ATTR",
    "LIST_TYPES",
    "Document",
    "MutationResult",
    "Node",
    "NodeType",
    "TransactionError",
]
