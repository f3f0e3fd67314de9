"""Transactions: ordered structural steps applied atomically to a tree.

Steps reference nodes by identity. When a transaction is applied the
document copies its tree and remaps every referenced node onto the copy,
so earlier steps in the same transaction never invalidate later ones.
"""

import copy
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from richtext_tree.nodes import Node


class TransactionError(Exception):
    """Raised when a step cannot be applied to the current tree.

    Attributes:
        step: Name of the failing step
        message: Human-readable error message
    """

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}")


def locate(
    blocks: list["Node"], target: "Node"
) -> Optional[tuple[Optional["Node"], list["Node"], int]]:
    """Find a node by identity.

    Returns:
        (parent, container, index) where container is the list holding
        the node, or None if the node is not in the tree
    """
    for index, node in enumerate(blocks):
        if node is target:
            return None, blocks, index
    for node in blocks:
        found = _locate_in(node, target)
        if found is not None:
            return found
    return None


def _locate_in(parent: "Node", target: "Node"):
    for index, child in enumerate(parent.children):
        if child is target:
            return parent, parent.children, index
    for child in parent.children:
        found = _locate_in(child, target)
        if found is not None:
            return found
    return None


def _remap_node(step: str, node: "Node", memo: dict[int, Any]) -> "Node":
    mapped = memo.get(id(node))
    if mapped is None:
        raise TransactionError(step, "node is not part of this document")
    return mapped


def _require(step: str, blocks: list["Node"], node: "Node"):
    found = locate(blocks, node)
    if found is None:
        raise TransactionError(step, f"{node.type.value} node is no longer in the document")
    return found


@dataclass
class DeleteStep:
    """Remove a node and everything below it."""

    node: "Node"

    def remap(self, memo: dict[int, Any]) -> "DeleteStep":
        return replace(self, node=_remap_node("delete", self.node, memo))

    def apply(self, blocks: list["Node"]) -> None:
        _, container, index = _require("delete", blocks, self.node)
        del container[index]


@dataclass
class InsertAfterStep:
    """Insert new nodes right after an anchor, in the anchor's container."""

    anchor: "Node"
    nodes: list["Node"] = field(default_factory=list)

    def remap(self, memo: dict[int, Any]) -> "InsertAfterStep":
        return replace(
            self,
            anchor=_remap_node("insert_after", self.anchor, memo),
            nodes=copy.deepcopy(self.nodes),
        )

    def apply(self, blocks: list["Node"]) -> None:
        _, container, index = _require("insert_after", blocks, self.anchor)
        container[index + 1:index + 1] = self.nodes


@dataclass
class ReplaceStep:
    """Replace a node with zero or more new nodes at the same position."""

    node: "Node"
    nodes: list["Node"] = field(default_factory=list)

    def remap(self, memo: dict[int, Any]) -> "ReplaceStep":
        return replace(
            self,
            node=_remap_node("replace", self.node, memo),
            nodes=copy.deepcopy(self.nodes),
        )

    def apply(self, blocks: list["Node"]) -> None:
        _, container, index = _require("replace", blocks, self.node)
        container[index:index + 1] = self.nodes


@dataclass
class ReplaceChildrenStep:
    """Swap a container's children, keeping the container itself."""

    node: "Node"
    children: list["Node"] = field(default_factory=list)

    def remap(self, memo: dict[int, Any]) -> "ReplaceChildrenStep":
        return replace(
            self,
            node=_remap_node("replace_children", self.node, memo),
            children=copy.deepcopy(self.children),
        )

    def apply(self, blocks: list["Node"]) -> None:
        _require("replace_children", blocks, self.node)
        self.node.children = self.children


@dataclass
class SetAttrsStep:
    """Merge attributes into a node. A value of None removes the key."""

    node: "Node"
    attrs: dict[str, Any] = field(default_factory=dict)

    def remap(self, memo: dict[int, Any]) -> "SetAttrsStep":
        return replace(self, node=_remap_node("set_attrs", self.node, memo))

    def apply(self, blocks: list["Node"]) -> None:
        _require("set_attrs", blocks, self.node)
        for key, value in self.attrs.items():
            if value is None:
                self.node.attrs.pop(key, None)
            else:
                self.node.attrs[key] = value


@dataclass
class MoveAfterStep:
    """Detach a node and re-insert it, unchanged, after an anchor."""

    node: "Node"
    anchor: "Node"

    def remap(self, memo: dict[int, Any]) -> "MoveAfterStep":
        return replace(
            self,
            node=_remap_node("move_after", self.node, memo),
            anchor=_remap_node("move_after", self.anchor, memo),
        )

    def apply(self, blocks: list["Node"]) -> None:
        if self.node is self.anchor:
            raise TransactionError("move_after", "cannot move a node after itself")
        if any(descendant is self.anchor for descendant in self.node.walk()):
            raise TransactionError("move_after", "cannot move a node into itself")
        _, container, index = _require("move_after", blocks, self.node)
        del container[index]
        _, anchor_container, anchor_index = _require("move_after", blocks, self.anchor)
        anchor_container.insert(anchor_index + 1, self.node)


Step = DeleteStep | InsertAfterStep | ReplaceStep | ReplaceChildrenStep | SetAttrsStep | MoveAfterStep


@dataclass
class Transaction:
    """Ordered list of steps applied as a single mutation.

    Example:
        >>> tr = Transaction().delete(doc.blocks[0])
        >>> doc.apply(tr)
    """

    steps: list[Step] = field(default_factory=list)

    def delete(self, node: "Node") -> "Transaction":
        self.steps.append(DeleteStep(node))
        return self

    def insert_after(self, anchor: "Node", nodes: list["Node"]) -> "Transaction":
        self.steps.append(InsertAfterStep(anchor, list(nodes)))
        return self

    def replace(self, node: "Node", nodes: list["Node"]) -> "Transaction":
        self.steps.append(ReplaceStep(node, list(nodes)))
        return self

    def replace_children(self, node: "Node", children: list["Node"]) -> "Transaction":
        self.steps.append(ReplaceChildrenStep(node, list(children)))
        return self

    def set_attrs(self, node: "Node", **attrs: Any) -> "Transaction":
        self.steps.append(SetAttrsStep(node, attrs))
        return self

    def move_after(self, node: "Node", anchor: "Node") -> "Transaction":
        self.steps.append(MoveAfterStep(node, anchor))
        return self

    def __bool__(self) -> bool:
        return bool(self.steps)
