"""Block descriptors produced by document segmentation."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field
from richtext_tree import NodeType


class ListType(str, Enum):
    """Visual kind of a list block."""

    BULLET = "bullet"
    ORDERED = "ordered"
    CHECKBOX = "checkbox"


LIST_KINDS = {
    NodeType.BULLET_LIST: ListType.BULLET,
    NodeType.ORDERED_LIST: ListType.ORDERED,
    NodeType.CHECKBOX_LIST: ListType.CHECKBOX,
}

# Blocks whose content is shown to the model only as a description
NON_EDITABLE_TYPES = frozenset({
    NodeType.IMAGE,
    NodeType.VIDEO,
    NodeType.ATTACHMENT,
    NodeType.EMBED,
    NodeType.TABLE,
    NodeType.TABLE_OF_CONTENTS,
    NodeType.MATH_BLOCK,
})


def is_editable(node_type: NodeType) -> bool:
    """Whether the model may rewrite a block of this type."""
    return node_type not in NON_EDITABLE_TYPES


def item_address(parent_block_id: str, item_index: int) -> str:
    """Composite address of a list item, e.g. "blk_abc_item2"."""
    return f"{parent_block_id}_item{item_index}"


class ListItemDescriptor(BaseModel):
    """One item of a list block, addressed positionally."""

    address: str = Field(..., description="Composite address {parentBlockId}_item{itemIndex}")
    parent_block_id: str = Field(..., description="Block ID of the owning list")
    item_index: int = Field(..., ge=0, description="0-based position in the list")
    list_type: ListType = Field(..., description="Kind of the owning list")
    content: str = Field(..., description="Item content without the list marker")
    checked: Optional[bool] = Field(default=None, description="Checkbox state (checkbox lists only)")

    model_config = {"frozen": True}


class BlockDescriptor(BaseModel):
    """Top-level block as seen by the model."""

    block_id: str = Field(..., description="Stable block identity")
    type: NodeType = Field(..., description="Structural kind")
    editable: bool = Field(..., description="False for media, tables, math and TOC")
    content: str = Field(..., description="Markdown content, or a description when not editable")
    index: int = Field(..., ge=0, description="Position among top-level blocks (informational)")
    items: list[ListItemDescriptor] = Field(
        default_factory=list,
        description="List items (list blocks only)"
    )

    model_config = {"frozen": True}


class Segmentation(BaseModel):
    """Result of segmenting a document for model consumption."""

    blocks: list[BlockDescriptor] = Field(default_factory=list)
    text: str = Field(default="", description="Address-annotated document text")

    model_config = {"frozen": True}

    def addresses(self) -> list[str]:
        """All addresses the model may reference, in document order."""
        result = []
        for block in self.blocks:
            result.append(block.block_id)
            result.extend(item.address for item in block.items)
        return result

    def truncated(self, max_chars: int) -> str:
        """Annotated text cut to at most max_chars characters."""
        if len(self.text) <= max_chars:
            return self.text
        return self.text[:max_chars]
