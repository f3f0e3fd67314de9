"""Rich-text block tree - Parse, mutate and serialize block documents.

This package provides a small block tree for rich-text documents: a closed
set of block kinds, a markdown-like markup grammar, and atomic
transactions with mutation listeners and append hooks.

Key features:
- Parse markup into a Node tree and render it back
- Apply multi-step transactions atomically (all steps or none)
- Observe mutations via subscribe() and extend them via append hooks
- JSON persistence that keeps every attribute

Example:
    >>> from richtext_tree import Document, Transaction
    >>> doc = Document.parse("Hello\\n\\n- one\\n- two")
    >>> doc.blocks[1].type.value
    'bullet_list'
    >>> result = doc.apply(Transaction().delete(doc.blocks[0]))
    >>> doc.render()
    '- one\\n- two'
"""

from richtext_tree.nodes import (
    BLOCK_ID_ATTR,
    LIST_TYPES,
    Document,
    MutationResult,
    Node,
    NodeType,
)
from richtext_tree.transaction import Transaction, TransactionError
from richtext_tree.markup import MarkupError, list_marker, parse_markdown, serialize_blocks, serialize_node

__version__ = "0.1.0"

__all__ = [
    "BLOCK_ID_ATTR",
    "LIST_TYPES",
    "MarkupError",
    "Document",
    "MutationResult",
    "Node",
    "NodeType",
    "Transaction",
    "TransactionError",
    "list_marker",
    "parse_markdown",
    "serialize_blocks",
    "serialize_node",
]
