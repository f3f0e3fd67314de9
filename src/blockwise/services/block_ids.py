"""Block identity maintenance.

Every addressable node must carry a unique, non-empty block_id after any
mutation settles. The assigner runs as an append hook on the document, so
copy/paste, undo and merged remote changes that (re)introduce duplicates
are repaired inside the same mutation that introduced them.
"""

from typing import Callable, Optional

from richtext_tree import BLOCK_ID_ATTR, Document, NodeType, Transaction

from blockwise.utils.ids import generate_block_id
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)

ADDRESSABLE_TYPES = frozenset({
    NodeType.PARAGRAPH,
    NodeType.HEADING,
    NodeType.BLOCKQUOTE,
    NodeType.CODE_FENCE,
    NodeType.BULLET_LIST,
    NodeType.ORDERED_LIST,
    NodeType.CHECKBOX_LIST,
    NodeType.TABLE,
    NodeType.IMAGE,
    NodeType.VIDEO,
    NodeType.ATTACHMENT,
    NodeType.EMBED,
    NodeType.NOTICE,
    NodeType.HR,
    NodeType.MATH_BLOCK,
    NodeType.TABLE_OF_CONTENTS,
})


def assign_block_ids(
    document: Document,
    id_factory: Callable[[], str] = generate_block_id,
) -> Optional[Transaction]:
    """
    Build a transaction that repairs missing and duplicated block IDs.

    Nodes are visited in document order. The first holder of an ID keeps
    it; any later node with the same ID, and any node without one, gets a
    fresh ID.

    Args:
        document: Document (or hook view) to scan
        id_factory: ID generator, injectable for tests

    Returns:
        Transaction setting the new IDs, or None if nothing needs fixing
    """
    seen: set[str] = set()
    transaction = Transaction()
    reassigned = 0

    for node in document.descendants():
        if node.type not in ADDRESSABLE_TYPES:
            continue
        current = node.block_id
        if current and current not in seen:
            seen.add(current)
            continue

        new_id = id_factory()
        while new_id in seen:
            new_id = id_factory()
        seen.add(new_id)
        transaction.set_attrs(node, **{BLOCK_ID_ATTR: new_id})
        if current:
            reassigned += 1

    if not transaction.steps:
        return None

    logger.debug(
        "block_ids_assigned",
        assigned=len(transaction.steps) - reassigned,
        duplicates_repaired=reassigned,
    )
    return transaction


def ensure_block_ids(document: Document) -> bool:
    """
    Apply ID repair to a document right now.

    Returns:
        True if any IDs were assigned
    """
    transaction = assign_block_ids(document)
    if transaction is None:
        return False
    document.apply(transaction)
    return True


def install(document: Document) -> None:
    """Register the assigner as a mutation hook and repair the current tree."""
    document.add_append_hook(assign_block_ids)
    ensure_block_ids(document)
