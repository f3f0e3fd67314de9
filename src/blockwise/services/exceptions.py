"""Custom exceptions for Blockwise services."""


class FileModifiedError(Exception):
    """Raised when a file is modified during an atomic write operation.

    This exception indicates that the file changed between the initial
    read and the final write, which could lead to data loss if the write
    were to proceed.

    Attributes:
        path: Path to the file that was modified
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str = "File was modified during write operation"):
        """Initialize FileModifiedError.

        Args:
            path: Path to the file that was modified
            message: Human-readable error message
        """
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


class EditError(Exception):
    """Base class for failures resolving or applying one edit.

    Attributes:
        block_id: Address the edit referred to
        message: Human-readable error message
        code: Stable machine-readable reason, recorded on the proposal
    """

    code = "edit_failed"

    def __init__(self, block_id: str, message: str):
        """Initialize EditError.

        Args:
            block_id: Address the edit referred to
            message: Human-readable error message
        """
        self.block_id = block_id
        self.message = message
        super().__init__(f"{message}: {block_id}")


class BlockNotFoundError(EditError):
    """Raised when no live block carries the requested block ID."""

    code = "block_not_found"

    def __init__(self, block_id: str, message: str = "Block not found"):
        super().__init__(block_id, message)


class ListItemNotFoundError(EditError):
    """Raised when a list exists but has no item at the requested index.

    Attributes:
        item_index: The index that was requested
    """

    code = "list_item_not_found"

    def __init__(self, block_id: str, item_index: int, message: str = "List item not found"):
        self.item_index = item_index
        super().__init__(block_id, message)


class NonEditableBlockError(EditError):
    """Raised when an edit would rewrite the content of a non-editable block."""

    code = "non_editable_block"

    def __init__(self, block_id: str, block_type: str):
        self.block_type = block_type
        super().__init__(block_id, f"Cannot rewrite non-editable {block_type} block")


class InvalidEditError(EditError):
    """Raised when an edit is well-addressed but cannot be performed."""

    code = "invalid_edit"


class EditStatusError(Exception):
    """Raised on an illegal edit proposal status transition.

    Attributes:
        edit_id: Proposal identifier
        current: Status the proposal already has
        requested: Status that was requested
    """

    def __init__(self, edit_id: str, current: str, requested: str):
        self.edit_id = edit_id
        self.current = current
        self.requested = requested
        super().__init__(f"Edit {edit_id} is already {current}, cannot mark {requested}")


class MalformedResponseError(Exception):
    """Raised internally when model output cannot be decoded as a response object.

    Attributes:
        raw: The text that failed to decode
    """

    def __init__(self, raw: str, message: str = "Malformed model response"):
        self.raw = raw
        self.message = message
        super().__init__(message)


class TransportError(Exception):
    """Raised when the model transport fails (network, timeout, HTTP status).

    Attributes:
        message: Human-readable error message
        retryable: Whether resending the same request may succeed
    """

    def __init__(self, message: str, retryable: bool = True):
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class SessionStateError(Exception):
    """Raised when a session operation is not allowed in the current state.

    Attributes:
        state: Current session state
        operation: Operation or target state that was requested
    """

    def __init__(self, state: str, operation: str):
        self.state = state
        self.operation = operation
        super().__init__(f"Cannot {operation} while session is {state}")
