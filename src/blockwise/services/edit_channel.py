"""Typed command channel between the session and the document editor.

The session never touches the tree. It dispatches ApplyEditCommands and
waits for the matching EditAppliedEvent, which the document editor sends
once the edit has been applied (or has failed).
"""

import asyncio
import uuid
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from blockwise.models.edits import EditAction, EditProposal
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)


class ChannelMessageType(str, Enum):
    APPLY_EDIT = "apply_edit"
    EDIT_APPLIED = "edit_applied"


class ApplyEditCommand(BaseModel):
    """Request to mutate the tree."""

    type: Literal[ChannelMessageType.APPLY_EDIT] = ChannelMessageType.APPLY_EDIT
    command_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    block_id: str
    action: EditAction
    replace_with: Optional[str] = None
    target_block_id: Optional[str] = None
    description: str = ""

    model_config = {"frozen": True}

    @classmethod
    def from_proposal(cls, edit: EditProposal) -> "ApplyEditCommand":
        return cls(
            block_id=edit.block_id,
            action=edit.action,
            replace_with=edit.replace_with or None,
            target_block_id=edit.target_block_id,
            description=edit.description,
        )

    def to_proposal(self) -> EditProposal:
        return EditProposal(
            block_id=self.block_id,
            action=self.action,
            replace_with=self.replace_with or "",
            target_block_id=self.target_block_id,
            description=self.description,
        )


class EditAppliedEvent(BaseModel):
    """Acknowledgment for one command."""

    type: Literal[ChannelMessageType.EDIT_APPLIED] = ChannelMessageType.EDIT_APPLIED
    command_id: str
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None
    version: Optional[int] = Field(default=None, description="Document version after the edit")

    model_config = {"frozen": True}


class EditChannel:
    """
    In-process command queue with per-command acknowledgment futures.

    Example:
        >>> ack = await channel.request(ApplyEditCommand(...), timeout=2.0)
        >>> if ack is None:
        ...     pass  # timed out, carry on optimistically
    """

    def __init__(self) -> None:
        self._commands: asyncio.Queue[ApplyEditCommand] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future] = {}

    def dispatch(self, command: ApplyEditCommand) -> asyncio.Future:
        """Queue a command and return the future its acknowledgment resolves."""
        future = asyncio.get_running_loop().create_future()
        self._pending[command.command_id] = future
        self._commands.put_nowait(command)
        logger.debug(
            "edit_dispatched",
            command_id=command.command_id,
            block_id=command.block_id,
            action=command.action.value,
        )
        return future

    async def next_command(self) -> ApplyEditCommand:
        return await self._commands.get()

    def acknowledge(self, event: EditAppliedEvent) -> None:
        """Resolve the waiting future. Late acknowledgments are dropped."""
        future = self._pending.pop(event.command_id, None)
        if future is None:
            logger.debug("edit_ack_unmatched", command_id=event.command_id)
            return
        if not future.done():
            future.set_result(event)

    async def request(
        self,
        command: ApplyEditCommand,
        timeout: float,
    ) -> Optional[EditAppliedEvent]:
        """
        Dispatch a command and wait for its acknowledgment.

        Returns:
            The acknowledgment, or None if none arrived within timeout
        """
        future = self.dispatch(command)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            self._pending.pop(command.command_id, None)
            logger.warning(
                "edit_ack_timeout",
                command_id=command.command_id,
                block_id=command.block_id,
                timeout=timeout,
            )
            return None

    @property
    def pending_count(self) -> int:
        return len(self._pending)
