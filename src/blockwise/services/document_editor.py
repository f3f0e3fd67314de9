"""The document-editing boundary: sole owner of the live tree."""

import asyncio
from typing import Optional

from richtext_tree import Document

from blockwise.models.blocks import Segmentation
from blockwise.services import block_ids
from blockwise.services.edit_applier import apply_edit
from blockwise.services.edit_channel import ApplyEditCommand, EditAppliedEvent, EditChannel
from blockwise.services.exceptions import EditError
from blockwise.services.segmenter import segment
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)


class DocumentEditor:
    """
    Owns the live document and applies edit commands from a channel.

    Other collaborators may keep mutating the same Document through
    Document.apply(); commands are resolved against whatever the tree
    looks like when they are processed.
    """

    def __init__(self, document: Document, channel: EditChannel):
        """
        Initialize the editor and install block ID maintenance.

        Args:
            document: Live document
            channel: Channel delivering commands and carrying acknowledgments
        """
        self.document = document
        self.channel = channel
        self._task: Optional[asyncio.Task] = None
        block_ids.install(document)

    def snapshot(self) -> Segmentation:
        """Refresh IDs and segment the current tree."""
        block_ids.ensure_block_ids(self.document)
        return segment(self.document)

    def apply_command(self, command: ApplyEditCommand) -> EditAppliedEvent:
        """
        Apply one command and build its acknowledgment.

        Resolution failures are reported in the event, never raised.
        """
        try:
            result = apply_edit(self.document, command.to_proposal())
        except EditError as e:
            logger.warning(
                "edit_failed",
                command_id=command.command_id,
                block_id=command.block_id,
                action=command.action.value,
                reason=e.code,
                error=e.message,
            )
            return EditAppliedEvent(
                command_id=command.command_id,
                success=False,
                error_code=e.code,
                message=str(e),
            )
        except Exception as e:
            # Anything else must not take the editor loop down with it
            logger.exception(
                "edit_crashed",
                command_id=command.command_id,
                block_id=command.block_id,
                action=command.action.value,
            )
            return EditAppliedEvent(
                command_id=command.command_id,
                success=False,
                error_code="edit_failed",
                message=f"Unexpected error applying edit: {e}",
            )

        logger.info(
            "edit_applied",
            command_id=command.command_id,
            block_id=command.block_id,
            action=command.action.value,
            version=result.version,
        )
        return EditAppliedEvent(
            command_id=command.command_id,
            success=True,
            version=result.version,
        )

    async def run(self) -> None:
        """Process commands forever, one at a time, in arrival order."""
        while True:
            command = await self.channel.next_command()
            self.channel.acknowledge(self.apply_command(command))

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def __aenter__(self) -> "DocumentEditor":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
