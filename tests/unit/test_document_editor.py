"""Unit tests for DocumentEditor."""

from unittest.mock import patch

import pytest
from richtext_tree import Document

from blockwise.models.edits import EditAction
from blockwise.services.document_editor import DocumentEditor
from blockwise.services.edit_channel import ApplyEditCommand, EditChannel


class TestDocumentEditor:
    """Test command application against the owned document."""

    def test_installs_block_ids(self):
        """Test creating an editor assigns IDs to the document."""
        document = Document.parse("one\n\ntwo")

        DocumentEditor(document, EditChannel())

        assert all(block.block_id for block in document.blocks)

    def test_snapshot(self, sample_document):
        """Test snapshots reflect the live tree."""
        editor = DocumentEditor(sample_document, EditChannel())

        snapshot = editor.snapshot()

        assert snapshot.addresses()[:2] == ["blk_h", "blk_a"]

    def test_apply_command_success(self, sample_document):
        """Test a successful command reports the new version."""
        editor = DocumentEditor(sample_document, EditChannel())
        command = ApplyEditCommand(block_id="blk_a", action=EditAction.REPLACE, replace_with="Hi")

        event = editor.apply_command(command)

        assert event.success is True
        assert event.command_id == command.command_id
        assert event.version == sample_document.version
        assert sample_document.find_top_level("blk_a").text == "Hi"

    def test_apply_command_failure(self, sample_document):
        """Test resolution failures are reported, not raised."""
        editor = DocumentEditor(sample_document, EditChannel())
        version = sample_document.version

        event = editor.apply_command(ApplyEditCommand(block_id="blk_zzz", action=EditAction.DELETE))

        assert event.success is False
        assert event.error_code == "block_not_found"
        assert "blk_zzz" in event.message
        assert sample_document.version == version

    @pytest.mark.asyncio
    async def test_runs_commands_from_channel(self, sample_document):
        """Test the running editor answers channel requests."""
        channel = EditChannel()

        async with DocumentEditor(sample_document, channel):
            ack = await channel.request(
                ApplyEditCommand(block_id="blk_L_item0", action=EditAction.DELETE),
                timeout=1.0,
            )

        assert ack is not None
        assert ack.success is True
        assert len(sample_document.find_top_level("blk_L").children) == 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, sample_document):
        """Test stopping twice is harmless."""
        editor = DocumentEditor(sample_document, EditChannel())
        editor.start()

        await editor.stop()
        await editor.stop()

    def test_unexpected_error_reported(self, sample_document, captured_logs):
        """Test a crash inside edit application becomes a failed acknowledgment."""
        editor = DocumentEditor(sample_document, EditChannel())

        with patch(
            "blockwise.services.document_editor.apply_edit",
            side_effect=RuntimeError("boom"),
        ):
            event = editor.apply_command(ApplyEditCommand(block_id="blk_a", action=EditAction.DELETE))

        assert event.success is False
        assert event.error_code == "edit_failed"
        assert "boom" in event.message
        assert [entry["event"] for entry in captured_logs if entry["log_level"] == "error"] == ["edit_crashed"]

    @pytest.mark.asyncio
    async def test_survives_bad_command(self, sample_document):
        """Test the editor keeps serving commands after one fails badly."""
        channel = EditChannel()

        async with DocumentEditor(sample_document, channel) as editor:
            nested = await channel.request(
                ApplyEditCommand(
                    block_id="blk_a",
                    action=EditAction.REPLACE,
                    replace_with=">" * 400 + " x",
                ),
                timeout=1.0,
            )
            with patch(
                "blockwise.services.document_editor.apply_edit",
                side_effect=RecursionError("maximum recursion depth exceeded"),
            ):
                crashed = await channel.request(
                    ApplyEditCommand(block_id="blk_a", action=EditAction.DELETE),
                    timeout=1.0,
                )
            after = await channel.request(
                ApplyEditCommand(block_id="blk_h", action=EditAction.REPLACE, replace_with="# Changed"),
                timeout=1.0,
            )
            assert not editor._task.done()

        assert nested.success is False
        assert nested.error_code == "invalid_edit"
        assert crashed.success is False
        assert crashed.error_code == "edit_failed"
        assert after.success is True
        assert sample_document.find_top_level("blk_h").text == "Changed"
        assert sample_document.find_top_level("blk_a").text == "Hello"
