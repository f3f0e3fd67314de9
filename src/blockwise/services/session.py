"""Multi-turn agent session orchestration.

The controller never touches the tree. It reads snapshots through a
provider callable and sends edits over the edit channel, one at a time,
waiting (bounded) for each acknowledgment.
"""

import asyncio
import re
from typing import Callable, Optional

from blockwise.models.blocks import Segmentation
from blockwise.models.config import AgentConfig
from blockwise.models.edits import EditProposal
from blockwise.models.protocol import AgentRequest, ErrorEvent, HistoryEntry, SessionMode
from blockwise.models.session import ChatMessage, DocumentDiff, MessageRole, SessionState
from blockwise.services.diff import build_document_diff
from blockwise.services.edit_channel import ApplyEditCommand, EditChannel
from blockwise.services.exceptions import EditStatusError, SessionStateError
from blockwise.services.segmenter import clean_document_content
from blockwise.services.transport import AgentTransport, StreamReader
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)

TRANSITIONS = {
    SessionState.IDLE: {SessionState.AWAITING_RESPONSE, SessionState.SUMMARIZING},
    SessionState.AWAITING_RESPONSE: {
        SessionState.AWAITING_RESPONSE,
        SessionState.APPLYING_EDITS,
        SessionState.SUMMARIZING,
        SessionState.IDLE,
        SessionState.CANCELLED,
    },
    SessionState.APPLYING_EDITS: {
        SessionState.AWAITING_RESPONSE,
        SessionState.SUMMARIZING,
        SessionState.IDLE,
        SessionState.CANCELLED,
    },
    SessionState.SUMMARIZING: {SessionState.AWAITING_RESPONSE, SessionState.IDLE},
    SessionState.CANCELLED: {
        SessionState.AWAITING_RESPONSE,
        SessionState.SUMMARIZING,
        SessionState.IDLE,
    },
}

BUSY_STATES = frozenset({
    SessionState.AWAITING_RESPONSE,
    SessionState.APPLYING_EDITS,
    SessionState.SUMMARIZING,
})

SUMMARY_EDIT_LIMIT = 15
SUMMARY_REMAINING_LIMIT = 2
MAX_STATED_ACTIONS = 8

_ACTION_PREFIX = re.compile(r"^(?:I have |I've |Here )", re.IGNORECASE)

Listener = Callable[["SessionController"], None]


class SessionController:
    """
    Drives agent sessions: request, stream, apply, continue, summarize.

    A session starts with each user message and runs until the model
    reports no remaining work, the iteration limit is hit, a transport
    error occurs or the user cancels.

    Example:
        >>> controller = SessionController(transport, channel, editor.snapshot, config.agent)
        >>> await controller.send_message("Tighten the introduction")
        >>> controller.messages[-1].diff
    """

    def __init__(
        self,
        transport: AgentTransport,
        channel: EditChannel,
        snapshot_provider: Callable[[], Segmentation],
        config: AgentConfig,
        document_title: str = "",
    ):
        """
        Initialize the controller.

        Args:
            transport: Model transport
            channel: Channel to the document editor
            snapshot_provider: Returns a fresh segmentation of the live tree
            config: Agent session settings
            document_title: Title shown to the model and in the diff
        """
        self.transport = transport
        self.channel = channel
        self.snapshot_provider = snapshot_provider
        self.config = config
        self.document_title = document_title

        self._reader = StreamReader(transport)
        self._listeners: list[Listener] = []

        self.messages: list[ChatMessage] = []
        self.state = SessionState.IDLE
        self.mode = SessionMode.AGENT
        self.session = 0
        self.error: Optional[str] = None
        self.last_request: Optional[AgentRequest] = None
        self._reset_session()

    def _reset_session(self) -> None:
        self.iteration = 1
        self.pending_continuation: Optional[str] = None
        self.context_summary: Optional[str] = None
        self.summarized_at_iteration = 0
        self.original_request: Optional[str] = None
        self.original_snapshot: Optional[str] = None
        self.applied_edits: list[EditProposal] = []
        self.document_diff: Optional[DocumentDiff] = None
        self._cancel_requested = False

    # Observation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener after every state change or message update."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _transition(self, state: SessionState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise SessionStateError(self.state.value, f"enter {state.value}")
        if state != self.state:
            logger.debug("session_state_changed", from_state=self.state.value, to_state=state.value)
        self.state = state
        self._notify()

    @property
    def is_busy(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def has_more(self) -> bool:
        """Whether unfinished work can be resumed with continue_session()."""
        return self.pending_continuation is not None

    # Public operations

    async def send_message(self, text: str, mode: Optional[SessionMode] = None) -> None:
        """
        Start a new session with a user message and run it to completion.

        Raises:
            SessionStateError: Another turn is in progress
            ValueError: Empty message
        """
        if self.is_busy:
            raise SessionStateError(self.state.value, "send a message")
        text = text.strip()
        if not text:
            raise ValueError("Message is empty")
        if mode is not None:
            self.mode = mode

        self._reset_session()
        self.session += 1
        self.error = None
        self.original_request = text

        snapshot = self.snapshot_provider()
        self.original_snapshot = snapshot.text
        history = self.effective_history()

        self.messages.append(ChatMessage(role=MessageRole.USER, content=text, session=self.session))
        self._notify()

        logger.info(
            "session_started",
            session=self.session,
            mode=self.mode.value,
            blocks=len(snapshot.blocks),
        )

        if self.mode == SessionMode.ASK:
            context = clean_document_content(snapshot.text)[:self.config.ask_context_chars]
        else:
            context = snapshot.truncated(self.config.max_context_chars)

        request = AgentRequest(
            message=text,
            document_context=context,
            document_title=self.document_title,
            history=history,
            iteration=1,
            max_edits_per_iteration=self.config.max_edits_per_iteration,
            mode=self.mode,
        )
        await self._run(request)

    async def retry(self) -> None:
        """Re-send the last request, typically after a transport error."""
        if self.is_busy:
            raise SessionStateError(self.state.value, "retry")
        if self.last_request is None:
            raise SessionStateError(self.state.value, "retry without a previous request")
        logger.info("session_retry", session=self.session, iteration=self.last_request.iteration)
        self.error = None
        await self._run(self.last_request)

    async def continue_session(self) -> None:
        """Resume unfinished work after auto-continuation stopped."""
        if self.is_busy:
            raise SessionStateError(self.state.value, "continue")
        if self.pending_continuation is None:
            raise SessionStateError(self.state.value, "continue without pending work")
        self._cancel_requested = False
        await self._run(self._continuation_request())

    def cancel(self) -> bool:
        """
        Stop the current turn.

        Edits already applied stay applied. Returns False when nothing
        cancellable is running.
        """
        if self.state not in (SessionState.AWAITING_RESPONSE, SessionState.APPLYING_EDITS):
            return False
        self._cancel_requested = True
        self._reader.abort()
        logger.info("session_cancel_requested", session=self.session, state=self.state.value)
        return True

    def clear(self) -> None:
        """Forget all messages and session state."""
        if self.is_busy:
            raise SessionStateError(self.state.value, "clear")
        self.messages.clear()
        self._reset_session()
        self.error = None
        self.last_request = None
        self.state = SessionState.IDLE
        logger.info("session_cleared")
        self._notify()

    async def accept_edit(self, message_id: str, edit_id: str) -> EditProposal:
        """
        Apply a pending edit the user reviewed manually.

        Returns:
            The updated proposal (accepted, or pending with a failure reason)
        """
        message, index, edit = self._find_edit(message_id, edit_id)
        if edit.is_final:
            raise EditStatusError(edit.edit_id, edit.status.value, "accepted")
        updated = await self._apply_one(edit)
        message.edits[index] = updated
        self._notify()
        return updated

    def reject_edit(self, message_id: str, edit_id: str) -> EditProposal:
        message, index, edit = self._find_edit(message_id, edit_id)
        updated = edit.reject()
        message.edits[index] = updated
        logger.info("edit_rejected", edit_id=edit_id, block_id=edit.block_id)
        self._notify()
        return updated

    def effective_history(self) -> list[HistoryEntry]:
        """
        Prior turns to send with the next request.

        With a context summary in place only turns after it are included,
        since the summary stands in for everything before.
        """
        entries = []
        for message in self.messages:
            if message.streaming or message.is_summary or message.cancelled:
                continue
            if not message.content.strip():
                continue
            if self.context_summary is not None and (
                message.session != self.session
                or message.iteration <= self.summarized_at_iteration
            ):
                continue
            entries.append(HistoryEntry(role=message.role.value, content=message.content))

        if self.context_summary is not None:
            limit = self.config.summary_history_limit
        else:
            limit = self.config.history_limit
        return entries[-limit:] if limit else []

    # Turn loop

    async def _run(self, request: Optional[AgentRequest]) -> None:
        self._cancel_requested = False
        while request is not None:
            request = await self._turn(request)

    async def _turn(self, request: AgentRequest) -> Optional[AgentRequest]:
        """Run one request/response round. Returns the follow-up request, if any."""
        self.last_request = request
        self._transition(SessionState.AWAITING_RESPONSE)

        message = ChatMessage(
            role=MessageRole.ASSISTANT,
            streaming=True,
            iteration=request.iteration,
            session=self.session,
        )
        self.messages.append(message)
        self._notify()

        def on_chunk(fragment: str) -> None:
            message.content += fragment
            self._notify()

        outcome = await self._reader.read(request, on_chunk)

        if outcome is None:
            message.streaming = False
            message.cancelled = True
            if not message.content.strip():
                message.content = "(Cancelled)"
            self._transition(SessionState.CANCELLED)
            return None

        if isinstance(outcome, ErrorEvent):
            self.messages.remove(message)
            self.error = outcome.message
            logger.error(
                "session_turn_failed",
                session=self.session,
                iteration=request.iteration,
                error=outcome.message,
                retryable=outcome.retryable,
            )
            self._transition(SessionState.IDLE)
            return None

        result = outcome.result
        edits = list(result.edits)
        if len(edits) > self.config.max_edits_per_iteration:
            # Prompt hint only; all proposed edits are kept
            logger.warning(
                "edit_limit_exceeded",
                proposed=len(edits),
                limit=self.config.max_edits_per_iteration,
            )

        message.content = result.response
        message.raw_content = outcome.raw_content
        message.edits = edits
        message.has_more = result.has_more
        message.streaming = False
        self._notify()

        logger.info(
            "session_turn_completed",
            session=self.session,
            iteration=request.iteration,
            edits=len(edits),
            has_more=result.has_more,
            malformed=result.kind == "malformed",
        )

        if request.mode == SessionMode.ASK:
            self._transition(SessionState.IDLE)
            return None

        if result.has_more:
            self.pending_continuation = outcome.raw_content or result.response
        else:
            self.pending_continuation = None

        if edits and self.config.auto_apply:
            self._transition(SessionState.APPLYING_EDITS)
            message.edits = await self._apply_edits(edits)
            self._notify()
            if self._cancel_requested:
                self._transition(SessionState.CANCELLED)
                return None

        if not result.has_more:
            self._finish_session()
            return None

        if not self.config.auto_apply:
            self._transition(SessionState.IDLE)
            return None
        if self.iteration >= self.config.max_iterations:
            logger.warning("session_iteration_limit", session=self.session, iteration=self.iteration)
            self._transition(SessionState.IDLE)
            return None

        await asyncio.sleep(self.config.continuation_delay_seconds)
        if self._cancel_requested:
            self._transition(SessionState.CANCELLED)
            return None

        return self._continuation_request()

    async def _apply_edits(self, edits: list[EditProposal]) -> list[EditProposal]:
        """Apply edits in model order, one acknowledged command at a time."""
        results = []
        for position, edit in enumerate(edits):
            if position:
                await asyncio.sleep(self.config.edit_gap_seconds)
            if self._cancel_requested:
                results.extend(edits[position:])
                break
            results.append(await self._apply_one(edit))
        return results

    async def _apply_one(self, edit: EditProposal) -> EditProposal:
        command = ApplyEditCommand.from_proposal(edit)
        ack = await self.channel.request(command, timeout=self.config.ack_timeout_seconds)

        if ack is not None and not ack.success:
            logger.warning(
                "edit_skipped",
                edit_id=edit.edit_id,
                block_id=edit.block_id,
                reason=ack.error_code,
            )
            return edit.failed(ack.error_code or "edit_failed")

        if ack is None:
            # No acknowledgment in time: assume it landed and keep going
            logger.warning("edit_assumed_applied", edit_id=edit.edit_id, block_id=edit.block_id)

        accepted = edit.accept()
        self.applied_edits.append(accepted)
        return accepted

    def _continuation_request(self) -> AgentRequest:
        if self.iteration - self.summarized_at_iteration >= self.config.summarize_every_n_iterations:
            self._summarize()

        self.iteration += 1
        snapshot = self.snapshot_provider()
        return AgentRequest(
            message=f"Continue working on: {self.original_request}",
            document_context=snapshot.truncated(self.config.max_context_chars),
            document_title=self.document_title,
            history=self.effective_history(),
            context_summary=self.context_summary,
            continue_from=self.pending_continuation,
            iteration=self.iteration,
            max_edits_per_iteration=self.config.max_edits_per_iteration,
            mode=SessionMode.AGENT,
        )

    def _session_replies(self) -> list[ChatMessage]:
        return [
            message for message in self.messages
            if message.session == self.session
            and message.role == MessageRole.ASSISTANT
            and not message.is_summary
            and not message.cancelled
        ]

    def _summarize(self) -> None:
        """Replace accumulated history with a compact summary."""
        self._transition(SessionState.SUMMARIZING)

        lines = [f"Original request: {self.original_request}"]
        recent = self.applied_edits[-SUMMARY_EDIT_LIMIT:]
        if recent:
            lines.append("")
            lines.append("Edits applied so far:")
            lines.extend(
                f"- {edit.action.value}: {edit.description or edit.block_id}"
                for edit in recent
            )
        remaining = [m.content for m in self._session_replies() if m.has_more]
        if remaining:
            lines.append("")
            lines.append("Remaining work:")
            lines.extend(remaining[-SUMMARY_REMAINING_LIMIT:])

        self.context_summary = "\n".join(lines)
        self.summarized_at_iteration = self.iteration
        self.messages.append(ChatMessage(
            role=MessageRole.ASSISTANT,
            content=self.context_summary,
            is_summary=True,
            iteration=self.iteration,
            session=self.session,
        ))
        logger.info(
            "session_summarized",
            session=self.session,
            iteration=self.iteration,
            edits=len(self.applied_edits),
        )
        self._notify()

    def _stated_actions(self) -> list[str]:
        """First paragraph of each substantial reply, deduplicated."""
        actions: list[str] = []
        for message in self._session_replies():
            text = message.content.strip()
            if len(text) < 20:
                continue
            first = text.split("\n\n")[0].strip()
            if not 10 <= len(first) <= 300:
                continue
            action = _ACTION_PREFIX.sub("", first).rstrip(".").strip()
            if action:
                action = action[0].upper() + action[1:]
            if action and action not in actions:
                actions.append(action)
        return actions[:MAX_STATED_ACTIONS]

    def _finish_session(self) -> None:
        """Emit the end-of-session summary for multi-iteration sessions."""
        if self.iteration <= 1:
            self._transition(SessionState.IDLE)
            return

        self._transition(SessionState.SUMMARIZING)
        original = clean_document_content(self.original_snapshot or "")
        final = clean_document_content(self.snapshot_provider().text)
        diff = build_document_diff(original, final, self.document_title)

        lines = [
            f"Completed in {self.iteration} iterations: "
            f"+{diff.lines_added} / -{diff.lines_removed} lines."
        ]
        actions = self._stated_actions()
        if actions:
            lines.append("")
            lines.extend(f"- {action}" for action in actions)

        self.document_diff = diff
        self.messages.append(ChatMessage(
            role=MessageRole.ASSISTANT,
            content="\n".join(lines),
            is_summary=True,
            iteration=self.iteration,
            session=self.session,
            diff=diff,
        ))
        logger.info(
            "session_finished",
            session=self.session,
            iterations=self.iteration,
            lines_added=diff.lines_added,
            lines_removed=diff.lines_removed,
        )
        self.original_snapshot = None
        self._transition(SessionState.IDLE)

    def _find_edit(self, message_id: str, edit_id: str) -> tuple[ChatMessage, int, EditProposal]:
        for message in self.messages:
            if message.id != message_id:
                continue
            for index, edit in enumerate(message.edits):
                if edit.edit_id == edit_id:
                    return message, index, edit
        raise KeyError(f"No edit {edit_id} in message {message_id}")
