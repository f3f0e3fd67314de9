"""Model transport and cancellable stream reading."""

import asyncio
from typing import AsyncIterator, Callable, Optional, Protocol, Union

import httpx

from blockwise.models.config import AgentConfig
from blockwise.models.protocol import (
    AgentRequest,
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    SessionMode,
    StreamEvent,
    ValidResponse,
)
from blockwise.services.exceptions import TransportError
from blockwise.services.llm_client import LLMClient
from blockwise.services.prompts import build_messages
from blockwise.services.response_parser import parse_agent_response
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)

# HTTP statuses worth retrying with the same request
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class AgentTransport(Protocol):
    """Anything that turns a request into a stream of events.

    Implementations yield ChunkEvents and finish with exactly one
    CompleteEvent or ErrorEvent, or raise TransportError.
    """

    def stream(self, request: AgentRequest) -> AsyncIterator[StreamEvent]:
        ...


class LLMAgentTransport:
    """Transport backed by an OpenAI-compatible (or Ollama) chat API."""

    def __init__(self, client: LLMClient, config: AgentConfig):
        self.client = client
        self.config = config

    async def stream(self, request: AgentRequest) -> AsyncIterator[StreamEvent]:
        messages = build_messages(request, self.config)
        agent_mode = request.mode == SessionMode.AGENT
        parts: list[str] = []

        try:
            async for fragment in self.client.stream_chat(
                messages,
                json_mode=agent_mode,
                request_id=f"iteration-{request.iteration}",
            ):
                parts.append(fragment)
                yield ChunkEvent(content=fragment)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"Model request failed with HTTP {status}",
                retryable=status in RETRYABLE_STATUS,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Model request failed: {e or type(e).__name__}") from e

        raw = "".join(parts)
        if agent_mode:
            result = parse_agent_response(raw)
        else:
            result = ValidResponse(response=raw.strip())

        yield CompleteEvent(result=result, raw_content=raw)


StreamOutcome = Union[CompleteEvent, ErrorEvent]


class StreamReader:
    """
    Reads one transport stream at a time and supports mid-flight abort.

    abort() cancels the reading task; read() then returns None instead of
    an outcome. Text already delivered through on_chunk stays delivered.
    """

    def __init__(self, transport: AgentTransport):
        self.transport = transport
        self._task: Optional[asyncio.Task] = None
        self._aborted = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def read(
        self,
        request: AgentRequest,
        on_chunk: Callable[[str], None],
    ) -> Optional[StreamOutcome]:
        """
        Consume a stream until its final event.

        Args:
            request: Request to send
            on_chunk: Called with every content fragment

        Returns:
            CompleteEvent or ErrorEvent, or None if aborted
        """
        self._aborted = False
        self._task = asyncio.create_task(self._consume(request, on_chunk))
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._aborted:
                logger.info("stream_aborted", iteration=request.iteration)
                return None
            raise
        finally:
            self._task = None

    def abort(self) -> bool:
        """Cancel the in-flight read. Returns False if nothing was running."""
        if not self.active:
            return False
        self._aborted = True
        self._task.cancel()
        return True

    async def _consume(
        self,
        request: AgentRequest,
        on_chunk: Callable[[str], None],
    ) -> StreamOutcome:
        try:
            async for event in self.transport.stream(request):
                if isinstance(event, ChunkEvent):
                    on_chunk(event.content)
                else:
                    return event
        except TransportError as e:
            logger.error(
                "transport_failed",
                iteration=request.iteration,
                error=e.message,
                retryable=e.retryable,
            )
            return ErrorEvent(message=e.message, retryable=e.retryable)

        return ErrorEvent(message="Model stream ended without a result")
