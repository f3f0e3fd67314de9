"""LLM client with streaming chat completion support."""

import httpx
import json
from typing import AsyncIterator, Dict, Any, Optional
import asyncio

from blockwise.utils.logging import get_logger
from blockwise.models.config import LLMConfig


logger = get_logger(__name__)


def _extract_content_from_openai_chunk(data: Dict[str, Any]) -> str | None:
    """
    Extract content from OpenAI-style streaming chunk.

    OpenAI/Ollama return chunks like:
    {
        "choices": [{
            "delta": {"content": "..."},
            "finish_reason": null
        }]
    }

    Args:
        data: Parsed JSON chunk from OpenAI API

    Returns:
        Content string if present, None otherwise
    """
    try:
        if "choices" in data and len(data["choices"]) > 0:
            choice = data["choices"][0]
            if "delta" in choice and "content" in choice["delta"]:
                return choice["delta"]["content"]
    except (KeyError, IndexError, TypeError):
        pass
    return None


def _extract_content_from_ollama_chunk(data: Dict[str, Any]) -> str | None:
    """
    Extract content from Ollama native streaming chunk.

    Ollama's /api/chat returns chunks like:
    {
        "model": "...",
        "message": {
            "role": "assistant",
            "content": "..."
        },
        "done": false
    }

    Args:
        data: Parsed JSON chunk from Ollama /api/chat

    Returns:
        Content string if present, None otherwise
    """
    try:
        if "message" in data and "content" in data["message"]:
            return data["message"]["content"]
    except (KeyError, TypeError):
        pass
    return None


class LLMClient:
    """
    HTTP client for LLM chat APIs with streaming support.

    Supports OpenAI-compatible APIs (including Ollama) with automatic retry
    on transient errors that happen before any content has arrived.
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (endpoint, API key, model)
        """
        self.config = config
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=60.0,  # Per-read timeout for streaming
            write=10.0,
            pool=10.0
        )
        self._is_ollama: bool | None = None  # Cached provider detection

    def _base_url(self) -> str:
        base_url = str(self.config.endpoint).rstrip("/")
        # Remove /v1 suffix if present (OpenAI-compatible path)
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        return base_url

    async def _detect_ollama(self) -> bool:
        """
        Detect if the LLM endpoint is Ollama by probing /api/version.

        This detection is cached after the first call.

        Returns:
            True if Ollama detected, False otherwise
        """
        if self._is_ollama is not None:
            return self._is_ollama

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(5.0), verify=False) as client:
                version_url = f"{self._base_url()}/api/version"

                logger.debug(
                    "llm_provider_detection",
                    version_url=version_url,
                )

                response = await client.get(version_url)

                if response.status_code == 200:
                    logger.info(
                        "llm_provider_detected",
                        provider="ollama",
                        version_url=version_url,
                    )
                    self._is_ollama = True
                    return True

        except Exception as e:
            logger.debug(
                "llm_provider_detection_failed",
                error=str(e),
                assumed_provider="openai",
            )

        # Default to OpenAI-compatible if the version check fails
        logger.info(
            "llm_provider_detected",
            provider="openai",
        )
        self._is_ollama = False
        return False

    async def stream_chat(
        self,
        messages: list[Dict[str, str]],
        max_retries: int = 1,
        retry_delay: float = 2.0,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        request_id: Optional[str] = None
    ) -> AsyncIterator[str]:
        """
        Stream a chat completion as text fragments.

        Supports SSE (OpenAI "data: " lines, terminated by "data: [DONE]")
        and Ollama's native NDJSON stream.

        Args:
            messages: Chat messages ({"role": ..., "content": ...})
            max_retries: Number of automatic retries on transient errors (default: 1)
            retry_delay: Delay in seconds between retries (default: 2.0)
            temperature: Sampling temperature (default: from config)
            json_mode: Enable JSON mode (forces JSON output, OpenAI only, default: False)
            request_id: Optional identifier for this request (for logging/tracing)

        Yields:
            Content fragments in arrival order

        Raises:
            httpx.HTTPError: On network or HTTP errors after retries exhausted

        Example:
            >>> async for fragment in client.stream_chat(
            ...     [{"role": "system", "content": "You edit documents"},
            ...      {"role": "user", "content": "Fix typos"}]
            ... ):
            ...     print(fragment, end="")
        """
        # Use provided request_id, or fall back to asyncio task name
        if not request_id:
            current_task = asyncio.current_task()
            task_name = current_task.get_name() if current_task else None
            if task_name and task_name != "None":
                request_id = task_name
            else:
                request_id = "unknown"

        is_ollama = await self._detect_ollama()

        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "stream": True,
            "temperature": self.config.temperature if temperature is None else temperature,
        }

        # Add num_ctx for Ollama in options object
        if is_ollama and self.config.num_ctx:
            payload["options"] = {"num_ctx": self.config.num_ctx}

        # Note: Ollama doesn't support response_format parameter
        if json_mode and not is_ollama:
            payload["response_format"] = {"type": "json_object"}

        logger.info(
            "llm_request_started",
            request_id=request_id,
            model=self.config.model,
            endpoint=str(self.config.endpoint),
            provider="ollama" if is_ollama else "openai",
            message_count=len(messages),
            prompt_length=sum(len(m.get("content", "")) for m in messages),
            temperature=payload["temperature"],
        )

        logger.debug(
            "llm_request_payload",
            request_id=request_id,
            payload=payload,
        )

        if is_ollama:
            url = self._base_url() + "/api/chat"
        else:
            url = str(self.config.endpoint).rstrip("/") + "/chat/completions"

        attempt = 0
        fragment_count = 0

        while attempt <= max_retries:
            try:
                async with httpx.AsyncClient(timeout=self.timeout, verify=False) as client:
                    headers = {"Authorization": f"Bearer {self.config.api_key}"}

                    async with client.stream("POST", url, json=payload, headers=headers) as response:
                        response.raise_for_status()

                        async for line in response.aiter_lines():
                            if not line.strip():
                                continue  # Skip empty lines

                            json_line = line
                            if line.startswith("data: "):
                                json_line = line[6:]  # Remove "data: " prefix

                                # Skip SSE control messages
                                if json_line == "[DONE]":
                                    logger.debug(
                                        "llm_response_sse_done",
                                        request_id=request_id,
                                    )
                                    continue

                            try:
                                data = json.loads(json_line)
                            except json.JSONDecodeError as e:
                                logger.error(
                                    "llm_malformed_json",
                                    request_id=request_id,
                                    line=line,  # Full line for debugging
                                    error=str(e)
                                )
                                # Skip bad line, continue processing stream
                                continue

                            if is_ollama:
                                fragment = _extract_content_from_ollama_chunk(data)
                            else:
                                fragment = _extract_content_from_openai_chunk(data)

                            if fragment:
                                fragment_count += 1
                                yield fragment

                    logger.info(
                        "llm_request_completed",
                        request_id=request_id,
                        fragment_count=fragment_count
                    )

                    # Success - exit retry loop
                    return

            except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
                attempt += 1

                # Content already delivered cannot be replayed
                if fragment_count > 0:
                    logger.error(
                        "llm_stream_interrupted",
                        request_id=request_id,
                        fragment_count=fragment_count,
                        error=str(e)
                    )
                    raise

                logger.warning(
                    "llm_request_retry",
                    request_id=request_id,
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(e),
                    retry_delay=retry_delay
                )

                if attempt <= max_retries:
                    await asyncio.sleep(retry_delay)
                else:
                    logger.error(
                        "llm_request_failed",
                        request_id=request_id,
                        attempts=attempt,
                        error=str(e)
                    )
                    raise

            except httpx.HTTPStatusError as e:
                # Don't retry on 4xx errors (bad request, auth, etc.)
                logger.error(
                    "llm_http_error",
                    request_id=request_id,
                    status_code=e.response.status_code,
                    error=str(e)
                )
                raise
