"""Structured logging setup for Blockwise."""

import structlog
from pathlib import Path
from typing import Any
import os


def configure_logging() -> None:
    """
    Configure structlog for JSON logging to ~/.cache/blockwise/logs/blockwise.log.

    Log level can be controlled via BLOCKWISE_LOG_LEVEL environment variable:
    - Set to "DEBUG" to see request payloads and every edit resolution step
    - Defaults to "INFO" if not set

    Log levels:
    - DEBUG: LLM request payloads, raw response text, resolved addresses
    - INFO: Session transitions, applied edits, summaries
    - WARNING: Failed edits, acknowledgment timeouts, response recovery
    - ERROR: Transport failures, write failures

    Example:
        # Enable debug logging
        export BLOCKWISE_LOG_LEVEL=DEBUG
        blockwise chat notes.md "Tighten the intro"

        # View logs with jq for readability:
        tail -f ~/.cache/blockwise/logs/blockwise.log | jq .
    """
    log_dir = Path.home() / ".cache" / "blockwise" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "blockwise.log"

    log_level = os.environ.get("BLOCKWISE_LOG_LEVEL", "INFO").upper()

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
    if log_level not in valid_levels:
        log_level = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=open(log_file, "a")),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of calling module)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("edit_applied", block_id="blk_l3x9k2abc123", action="replace")
    """
    return structlog.get_logger(name)
