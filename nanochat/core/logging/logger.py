"""
Structured Logging Module using structlog

This module provides structured logging with:
- Conversation ID correlation across the request handler and its background run
- Stage identifiers for the orchestration flow
- JSON formatting for log aggregation
- Automatic redaction of API keys and e-mail addresses

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation
- The conversation id is a context variable, so every task spawned for a
  run inherits it automatically (asyncio copies the context on create_task)
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from nanochat.core.config.settings import get_settings

conversation_id_ctx: ContextVar[str | None] = ContextVar("conversation_id", default=None)

_SECRET_FIELDS = {"api_key", "apiKey", "authorization", "x-api-key", "key"}


def add_conversation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the conversation ID from the context variable to every log entry."""
    conversation_id = conversation_id_ctx.get()
    if conversation_id and "conversation_id" not in event_dict:
        event_dict["conversation_id"] = conversation_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact secrets and PII from log events.

    Patterns redacted:
    - Email addresses → [EMAIL]
    - API keys (sk-..., Bearer tokens) → [REDACTED]
    - Fields named like credentials → [REDACTED]
    """
    message = event_dict.get("event", "")

    if isinstance(message, str):
        message = re.sub(r"\b[\w.-]+@[\w.-]+\.\w+\b", "[EMAIL]", message)
        message = re.sub(r"\bsk-[a-zA-Z0-9_-]+\b", "[REDACTED]", message)
        message = re.sub(r"Bearer\s+[A-Za-z0-9._-]+", "Bearer [REDACTED]", message)
        event_dict["event"] = message

    for field in _SECRET_FIELDS.intersection(event_dict):
        event_dict[field] = "[REDACTED]"

    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_conversation_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value")
    """
    return structlog.get_logger(name)


def set_conversation_id(conversation_id: str | None) -> None:
    """Bind a conversation ID to the current context (request or run)."""
    conversation_id_ctx.set(conversation_id)


def get_conversation_id() -> str | None:
    return conversation_id_ctx.get()


def clear_conversation_id() -> None:
    conversation_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Args:
        logger: Logger instance
        stage: Stage identifier (a `Stage` member or its value)
        message: Log message
        level: Log level (debug, info, warning, error, critical)
        **kwargs: Additional fields to log

    Usage:
        log_stage(logger, Stage.WEB_SEARCH, "Web search failed", level="warning")
    """
    stage_value = getattr(stage, "value", stage)
    log_func = getattr(logger, level.lower())
    log_func(message, stage=stage_value, **kwargs)
