"""
Structured logging configuration using structlog.

Every stdlib logger in the package is rendered by structlog: JSON lines by
default, a console renderer at DEBUG. Request-scoped fields (request_id,
action) are carried through contextvars so each line of one action can be
grouped without passing ids around.
"""

import logging
import sys
from typing import Any, List, MutableMapping, Optional, TextIO

import structlog

from .config import settings


# Event keys whose values must never reach a log sink
SECRET_KEYS = frozenset({"private_key", "raw_tx", "signed_tx", "mnemonic"})

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _pre_chain(json_output: bool) -> List[structlog.types.Processor]:
    processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
    return processors


def setup_logging(log_level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Configure structlog and send stdlib records through its formatter.

    Args:
        log_level: Override log level (default: settings.log_level)
        stream: Where log lines go (default: stdout). The CLI passes stderr so
            notifications on stdout stay clean.
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    json_output = level != logging.DEBUG
    pre_chain = _pre_chain(json_output)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Receipt polling logs one httpx line per request
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(**values) -> None:
    """Attach request-scoped fields (request_id, action, ...) to every log line."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
