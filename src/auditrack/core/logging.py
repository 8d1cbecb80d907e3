"""structlog setup for auditrack.

Call :func:`configure_logging` once at process start (the CLI callback does),
then log snake_case events with keyword fields::

    logger = structlog.get_logger()
    logger.info("action_transitioned", action_id=7, to_status=Status.OVERDUE)

Events go through the stdlib root logger on stderr: JSON lines by default
(``AUDITRACK_LOG_JSON=true``), coloured console lines with ``--log-text``.

Two processors run on every event before rendering:

* :func:`_plain_values` turns ``Status`` members and dates into plain strings;
* :func:`_redaction_processor` scrubs e-mail addresses and phone numbers of
  responsible parties and hides secret-like keys.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping, MutableMapping
from datetime import date
from enum import Enum
from typing import Any

import structlog

from auditrack.modules.redaction import redact_pii

_SUPPRESSED_KEYS = frozenset({"key", "secret", "password", "token", "credential"})

# Chatty at DEBUG: slow-callback warnings, thread-pool chatter.
_QUIET_LOGGERS = ("asyncio", "concurrent.futures")


def _plain_values(
    _logger: Any,
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> Mapping[str, Any]:
    for k, v in event_dict.items():
        if isinstance(v, Enum):
            event_dict[k] = v.value
        elif isinstance(v, date):
            event_dict[k] = v.isoformat()
    return event_dict


def _redaction_processor(
    _logger: Any,
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> Mapping[str, Any]:
    for k, v in event_dict.items():
        if k in _SUPPRESSED_KEYS:
            event_dict[k] = "[SUPPRESSED]"
        elif isinstance(v, str):
            event_dict[k] = redact_pii(v)
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _plain_values,
        _redaction_processor,
    ]


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(*, level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog through stdlib logging at *level*.

    Unknown level names fall back to ``INFO``.
    """
    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
