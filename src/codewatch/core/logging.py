"""structlog setup for codewatch.

structlog events are handed to stdlib logging and rendered there by
ProcessorFormatter, so records from watchfiles land in the same outputs.
Every LogOutputConfig becomes one handler with its own renderer and level.

Each `codewatch` invocation binds a session id through structlog's
contextvars; it is attached to every event logged afterwards.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from codewatch.config.models import LoggingConfig, LogOutputConfig

SESSION_KEY = "session_id"

# Library loggers that report every raw notification below WARNING
_NOISY_LOGGERS = ("watchfiles.main", "watchfiles.watcher")

_PRE_CHAIN: list[structlog.typing.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
]


def bind_session_id(session_id: str | None = None) -> str:
    """Attach a session id to every later event in this context."""
    sid = session_id or uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(**{SESSION_KEY: sid})
    return sid


def get_session_id() -> str | None:
    return structlog.contextvars.get_contextvars().get(SESSION_KEY)


def clear_session_id() -> None:
    structlog.contextvars.unbind_contextvars(SESSION_KEY)


def configure_logging(
    config: LoggingConfig | None = None,
    *,
    level: str | None = None,
    json_format: bool = False,
) -> None:
    """Route structlog and stdlib records to the configured outputs.

    Without a config a single stderr output is used at ``level`` (INFO when
    omitted). A config wins over ``level`` and ``json_format``. Calling this
    again replaces the handlers installed by the previous call.
    """
    from codewatch.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=(level or "INFO").upper(),  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    threshold = getattr(logging, config.level)

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(threshold)
    for output in config.outputs:
        root.addHandler(_build_handler(output, output.level or config.level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_handler(output: LogOutputConfig, level: str) -> logging.Handler:
    handler: logging.Handler
    if output.destination == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    elif output.destination == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    else:
        log_path = Path(output.destination)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")

    renderer: structlog.typing.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        stream = getattr(handler, "stream", None)
        on_terminal = not isinstance(handler, logging.FileHandler) and stream is not None
        renderer = structlog.dev.ConsoleRenderer(colors=on_terminal and stream.isatty())

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=_PRE_CHAIN,
        )
    )
    handler.setLevel(getattr(logging, level))
    return handler


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """structlog logger backed by the stdlib logger ``name``."""
    if name is None:
        return structlog.get_logger()  # type: ignore[no-any-return]
    return structlog.get_logger(name)  # type: ignore[no-any-return]
