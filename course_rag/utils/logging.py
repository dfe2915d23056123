"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, timestamps, stack info)
ends in either a coloured ConsoleRenderer or a JSONRenderer.  JSON is chosen
when ``APP_ENV=production`` or when ``json_output`` is forced, so that the
orchestrating job worker can ship course_rag logs straight into its log
aggregator.

Standard-library ``logging`` is routed through the same formatter, and the
chattier HTTP / vector-store libraries are capped at WARNING so embedding
batches do not flood the output with one line per request.

Retrieval requests bind a ``request_id`` (and optionally ``course_id``) via
:func:`bind_request_context` so every state-transition event logged while the
request is in flight can be correlated.
"""

import logging
import os
import sys
import uuid

import structlog

_NOISY_LOGGERS = ("httpx", "httpcore", "chromadb", "urllib3")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output regardless of ``APP_ENV``.

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with ``logger_name=name``.

    Configures logging with defaults on first use if nobody has yet.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_request_context(course_id: str | None = None) -> str:
    """Bind a fresh ``request_id`` (and *course_id*) to the logging context.

    Returns the generated request id.  Pair with :func:`clear_request_context`
    in a ``finally`` block.
    """
    request_id = uuid.uuid4().hex[:12]
    bindings: dict[str, str] = {"request_id": request_id}
    if course_id:
        bindings["course_id"] = course_id
    structlog.contextvars.bind_contextvars(**bindings)
    return request_id


def clear_request_context() -> None:
    """Remove request-scoped bindings added by :func:`bind_request_context`."""
    structlog.contextvars.unbind_contextvars("request_id", "course_id")
