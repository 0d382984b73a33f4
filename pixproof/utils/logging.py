"""
Structured logging for PixProof, built on structlog.

Log lines are rendered for humans in a terminal and as JSON when shipped to
an aggregator. While a batch job runs, every line carries the job id as its
correlation id. Payer CPF/CNPJ values are masked before rendering.
"""

import logging
import re
import sys
import time
from typing import Any, cast

import structlog
from structlog.contextvars import bind_contextvars, merge_contextvars, unbind_contextvars
from structlog.types import EventDict, Processor

DOCUMENT_KEYS = frozenset({"payer_document", "document", "cpf", "cnpj", "tax_id"})

_NON_DIGIT = re.compile(r"\D")


def set_correlation_id(correlation_id: str) -> str:
    """Tag every log line of the current context with ``correlation_id``."""
    bind_contextvars(correlation_id=correlation_id)
    return correlation_id


def get_correlation_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("correlation_id")


def clear_correlation_id() -> None:
    unbind_contextvars("correlation_id")


def mask_document(value: Any) -> str:
    """Keep only the last two digits of a CPF/CNPJ: ``*********00``."""
    digits = _NON_DIGIT.sub("", str(value or ""))
    if len(digits) <= 2:
        return "*" * len(digits)
    return "*" * (len(digits) - 2) + digits[-2:]


def mask_documents(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask payer documents passed as log fields."""
    for key in DOCUMENT_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = mask_document(event_dict[key])
    return event_dict


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    from pixproof import __version__

    event_dict.setdefault("app", "pixproof")
    event_dict.setdefault("version", __version__)
    return event_dict


def _renderer(json_logs: bool, dev_mode: bool) -> list[Processor]:
    if json_logs:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    if dev_mode:
        return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
    return [structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    dev_mode: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Log lines go to stderr so that command output on stdout (``--json``)
    stays machine readable.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_logs: Render JSON lines
        dev_mode: Render colored console output (ignored with ``json_logs``)
    """
    processors: list[Processor] = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        mask_documents,
        *_renderer(json_logs, dev_mode),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger().setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("batch_job_submitted", job_id=job_id, receipts=12)
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


class LogPerformance:
    """
    Log how long a block took, as ``<operation>_completed`` or ``<operation>_failed``.

    Usage:
        with LogPerformance("reconciliation", logger, receipts=len(receipts)):
            summary = matcher.reconcile(...)
    """

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger, **context: Any):
        self.operation = operation
        self.logger = logger
        self.context = context
        self._started = 0.0
        self.duration_ms = 0.0

    def __enter__(self) -> "LogPerformance":
        self._started = time.perf_counter()
        self.logger.debug(f"{self.operation}_started", **self.context)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.duration_ms = round((time.perf_counter() - self._started) * 1000, 2)

        if exc_type is None:
            self.logger.info(
                f"{self.operation}_completed", duration_ms=self.duration_ms, **self.context
            )
            return

        self.logger.error(
            f"{self.operation}_failed",
            duration_ms=self.duration_ms,
            error=str(exc_val),
            error_type=exc_type.__name__,
            **self.context,
        )


# Initialize logging on module import
configure_logging()
