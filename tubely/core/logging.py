from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

import structlog


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(format="%(message)s", level=level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(**initial_values)


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` to every log line emitted inside the block (per task)."""
    with structlog.contextvars.bound_contextvars(**{k: str(v) for k, v in values.items() if v is not None}):
        yield


__all__ = ["configure_logging", "get_logger", "bound_context"]
