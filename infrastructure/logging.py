# infrastructure/logging.py
"""
Loguru-based structured logging for the deliberation pipeline.

Every record carries the emitting component in extra["component"] and, once
a run has started, the ticker under analysis in extra["ticker"]. Console
output is colored; LOG_JSON=true adds a serialized JSON sink plus one plain
file per component under LOG_DIR.
"""
from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]: <11}</cyan> | "
    "<magenta>{extra[ticker]: <8}</magenta> | "
    "<level>{message}</level>"
)

COMPONENTS = ("analysts", "researchers", "trader", "risk", "graph", "signal", "cache", "dataflow")


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    console: bool = True,
    json_file: bool = False,
    component_filter: Optional[str] = None,
) -> None:
    """
    Replace all sinks.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for JSON and per-component files
        console: Write to stderr
        json_file: Add the JSON sink and per-component files
        component_filter: Only show console records from this component
    """
    logger.remove()
    logger.configure(extra={"component": "system", "ticker": "-"})

    if console:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=True,
            filter=lambda record: component_filter is None or record["extra"]["component"] == component_filter,
        )

    if not json_file:
        return

    os.makedirs(log_dir, exist_ok=True)
    logger.add(
        f"{log_dir}/deliberation_{{time:YYYY-MM-DD}}.json",
        level=level,
        rotation="00:00",
        retention="7 days",
        serialize=True,
    )
    for component in COMPONENTS:
        logger.add(
            f"{log_dir}/{component}_{{time:YYYY-MM-DD}}.log",
            format=CONSOLE_FORMAT,
            level=level,
            rotation="00:00",
            retention="3 days",
            colorize=False,
            filter=lambda record, c=component: record["extra"]["component"] == c,
        )


def get_logger(component: str = "system", **extra: Any):
    """Loguru logger bound to a component (and any extra context, e.g. ticker)."""
    return logger.bind(component=component, **extra)


class ComponentLogger:
    """Per-component logger with ticker binding and operation timing."""

    def __init__(self, component: str, **context: Any):
        self.component = component
        self.context: Dict[str, Any] = context
        self.log = get_logger(component, **context)

    def for_ticker(self, ticker: str) -> "ComponentLogger":
        return ComponentLogger(self.component, **{**self.context, "ticker": ticker})

    def info(self, message: str, **kwargs):
        self.log.info(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.log.debug(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.log.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.log.error(message, **kwargs)

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        """Log how long the wrapped block took, also when it raises."""
        start = time.perf_counter()
        self.log.debug(f"Started: {operation}")
        try:
            yield
        finally:
            self.log.info(f"Completed: {operation} ({time.perf_counter() - start:.2f}s)")

    def log_decision(self, decision: str, details: Optional[dict] = None):
        self.log.bind(details=details or {}).info(f"Decision: {decision}")

    def log_error(self, error: BaseException, context: str = ""):
        """Error with traceback."""
        self.log.opt(exception=error).error(f"Error in {context}: {error}")


analysts_log = ComponentLogger("analysts")
researchers_log = ComponentLogger("researchers")
trader_log = ComponentLogger("trader")
risk_log = ComponentLogger("risk")
graph_log = ComponentLogger("graph")
signal_log = ComponentLogger("signal")
cache_log = ComponentLogger("cache")
dataflow_log = ComponentLogger("dataflow")


setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
    console=True,
    json_file=os.getenv("LOG_JSON", "false").lower() == "true",
)
