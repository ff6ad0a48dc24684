"""
Infrastructure layer.

Components:
- Loguru: structured logging with per-component bound loggers
"""
from .logging import setup_logging, get_logger, ComponentLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "ComponentLogger",
]
