"""Logging configuration and setup."""

import copy
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else was passed via `extra=`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Libraries that log every packet at DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "paho", "uvicorn.access")


class NodeContextFilter(logging.Filter):
    """Stamps every record with the edge node it was emitted for."""

    def __init__(self, group_id: Optional[str] = None, edge_node_id: Optional[str] = None):
        super().__init__()
        self.node = f"{group_id}/{edge_node_id}" if group_id and edge_node_id else None

    def filter(self, record: logging.LogRecord) -> bool:
        if self.node and not hasattr(record, "node"):
            record.node = self.node
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; `extra=` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields from `extra=`
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines, coloured by level on a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        """
        Initialize formatter.

        Args:
            use_colors: Colour the level name when stderr is a terminal
        """
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        node = getattr(record, "node", None)
        if node or (self.use_colors and record.levelname in self.COLORS):
            # The record is shared with other handlers
            record = copy.copy(record)
        if node:
            record.msg = f"[{node}] {record.msg}"
        if self.use_colors and record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    group_id: Optional[str] = None,
    edge_node_id: Optional[str] = None,
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Format type ('json' or 'text')
        group_id: Sparkplug group of the node, added to every record
        edge_node_id: Edge node identifier, added to every record
    """
    # Get numeric level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # One stderr handler carrying the node identity
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.addFilter(NodeContextFilter(group_id, edge_node_id))
    if format_type.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter(use_colors=True))

    # Replace any handlers installed before us
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Quiet third-party loggers
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
