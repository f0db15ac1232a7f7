"""Structured logging helpers for the scenario runtime."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from typing import Any

import structlog
from rich.console import Console
from rich.text import Text

from .config import LogFormat

LOGGER_NAME = "scenario_runtime"


class RichConsoleRenderer:
    """structlog renderer printing one coloured line per event."""

    level_styles = {
        "debug": "dim cyan",
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
    }
    status_styles = {
        "passed": "green",
        "failed": "bold red",
        "ambiguous": "bold red",
        "undefined": "yellow",
        "pending": "yellow",
        "skipped": "dim white",
    }

    def __init__(self, width: int = 200) -> None:
        self.width = width

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = event_dict.pop("event", "")

        text = Text()
        text.append(timestamp, style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(event, style="bold white")

        padding = max(0, 32 - len(event))
        if padding > 0 and event_dict:
            text.append(" " * padding)

        items = [(key, value) for key, value in sorted(event_dict.items()) if key not in ("stack", "exception")]
        for i, (key, value) in enumerate(items):
            text.append(f"{key}=", style="dim white")
            style = self.status_styles.get(str(value), "bright_cyan") if key == "status" else "bright_cyan"
            text.append(str(value), style=style)
            if i < len(items) - 1:
                text.append(" ")

        exception = event_dict.get("exception")
        if exception:
            text.append("\n")
            text.append(str(exception), style="red")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=self.width, legacy_windows=False).print(text, end="")
        return buffer.getvalue()


def configure_logging(log_level: str = "INFO", log_format: LogFormat = "console") -> structlog.stdlib.BoundLogger:
    """Configure structlog for scenario runs and return the runtime logger."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]

    if log_format == "console":
        processors.append(RichConsoleRenderer())
    elif log_format == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:  # json
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(LOGGER_NAME)
