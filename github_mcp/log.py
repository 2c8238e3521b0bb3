"""
Structured JSON logging.

Every log line is a single JSON object so that log collectors can index the
fields of audit records (root injection, enforcement denials, auth and
toolset decisions). Structured fields are attached with:

    logger.info("Root arguments injected", extra={"log_data": {"tool": ..., "owner": ...}})

With the stdio transport, stdout carries the MCP protocol stream, so logs
must go to stderr there.
"""

import json
import logging
import sys
from typing import TextIO


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,120", "level": "INFO", "logger": "github_mcp.roots_middleware",
         "message": "Root arguments injected", "tool": "list_issues", "owner": "octocat", "repo": "Hello-World"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "log_data"):
            log_entry.update(record.log_data)
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "info", stream: TextIO | None = None) -> None:
    """Install the JSON formatter on the root logger."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONLogFormatter())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )
