"""
Structured JSON logging configuration.

Every log line is a single JSON object on stdout so the portal's logs can be
shipped straight to a container log collector. Log entries are grouped into
channels:

- http: request lifecycle (middleware, route handlers)
- db: engine and table management
- store: record store calls (memory, sql, postgrest backends)
- tokens: QR token issuing and decoding
- checkin: scan resolution and check-in outcomes
- registration: student and event registration

The request ID set by the HTTP middleware is attached to every entry emitted
while that request is being served.
"""

import logging
import json
import os
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from contextvars import ContextVar

# Request ID of the HTTP request currently being served (empty outside requests)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ["http", "db", "store", "tokens", "checkin", "registration"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Render a LogRecord as one JSON object.

    Keys: timestamp (UTC, millisecond precision), level, message, channel,
    context (request_id plus business identifiers such as student_id or
    event_id) and extra (timings, counts, error text).
    """

    def format(self, record: logging.LogRecord) -> str:
        channel = getattr(record, "channel", None)
        if not channel:
            channel = record.name.split(".")[-1] if "." in record.name else "app"

        entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": channel,
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            entry["extra"]["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging():
    """
    Install the JSON formatter on the root logger and set channel levels.

    Safe to call more than once: the root handler list is replaced, not
    appended to.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    level = getattr(logging, LOG_LEVEL, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"checkin_portal.{channel}").setLevel(level)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Return the logger for a channel (http, db, store, tokens, checkin, registration)."""
    return logging.getLogger(f"checkin_portal.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Emit a structured log entry.

    Args:
        logger: Channel logger from get_logger()
        level: Level name (DEBUG, INFO, WARNING, ERROR)
        message: Human-readable message
        context: Business identifiers (student_id, event_id, table)
        extra_data: Metadata such as duration_ms or error text
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


@contextmanager
def timed():
    """Yield a dict that receives duration_ms when the block exits."""
    timing = {}
    start_time = time.time()
    try:
        yield timing
    finally:
        timing["duration_ms"] = round((time.time() - start_time) * 1000, 2)


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
