"""Log formatters for JSON and console output."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from core.logging.context import get_log_context


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Descriptor identity
        "sequence_id",
        "ticker",
        "timeframe",
        "bucket",
        "file_name",
        "download_url",
        "local_path",
        # Fetch outcome
        "http_status",
        "content_length",
        "bytes_written",
        "duration_ms",
        "error_kind",
        "error_category",
        "error_message",
        "overwrite",
        # Batch tracking
        "batch_size",
        "batch_number",
        "failures",
        "retry_state",
        "done_reason",
        "unresolved",
        "answer",
        "max_concurrency",
    ]

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Inject context variables
        ctx = get_log_context()
        if ctx["domain"]:
            log_entry["domain"] = ctx["domain"]
        if ctx["stage"]:
            log_entry["stage"] = ctx["stage"]
        if ctx["batch_id"]:
            log_entry["batch_id"] = ctx["batch_id"]

        # Add source location for DEBUG/ERROR
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Includes context when available.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()

        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]

        if ctx["stage"]:
            parts.append(f"[{ctx['stage']}]")
        if ctx["batch_id"]:
            parts.append(f"[{ctx['batch_id']}]")

        prefix = " - ".join(parts)

        sequence_id = getattr(record, "sequence_id", None)
        if sequence_id is not None:
            return f"{prefix} - [#{sequence_id}] {record.getMessage()}"

        return f"{prefix} - {record.getMessage()}"
