"""
JSON logging for the server.

Every line carries the trace_id / span_id of the span that was active when it
was emitted, so a "Handled /sum request" log line can be matched to the
exported span in the tracing backend.
"""

import logging
import sys

from opentelemetry import trace
from pythonjsonlogger.json import JsonFormatter


class CorrelationJsonFormatter(JsonFormatter):
    """JSON formatter that adds the active span's ids to each record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            log_record["trace_id"] = format(ctx.trace_id, "032x")
            log_record["span_id"] = format(ctx.span_id, "016x")

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["timestamp"] = self.formatTime(record, self.datefmt)


_HANDLER_NAME = "http-server-json"


def setup_logging(level="INFO"):
    """
    Send JSON log lines to stdout from the root logger.

    Calling this again swaps the previous handler instead of adding a second one.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(CorrelationJsonFormatter(
        fmt="%(timestamp)s %(level)s %(logger)s %(message)s",
        rename_fields={"message": "msg"},
    ))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # werkzeug prints its own access line per request
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    return handler
