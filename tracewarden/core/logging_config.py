"""
Centralized logging configuration with request_id and trace_id context support using loguru.

This module configures loguru to intercept all standard logging calls and provides
automatic context propagation using contextvars. Also supports OpenTelemetry log export.
"""

import json
import logging
import sys
from contextvars import ContextVar
from types import FrameType
import traceback
from typing import Optional

from loguru import logger

from tracewarden.core.config import settings

# Context variables for request_id and trace_id
# request_id is set per HTTP request, trace_id per analysis pass
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="-")


class InterceptHandler(logging.Handler):
    """
    Handler that intercepts standard logging calls and redirects them to loguru.

    Every module logs through logging.getLogger(__name__); this handler makes
    those records flow through the loguru sinks configured below.
    """

    def emit(self, record: logging.LogRecord):
        """Intercept standard logging record and pass to loguru."""
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logging call originated
        frame: Optional[FrameType] = sys._getframe(settings.LOGGING_FRAME_DEPTH)
        depth: int = settings.LOGGING_FRAME_DEPTH

        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def context_filter(record):
    """
    Filter that adds request_id and trace_id from contextvars to log records.

    All logs within a request or an analysis pass automatically include the
    context without binding the logger everywhere.
    """
    request_id = request_id_var.get()
    if request_id and request_id != "-":
        record["extra"]["request_id"] = request_id

    trace_id = trace_id_var.get()
    if trace_id and trace_id != "-":
        record["extra"]["trace_id"] = trace_id

    return record


def build_simplified_json_record(record):
    """
    Build a simplified JSON log record from a loguru record.

    Only includes essential fields:
    - timestamp
    - level
    - logger name
    - message
    - request_id (if present)
    - trace_id (if present)
    - exception (if present)
    """
    log_record = {
        "timestamp": record["time"].strftime("%Y-%m-%d %H:%M:%S"),
        "level": record["level"].name,
        "logger": record["name"],
        "message": record["message"],
    }

    if "request_id" in record["extra"]:
        log_record["request_id"] = record["extra"]["request_id"]

    if "trace_id" in record["extra"]:
        log_record["trace_id"] = record["extra"]["trace_id"]

    if record["exception"]:
        traceback_text = None
        if record["exception"].traceback:
            try:
                traceback_text = "".join(
                    traceback.format_exception(
                        record["exception"].type,
                        record["exception"].value,
                        record["exception"].traceback,
                    )
                ).strip()
            except Exception:
                # Fall back to stringifying the traceback object if formatting fails
                traceback_text = str(record["exception"].traceback)

        log_record["exception"] = {
            "type": (
                record["exception"].type.__name__ if record["exception"].type else None
            ),
            "value": (
                str(record["exception"].value) if record["exception"].value else None
            ),
            "traceback": traceback_text,
        }
    else:
        log_record["exception"] = None

    return log_record


def custom_json_sink(message):
    """
    Custom sink that wraps sys.stderr and formats logs as simplified JSON.
    """
    record = message.record
    log_record = build_simplified_json_record(record)
    sys.stderr.write(json.dumps(log_record) + "\n")


def otel_sink(message, otel_handler: logging.Handler):
    """
    Bridge loguru records to OpenTelemetry logging handler.

    Args:
        message: Loguru message object
        otel_handler: OpenTelemetry LoggingHandler instance
    """
    record = message.record

    log_record = logging.LogRecord(
        name=record["name"],
        level=record["level"].no,
        pathname=record["file"].path,
        lineno=record["line"],
        msg=record["message"],
        args=(),
        exc_info=record["exception"],
    )

    if "request_id" in record["extra"]:
        log_record.request_id = record["extra"]["request_id"]
    if "trace_id" in record["extra"]:
        log_record.trace_id = record["extra"]["trace_id"]

    otel_handler.emit(log_record)


def configure_logging(otel_handler: Optional[logging.Handler] = None):
    """
    Configure logging for the application using loguru.

    Args:
        otel_handler: Optional OpenTelemetry LoggingHandler for OTLP log export

    This function:
    1. Removes default loguru handler
    2. Adds custom JSON sink for simplified JSON logging (console)
    3. Adds OpenTelemetry sink if handler provided (OTLP export)
    4. Configures context filter to inject request_id and trace_id from contextvars
    5. Intercepts all standard logging calls to redirect to loguru
    6. Configures log level from settings
    """
    logger.remove()

    log_level = settings.LOG_LEVEL

    logger.add(
        custom_json_sink,
        level=log_level,
        backtrace=True,
        diagnose=False,
        filter=context_filter,
    )

    if otel_handler:
        logger.add(
            lambda msg: otel_sink(msg, otel_handler),
            level=log_level,
            filter=context_filter,
            format="{message}",
        )
        logger.info("OpenTelemetry logging sink configured")

    # Intercept standard logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Set logging level for commonly verbose libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info("Logging configured successfully with loguru")


def set_request_id(request_id: str):
    """
    Set the request_id for the current context.

    Called at the beginning of each request (in middleware).
    """
    request_id_var.set(request_id)


def set_trace_id(trace_id: str):
    """
    Set the trace_id for the current context.

    Called by the analysis worker before each analysis pass so that
    findings logged during the pass carry the trace they came from.
    """
    trace_id_var.set(trace_id)


def clear_request_id():
    """Clear the request_id from the current context."""
    request_id_var.set("-")


def clear_trace_id():
    """Clear the trace_id from the current context."""
    trace_id_var.set("-")


def get_request_id() -> str:
    """Get the current request_id from context."""
    return request_id_var.get()


def get_trace_id() -> str:
    """Get the current trace_id from context."""
    return trace_id_var.get()
