"""
structlog configuration, with optional forwarding of log events into
the telemetry buffer.
"""
import logging
from typing import Any, Optional
import structlog

from .records import LogRecord, to_jsonable
from .transmission.buffer import EventBuffer

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}

# Keys consumed by the record itself rather than copied as attributes
_RESERVED = frozenset({'event', 'level', 'timestamp', 'trace_id', 'span_id'})


class BufferLogForwarder:
    """
    structlog processor copying log events into the telemetry buffer.

    Events logged by the transmission layer itself are skipped, otherwise
    a failing backend would keep refilling the buffer with its own
    failure logs.
    """

    def __init__(self, buffer: EventBuffer, min_level: str = 'info', environment: Optional[str] = None):
        self.buffer = buffer
        self.min_level = LEVELS.get(min_level.lower(), logging.INFO)
        self.environment = environment

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        if event_dict.get('component') == 'transmission':
            return event_dict

        level = str(event_dict.get('level', method_name)).lower()
        if LEVELS.get(level, logging.INFO) < self.min_level:
            return event_dict

        attributes = {
            key: to_jsonable(value)
            for key, value in event_dict.items()
            if key not in _RESERVED
        }
        if self.environment:
            attributes.setdefault('environment', self.environment)

        self.buffer.add_log(LogRecord(
            level=level,
            message=str(event_dict.get('event', '')),
            attributes=attributes,
            trace_id=event_dict.get('trace_id'),
            span_id=event_dict.get('span_id'),
        ))
        return event_dict


def configure_logging(level: str = 'info', forwarder: Optional[BufferLogForwarder] = None) -> None:
    """
    Configure structured JSON logging.

    Args:
        level: Minimum level printed (debug, info, warning, error). Events
            filtered out here never reach the forwarder either
        forwarder: Processor forwarding events to the telemetry buffer
    """
    processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if forwarder is not None:
        processors.append(forwarder)
    processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LEVELS.get(level.lower(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        # Reconfiguring with a forwarder must reach loggers already in use
        cache_logger_on_first_use=False
    )
