"""
Request instrumentation feeding the telemetry buffer.

Each completed request yields a duration metric, a `request_completed`
log event (buffered through the log forwarder) and, when the request ran
inside a trace, a trace summary.
"""
from typing import Iterable, Optional
import structlog

from .records import MetricRecord, TraceRecord
from .transmission.buffer import EventBuffer

logger = structlog.get_logger()

REQUEST_DURATION_METRIC = 'http_request_duration_seconds'


class RequestRecorder:
    """Turns request outcomes and spans into buffered telemetry."""

    def __init__(self, buffer: EventBuffer):
        self.buffer = buffer

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_s: float,
        trace_id: Optional[str] = None,
        url: Optional[str] = None
    ) -> None:
        """
        Record one completed request.

        Args:
            method: HTTP method
            path: Route pattern or path
            status_code: Response status
            duration_s: Request duration in seconds
            trace_id: Active trace id, if the request was traced
            url: Full request URL (defaults to path)
        """
        self.buffer.add_metric(MetricRecord(
            name=REQUEST_DURATION_METRIC,
            value=duration_s,
            labels={
                'method': method,
                'route': path,
                'status_code': str(status_code),
            },
        ))

        if trace_id:
            self.buffer.add_trace(TraceRecord.summary(
                trace_id=trace_id,
                method=method,
                path=path,
                duration_s=duration_s,
                url=url,
            ))

        logger.info(
            "request_completed",
            method=method,
            url=url or path,
            status_code=status_code,
            duration_s=duration_s,
            trace_id=trace_id
        )

    def record_spans(self, spans: Iterable[TraceRecord]) -> None:
        """Add finished spans in one append."""
        spans = list(spans)
        if spans:
            self.buffer.add_trace(spans)
            logger.debug("spans_recorded", count=len(spans))
